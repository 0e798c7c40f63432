"""Exception types raised by the hole-filling pipeline.

Every failure is fatal for the run. The classes also derive from the
built-in exception a caller would otherwise expect (ValueError for
precondition violations, RuntimeError for collaborator failures) so
generic handlers keep working.
"""

from __future__ import annotations


class HoleFillError(Exception):
    """Base class for all pipeline errors."""


class RegionMismatchError(HoleFillError, ValueError):
    """Mask and point cloud (or two masks) cover different grid regions."""


class RasterShapeError(HoleFillError, ValueError):
    """A raster's spatial dimensions do not match what the stage expects."""


class ChannelIndexError(HoleFillError, IndexError):
    """A channel index outside ``[0, channels)`` was requested."""


class FillIncompleteError(HoleFillError, RuntimeError):
    """A filler could not make progress into the remaining hole."""


class SingularSystemError(HoleFillError, RuntimeError):
    """The gradient-domain linear system is singular or produced no finite solution."""
