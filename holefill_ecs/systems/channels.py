"""Channel compositing: stack rasters into one, extract channels back out.

The output channel ranges of a stack are the cumulative channel offsets of
its inputs, in input order. Extraction preserves the requested order,
which need not be ascending.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import numpy as np

from holefill_ecs.components.raster import Raster
from holefill_ecs.core.system import System
from holefill_ecs.errors import ChannelIndexError, RasterShapeError

if TYPE_CHECKING:
    from numpy.typing import DTypeLike

    from holefill_ecs.core.world import World


def _as_channels(raster: np.ndarray) -> np.ndarray:
    arr = np.asarray(raster)
    if arr.ndim == 2:
        return arr[..., np.newaxis]
    if arr.ndim == 3:
        return arr
    raise RasterShapeError(f"Expected a (rows, cols[, channels]) raster, got shape {arr.shape}")


def channel_ranges(channel_counts: Sequence[int]) -> list[tuple[int, ...]]:
    """Channel indices each input occupies in the stacked output.

    Example:
        >>> channel_ranges([3, 2])
        [(0, 1, 2), (3, 4)]
    """
    offsets = np.cumsum([0, *channel_counts])
    return [tuple(range(int(a), int(b))) for a, b in zip(offsets[:-1], offsets[1:])]


def stack_channels(
    rasters: Sequence[np.ndarray], dtype: DTypeLike | None = None
) -> np.ndarray:
    """Concatenate rasters along the channel axis in the given order.

    The result has ``dtype`` if given, else the common type of the inputs.

    Raises:
        RasterShapeError: If the inputs differ in spatial dimensions or none are given
    """
    if not rasters:
        raise RasterShapeError("stack_channels needs at least one raster")
    parts = [_as_channels(r) for r in rasters]
    grid = parts[0].shape[:2]
    for i, part in enumerate(parts):
        if part.shape[:2] != grid:
            raise RasterShapeError(
                f"Raster {i} has spatial shape {part.shape[:2]}, expected {grid}"
            )
    if dtype is None:
        dtype = np.result_type(*parts)
    return np.concatenate([p.astype(dtype, copy=False) for p in parts], axis=2)


def extract_channels(raster: np.ndarray, channels: Sequence[int]) -> np.ndarray:
    """Select channels in the given order into a new raster.

    A single selected channel is returned as a 2-D raster.

    Raises:
        ChannelIndexError: If an index is outside ``[0, channels)`` or none are given
    """
    arr = _as_channels(raster)
    count = arr.shape[2]
    indices = [int(c) for c in channels]
    if not indices:
        raise ChannelIndexError("extract_channels needs at least one channel index")
    bad = [c for c in indices if not 0 <= c < count]
    if bad:
        raise ChannelIndexError(
            f"Channel indices {bad} out of range for a {count}-channel raster"
        )
    out = arr[..., indices].copy()
    return out[..., 0] if len(indices) == 1 else out


class StackChannels(System):
    """Stack raster components into one composite component.

    Args:
        sources: Raster component types, in channel order
        target: Component type receiving the composite
    """

    def __init__(self, sources: Sequence[type[Raster]], target: type[Raster]) -> None:
        self.sources = list(sources)
        self.target = target

    def required_components(self) -> list[type]:
        return list(self.sources)

    def produced_components(self) -> list[type]:
        return [self.target]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            stacked = stack_channels(
                [world.view(eid, src) for src in self.sources], dtype=np.float32
            )
            world.spawn_raster(self.target, stacked, eid=eid)

    def __repr__(self) -> str:
        names = ", ".join(s.__name__ for s in self.sources)
        return f"StackChannels([{names}] -> {self.target.__name__})"


class ExtractChannels(System):
    """Copy selected channels of a composite into a new component.

    Args:
        source: Composite component type
        channels: Channel indices, in output order
        target: Component type receiving the channels
    """

    def __init__(self, source: type[Raster], channels: Sequence[int], target: type[Raster]) -> None:
        self.source = source
        self.channels = tuple(channels)
        self.target = target

    def required_components(self) -> list[type]:
        return [self.source]

    def produced_components(self) -> list[type]:
        return [self.target]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            extracted = extract_channels(world.view(eid, self.source), self.channels)
            world.spawn_raster(self.target, extracted, eid=eid)

    def __repr__(self) -> str:
        return (
            f"ExtractChannels({self.source.__name__}{list(self.channels)} "
            f"-> {self.target.__name__})"
        )
