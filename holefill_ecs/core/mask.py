"""Validity mask: which grid cells carry a trusted sample.

``True`` marks a known (valid) cell and ``False`` a hole. Masks are only
comparable when their grid regions are identical; there is no implicit
resizing or cropping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from skimage.measure import label

from holefill_ecs.errors import RegionMismatchError


@dataclass(frozen=True)
class GridRegion:
    """Dimensions of an organized grid (the ITK-style "largest region")."""

    rows: int
    cols: int

    @property
    def shape(self) -> tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def cells(self) -> int:
        return self.rows * self.cols

    def __str__(self) -> str:
        return f"[rows={self.rows}, cols={self.cols}]"


class ValidityMask:
    """Boolean raster separating known cells from holes.

    Attributes:
        valid: (rows, cols) bool array, True = known sample
    """

    def __init__(self, valid: np.ndarray):
        arr = np.asarray(valid)
        if arr.ndim != 2:
            raise ValueError(f"Expected a 2-D mask, got shape {arr.shape}")
        self.valid = arr.astype(bool, copy=True)

    @classmethod
    def from_labels(cls, raster: np.ndarray, hole_value: Any) -> ValidityMask:
        """Build a mask from a labelled raster.

        Cells equal to ``hole_value`` become holes, every other cell is valid.
        Multi-channel rasters are holes only where all channels equal the
        sentinel.
        """
        arr = np.asarray(raster)
        is_hole = arr == hole_value
        if arr.ndim == 3:
            is_hole = is_hole.all(axis=2)
        return cls(~is_hole)

    @classmethod
    def all_valid(cls, rows: int, cols: int) -> ValidityMask:
        return cls(np.ones((rows, cols), dtype=bool))

    @property
    def region(self) -> GridRegion:
        return GridRegion(rows=self.valid.shape[0], cols=self.valid.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        return self.region.shape

    @property
    def holes(self) -> np.ndarray:
        """Bool array, True where the cell is a hole."""
        return ~self.valid

    @property
    def hole_count(self) -> int:
        return int(self.valid.size - np.count_nonzero(self.valid))

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid))

    def is_hole(self, row: int, col: int) -> bool:
        return not bool(self.valid[row, col])

    def same_region(self, other: ValidityMask | GridRegion) -> bool:
        """True iff the other mask (or region) has exactly the same dimensions."""
        other_region = other if isinstance(other, GridRegion) else other.region
        return self.region == other_region

    def require_same_region(self, other: ValidityMask | GridRegion, what: str = "cloud") -> None:
        """Raise RegionMismatchError, naming both regions, if dimensions differ."""
        if not self.same_region(other):
            other_region = other if isinstance(other, GridRegion) else other.region
            raise RegionMismatchError(
                f"{what} and mask must be the same size! "
                f"{what} is {other_region} and mask is {self.region}"
            )

    def hole_components(self) -> tuple[np.ndarray, int]:
        """Label 4-connected hole regions.

        Returns:
            (labels, count) where labels is an int array, 0 on valid cells
        """
        labels, count = label(self.holes, connectivity=1, return_num=True, background=0)
        return labels, int(count)

    def to_labels(self, valid_value: int = 255, hole_value: int = 0) -> np.ndarray:
        """Render as a uint8 label image."""
        out = np.full(self.valid.shape, hole_value, dtype=np.uint8)
        out[self.valid] = valid_value
        return out

    def copy(self) -> ValidityMask:
        return ValidityMask(self.valid)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidityMask):
            return NotImplemented
        return self.same_region(other) and bool(np.array_equal(self.valid, other.valid))

    def __repr__(self) -> str:
        return f"ValidityMask(region={self.region}, holes={self.hole_count})"
