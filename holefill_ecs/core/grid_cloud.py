"""GridCloud: an organized point cloud from a range scanner.

The cloud is a fixed ``rows x cols`` grid. Each cell stores a 3-D position,
an intensity, an RGB colour and a validity flag. Every cell also has a unit
viewing ray, so position and depth are interchangeable: ``depth = |xyz|``
and ``xyz = ray * depth``. Rays of invalid cells (stored at the origin by
the scanner) are estimated from the regular azimuth/elevation sampling of
the scan: azimuth varies with the column and elevation with the row.

All mutation happens in place through ``mark_all_valid`` and the
``replace_*`` methods. ``copy`` duplicates the whole grid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from holefill_ecs.core.mask import GridRegion, ValidityMask
from holefill_ecs.errors import RasterShapeError

logger = logging.getLogger(__name__)

VALID_LABEL = 255
HOLE_LABEL = 0


def _identity_rows() -> np.ndarray:
    return np.eye(4, dtype=np.float64)


@dataclass
class ScanHeader:
    """PTX scan header, carried through unchanged.

    Attributes:
        scanner_position: Registered scanner position (3,)
        scanner_axes: Scanner x/y/z axes as rows (3, 3)
        transform: Registration transform (4, 4), row-major as in the file
    """

    scanner_position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    scanner_axes: np.ndarray = field(default_factory=lambda: np.eye(3))
    transform: np.ndarray = field(default_factory=_identity_rows)

    def copy(self) -> ScanHeader:
        return ScanHeader(
            scanner_position=self.scanner_position.copy(),
            scanner_axes=self.scanner_axes.copy(),
            transform=self.transform.copy(),
        )


def estimate_rays(xyz: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Estimate a unit viewing ray for every cell of a scan grid.

    Valid cells use their normalized position. Invalid cells get the ray
    at the column's azimuth and the row's elevation, where per-column
    azimuth and per-row elevation are circular means over valid cells,
    linearly interpolated across columns/rows with no valid cell.

    Raises:
        ValueError: If the grid has no valid cell to estimate from
    """
    rows, cols = valid.shape
    if not valid.any():
        raise ValueError("Cannot estimate viewing rays: the grid has no valid point")

    x, y, z = xyz[..., 0], xyz[..., 1], xyz[..., 2]
    azimuth = np.arctan2(y, x)
    elevation = np.arctan2(z, np.hypot(x, y))

    def _circular_profile(angles: np.ndarray, axis: int, length: int) -> np.ndarray:
        weight = valid.astype(np.float64)
        s = (np.sin(angles) * weight).sum(axis=axis)
        c = (np.cos(angles) * weight).sum(axis=axis)
        counts = weight.sum(axis=axis)
        known = counts > 0
        index = np.arange(length)
        mean = np.unwrap(np.arctan2(s[known], c[known]))
        return np.interp(index, index[known], mean)

    col_azimuth = _circular_profile(azimuth, axis=0, length=cols)
    row_elevation = _circular_profile(elevation, axis=1, length=rows)

    az = np.broadcast_to(col_azimuth[np.newaxis, :], (rows, cols))
    el = np.broadcast_to(row_elevation[:, np.newaxis], (rows, cols))
    rays = np.stack(
        [np.cos(el) * np.cos(az), np.cos(el) * np.sin(az), np.sin(el)], axis=-1
    )

    ranges = np.linalg.norm(xyz, axis=-1)
    measured = valid & (ranges > 0)
    rays[measured] = xyz[measured] / ranges[measured][:, np.newaxis]
    return rays


class GridCloud:
    """Organized point cloud with per-cell position, colour and validity.

    Attributes:
        xyz: (rows, cols, 3) float64 positions
        intensity: (rows, cols) float32 return intensity
        rgb: (rows, cols, 3) uint8 colours
        valid: (rows, cols) bool validity flags
        rays: (rows, cols, 3) float64 unit viewing rays
        header: PTX header carried through to export
    """

    def __init__(
        self,
        xyz: np.ndarray,
        rgb: np.ndarray,
        valid: np.ndarray,
        intensity: np.ndarray | None = None,
        rays: np.ndarray | None = None,
        header: ScanHeader | None = None,
    ):
        xyz = np.asarray(xyz, dtype=np.float64)
        if xyz.ndim != 3 or xyz.shape[2] != 3:
            raise ValueError(f"Expected positions with shape (rows, cols, 3), got {xyz.shape}")
        rows, cols = xyz.shape[:2]

        rgb = np.asarray(rgb)
        valid = np.asarray(valid, dtype=bool)
        if rgb.shape != (rows, cols, 3):
            raise ValueError(f"Expected colours with shape {(rows, cols, 3)}, got {rgb.shape}")
        if valid.shape != (rows, cols):
            raise ValueError(f"Expected validity with shape {(rows, cols)}, got {valid.shape}")

        self.xyz = xyz.copy()
        self.rgb = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        self.valid = valid.copy()
        if intensity is None:
            self.intensity = np.where(valid, 0.5, 0.0).astype(np.float32)
        else:
            self.intensity = np.asarray(intensity, dtype=np.float32).reshape(rows, cols).copy()
        if rays is None:
            self.rays = estimate_rays(self.xyz, self.valid)
        else:
            rays = np.asarray(rays, dtype=np.float64)
            if rays.shape != (rows, cols, 3):
                raise ValueError(f"Expected rays with shape {(rows, cols, 3)}, got {rays.shape}")
            norms = np.linalg.norm(rays, axis=-1, keepdims=True)
            if np.any(norms == 0):
                raise ValueError("Viewing rays must be non-zero")
            self.rays = rays / norms
        self.header = header.copy() if header is not None else ScanHeader()

    @classmethod
    def from_depth(
        cls,
        depth: np.ndarray,
        rgb: np.ndarray,
        valid: np.ndarray,
        rays: np.ndarray,
        intensity: np.ndarray | None = None,
    ) -> GridCloud:
        """Build a cloud from a depth raster and per-cell viewing rays."""
        rays = np.asarray(rays, dtype=np.float64)
        rays = rays / np.linalg.norm(rays, axis=-1, keepdims=True)
        xyz = rays * np.asarray(depth, dtype=np.float64)[..., np.newaxis]
        return cls(xyz=xyz, rgb=rgb, valid=valid, intensity=intensity, rays=rays)

    @property
    def region(self) -> GridRegion:
        return GridRegion(rows=self.xyz.shape[0], cols=self.xyz.shape[1])

    @property
    def shape(self) -> tuple[int, int]:
        return self.region.shape

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid))

    def copy(self) -> GridCloud:
        """Independent deep copy of the whole grid."""
        return GridCloud(
            xyz=self.xyz,
            rgb=self.rgb,
            valid=self.valid,
            intensity=self.intensity,
            rays=self.rays,
            header=self.header,
        )

    # Derived rasters

    def derive_depth(self) -> np.ndarray:
        """Range along each cell's ray; defined (possibly 0) for invalid cells."""
        return np.linalg.norm(self.xyz, axis=-1).astype(np.float32)

    def derive_rgb(self) -> np.ndarray:
        return self.rgb.astype(np.float32)

    def derive_rgbd(self) -> np.ndarray:
        return np.concatenate([self.derive_rgb(), self.derive_depth()[..., np.newaxis]], axis=2)

    def derive_validity(self) -> np.ndarray:
        """uint8 label raster: VALID_LABEL on valid cells, HOLE_LABEL elsewhere."""
        return np.where(self.valid, VALID_LABEL, HOLE_LABEL).astype(np.uint8)

    def validity_mask(self) -> ValidityMask:
        return ValidityMask.from_labels(self.derive_validity(), hole_value=HOLE_LABEL)

    # In-place mutation

    def mark_all_valid(self) -> None:
        """Flag every cell valid. Call before replace_* to overwrite every cell."""
        self.valid[...] = True

    def replace_depth(self, depth: np.ndarray) -> None:
        """Move every currently valid point along its ray to the given depth.

        Cells still marked invalid are left untouched.
        """
        depth = self._check_raster(depth, 1, "depth")
        sel = self.valid
        self.xyz[sel] = self.rays[sel] * depth[sel].astype(np.float64)[:, np.newaxis]
        logger.debug("Replaced depth of %d cells", int(np.count_nonzero(sel)))

    def replace_rgb(self, rgb: np.ndarray) -> None:
        """Overwrite colour of currently valid cells (rounded, clipped to 0..255)."""
        rgb = self._check_raster(rgb, 3, "rgb")
        sel = self.valid
        self.rgb[sel] = np.clip(np.rint(rgb[sel]), 0, 255).astype(np.uint8)

    def replace_rgbd(self, rgbd: np.ndarray) -> None:
        rgbd = self._check_raster(rgbd, 4, "rgbd")
        self.replace_rgb(rgbd[..., :3])
        self.replace_depth(rgbd[..., 3])

    def valid_points(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Positions, colours and intensities of valid cells, in row-major order."""
        sel = self.valid
        return self.xyz[sel], self.rgb[sel], self.intensity[sel]

    def _check_raster(self, raster: np.ndarray, channels: int, what: str) -> np.ndarray:
        arr = np.asarray(raster)
        expected = self.shape if channels == 1 else self.shape + (channels,)
        if arr.shape != expected:
            raise RasterShapeError(
                f"{what} raster has shape {arr.shape}, cloud expects {expected}"
            )
        return arr

    def __repr__(self) -> str:
        return f"GridCloud(region={self.region}, valid={self.valid_count}/{self.region.cells})"
