"""Pre-filling of the scanner's own small holes.

Cells the scanner returned nothing for (sensor holes) are filled before
the cloud is used, so the later gradient and texture stages see a dense
RGBD raster. Unlike the texture stage this is a smoothing fill: each pass
sets every hole cell that has a known cell within ``kernel_radius`` to the
Gaussian-weighted mean of its known neighbours (normalized convolution),
and passes repeat until nothing is left.

With ``downsample_factor`` > 1, a coarse level built from block means of
known cells is filled recursively first; cells still empty after
``kernel_radius`` fine passes take their value from the coarse level.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
from scipy import ndimage
from skimage.measure import block_reduce

from holefill_ecs.components.cloud import SensorMask
from holefill_ecs.components.raster import FilledRGBD, RGBDImage
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.system import System
from holefill_ecs.errors import FillIncompleteError, RasterShapeError

if TYPE_CHECKING:
    from holefill_ecs.core.world import World

logger = logging.getLogger(__name__)

MAX_LEVELS = 8


class SmallHoleFiller(ABC):
    """Fills every hole cell of a raster, leaving known cells untouched."""

    @abstractmethod
    def fill(self, image: np.ndarray, mask: ValidityMask) -> np.ndarray:
        """Return a filled copy of ``image``."""


def gaussian_kernel(radius: int) -> np.ndarray:
    """Normalized (2r+1)x(2r+1) Gaussian with sigma = max(r / 2, 0.5)."""
    sigma = max(radius / 2.0, 0.5)
    ax = np.arange(-radius, radius + 1, dtype=np.float64)
    g = np.exp(-(ax ** 2) / (2.0 * sigma ** 2))
    kernel = np.outer(g, g)
    return kernel / kernel.sum()


class KernelHoleFiller(SmallHoleFiller):
    """Iterated normalized convolution with an optional coarse level.

    Args:
        kernel_radius: Neighbourhood radius of each pass
        downsample_factor: Block size of the coarse level; 1 disables it
    """

    def __init__(self, kernel_radius: int = 1, downsample_factor: int = 1) -> None:
        if kernel_radius < 1:
            raise ValueError(f"kernel_radius must be >= 1, got {kernel_radius}")
        if downsample_factor < 1:
            raise ValueError(f"downsample_factor must be >= 1, got {downsample_factor}")
        self.kernel_radius = kernel_radius
        self.downsample_factor = downsample_factor
        self._kernel = gaussian_kernel(kernel_radius)

    def fill(self, image: np.ndarray, mask: ValidityMask) -> np.ndarray:
        src = np.asarray(image)
        squeeze = src.ndim == 2
        img = np.array(src[..., np.newaxis] if squeeze else src, dtype=np.float64)
        if img.shape[:2] != mask.shape:
            raise RasterShapeError(
                f"Raster has spatial shape {img.shape[:2]}, mask region is {mask.region}"
            )
        if mask.hole_count == 0:
            return np.array(src, copy=True)
        if mask.valid_count == 0:
            raise FillIncompleteError("Raster has no known cells to fill from")

        out = self._fill_level(img, mask.valid, level=0)
        # Known cells are carried over exactly
        out[mask.valid] = img[mask.valid]
        if squeeze:
            out = out[..., 0]
        return out.astype(src.dtype if np.issubdtype(src.dtype, np.floating) else np.float32)

    def _fill_level(self, img: np.ndarray, known: np.ndarray, level: int) -> np.ndarray:
        out = img.copy()
        out[~known] = 0.0
        filled = known.copy()
        rows, cols = known.shape

        seed = None
        f = self.downsample_factor
        if f > 1 and level < MAX_LEVELS and min(rows, cols) >= 2 * f:
            coarse, coarse_known = self._downsample(out, filled)
            if not coarse_known.all():
                coarse = self._fill_level(coarse, coarse_known, level + 1)
            seed = np.repeat(np.repeat(coarse, f, axis=0), f, axis=1)[:rows, :cols]

        passes = 0
        while not filled.all():
            if seed is not None and passes >= self.kernel_radius:
                out[~filled] = seed[~filled]
                logger.debug(
                    "Level %d: %d cells seeded from coarse level", level, int((~filled).sum())
                )
                break
            if not self._propagate(out, filled).any():
                raise FillIncompleteError(f"Hole filling stalled at level {level}")
            passes += 1

        logger.debug("Level %d (%dx%d) filled after %d passes", level, rows, cols, passes)
        return out

    def _propagate(self, out: np.ndarray, filled: np.ndarray) -> np.ndarray:
        weight = ndimage.convolve(filled.astype(np.float64), self._kernel, mode="constant")
        newly = ~filled & (weight > 0)
        if not newly.any():
            return newly
        for c in range(out.shape[2]):
            total = ndimage.convolve(out[..., c] * filled, self._kernel, mode="constant")
            out[..., c][newly] = total[newly] / weight[newly]
        filled |= newly
        return newly

    def _downsample(self, img: np.ndarray, known: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        f = self.downsample_factor
        counts = block_reduce(known.astype(np.float64), (f, f), func=np.sum, cval=0)
        sums = block_reduce(img * known[..., np.newaxis], (f, f, 1), func=np.sum, cval=0)
        coarse_known = counts > 0
        coarse = np.zeros_like(sums)
        coarse[coarse_known] = sums[coarse_known] / counts[coarse_known][:, np.newaxis]
        return coarse, coarse_known


class SmallHoleFill(System):
    """RGBDImage + SensorMask -> FilledRGBD.

    Args:
        kernel_radius: Neighbourhood radius of each pass
        downsample_factor: Block size of the coarse level
        filler: Filling implementation (default KernelHoleFiller)
    """

    def __init__(
        self,
        kernel_radius: int = 1,
        downsample_factor: int = 1,
        filler: SmallHoleFiller | None = None,
    ) -> None:
        self.filler = (
            filler if filler is not None else KernelHoleFiller(kernel_radius, downsample_factor)
        )

    def required_components(self) -> list[type]:
        return [RGBDImage, SensorMask]

    def produced_components(self) -> list[type]:
        return [FilledRGBD]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            rgbd = world.view(eid, RGBDImage)
            mask = ValidityMask(world.view(eid, SensorMask))
            filled = self.filler.fill(rgbd, mask)
            world.spawn_raster(FilledRGBD, filled.astype(np.float32), eid=eid)
            logger.info("Pre-filled %d sensor holes", mask.hole_count)

    def __repr__(self) -> str:
        return f"SmallHoleFill(filler={type(self.filler).__name__})"
