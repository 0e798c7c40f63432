"""Exemplar-based multi-channel texture filling.

The texture stage fills the hole of a multi-channel raster (RGBDxDy) by
copying whole patches from its known region, so colour and depth gradient
are filled jointly from the same exemplar.

``ExemplarInpainter`` follows Criminisi et al.: the fill front is processed
in priority order (confidence x data term); for the chosen target patch the
``knn`` source patches with the smallest SSD over the target's known pixels
are retrieved, and a texture check (per-channel spread) picks the one to
copy.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy import ndimage

from holefill_ecs.components.cloud import HoleMask
from holefill_ecs.components.raster import FilledRGBDxDy, RGBDxDy
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.system import System
from holefill_ecs.errors import FillIncompleteError, RasterShapeError

if TYPE_CHECKING:
    from holefill_ecs.core.world import World

logger = logging.getLogger(__name__)

_CROSS = ndimage.generate_binary_structure(2, 1)
_EPS = 1e-3


class MultiChannelFiller(ABC):
    """Fills the hole of a multi-channel raster.

    Implementations must return a raster of the input's shape in which every
    cell is defined and every known cell is unchanged, or raise
    FillIncompleteError.
    """

    @abstractmethod
    def fill(
        self,
        image: np.ndarray,
        mask: ValidityMask,
        patch_half_width: int,
        knn: int,
    ) -> np.ndarray:
        """Return a filled copy of ``image``."""


class ExemplarInpainter(MultiChannelFiller):
    """Priority-driven exemplar inpainting with k-NN patch search.

    Args:
        max_source_patches: Cap on the number of source patches searched;
            larger pools are subsampled with a fixed seed
        normalize_channels: Weight channels by 1/std of their known values so
            small-valued channels (gradients) count as much as colour
        seed: Seed for source-patch subsampling
    """

    def __init__(
        self,
        max_source_patches: int | None = 50_000,
        normalize_channels: bool = True,
        seed: int = 0,
    ) -> None:
        if max_source_patches is not None and max_source_patches < 1:
            raise ValueError(f"max_source_patches must be >= 1, got {max_source_patches}")
        self.max_source_patches = max_source_patches
        self.normalize_channels = normalize_channels
        self.seed = seed

    def fill(
        self,
        image: np.ndarray,
        mask: ValidityMask,
        patch_half_width: int,
        knn: int,
    ) -> np.ndarray:
        if patch_half_width < 1:
            raise ValueError(f"patch_half_width must be >= 1, got {patch_half_width}")
        if knn < 1:
            raise ValueError(f"knn must be >= 1, got {knn}")

        src = np.asarray(image)
        squeeze = src.ndim == 2
        img = np.array(src[..., np.newaxis] if squeeze else src, dtype=np.float64)
        if img.shape[:2] != mask.shape:
            raise RasterShapeError(
                f"Raster has spatial shape {img.shape[:2]}, mask region is {mask.region}"
            )
        if mask.hole_count == 0:
            return np.array(src, copy=True)

        r = patch_half_width
        size = 2 * r + 1
        rows, cols, channels = img.shape
        if rows < size or cols < size:
            raise FillIncompleteError(
                f"Patch of size {size} does not fit a {rows}x{cols} raster"
            )

        scale = self._channel_scale(img, mask.valid)
        centers = self._source_centers(mask.valid, r)
        if len(centers) == 0:
            raise FillIncompleteError(
                f"No fully known {size}x{size} source patch exists; cannot fill the hole"
            )
        features = self._patch_features(img * scale, centers, r)
        sq_features = features ** 2
        k = min(knn, len(centers))
        logger.info(
            "Exemplar fill: %d hole cells, %d source patches, patch %dx%d, k=%d",
            mask.hole_count, len(centers), size, size, k,
        )

        # Padded working copies; the padding is unknown and never a source
        pad_img = np.pad(img, ((r, r), (r, r), (0, 0)))
        pad_known = np.pad(mask.valid, r, constant_values=False)
        pad_inside = np.pad(np.ones(mask.shape, dtype=bool), r, constant_values=False)
        pad_conf = pad_known.astype(np.float64)
        view = (slice(r, r + rows), slice(r, r + cols))

        ys, xs = np.nonzero(mask.holes)
        y0, y1 = max(ys.min() - size, 0), min(ys.max() + size + 1, rows)
        x0, x1 = max(xs.min() - size, 0), min(xs.max() + size + 1, cols)

        iterations = 0
        while not pad_known[view].all():
            known = pad_known[view][y0:y1, x0:x1]
            front = ~known & ndimage.binary_dilation(known, structure=_CROSS)
            if not front.any():
                raise FillIncompleteError("Fill front is empty but hole cells remain")

            conf = pad_conf[view][y0:y1, x0:x1]
            confidence = ndimage.uniform_filter(conf * known, size=size, mode="constant")
            lum = (pad_img[view][y0:y1, x0:x1] * scale).mean(axis=2)
            data = self._data_term(lum, known, size)
            priority = np.where(front, confidence * (data + _EPS), -1.0)
            fy, fx = np.unravel_index(int(np.argmax(priority)), priority.shape)
            py, px = fy + y0, fx + x0

            window = (slice(py, py + size), slice(px, px + size))
            target = pad_img[window] * scale
            target_known = pad_known[window]
            weights = np.repeat(target_known.ravel(), channels).astype(np.float64)
            t = target.ravel()

            ssd = sq_features @ weights - 2.0 * (features @ (weights * t)) + float(weights @ (t * t))
            candidates = np.argpartition(ssd, k - 1)[:k] if k < len(ssd) else np.arange(len(ssd))
            best = self._verify_texture(features, candidates, ssd, target, target_known, size, channels)

            sy, sx = centers[best]
            source = pad_img[view][sy - r:sy + r + 1, sx - r:sx + r + 1]
            fill_here = ~target_known & pad_inside[window]
            pad_img[window][fill_here] = source[fill_here]
            pad_conf[window][fill_here] = confidence[fy, fx]
            pad_known[window][fill_here] = True
            iterations += 1

        logger.info("Exemplar fill finished after %d patches", iterations)
        out = pad_img[view]
        if squeeze:
            out = out[..., 0]
        return out.astype(src.dtype if np.issubdtype(src.dtype, np.floating) else np.float32)

    def _channel_scale(self, img: np.ndarray, known: np.ndarray) -> np.ndarray:
        if not self.normalize_channels or not known.any():
            return np.ones(img.shape[2])
        std = img[known].std(axis=0)
        return np.where(std > 0, 1.0 / np.where(std > 0, std, 1.0), 1.0)

    def _source_centers(self, known: np.ndarray, r: int) -> np.ndarray:
        size = 2 * r + 1
        full = sliding_window_view(known, (size, size)).all(axis=(-2, -1))
        centers = np.argwhere(full) + r
        if self.max_source_patches is not None and len(centers) > self.max_source_patches:
            rng = np.random.default_rng(self.seed)
            pick = rng.choice(len(centers), size=self.max_source_patches, replace=False)
            centers = centers[np.sort(pick)]
        return centers

    @staticmethod
    def _patch_features(img: np.ndarray, centers: np.ndarray, r: int) -> np.ndarray:
        """(N, size*size*C) float32 features, in (row, col, channel) order."""
        size = 2 * r + 1
        windows = sliding_window_view(img, (size, size), axis=(0, 1))
        patches = windows[centers[:, 0] - r, centers[:, 1] - r]
        return np.ascontiguousarray(patches.transpose(0, 2, 3, 1)).reshape(len(centers), -1).astype(np.float32)

    @staticmethod
    def _data_term(lum: np.ndarray, known: np.ndarray, size: int) -> np.ndarray:
        """|isophote . front normal|, normalized to [0, 1]."""
        if min(lum.shape) < 2:
            return np.zeros(lum.shape)
        gy, gx = np.gradient(lum)
        clean = ndimage.binary_erosion(known, structure=_CROSS, border_value=1)
        iso_x = ndimage.uniform_filter(-gy * clean, size=size, mode="constant")
        iso_y = ndimage.uniform_filter(gx * clean, size=size, mode="constant")
        ny, nx = np.gradient(ndimage.uniform_filter(known.astype(np.float64), size=3))
        norm = np.hypot(nx, ny)
        norm[norm == 0] = 1.0
        data = np.abs(iso_x * nx / norm + iso_y * ny / norm)
        peak = data.max()
        return data / peak if peak > 0 else data

    @staticmethod
    def _verify_texture(
        features: np.ndarray,
        candidates: np.ndarray,
        ssd: np.ndarray,
        target: np.ndarray,
        target_known: np.ndarray,
        size: int,
        channels: int,
    ) -> int:
        """Among the k nearest, pick the patch whose channel spread matches the target's."""
        known_pixels = target.reshape(size * size, channels)[target_known.ravel()]
        target_std = known_pixels.std(axis=0)
        cand_std = features[candidates].reshape(len(candidates), size * size, channels).std(axis=1)
        texture = np.abs(cand_std - target_std).sum(axis=1)
        order = np.lexsort((ssd[candidates], texture))
        return int(candidates[order[0]])


class TextureFill(System):
    """RGBDxDy + HoleMask -> FilledRGBDxDy.

    Args:
        patch_half_width: Patch side is 2 * patch_half_width + 1
        knn: Number of nearest source patches considered per target patch
        filler: Inpainting implementation (default ExemplarInpainter)
    """

    def __init__(
        self,
        patch_half_width: int,
        knn: int = 100,
        filler: MultiChannelFiller | None = None,
    ) -> None:
        if patch_half_width < 1:
            raise ValueError(f"patch_half_width must be >= 1, got {patch_half_width}")
        if knn < 1:
            raise ValueError(f"knn must be >= 1, got {knn}")
        self.patch_half_width = patch_half_width
        self.knn = knn
        self.filler = filler if filler is not None else ExemplarInpainter()

    def required_components(self) -> list[type]:
        return [RGBDxDy, HoleMask]

    def produced_components(self) -> list[type]:
        return [FilledRGBDxDy]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            composite = world.view(eid, RGBDxDy)
            mask = ValidityMask(world.view(eid, HoleMask))
            filled = self.filler.fill(composite, mask, self.patch_half_width, self.knn)
            if filled.shape != composite.shape:
                raise RasterShapeError(
                    f"{type(self.filler).__name__} returned shape {filled.shape}, "
                    f"expected {composite.shape}"
                )
            world.spawn_raster(FilledRGBDxDy, filled.astype(np.float32), eid=eid)

    def __repr__(self) -> str:
        return (
            f"TextureFill(patch_half_width={self.patch_half_width}, knn={self.knn}, "
            f"filler={type(self.filler).__name__})"
        )
