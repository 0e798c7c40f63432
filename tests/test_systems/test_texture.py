"""Tests for exemplar texture filling."""

from __future__ import annotations

import numpy as np
import pytest

from holefill_ecs.components.cloud import HoleMask
from holefill_ecs.components.raster import FilledRGBDxDy, RGBDxDy
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.world import World
from holefill_ecs.errors import FillIncompleteError, RasterShapeError
from holefill_ecs.systems.texture import ExemplarInpainter, MultiChannelFiller, TextureFill


def stripes(rows: int, cols: int) -> np.ndarray:
    """Vertical stripes, one column wide, alternating 0 and 100."""
    return np.tile((np.arange(cols) % 2 * 100.0)[np.newaxis, :], (rows, 1)).astype(np.float32)


def textured(rows: int, cols: int, channels: int = 5) -> np.ndarray:
    rng = np.random.default_rng(3)
    return rng.uniform(0, 255, (rows, cols, channels)).astype(np.float32)


class TestExemplarInpainter:
    def test_known_cells_unchanged(self, make_mask) -> None:
        image = textured(12, 12)
        mask = make_mask(12, 12, 4, 4, 3, 3)

        filled = ExemplarInpainter().fill(image, mask, patch_half_width=1, knn=10)

        assert filled.shape == image.shape
        assert np.all(np.isfinite(filled))
        np.testing.assert_array_equal(filled[mask.valid], image[mask.valid])

    def test_fill_copies_known_samples(self, make_mask) -> None:
        """Every filled cell takes the full channel vector of some known cell."""
        image = textured(12, 12)
        mask = make_mask(12, 12, 5, 5, 2, 2)

        filled = ExemplarInpainter().fill(image, mask, patch_half_width=1, knn=5)

        known = {tuple(v) for v in image[mask.valid]}
        for value in filled[mask.holes]:
            assert tuple(value) in known

    def test_continues_stripes(self, make_mask) -> None:
        image = stripes(12, 12)
        mask = make_mask(12, 12, 4, 4, 4, 4)
        damaged = image.copy()
        damaged[mask.holes] = -50.0

        filled = ExemplarInpainter().fill(damaged, mask, patch_half_width=1, knn=5)

        assert filled.ndim == 2
        np.testing.assert_array_equal(filled, image)

    def test_constant_image(self, make_mask) -> None:
        image = np.full((10, 10, 5), 3.0, dtype=np.float32)
        mask = make_mask(10, 10, 3, 3, 4, 4)
        image[mask.holes] = 0.0

        filled = ExemplarInpainter().fill(image, mask, patch_half_width=2, knn=3)
        np.testing.assert_array_equal(filled, 3.0)

    def test_hole_at_border(self, make_mask) -> None:
        image = textured(10, 10, channels=3)
        mask = make_mask(10, 10, 0, 0, 3, 3)

        filled = ExemplarInpainter().fill(image, mask, patch_half_width=1, knn=4)

        assert np.all(np.isfinite(filled))
        np.testing.assert_array_equal(filled[mask.valid], image[mask.valid])

    def test_no_holes_returns_copy(self) -> None:
        image = textured(5, 5)
        filled = ExemplarInpainter().fill(image, ValidityMask.all_valid(5, 5), 1, 10)
        np.testing.assert_array_equal(filled, image)
        assert filled is not image

    def test_no_source_patch(self) -> None:
        """A checkerboard of holes leaves no fully known 3x3 window."""
        valid = (np.indices((8, 8)).sum(axis=0) % 2) == 0
        with pytest.raises(FillIncompleteError, match="source patch"):
            ExemplarInpainter().fill(textured(8, 8), ValidityMask(valid), 1, 10)

    def test_patch_larger_than_raster(self, make_mask) -> None:
        with pytest.raises(FillIncompleteError, match="does not fit"):
            ExemplarInpainter().fill(textured(4, 4), make_mask(4, 4, 1, 1, 1, 1), 3, 10)

    def test_shape_mismatch(self, make_mask) -> None:
        with pytest.raises(RasterShapeError):
            ExemplarInpainter().fill(textured(6, 6), make_mask(6, 7, 1, 1, 1, 1), 1, 10)

    @pytest.mark.parametrize("hw, knn", [(0, 10), (1, 0)])
    def test_invalid_parameters(self, make_mask, hw, knn) -> None:
        with pytest.raises(ValueError):
            ExemplarInpainter().fill(textured(6, 6), make_mask(6, 6, 2, 2, 1, 1), hw, knn)

    def test_source_subsampling(self, make_mask) -> None:
        image = textured(16, 16)
        mask = make_mask(16, 16, 6, 6, 3, 3)
        filler = ExemplarInpainter(max_source_patches=8, seed=1)

        filled = filler.fill(image, mask, patch_half_width=1, knn=4)

        np.testing.assert_array_equal(filled[mask.valid], image[mask.valid])

    def test_invalid_source_cap(self) -> None:
        with pytest.raises(ValueError, match="max_source_patches"):
            ExemplarInpainter(max_source_patches=0)


class _ConstantFiller(MultiChannelFiller):
    def __init__(self, value: float, shape: tuple[int, ...] | None = None) -> None:
        self.value = value
        self.shape = shape

    def fill(self, image, mask, patch_half_width, knn):
        out = np.array(image, copy=True)
        out[mask.holes] = self.value
        if self.shape is not None:
            return np.zeros(self.shape, dtype=np.float32)
        return out


class TestTextureFillSystem:
    def _world(self, make_mask):
        world = World(arena_bytes=1 << 20)
        mask = make_mask(8, 8, 3, 3, 2, 2)
        eid = world.spawn_raster(RGBDxDy, textured(8, 8))
        world.spawn_raster(HoleMask, mask.valid, eid=eid)
        return world, eid, mask

    def test_declared_components(self) -> None:
        system = TextureFill(patch_half_width=2)
        assert system.required_components() == [RGBDxDy, HoleMask]
        assert system.produced_components() == [FilledRGBDxDy]
        assert system.knn == 100
        assert isinstance(system.filler, ExemplarInpainter)

    def test_invalid_parameters(self) -> None:
        with pytest.raises(ValueError):
            TextureFill(patch_half_width=0)
        with pytest.raises(ValueError):
            TextureFill(patch_half_width=1, knn=0)

    def test_uses_injected_filler(self, make_mask) -> None:
        world, eid, mask = self._world(make_mask)

        world.pipe(eid).to(TextureFill(1, filler=_ConstantFiller(9.0))).execute()

        filled = world.view(eid, FilledRGBDxDy)
        assert np.all(filled[mask.holes] == 9.0)
        np.testing.assert_array_equal(filled[mask.valid], world.view(eid, RGBDxDy)[mask.valid])

    def test_input_untouched(self, make_mask) -> None:
        world, eid, _ = self._world(make_mask)
        before = world.view(eid, RGBDxDy).copy()

        world.pipe(eid).to(TextureFill(1, knn=5)).execute()

        np.testing.assert_array_equal(world.view(eid, RGBDxDy), before)

    def test_filler_shape_checked(self, make_mask) -> None:
        world, eid, _ = self._world(make_mask)
        system = TextureFill(1, filler=_ConstantFiller(0.0, shape=(8, 8, 3)))
        with pytest.raises(RasterShapeError):
            world.pipe(eid).to(system).execute()

    def test_repr(self) -> None:
        assert repr(TextureFill(3, knn=7)) == (
            "TextureFill(patch_half_width=3, knn=7, filler=ExemplarInpainter)"
        )
