"""Tests for the high-level API."""

import numpy as np
import pytest

from holefill_ecs import GridRegion, arena_bytes_for, fill_point_cloud, reconstruct_from_filled
from holefill_ecs.core.diagnostics import MemorySink
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.errors import (
    FillIncompleteError,
    RasterShapeError,
    RegionMismatchError,
    SingularSystemError,
)
from holefill_ecs.systems.small_holes import SmallHoleFiller
from holefill_ecs.systems.texture import MultiChannelFiller


class TestArenaSizing:
    def test_largest_region_wins(self) -> None:
        small = arena_bytes_for(GridRegion(2, 2))
        large = arena_bytes_for(GridRegion(2, 2), GridRegion(100, 50))
        assert large > small
        assert large == arena_bytes_for(GridRegion(100, 50))

    def test_no_regions(self) -> None:
        assert arena_bytes_for() > 0


class TestFillPointCloud:
    def test_constant_depth_is_recovered(self, make_cloud, make_mask) -> None:
        depth = np.full((10, 10), 5.0)
        depth[3:7, 3:7] = 40.0
        cloud = make_cloud(10, 10, depth=depth)
        mask = make_mask(10, 10, 3, 3, 4, 4)

        filled = fill_point_cloud(cloud, mask, patch_half_width=1, knn=10)

        assert filled.valid.all()
        np.testing.assert_allclose(filled.derive_depth(), 5.0, atol=1e-4)

    def test_input_cloud_unchanged(self, make_cloud, make_mask) -> None:
        cloud = make_cloud(10, 10)
        before = cloud.copy()

        fill_point_cloud(cloud, make_mask(10, 10, 4, 4, 2, 2), patch_half_width=1)

        np.testing.assert_array_equal(cloud.xyz, before.xyz)
        np.testing.assert_array_equal(cloud.rgb, before.rgb)

    def test_filled_colours_come_from_known_cells(self, make_cloud, make_mask) -> None:
        cloud = make_cloud(12, 12)
        mask = make_mask(12, 12, 4, 4, 3, 3)

        filled = fill_point_cloud(cloud, mask, patch_half_width=1, knn=5)

        known = {tuple(c) for c in cloud.rgb[mask.valid]}
        assert all(tuple(c) in known for c in filled.rgb[mask.holes])
        np.testing.assert_array_equal(filled.rgb[mask.valid], cloud.rgb[mask.valid])

    def test_known_depths_are_exact(self, make_cloud, make_mask) -> None:
        yy, xx = np.mgrid[0:10, 0:10]
        depth = 5.0 + 0.1 * xx + 0.05 * yy
        cloud = make_cloud(10, 10, depth=depth)
        mask = make_mask(10, 10, 3, 4, 3, 3)

        filled = fill_point_cloud(cloud, mask, patch_half_width=1)

        np.testing.assert_allclose(filled.xyz[mask.valid], cloud.xyz[mask.valid], rtol=1e-6)

    def test_region_mismatch(self, make_cloud, make_mask) -> None:
        with pytest.raises(RegionMismatchError):
            fill_point_cloud(make_cloud(10, 10), make_mask(10, 9, 2, 2, 2, 2), 1)

    def test_whole_grid_hole(self, make_cloud) -> None:
        mask = ValidityMask(np.zeros((6, 6), dtype=bool))
        with pytest.raises(FillIncompleteError):
            fill_point_cloud(make_cloud(6, 6), mask, 1)

    def test_injected_filler(self, make_cloud, make_mask) -> None:
        class Gray(MultiChannelFiller):
            def fill(self, image, mask, patch_half_width, knn):
                out = np.array(image, copy=True)
                out[mask.holes, :3] = 77.0
                out[mask.holes, 3:] = 0.0
                return out

        cloud = make_cloud(8, 8)
        mask = make_mask(8, 8, 2, 2, 3, 3)

        filled = fill_point_cloud(cloud, mask, 1, filler=Gray())

        assert np.all(filled.rgb[mask.holes] == 77)

    def test_diagnostics_sink_receives_nothing_by_default(self, make_cloud, make_mask) -> None:
        sink = MemorySink()
        fill_point_cloud(make_cloud(8, 8), make_mask(8, 8, 3, 3, 2, 2), 1, diagnostics=sink)
        assert sink.rasters == {}
        assert sink.clouds == {}


class TestReconstructFromFilled:
    def _composite(self, cloud) -> np.ndarray:
        composite = np.zeros((*cloud.shape, 5), dtype=np.float32)
        composite[..., :3] = cloud.rgb
        return composite

    def test_prefills_sensor_holes(self, make_cloud, make_mask) -> None:
        invalid = np.zeros((10, 10), dtype=bool)
        invalid[1, 8] = True
        cloud = make_cloud(10, 10, depth=5.0, invalid=invalid)
        mask = make_mask(10, 10, 4, 3, 3, 3)
        sink = MemorySink()

        filled = reconstruct_from_filled(
            cloud, mask, self._composite(cloud), diagnostics=sink
        )

        assert filled.valid.all()
        np.testing.assert_allclose(filled.derive_depth(), 5.0, atol=1e-3)
        assert not cloud.valid[1, 8]
        assert set(sink.rasters) == {
            "RGBD",
            "Valid",
            "InpaintedDepthGradients",
            "InpaintedRGB",
            "ReconstructedDepth",
        }
        assert set(sink.clouds) == {"Original", "Valid"}
        assert not sink.clouds["Original"].valid[1, 8]

    def test_colour_comes_from_composite(self, make_cloud, make_mask) -> None:
        cloud = make_cloud(8, 8)
        mask = make_mask(8, 8, 2, 2, 2, 2)
        composite = self._composite(cloud)
        composite[mask.holes, :3] = 200.0

        filled = reconstruct_from_filled(cloud, mask, composite)

        assert np.all(filled.rgb[mask.holes] == 200)

    def test_injected_small_hole_filler(self, make_cloud, make_mask) -> None:
        calls = []

        class Recording(SmallHoleFiller):
            def fill(self, image, mask):
                calls.append(mask.hole_count)
                return np.array(image, copy=True)

        invalid = np.zeros((8, 8), dtype=bool)
        invalid[0, 0] = True
        cloud = make_cloud(8, 8, invalid=invalid)

        reconstruct_from_filled(
            cloud, make_mask(8, 8, 3, 3, 2, 2), self._composite(cloud),
            small_hole_filler=Recording(),
        )

        assert calls == [1]

    def test_bad_composite_shape(self, make_cloud, make_mask) -> None:
        cloud = make_cloud(6, 6)
        with pytest.raises(RasterShapeError, match="RGBDxDy"):
            reconstruct_from_filled(cloud, make_mask(6, 6, 2, 2, 1, 1), np.zeros((6, 6, 4)))

    def test_failed_run_leaves_input_unchanged(self, make_cloud) -> None:
        invalid = np.zeros((8, 8), dtype=bool)
        invalid[0, 0] = True
        cloud = make_cloud(8, 8, invalid=invalid)
        before = cloud.copy()
        edit = ValidityMask(np.zeros((8, 8), dtype=bool))

        with pytest.raises(SingularSystemError):
            reconstruct_from_filled(cloud, edit, np.zeros((8, 8, 5), dtype=np.float32))

        assert not cloud.valid[0, 0]
        assert cloud.valid.sum() == 63
        np.testing.assert_array_equal(cloud.xyz, before.xyz)
        np.testing.assert_array_equal(cloud.rgb, before.rgb)

    def test_region_mismatch(self, make_cloud, make_mask) -> None:
        cloud = make_cloud(8, 8)
        before = cloud.copy()

        with pytest.raises(RegionMismatchError):
            reconstruct_from_filled(cloud, make_mask(8, 7, 2, 2, 2, 2), self._composite(cloud))

        np.testing.assert_array_equal(cloud.xyz, before.xyz)
