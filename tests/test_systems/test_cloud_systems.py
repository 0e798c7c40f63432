"""Tests for systems that move data between the GridCloud and rasters."""

from __future__ import annotations

import numpy as np
import pytest

from holefill_ecs.components.cloud import FilledPointGrid, PointGrid, SensorMask
from holefill_ecs.components.raster import (
    DepthImage,
    FilledRGBD,
    InpaintedRGB,
    ReconstructedDepth,
    RGBDImage,
    RGBImage,
)
from holefill_ecs.core.world import World
from holefill_ecs.errors import RegionMismatchError
from holefill_ecs.systems.cloud import (
    ApplyRGBD,
    AssembleCloud,
    DeriveDepth,
    DeriveRGB,
    DeriveRGBD,
    SensorValidity,
    ValidateRegions,
)


@pytest.fixture
def world():
    return World(arena_bytes=1 << 20)


class TestValidateRegions:
    def test_matching_regions(self, world, make_cloud, make_mask) -> None:
        eid = world.spawn_cloud(make_cloud(6, 7), make_mask(6, 7, 1, 1, 2, 2))
        world.pipe(eid).to(ValidateRegions()).execute()

        assert world.metadata[eid]["hole_count"] == 4
        assert world.metadata[eid]["hole_components"] == 1

    def test_mismatch_names_both_regions(self, world, make_cloud, make_mask) -> None:
        cloud = make_cloud(6, 7)
        before = cloud.xyz.copy()
        eid = world.spawn_cloud(cloud, make_mask(6, 6, 1, 1, 2, 2))

        with pytest.raises(RegionMismatchError, match="same size") as exc:
            world.pipe(eid).to(ValidateRegions()).to(DeriveDepth()).execute()

        assert "[rows=6, cols=7]" in str(exc.value)
        assert "[rows=6, cols=6]" in str(exc.value)
        assert not world.has_component(eid, DepthImage)
        np.testing.assert_array_equal(cloud.xyz, before)

    def test_produces_nothing(self) -> None:
        assert ValidateRegions().produced_components() == []


class TestDeriveSystems:
    def test_depth_is_range(self, world, make_cloud) -> None:
        eid = world.spawn_cloud(make_cloud(4, 5, depth=7.5))

        depth = world.pipe(eid).to(DeriveDepth()).out(DepthImage)

        np.testing.assert_allclose(world.arena.view(depth.data), 7.5, rtol=1e-6)

    def test_rgb_and_rgbd(self, world, make_cloud) -> None:
        cloud = make_cloud(4, 5, depth=3.0)
        eid = world.spawn_cloud(cloud)

        world.pipe(eid).to(DeriveRGB()).to(DeriveRGBD()).execute()

        rgb = world.view(eid, RGBImage)
        rgbd = world.view(eid, RGBDImage)
        assert rgb.shape == (4, 5, 3)
        assert rgbd.shape == (4, 5, 4)
        np.testing.assert_array_equal(rgbd[..., :3], cloud.rgb.astype(np.float32))
        np.testing.assert_allclose(rgbd[..., 3], 3.0, rtol=1e-6)

    def test_invalid_cells_have_zero_depth(self, world, make_cloud) -> None:
        invalid = np.zeros((4, 4), dtype=bool)
        invalid[1, 2] = True
        eid = world.spawn_cloud(make_cloud(4, 4, invalid=invalid))

        world.pipe(eid).to(DeriveDepth()).execute()

        assert world.view(eid, DepthImage)[1, 2] == 0.0


class TestSensorValidity:
    def test_marks_missing_returns(self, world, make_cloud) -> None:
        invalid = np.zeros((5, 5), dtype=bool)
        invalid[0, 0] = True
        invalid[3, 1:3] = True
        eid = world.spawn_cloud(make_cloud(5, 5, invalid=invalid))

        world.pipe(eid).to(SensorValidity()).execute()

        np.testing.assert_array_equal(world.view(eid, SensorMask), ~invalid)


class TestApplyRGBD:
    def test_writes_every_cell_in_place(self, world, make_cloud) -> None:
        invalid = np.zeros((4, 4), dtype=bool)
        invalid[2, 2] = True
        cloud = make_cloud(4, 4, depth=5.0, invalid=invalid)
        eid = world.spawn_cloud(cloud)
        rgbd = np.zeros((4, 4, 4), dtype=np.float32)
        rgbd[..., :3] = 40.0
        rgbd[..., 3] = 6.0
        world.spawn_raster(FilledRGBD, rgbd, eid=eid)

        world.pipe(eid).to(ApplyRGBD()).execute()

        assert world.get_component(eid, PointGrid).cloud is cloud
        assert cloud.valid.all()
        np.testing.assert_array_equal(cloud.rgb, 40)
        np.testing.assert_allclose(np.linalg.norm(cloud.xyz, axis=-1), 6.0)


class TestAssembleCloud:
    def test_copy_filled_original_untouched(self, world, make_cloud) -> None:
        invalid = np.zeros((4, 4), dtype=bool)
        invalid[1:3, 1:3] = True
        cloud = make_cloud(4, 4, depth=5.0, invalid=invalid)
        xyz_before = cloud.xyz.copy()
        eid = world.spawn_cloud(cloud)
        world.spawn_raster(ReconstructedDepth, np.full((4, 4), 8.0, dtype=np.float32), eid=eid)
        world.spawn_raster(InpaintedRGB, np.full((4, 4, 3), 17.4, dtype=np.float32), eid=eid)

        filled = world.pipe(eid).to(AssembleCloud()).out(FilledPointGrid).cloud

        assert filled is not cloud
        assert filled.valid.all()
        np.testing.assert_array_equal(filled.rgb, 17)
        np.testing.assert_allclose(np.linalg.norm(filled.xyz, axis=-1), 8.0)
        np.testing.assert_array_equal(cloud.xyz, xyz_before)
        np.testing.assert_array_equal(cloud.valid, ~invalid)

    def test_filled_points_follow_rays(self, world, make_cloud) -> None:
        cloud = make_cloud(3, 3, depth=2.0)
        eid = world.spawn_cloud(cloud)
        world.spawn_raster(ReconstructedDepth, np.full((3, 3), 4.0, dtype=np.float32), eid=eid)
        world.spawn_raster(InpaintedRGB, np.zeros((3, 3, 3), dtype=np.float32), eid=eid)

        filled = world.pipe(eid).to(AssembleCloud()).out(FilledPointGrid).cloud

        np.testing.assert_allclose(filled.xyz, cloud.xyz * 2.0)
