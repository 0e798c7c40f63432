"""Tests for the Snapshot diagnostic system."""

from __future__ import annotations

import numpy as np

from holefill_ecs.components.cloud import PointGrid
from holefill_ecs.components.raster import DepthImage, InpaintedRGB
from holefill_ecs.core.diagnostics import DirectorySink, MemorySink
from holefill_ecs.core.serialization import read_image, read_raster
from holefill_ecs.core.world import World
from holefill_ecs.formats.ply import read_ply
from holefill_ecs.systems.cloud import DeriveDepth
from holefill_ecs.systems.snapshot import Snapshot


class TestSnapshot:
    def test_memory_sink(self, make_cloud) -> None:
        sink = MemorySink()
        world = World(arena_bytes=1 << 20, diagnostics=sink)
        eid = world.spawn_cloud(make_cloud(4, 4, depth=2.0))

        (
            world.pipe(eid)
            .to(Snapshot(PointGrid, "Original"))
            .to(DeriveDepth())
            .to(Snapshot(DepthImage, "Depth"))
            .execute()
        )

        assert set(sink.clouds) == {"Original"}
        np.testing.assert_allclose(sink.rasters["Depth"], 2.0, rtol=1e-6)

    def test_snapshot_is_a_copy(self, make_cloud) -> None:
        sink = MemorySink()
        world = World(arena_bytes=1 << 20, diagnostics=sink)
        cloud = make_cloud(3, 3)
        eid = world.spawn_cloud(cloud)

        world.pipe(eid).to(Snapshot(PointGrid, "Original")).execute()
        cloud.xyz[...] = 0.0

        assert np.all(sink.clouds["Original"].xyz != 0.0)

    def test_directory_sink(self, tmp_path, make_cloud) -> None:
        invalid = np.zeros((4, 4), dtype=bool)
        invalid[0, 0] = True
        world = World(arena_bytes=1 << 20, diagnostics=DirectorySink(tmp_path / "diag"))
        eid = world.spawn_cloud(make_cloud(4, 4, invalid=invalid))
        world.spawn_raster(InpaintedRGB, np.full((4, 4, 3), 100.0, dtype=np.float32), eid=eid)

        (
            world.pipe(eid)
            .to(Snapshot(PointGrid, "Valid"))
            .to(DeriveDepth())
            .to(Snapshot(DepthImage, "ReconstructedDepth"))
            .to(Snapshot(InpaintedRGB, "InpaintedRGB", as_image=True))
            .execute()
        )

        diag = tmp_path / "diag"
        assert len(read_ply(diag / "Valid.ply")) == 15
        assert read_raster(diag / "ReconstructedDepth.mha").shape == (4, 4)
        image = read_image(diag / "InpaintedRGB.png")
        assert image.shape == (4, 4, 3)
        assert np.all(image == 100)

    def test_produces_nothing(self) -> None:
        system = Snapshot(DepthImage, "Depth")
        assert system.required_components() == [DepthImage]
        assert system.produced_components() == []
        assert repr(system) == "Snapshot(DepthImage -> 'Depth')"
