"""Systems that read rasters from, and write rasters back into, the GridCloud.

These are the only systems that mutate state outside the arena: ApplyRGBD
updates the PointGrid cloud in place, and AssembleCloud copies the cloud
before marking it valid and replacing its channels.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from holefill_ecs.components.cloud import FilledPointGrid, HoleMask, PointGrid, SensorMask
from holefill_ecs.components.raster import (
    DepthImage,
    FilledRGBD,
    InpaintedRGB,
    ReconstructedDepth,
    RGBDImage,
    RGBImage,
)
from holefill_ecs.core.grid_cloud import HOLE_LABEL
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.system import System

if TYPE_CHECKING:
    from holefill_ecs.core.world import World

logger = logging.getLogger(__name__)


class ValidateRegions(System):
    """Fail fast unless the edit mask covers exactly the cloud's grid.

    Raises RegionMismatchError naming both regions. Produces nothing.
    """

    def required_components(self) -> list[type]:
        return [PointGrid, HoleMask]

    def produced_components(self) -> list[type]:
        return []

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            cloud = world.get_component(eid, PointGrid).cloud
            mask = ValidityMask(world.view(eid, HoleMask))
            mask.require_same_region(cloud.region, what="PTX")
            _, components = mask.hole_components()
            world.metadata[eid]["hole_count"] = mask.hole_count
            world.metadata[eid]["hole_components"] = components
            logger.info(
                "Cloud %s: %d hole cells in %d regions", cloud.region, mask.hole_count, components
            )


class DeriveDepth(System):
    """PointGrid -> DepthImage."""

    def required_components(self) -> list[type]:
        return [PointGrid]

    def produced_components(self) -> list[type]:
        return [DepthImage]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            cloud = world.get_component(eid, PointGrid).cloud
            world.spawn_raster(DepthImage, cloud.derive_depth(), eid=eid)


class DeriveRGB(System):
    """PointGrid -> RGBImage."""

    def required_components(self) -> list[type]:
        return [PointGrid]

    def produced_components(self) -> list[type]:
        return [RGBImage]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            cloud = world.get_component(eid, PointGrid).cloud
            world.spawn_raster(RGBImage, cloud.derive_rgb(), eid=eid)


class DeriveRGBD(System):
    """PointGrid -> RGBDImage."""

    def required_components(self) -> list[type]:
        return [PointGrid]

    def produced_components(self) -> list[type]:
        return [RGBDImage]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            cloud = world.get_component(eid, PointGrid).cloud
            world.spawn_raster(RGBDImage, cloud.derive_rgbd(), eid=eid)


class SensorValidity(System):
    """PointGrid -> SensorMask: the cells the scanner actually returned."""

    def required_components(self) -> list[type]:
        return [PointGrid]

    def produced_components(self) -> list[type]:
        return [SensorMask]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            cloud = world.get_component(eid, PointGrid).cloud
            mask = ValidityMask.from_labels(cloud.derive_validity(), hole_value=HOLE_LABEL)
            world.spawn_raster(SensorMask, mask.valid, eid=eid)
            logger.info("Scanner left %d cells without a return", mask.hole_count)


class ApplyRGBD(System):
    """Write the pre-filled RGBD raster into every cell of the cloud, in place.

    Marks all cells valid first, since replacement only touches valid cells.
    """

    def required_components(self) -> list[type]:
        return [PointGrid, FilledRGBD]

    def produced_components(self) -> list[type]:
        return []

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            cloud = world.get_component(eid, PointGrid).cloud
            cloud.mark_all_valid()
            cloud.replace_rgbd(world.view(eid, FilledRGBD))


class AssembleCloud(System):
    """Copy the cloud and write the reconstructed depth and inpainted colour into it.

    PointGrid + ReconstructedDepth + InpaintedRGB -> FilledPointGrid. The
    original PointGrid is left as it was.
    """

    def required_components(self) -> list[type]:
        return [PointGrid, ReconstructedDepth, InpaintedRGB]

    def produced_components(self) -> list[type]:
        return [FilledPointGrid]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            filled = world.get_component(eid, PointGrid).cloud.copy()
            filled.mark_all_valid()
            filled.replace_depth(world.view(eid, ReconstructedDepth))
            filled.replace_rgb(world.view(eid, InpaintedRGB))
            world.add_component(eid, FilledPointGrid(cloud=filled))
