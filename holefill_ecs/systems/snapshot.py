"""Snapshot: hand a component to the World's diagnostic sink."""

from __future__ import annotations

from typing import TYPE_CHECKING

from holefill_ecs.components.cloud import FilledPointGrid, PointGrid
from holefill_ecs.core.system import System

if TYPE_CHECKING:
    from holefill_ecs.core.world import World


class Snapshot(System):
    """Record a component under a fixed name. Produces nothing.

    Cloud components (PointGrid, FilledPointGrid) are written as point sets;
    raster components as rasters, or as 8-bit images with ``as_image``.

    Example:
        >>> world.pipe(eid).to(DeriveRGBD()).to(Snapshot(RGBDImage, "RGBD")).execute()
    """

    def __init__(self, component_type: type, name: str, as_image: bool = False) -> None:
        self.component_type = component_type
        self.name = name
        self.as_image = as_image

    def required_components(self) -> list[type]:
        return [self.component_type]

    def produced_components(self) -> list[type]:
        return []

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            if self.component_type in (PointGrid, FilledPointGrid):
                cloud = world.get_component(eid, self.component_type).cloud
                world.diagnostics.write_cloud(self.name, cloud)
            else:
                world.diagnostics.write_raster(
                    self.name, world.view(eid, self.component_type), as_image=self.as_image
                )

    def __repr__(self) -> str:
        return f"Snapshot({self.component_type.__name__} -> {self.name!r})"
