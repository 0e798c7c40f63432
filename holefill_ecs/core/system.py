"""System base class for pipeline stages.

Systems are the "logic" layer of the ECS architecture. Each pipeline stage
is a System that reads the components it requires from an entity and
attaches the components it produces. Inputs are treated as read-only;
outputs are freshly allocated.

Example:
    >>> class DeriveSomething(System):
    ...     def required_components(self):
    ...         return [PointGrid]
    ...     def produced_components(self):
    ...         return [DepthImage]
    ...     def run(self, world, eids):
    ...         for eid in eids:
    ...             cloud = world.get_component(eid, PointGrid).cloud
    ...             world.spawn_raster(DepthImage, cloud.derive_depth(), eid=eid)
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from holefill_ecs.core.world import World


class System(ABC):
    """Base class for all pipeline systems.

    Systems declare:
    - required_components(): What inputs they need
    - produced_components(): What outputs they create
    - run(): The actual transformation logic
    """

    @abstractmethod
    def required_components(self) -> list[type]:
        """Return list of component types this system requires as input."""

    @abstractmethod
    def produced_components(self) -> list[type]:
        """Return list of component types this system produces as output.

        Systems that only report (diagnostics, validation) return [].
        """

    @abstractmethod
    def run(self, world: World, eids: list[int]) -> None:
        """Execute system on given entities.

        Args:
            world: World instance with entities and components
            eids: List of entity IDs to process
        """

    def can_run(self, world: World, eid: int) -> bool:
        """Check if entity has all required components."""
        return all(world.has_component(eid, ct) for ct in self.required_components())

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
