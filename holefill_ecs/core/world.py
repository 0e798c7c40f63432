"""World: Entity-Component-System manager.

The World is the central registry of a pipeline run. It manages:
- Entity creation (integer IDs)
- Component storage (type -> entity -> component mapping)
- The raster Arena
- The diagnostic sink that receives intermediate artifacts

Example:
    >>> world = World()
    >>> eid = world.spawn_cloud(cloud, mask)
    >>> world.has_component(eid, PointGrid)
    True
    >>> world.clear()  # Reset for the next run
"""

from __future__ import annotations

from typing import Any, TypeVar

import numpy as np
from pydantic import BaseModel

from holefill_ecs.core.arena import Arena
from holefill_ecs.core.diagnostics import DiagnosticSink, NullSink
from holefill_ecs.core.grid_cloud import GridCloud
from holefill_ecs.core.mask import ValidityMask

Component = BaseModel

T = TypeVar("T", bound=Component)


class World:
    """Central ECS registry managing entities, components, and memory.

    Attributes:
        arena: Memory arena backing every raster component
        diagnostics: Sink receiving named intermediate artifacts
        metadata: Per-entity metadata dict (region, hole counts, solver stats)

    Example:
        >>> world = World(arena_bytes=64 << 20)
        >>> eid = world.spawn_cloud(cloud, mask)
        >>> world.pipe(eid).to(DeriveDepth()).out(DepthImage)
    """

    def __init__(
        self,
        arena_bytes: int = 256 << 20,
        diagnostics: DiagnosticSink | None = None,
    ):
        """Create World with specified arena size.

        Args:
            arena_bytes: Arena size in bytes (default 256 MB)
            diagnostics: Sink for intermediate artifacts (default discards them)
        """
        self.arena = Arena(size_bytes=arena_bytes)
        self.diagnostics: DiagnosticSink = diagnostics if diagnostics is not None else NullSink()
        self._next_eid = 0
        self._components: dict[type[Component], dict[int, Component]] = {}
        self.metadata: dict[int, dict[str, Any]] = {}

    def new_entity(self) -> int:
        """Create a new entity and return its ID."""
        eid = self._next_eid
        self._next_eid += 1
        self.metadata[eid] = {}
        return eid

    def spawn_cloud(self, cloud: GridCloud, mask: ValidityMask | None = None) -> int:
        """Ingest a point cloud and, optionally, its edit mask.

        The cloud is attached as-is (the pipeline mutates it in place); the
        mask is copied into the arena. No region check happens here, the
        first pipeline stage validates regions.

        Args:
            cloud: Organized point cloud
            mask: Edit mask, True = known cell, False = hole to fill

        Returns:
            Entity ID with PointGrid (and HoleMask) attached
        """
        # Import here to avoid circular dependency
        from holefill_ecs.components.cloud import HoleMask, PointGrid

        eid = self.new_entity()
        self.add_component(eid, PointGrid(cloud=cloud))
        self.metadata[eid]["cloud_region"] = cloud.region

        if mask is not None:
            ref = self.arena.copy_tensor(mask.valid)
            self.add_component(eid, HoleMask(data=ref))
            self.metadata[eid]["mask_region"] = mask.region
            self.metadata[eid]["hole_count"] = mask.hole_count

        return eid

    def spawn_raster(self, component_type: type[T], raster: np.ndarray, eid: int | None = None, **fields: Any) -> int:
        """Copy a raster into the arena and attach it as ``component_type``.

        Args:
            component_type: Raster component class (must have a ``data`` field)
            raster: Array to copy
            eid: Existing entity to attach to; a new entity if None
            **fields: Extra component fields

        Returns:
            Entity ID the component was attached to
        """
        if eid is None:
            eid = self.new_entity()
        ref = self.arena.copy_tensor(np.ascontiguousarray(raster))
        self.add_component(eid, component_type(data=ref, **fields))
        return eid

    def clear(self) -> None:
        """Reset arena and clear all entities/components for reuse.

        After clear(), all TensorRefs from previous entities are invalidated.
        """
        self.arena.reset()
        self._next_eid = 0
        self._components.clear()
        self.metadata.clear()

    def add_component(self, eid: int, component: Component) -> None:
        """Attach a component to an entity, replacing one of the same type.

        Raises:
            ValueError: If entity does not exist
        """
        if eid not in self.metadata:
            raise ValueError(f"Entity {eid} does not exist")

        comp_type = type(component)
        if comp_type not in self._components:
            self._components[comp_type] = {}

        self._components[comp_type][eid] = component

    def get_component(self, eid: int, comp_type: type[T]) -> T:
        """Retrieve a component from an entity.

        Raises:
            KeyError: If entity does not have the component
        """
        if comp_type not in self._components:
            raise KeyError(f"No entities have component type {comp_type.__name__}")
        if eid not in self._components[comp_type]:
            raise KeyError(f"Entity {eid} does not have component {comp_type.__name__}")

        return self._components[comp_type][eid]  # type: ignore

    def view(self, eid: int, comp_type: type[Component]) -> np.ndarray:
        """Array view of a raster component's ``data`` handle."""
        component = self.get_component(eid, comp_type)
        return self.arena.view(component.data)  # type: ignore[attr-defined]

    def has_component(self, eid: int, comp_type: type[Component]) -> bool:
        return (
            comp_type in self._components
            and eid in self._components[comp_type]
        )

    def pipe(self, entity: int) -> Any:
        """Start a fluent pipeline for the given entity.

        Example:
            >>> depth = (
            ...     world.pipe(entity)
            ...     .to(ValidateRegions())
            ...     .to(DeriveDepth())
            ...     .out(DepthImage)
            ... )
        """
        from holefill_ecs.core.pipeline import Pipe

        return Pipe(world=self, entity=entity)

    def __repr__(self) -> str:
        num_entities = len(self.metadata)
        num_comp_types = len(self._components)
        return (
            f"World(entities={num_entities}, component_types={num_comp_types}, "
            f"arena={self.arena})"
        )
