"""Fluent pipeline builder.

Chains systems into a strictly sequential pipeline. Each system fully
consumes its predecessor's output before the next one starts, and the
first failure aborts the remaining stages.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from holefill_ecs.core.system import System
    from holefill_ecs.core.world import World

T = TypeVar("T", bound=BaseModel)

logger = logging.getLogger(__name__)


class Pipe:
    """Fluent pipeline builder with dependency checking.

    Systems are chained with `.to()` or the `|` operator and executed with
    `.out()` or `.execute()`.

    Example:
        >>> filled = (
        ...     world.pipe(entity)
        ...     .to(ValidateRegions())
        ...     .to(DeriveDepth())
        ...     | MaskedGradient()
        ... ).out(DepthGradient)
    """

    def __init__(self, world: "World", entity: int) -> None:
        self.world: Any = world
        self.entities = [entity]
        self.systems: list[Any] = []

    def to(self, system: "System") -> "Pipe":
        """Add system to pipeline."""
        self.systems.append(system)
        return self

    def __or__(self, system: "System") -> "Pipe":
        """Pipe operator for chaining systems, equivalent to `.to(system)`."""
        return self.to(system)

    def out(self, component_type: type[T]) -> T:
        """Execute pipeline and return component of specified type.

        Raises:
            RuntimeError: If any system cannot run (missing dependencies)
            KeyError: If entity doesn't have the requested component after execution
        """
        self.execute()
        return self.world.get_component(self.entities[0], component_type)  # type: ignore[no-any-return]

    def execute(self) -> None:
        """Run all systems in order with dependency checking.

        Raises:
            RuntimeError: If any system cannot run on any entity
        """
        for stage, system in enumerate(self.systems, start=1):
            runnable = [
                eid for eid in self.entities if system.can_run(self.world, eid)
            ]

            if not runnable:
                required = [ct.__name__ for ct in system.required_components()]
                raise RuntimeError(
                    f"System {type(system).__name__} cannot run: "
                    f"entities missing required components {required}. "
                    f"Available entities: {self.entities}"
                )

            logger.debug("Stage %d/%d: %r", stage, len(self.systems), system)
            system.run(self.world, runnable)
