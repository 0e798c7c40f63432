"""Tests for System base class."""

import pytest

from holefill_ecs.components.raster import Component
from holefill_ecs.core.system import System
from holefill_ecs.core.world import World


# Mock component for testing
class MockInput(Component):
    """Mock input component."""

    value: int


class MockOutput(Component):
    """Mock output component."""

    result: int


# Mock system implementation
class MockSystem(System):
    """Doubles the input value."""

    def required_components(self) -> list[type]:
        return [MockInput]

    def produced_components(self) -> list[type]:
        return [MockOutput]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            value = world.get_component(eid, MockInput).value
            world.add_component(eid, MockOutput(result=value * 2))


class TestSystemBase:
    """Tests for System base class."""

    def test_cannot_instantiate_abstract(self) -> None:
        with pytest.raises(TypeError):
            System()  # type: ignore[abstract]

    def test_can_run(self) -> None:
        world = World(arena_bytes=1024)
        eid = world.new_entity()
        system = MockSystem()

        assert not system.can_run(world, eid)
        world.add_component(eid, MockInput(value=3))
        assert system.can_run(world, eid)

    def test_run(self) -> None:
        world = World(arena_bytes=1024)
        eid = world.new_entity()
        world.add_component(eid, MockInput(value=21))

        MockSystem().run(world, [eid])

        assert world.get_component(eid, MockOutput).result == 42
        assert world.get_component(eid, MockInput).value == 21

    def test_repr(self) -> None:
        assert repr(MockSystem()) == "MockSystem()"
