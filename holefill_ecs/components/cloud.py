"""Point-cloud and mask components."""

from holefill_ecs.components.raster import Component, Raster
from holefill_ecs.core.grid_cloud import GridCloud


class PointGrid(Component):
    """The organized point cloud being processed.

    The GridCloud is mutated in place by the cloud systems.

    Attributes:
        cloud: GridCloud value
    """

    cloud: GridCloud


class FilledPointGrid(Component):
    """Independent copy of the cloud with every cell filled and valid.

    Attributes:
        cloud: GridCloud value
    """

    cloud: GridCloud


class HoleMask(Raster):
    """Edit mask supplied with the cloud, (rows, cols) bool, True = known."""


class SensorMask(Raster):
    """Mask of cells the scanner returned, (rows, cols) bool, True = known."""
