"""Hole filling for organized RGB + depth point clouds, with ECS architecture.

This package fills masked holes in grid-structured (PTX) scans using:
- Exemplar-based inpainting of colour and depth gradient together
- Gradient-domain (Poisson) reconstruction of the missing depth
- Entity-Component-System (ECS) architecture for composable stages
- Arena-backed raster storage shared by every stage

Quick Start:
    >>> from holefill_ecs import fill_point_cloud
    >>> from holefill_ecs.formats.ptx import read_ptx
    >>> from holefill_ecs.formats.mask import read_mask
    >>>
    >>> cloud = read_ptx("scan.ptx")
    >>> mask = read_mask("hole.mask")
    >>> filled = fill_point_cloud(cloud, mask, patch_half_width=7)

For more control, use the fluent pipeline API:
    >>> from holefill_ecs import World
    >>> from holefill_ecs.systems.cloud import ValidateRegions, DeriveDepth
    >>> from holefill_ecs.systems.gradient import MaskedGradient
    >>>
    >>> world = World()
    >>> entity = world.spawn_cloud(cloud, mask)
    >>> gradient = (
    ...     world.pipe(entity)
    ...     .to(ValidateRegions())
    ...     .to(DeriveDepth())
    ...     .to(MaskedGradient())
    ...     .out(DepthGradient)
    ... )
"""

__version__ = "0.1.0"

from holefill_ecs.api import arena_bytes_for, fill_point_cloud, reconstruct_from_filled
from holefill_ecs.core.grid_cloud import GridCloud
from holefill_ecs.core.mask import GridRegion, ValidityMask
from holefill_ecs.core.world import World

__all__ = [
    "__version__",
    "fill_point_cloud",
    "reconstruct_from_filled",
    "arena_bytes_for",
    "GridCloud",
    "GridRegion",
    "ValidityMask",
    "World",
]
