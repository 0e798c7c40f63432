"""High-level API for point-cloud hole filling.

Provides two drivers that assemble the complete system pipelines:

- ``fill_point_cloud()`` inpaints colour and depth gradient jointly, then
  reconstructs depth from the filled gradient.
- ``reconstruct_from_filled()`` starts from an already inpainted RGBDxDy
  raster, pre-fills the scanner's own small holes, and reconstructs depth.

Both return a new GridCloud with every cell valid.
"""

from __future__ import annotations

import logging

import numpy as np

from holefill_ecs.components.cloud import FilledPointGrid, PointGrid
from holefill_ecs.components.raster import (
    GRADIENT_CHANNELS,
    RGB_CHANNELS,
    RGBDXDY_CHANNELS,
    DepthGradient,
    FilledRGBD,
    FilledRGBDxDy,
    InpaintedGradient,
    InpaintedRGB,
    ReconstructedDepth,
    RGBDImage,
    RGBDxDy,
    RGBImage,
)
from holefill_ecs.core.diagnostics import DiagnosticSink
from holefill_ecs.core.grid_cloud import GridCloud
from holefill_ecs.core.mask import GridRegion, ValidityMask
from holefill_ecs.core.world import World
from holefill_ecs.errors import RasterShapeError
from holefill_ecs.systems.channels import ExtractChannels, StackChannels
from holefill_ecs.systems.cloud import (
    ApplyRGBD,
    AssembleCloud,
    DeriveDepth,
    DeriveRGB,
    DeriveRGBD,
    SensorValidity,
    ValidateRegions,
)
from holefill_ecs.systems.gradient import MaskedGradient
from holefill_ecs.systems.poisson import PoissonReconstruct, SparseLinearSolver
from holefill_ecs.systems.small_holes import SmallHoleFill, SmallHoleFiller
from holefill_ecs.systems.snapshot import Snapshot
from holefill_ecs.systems.texture import MultiChannelFiller, TextureFill

logger = logging.getLogger(__name__)

# float32 channels a run allocates per cell, summed over all stages
_CHANNELS_PER_CELL = 48
_ARENA_SLACK = 1 << 20


def arena_bytes_for(*regions: GridRegion) -> int:
    """Arena size that holds every raster of one run over the largest region."""
    cells = max((r.cells for r in regions), default=0)
    return cells * _CHANNELS_PER_CELL * np.dtype(np.float32).itemsize + _ARENA_SLACK


def fill_point_cloud(
    cloud: GridCloud,
    mask: ValidityMask,
    patch_half_width: int,
    knn: int = 100,
    *,
    filler: MultiChannelFiller | None = None,
    solver: SparseLinearSolver | None = None,
    diagnostics: DiagnosticSink | None = None,
    arena_bytes: int | None = None,
) -> GridCloud:
    """Fill the masked hole of a cloud in colour and depth.

    Args:
        cloud: Organized point cloud (left unchanged)
        mask: Edit mask, True = keep, False = fill
        patch_half_width: Patch side is 2 * patch_half_width + 1
        knn: Candidate source patches per target patch
        filler: Texture inpainter (default ExemplarInpainter)
        solver: Sparse solver for depth reconstruction (default ScipySparseSolver)
        diagnostics: Sink for intermediate artifacts (default discards them)
        arena_bytes: Arena size (default sized from the grid)

    Returns:
        New GridCloud with every cell valid

    Raises:
        RegionMismatchError: If mask and cloud regions differ
        FillIncompleteError: If the hole cannot be inpainted
        SingularSystemError: If a hole region has no known depth around it

    Example:
        >>> cloud = read_ptx("scan.ptx")
        >>> mask = read_mask("hole.mask")
        >>> filled = fill_point_cloud(cloud, mask, patch_half_width=7)
        >>> write_ply("filled.ply", filled)
    """
    size = arena_bytes or arena_bytes_for(cloud.region, mask.region)
    world = World(arena_bytes=size, diagnostics=diagnostics)

    try:
        entity = world.spawn_cloud(cloud, mask)
        logger.info("Filling %d hole cells of %s", mask.hole_count, cloud.region)

        filled = (
            world.pipe(entity)
            .to(ValidateRegions())
            .to(DeriveDepth())
            .to(MaskedGradient())
            .to(DeriveRGB())
            .to(StackChannels([RGBImage, DepthGradient], RGBDxDy))
            .to(TextureFill(patch_half_width, knn=knn, filler=filler))
            .to(ExtractChannels(FilledRGBDxDy, GRADIENT_CHANNELS, InpaintedGradient))
            .to(ExtractChannels(FilledRGBDxDy, RGB_CHANNELS, InpaintedRGB))
            .to(PoissonReconstruct(solver=solver))
            .to(AssembleCloud())
            .out(FilledPointGrid)
        )
        return filled.cloud

    finally:
        world.clear()


def reconstruct_from_filled(
    cloud: GridCloud,
    mask: ValidityMask,
    rgbdxdy: np.ndarray,
    kernel_radius: int = 1,
    downsample_factor: int = 1,
    *,
    small_hole_filler: SmallHoleFiller | None = None,
    solver: SparseLinearSolver | None = None,
    diagnostics: DiagnosticSink | None = None,
    arena_bytes: int | None = None,
) -> GridCloud:
    """Rebuild a cloud from a precomputed, already inpainted RGBDxDy raster.

    The pipeline works on a copy of ``cloud``, so the caller's cloud is
    unchanged whether the run completes or aborts. Sensor holes are
    pre-filled first. Diagnostics are recorded under the names Original,
    RGBD, Valid, InpaintedDepthGradients, InpaintedRGB and
    ReconstructedDepth.

    Args:
        cloud: Organized point cloud (left unchanged)
        mask: Edit mask whose holes are reconstructed from the gradient
        rgbdxdy: (rows, cols, 5) inpainted colour + depth gradient
        kernel_radius: Pre-fill neighbourhood radius
        downsample_factor: Pre-fill coarse level block size
        small_hole_filler: Pre-fill implementation (default KernelHoleFiller)
        solver: Sparse solver for depth reconstruction
        diagnostics: Sink for intermediate artifacts
        arena_bytes: Arena size (default sized from the grid)

    Returns:
        New GridCloud with every cell valid

    Raises:
        RegionMismatchError: If mask and cloud regions differ
        RasterShapeError: If the RGBDxDy raster does not cover the cloud with 5 channels
    """
    composite = np.asarray(rgbdxdy)
    expected = (*cloud.shape, RGBDXDY_CHANNELS)
    if composite.shape != expected:
        raise RasterShapeError(
            f"RGBDxDy raster has shape {composite.shape}, expected {expected}"
        )

    size = arena_bytes or arena_bytes_for(cloud.region, mask.region)
    world = World(arena_bytes=size, diagnostics=diagnostics)

    try:
        # ApplyRGBD mutates the entity's cloud in place
        entity = world.spawn_cloud(cloud.copy(), mask)
        world.spawn_raster(FilledRGBDxDy, composite.astype(np.float32), eid=entity)

        pipeline = (
            world.pipe(entity)
            .to(ValidateRegions())
            .to(Snapshot(PointGrid, "Original"))
            .to(SensorValidity())
            .to(DeriveRGBD())
            .to(Snapshot(RGBDImage, "RGBD"))
            .to(SmallHoleFill(kernel_radius, downsample_factor, filler=small_hole_filler))
            .to(Snapshot(FilledRGBD, "Valid"))
            .to(ApplyRGBD())
            .to(Snapshot(PointGrid, "Valid"))
            .to(ExtractChannels(FilledRGBDxDy, GRADIENT_CHANNELS, InpaintedGradient))
            .to(Snapshot(InpaintedGradient, "InpaintedDepthGradients"))
            .to(ExtractChannels(FilledRGBDxDy, RGB_CHANNELS, InpaintedRGB))
            .to(Snapshot(InpaintedRGB, "InpaintedRGB", as_image=True))
            .to(DeriveDepth())
            .to(PoissonReconstruct(solver=solver))
            .to(Snapshot(ReconstructedDepth, "ReconstructedDepth"))
            .to(AssembleCloud())
        )
        return pipeline.out(FilledPointGrid).cloud

    finally:
        world.clear()
