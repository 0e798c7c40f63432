"""Masked depth gradient estimation.

Finite differences never read a hole sample. At a valid cell the
convention's primary difference is used when both ends are valid;
otherwise the opposite one-sided difference is used if that neighbour is
valid; otherwise the derivative is 0. Hole cells get 0 and are filled
later by the texture stage.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from holefill_ecs.components.cloud import HoleMask
from holefill_ecs.components.raster import DepthGradient, DepthImage
from holefill_ecs.core.convention import FORWARD_DIFFERENCE, DifferenceConvention
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.system import System
from holefill_ecs.errors import RasterShapeError

if TYPE_CHECKING:
    from holefill_ecs.core.world import World

logger = logging.getLogger(__name__)


def _axis_derivative(
    f: np.ndarray, valid: np.ndarray, array_axis: int, forward: bool
) -> np.ndarray:
    diff = np.diff(f, axis=array_axis)
    ok = np.logical_and(
        np.take(valid, range(1, valid.shape[array_axis]), axis=array_axis),
        np.take(valid, range(0, valid.shape[array_axis] - 1), axis=array_axis),
    )

    head = [slice(None), slice(None)]
    tail = [slice(None), slice(None)]
    head[array_axis] = slice(0, -1)
    tail[array_axis] = slice(1, None)

    fwd = np.zeros_like(f)
    fwd_ok = np.zeros(f.shape, dtype=bool)
    fwd[tuple(head)] = diff
    fwd_ok[tuple(head)] = ok

    bwd = np.zeros_like(f)
    bwd_ok = np.zeros(f.shape, dtype=bool)
    bwd[tuple(tail)] = diff
    bwd_ok[tuple(tail)] = ok

    if forward:
        primary, primary_ok, fallback, fallback_ok = fwd, fwd_ok, bwd, bwd_ok
    else:
        primary, primary_ok, fallback, fallback_ok = bwd, bwd_ok, fwd, fwd_ok
    return np.where(primary_ok, primary, np.where(fallback_ok, fallback, 0.0))


def masked_gradient(
    scalar: np.ndarray,
    mask: ValidityMask,
    convention: DifferenceConvention = FORWARD_DIFFERENCE,
) -> np.ndarray:
    """Gradient of a scalar raster that never differences against a hole.

    Args:
        scalar: (rows, cols) raster
        mask: Validity mask of the same region
        convention: Where each edge's derivative is stored

    Returns:
        (rows, cols, 2) float32 raster, channel 0 = d/dx (columns),
        channel 1 = d/dy (rows)

    Raises:
        RasterShapeError: If the raster and mask regions differ
    """
    f = np.asarray(scalar, dtype=np.float32)
    if f.shape != mask.shape:
        raise RasterShapeError(
            f"Scalar raster has shape {f.shape}, mask region is {mask.region}"
        )
    valid = mask.valid
    gx = _axis_derivative(f, valid, array_axis=1, forward=convention.forward)
    gy = _axis_derivative(f, valid, array_axis=0, forward=convention.forward)
    return np.stack([gx, gy], axis=-1).astype(np.float32)


class MaskedGradient(System):
    """DepthImage + HoleMask -> DepthGradient."""

    def __init__(self, convention: DifferenceConvention = FORWARD_DIFFERENCE) -> None:
        self.convention = convention

    def required_components(self) -> list[type]:
        return [DepthImage, HoleMask]

    def produced_components(self) -> list[type]:
        return [DepthGradient]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            depth = world.view(eid, DepthImage)
            mask = ValidityMask(world.view(eid, HoleMask))
            grad = masked_gradient(depth, mask, self.convention)
            world.spawn_raster(DepthGradient, grad, eid=eid, convention=self.convention.name)
            logger.debug("Computed %s-difference depth gradient", self.convention.name)

    def __repr__(self) -> str:
        return f"MaskedGradient(convention={self.convention.name})"
