"""Gradient-domain (Poisson) depth reconstruction.

Given an original depth raster, a mask, and a gradient field that is
defined everywhere, find depths for the hole cells whose finite
differences best match the gradient. Every in-grid edge with at least one
hole endpoint contributes one equation ``u[head] - u[tail] = g[slot]``;
valid endpoints are fixed to the original depth and move to the right-hand
side. The overdetermined system is solved in the least-squares sense
through its normal equations. Edges only exist inside the grid, which is
the Neumann-style treatment of the border.

A hole component with no 4-neighbour of known depth has no anchor, so its
system is singular; that is reported as SingularSystemError.
"""

from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import scipy.sparse as sp
from scipy import ndimage
from scipy.sparse.linalg import MatrixRankWarning, cg, spsolve

from holefill_ecs.components.cloud import HoleMask
from holefill_ecs.components.raster import DepthImage, InpaintedGradient, ReconstructedDepth
from holefill_ecs.core.convention import FORWARD_DIFFERENCE, DifferenceConvention
from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.system import System
from holefill_ecs.errors import RasterShapeError, SingularSystemError

if TYPE_CHECKING:
    from holefill_ecs.core.world import World

logger = logging.getLogger(__name__)

_CROSS = ndimage.generate_binary_structure(2, 1)


class SparseLinearSolver(ABC):
    """Solves a sparse symmetric positive (semi-)definite system ``A x = b``."""

    @abstractmethod
    def solve(self, A: sp.spmatrix, b: np.ndarray) -> np.ndarray:
        """Return ``x``; raise SingularSystemError if there is no unique solution."""


class ScipySparseSolver(SparseLinearSolver):
    """Direct sparse LU solve via ``scipy.sparse.linalg.spsolve``."""

    def solve(self, A: sp.spmatrix, b: np.ndarray) -> np.ndarray:
        with warnings.catch_warnings():
            warnings.simplefilter("error", MatrixRankWarning)
            try:
                x = spsolve(sp.csc_matrix(A), b)
            except (MatrixRankWarning, RuntimeError) as e:
                raise SingularSystemError(f"Sparse direct solve failed: {e}") from e
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        if not np.all(np.isfinite(x)):
            raise SingularSystemError("Sparse direct solve produced non-finite values")
        return x


class ConjugateGradientSolver(SparseLinearSolver):
    """Iterative solve via ``scipy.sparse.linalg.cg``, for large holes.

    Args:
        rtol: Relative residual tolerance
        maxiter: Iteration cap (scipy default if None)
    """

    def __init__(self, rtol: float = 1e-10, maxiter: int | None = None) -> None:
        self.rtol = rtol
        self.maxiter = maxiter

    def solve(self, A: sp.spmatrix, b: np.ndarray) -> np.ndarray:
        x, info = cg(sp.csr_matrix(A), b, rtol=self.rtol, maxiter=self.maxiter)
        if info != 0 or not np.all(np.isfinite(x)):
            raise SingularSystemError(f"Conjugate gradient did not converge (info={info})")
        return np.asarray(x, dtype=np.float64)


@dataclass
class PoissonSolution:
    """Result of a reconstruction.

    Attributes:
        depth: (rows, cols) reconstructed depth, original values on valid cells
        unknowns: Number of hole cells solved for
        equations: Number of edge equations
        rms_residual: Root-mean-square edge residual; nonzero when the
            gradient field is not integrable
    """

    depth: np.ndarray
    unknowns: int
    equations: int
    rms_residual: float


def _require_anchored(mask: ValidityMask) -> None:
    labels, count = mask.hole_components()
    touching = mask.holes & ndimage.binary_dilation(mask.valid, structure=_CROSS)
    anchored = np.unique(labels[touching])
    anchored = anchored[anchored > 0]
    if len(anchored) < count:
        raise SingularSystemError(
            f"{count - len(anchored)} of {count} hole regions have no neighbouring "
            "known depth; the system is singular"
        )


def solve_poisson(
    original: np.ndarray,
    mask: ValidityMask,
    gradient: np.ndarray,
    solver: SparseLinearSolver | None = None,
    convention: DifferenceConvention = FORWARD_DIFFERENCE,
) -> PoissonSolution:
    """Reconstruct hole depths from a gradient field.

    Args:
        original: (rows, cols) depth; values on hole cells are ignored
        mask: True = known depth
        gradient: (rows, cols, 2) field, channel 0 = d/dx, channel 1 = d/dy
        solver: Linear solver (default ScipySparseSolver)
        convention: Differencing convention the gradient was produced with

    Raises:
        RasterShapeError: If the rasters and mask disagree in shape
        SingularSystemError: If a hole region is unanchored or the solve fails
    """
    depth = np.asarray(original)
    grad = np.asarray(gradient, dtype=np.float64)
    if depth.shape != mask.shape:
        raise RasterShapeError(f"Depth has shape {depth.shape}, mask region is {mask.region}")
    if grad.shape != (*mask.shape, 2):
        raise RasterShapeError(
            f"Gradient has shape {grad.shape}, expected {(*mask.shape, 2)}"
        )

    out = np.array(depth, copy=True)
    holes = mask.holes.ravel()
    unknowns = int(holes.sum())
    if unknowns == 0:
        return PoissonSolution(depth=out, unknowns=0, equations=0, rms_residual=0.0)
    _require_anchored(mask)

    rows, cols = mask.shape
    f = depth.astype(np.float64).ravel()
    column = np.full(rows * cols, -1, dtype=np.int64)
    column[holes] = np.arange(unknowns)

    eq_rows, eq_cols, eq_vals, rhs = [], [], [], []
    offset = 0
    for axis in (0, 1):
        tail, head, slot = convention.edge_pairs(rows, cols, axis)
        keep = holes[tail] | holes[head]
        tail, head, slot = tail[keep], head[keep], slot[keep]
        count = len(tail)
        eq = np.arange(offset, offset + count)

        b = grad[..., axis].ravel()[slot].copy()
        b -= np.where(holes[head], 0.0, f[head])
        b += np.where(holes[tail], 0.0, f[tail])
        rhs.append(b)

        h = holes[head]
        eq_rows.append(eq[h])
        eq_cols.append(column[head[h]])
        eq_vals.append(np.ones(int(h.sum())))
        t = holes[tail]
        eq_rows.append(eq[t])
        eq_cols.append(column[tail[t]])
        eq_vals.append(-np.ones(int(t.sum())))
        offset += count

    D = sp.csr_matrix(
        (np.concatenate(eq_vals), (np.concatenate(eq_rows), np.concatenate(eq_cols))),
        shape=(offset, unknowns),
    )
    b = np.concatenate(rhs)
    A = (D.T @ D).tocsr()
    x = (solver or ScipySparseSolver()).solve(A, D.T @ b)
    if x.shape != (unknowns,):
        raise SingularSystemError(f"Solver returned {x.shape}, expected ({unknowns},)")

    residual = D @ x - b
    rms = float(np.sqrt(np.mean(residual ** 2))) if offset else 0.0
    flat = out.reshape(-1)
    flat[holes] = x.astype(out.dtype)
    logger.info(
        "Poisson solve: %d unknowns, %d equations, rms residual %.3g", unknowns, offset, rms
    )
    return PoissonSolution(depth=out, unknowns=unknowns, equations=offset, rms_residual=rms)


def reconstruct_depth(
    original: np.ndarray,
    mask: ValidityMask,
    gradient: np.ndarray,
    solver: SparseLinearSolver | None = None,
    convention: DifferenceConvention = FORWARD_DIFFERENCE,
) -> np.ndarray:
    """Depth raster with hole cells reconstructed; see ``solve_poisson``."""
    return solve_poisson(original, mask, gradient, solver=solver, convention=convention).depth


class PoissonReconstruct(System):
    """DepthImage + HoleMask + InpaintedGradient -> ReconstructedDepth.

    Records unknowns, equations and rms residual in the entity metadata.
    """

    def __init__(
        self,
        solver: SparseLinearSolver | None = None,
        convention: DifferenceConvention = FORWARD_DIFFERENCE,
    ) -> None:
        self.solver = solver if solver is not None else ScipySparseSolver()
        self.convention = convention

    def required_components(self) -> list[type]:
        return [DepthImage, HoleMask, InpaintedGradient]

    def produced_components(self) -> list[type]:
        return [ReconstructedDepth]

    def run(self, world: World, eids: list[int]) -> None:
        for eid in eids:
            mask = ValidityMask(world.view(eid, HoleMask))
            solution = solve_poisson(
                world.view(eid, DepthImage),
                mask,
                world.view(eid, InpaintedGradient),
                solver=self.solver,
                convention=self.convention,
            )
            world.spawn_raster(ReconstructedDepth, solution.depth.astype(np.float32), eid=eid)
            world.metadata[eid]["poisson"] = {
                "unknowns": solution.unknowns,
                "equations": solution.equations,
                "rms_residual": solution.rms_residual,
            }

    def __repr__(self) -> str:
        return (
            f"PoissonReconstruct(solver={type(self.solver).__name__}, "
            f"convention={self.convention.name})"
        )
