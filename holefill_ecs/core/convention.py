"""Finite-difference convention shared by gradient estimation and Poisson reconstruction.

The reconstructor integrates the gradient it is given under the same
convention that produced it. Two places can still break integrability:

* the estimator's one-sided fallback next to a hole stores a backward
  difference in a slot the reconstructor reads as a forward edge;
* the inpainter copies gradient patches from elsewhere, and the copied
  field need not be curl-free.

Both show up as a least-squares residual in the reconstructed depth rather
than as a hard error.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class DifferenceConvention:
    """Where the derivative of an edge is stored.

    With ``forward=True`` the derivative of the edge ``(p, p + e_axis)`` is
    stored at ``p``: ``g[p] = f[p + e_axis] - f[p]``. With ``forward=False``
    it is stored at ``p + e_axis`` (backward difference).

    Channel 0 is the derivative along columns (x), channel 1 along rows (y).
    """

    name: str
    forward: bool = True

    def edge_pairs(self, rows: int, cols: int, axis: int) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Flat indices of every in-grid edge along ``axis``.

        Args:
            rows, cols: Grid dimensions
            axis: 0 for x (columns), 1 for y (rows)

        Returns:
            (tail, head, slot): the edge runs tail -> head, its derivative
            ``f[head] - f[tail]`` is read from gradient cell ``slot``
        """
        index = np.arange(rows * cols).reshape(rows, cols)
        if axis == 0:
            tail, head = index[:, :-1].ravel(), index[:, 1:].ravel()
        elif axis == 1:
            tail, head = index[:-1, :].ravel(), index[1:, :].ravel()
        else:
            raise ValueError(f"axis must be 0 (x) or 1 (y), got {axis}")
        slot = tail if self.forward else head
        return tail, head, slot


FORWARD_DIFFERENCE = DifferenceConvention(name="forward", forward=True)
BACKWARD_DIFFERENCE = DifferenceConvention(name="backward", forward=False)
