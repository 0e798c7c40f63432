"""Shared fixtures: synthetic scan grids and masks."""

from __future__ import annotations

import numpy as np
import pytest

from holefill_ecs.core.grid_cloud import GridCloud
from holefill_ecs.core.mask import ValidityMask


def scan_rays(rows: int, cols: int) -> np.ndarray:
    """Unit rays of a small scanner grid: azimuth per column, elevation per row."""
    az = np.linspace(-0.3, 0.3, cols)
    el = np.linspace(0.2, -0.2, rows)
    az, el = np.meshgrid(az, el)
    return np.stack([np.cos(el) * np.cos(az), np.cos(el) * np.sin(az), np.sin(el)], axis=-1)


def build_cloud(
    rows: int = 10,
    cols: int = 10,
    depth: float | np.ndarray = 5.0,
    invalid: np.ndarray | None = None,
    rgb: np.ndarray | None = None,
) -> GridCloud:
    """Cloud with the given depth along scan rays; invalid cells sit at the origin."""
    rays = scan_rays(rows, cols)
    depth = np.broadcast_to(np.asarray(depth, dtype=np.float64), (rows, cols))
    xyz = rays * depth[..., np.newaxis]
    valid = np.ones((rows, cols), dtype=bool)
    if invalid is not None:
        valid &= ~invalid
        xyz[invalid] = 0.0
    if rgb is None:
        yy, xx = np.mgrid[0:rows, 0:cols]
        rgb = np.stack([(xx * 20) % 256, (yy * 20) % 256, np.full_like(xx, 128)], axis=-1)
    return GridCloud(xyz=xyz, rgb=rgb, valid=valid, rays=rays)


def box_mask(rows: int, cols: int, top: int, left: int, height: int, width: int) -> ValidityMask:
    """Mask with one rectangular hole."""
    valid = np.ones((rows, cols), dtype=bool)
    valid[top:top + height, left:left + width] = False
    return ValidityMask(valid)


@pytest.fixture
def make_cloud():
    return build_cloud


@pytest.fixture
def make_mask():
    return box_mask


@pytest.fixture
def rays():
    return scan_rays
