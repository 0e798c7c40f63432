"""PLY point-set export of the valid cells of a GridCloud."""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
from plyfile import PlyData, PlyElement, PlyParseError

from holefill_ecs.core.grid_cloud import GridCloud

logger = logging.getLogger(__name__)

VERTEX_DTYPE = np.dtype(
    [
        ("x", "<f4"),
        ("y", "<f4"),
        ("z", "<f4"),
        ("red", "u1"),
        ("green", "u1"),
        ("blue", "u1"),
        ("intensity", "<f4"),
    ]
)


def write_ply(path: str | Path, cloud: GridCloud) -> int:
    """Write valid points as binary little-endian PLY.

    Returns:
        Number of points written
    """
    xyz, rgb, intensity = cloud.valid_points()
    vertices = np.empty(len(xyz), dtype=VERTEX_DTYPE)
    vertices["x"], vertices["y"], vertices["z"] = xyz[:, 0], xyz[:, 1], xyz[:, 2]
    vertices["red"], vertices["green"], vertices["blue"] = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    vertices["intensity"] = intensity

    el = PlyElement.describe(vertices, "vertex")
    PlyData([el], text=False, byte_order="<").write(str(path))
    logger.info("Wrote %d points to %s", len(vertices), path)
    return len(vertices)


def read_ply(path: str | Path) -> np.ndarray:
    """Read the vertices of a PLY file into a VERTEX_DTYPE structured array.

    Raises:
        ValueError: If the file is not a PLY or its vertices lack the expected properties
    """
    try:
        plydata = PlyData.read(str(path))
    except PlyParseError as e:
        raise ValueError(f"{path} is not a PLY file: {e}") from e

    if "vertex" not in [el.name for el in plydata.elements]:
        raise ValueError(f"{path} has no vertex element")
    data = plydata["vertex"].data
    missing = [name for name in VERTEX_DTYPE.names if name not in data.dtype.names]
    if missing:
        raise ValueError(f"{path} vertices lack properties {missing}")

    vertices = np.empty(len(data), dtype=VERTEX_DTYPE)
    for name in VERTEX_DTYPE.names:
        vertices[name] = data[name]
    return vertices
