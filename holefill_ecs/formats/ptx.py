"""PTX structured range-image files.

A PTX scan is plain text::

    <columns>
    <rows>
    <scanner position x y z>
    <scanner x axis>
    <scanner y axis>
    <scanner z axis>
    <4 lines of the 4x4 registration transform>
    x y z intensity [r g b]      (columns * rows lines, column by column)

Points at the origin are missing returns and become invalid cells. Only the
first scan of a multi-scan file is read.
"""

from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from holefill_ecs.core.grid_cloud import GridCloud, ScanHeader

logger = logging.getLogger(__name__)

HEADER_LINES = 10
INVALID_INTENSITY = 0.5


def parse_ptx(text: str) -> GridCloud:
    """Parse PTX text into a GridCloud.

    Raises:
        ValueError: If the header or point records are malformed
    """
    lines = text.splitlines()
    if len(lines) < HEADER_LINES:
        raise ValueError(f"PTX data too short: need {HEADER_LINES} header lines, got {len(lines)}")

    try:
        cols = int(lines[0].split()[0])
        rows = int(lines[1].split()[0])
        header_values = [[float(v) for v in line.split()] for line in lines[2:HEADER_LINES]]
    except (IndexError, ValueError) as e:
        raise ValueError(f"Failed to parse PTX header: {e}") from e
    if rows <= 0 or cols <= 0:
        raise ValueError(f"PTX grid must be non-empty, got {cols} columns x {rows} rows")
    if any(len(v) != 3 for v in header_values[:4]) or any(len(v) != 4 for v in header_values[4:]):
        raise ValueError("PTX header must have 4 lines of 3 values and 4 lines of 4 values")

    header = ScanHeader(
        scanner_position=np.array(header_values[0]),
        scanner_axes=np.array(header_values[1:4]),
        transform=np.array(header_values[4:8]),
    )

    count = rows * cols
    body = lines[HEADER_LINES:HEADER_LINES + count]
    if len(body) < count:
        raise ValueError(f"PTX has {len(body)} points, header declares {count}")

    fields = len(body[0].split())
    if fields not in (4, 7):
        raise ValueError(f"PTX points must have 4 or 7 values, got {fields}")
    try:
        values = np.array(" ".join(body).split(), dtype=np.float64)
    except ValueError as e:
        raise ValueError(f"Failed to parse PTX points: {e}") from e
    if values.size != count * fields:
        raise ValueError("PTX point records have inconsistent field counts")

    # File order is column-major: all rows of column 0, then column 1, ...
    records = values.reshape(cols, rows, fields).transpose(1, 0, 2)
    xyz = records[..., 0:3]
    intensity = records[..., 3].astype(np.float32)
    if fields == 7:
        rgb = records[..., 4:7]
    else:
        gray = np.clip(intensity * 255.0, 0, 255)
        rgb = np.repeat(gray[..., np.newaxis], 3, axis=2)

    valid = np.any(xyz != 0.0, axis=-1)
    logger.info("Read PTX grid %dx%d with %d valid points", rows, cols, int(valid.sum()))
    return GridCloud(xyz=xyz, rgb=rgb, valid=valid, intensity=intensity, header=header)


def read_ptx(path: str | Path) -> GridCloud:
    """Read a PTX file."""
    return parse_ptx(Path(path).read_text())


def write_ptx(path: str | Path, cloud: GridCloud) -> None:
    """Write a cloud as PTX; invalid cells are written as missing returns."""
    rows, cols = cloud.shape
    h = cloud.header

    records = np.zeros((rows, cols, 7), dtype=np.float64)
    records[..., 0:3] = cloud.xyz
    records[..., 3] = cloud.intensity
    records[..., 4:7] = cloud.rgb
    records[~cloud.valid] = (0.0, 0.0, 0.0, INVALID_INTENSITY, 0.0, 0.0, 0.0)
    records = records.transpose(1, 0, 2).reshape(-1, 7)

    with Path(path).open("w", encoding="ascii") as f:
        f.write(f"{cols}\n{rows}\n")
        np.savetxt(f, h.scanner_position.reshape(1, 3), fmt="%.6f")
        np.savetxt(f, h.scanner_axes.reshape(3, 3), fmt="%.6f")
        np.savetxt(f, h.transform.reshape(4, 4), fmt="%.6f")
        np.savetxt(f, records, fmt="%.6f %.6f %.6f %.6f %d %d %d")
    logger.info("Wrote PTX %s (%dx%d)", path, rows, cols)
