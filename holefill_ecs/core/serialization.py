"""Raster file containers.

MetaImage (``.mha``) is the interchange format for multi-channel float
rasters, such as a precomputed RGBDxDy fill. It is ITK compatible: a
text header of ``Key = Value`` lines followed by the raw samples.

Layout:
  [Header: ASCII lines]
    - ObjectType = Image
    - NDims = 2
    - DimSize = <cols> <rows>
    - ElementNumberOfChannels = <C>
    - ElementType = MET_FLOAT | MET_DOUBLE | MET_UCHAR | ...
    - BinaryDataByteOrderMSB = False
    - CompressedData = True | False
    - ElementDataFile = LOCAL        (always the last header line)
  [Data: rows * cols * C samples, x fastest, channels interleaved]

8-bit previews are written as PNG through Pillow.
"""

from __future__ import annotations

import logging
import zlib
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image

logger = logging.getLogger(__name__)

MET_TYPES: dict[str, np.dtype[Any]] = {
    "MET_UCHAR": np.dtype(np.uint8),
    "MET_CHAR": np.dtype(np.int8),
    "MET_USHORT": np.dtype(np.uint16),
    "MET_SHORT": np.dtype(np.int16),
    "MET_UINT": np.dtype(np.uint32),
    "MET_INT": np.dtype(np.int32),
    "MET_FLOAT": np.dtype(np.float32),
    "MET_DOUBLE": np.dtype(np.float64),
}
_DTYPE_TO_MET = {dt: name for name, dt in MET_TYPES.items()}


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"true", "1", "yes"}


def serialize_raster(raster: np.ndarray, compress: bool = False) -> bytes:
    """Serialize a 2-D (or 2-D multi-channel) raster to MetaImage bytes.

    Raises:
        ValueError: If the raster is not 2-D/3-D or has an unsupported dtype
    """
    arr = np.asarray(raster)
    if arr.dtype == np.bool_:
        arr = arr.astype(np.uint8)
    if arr.ndim not in (2, 3):
        raise ValueError(f"Expected a (rows, cols[, channels]) raster, got shape {arr.shape}")
    if arr.dtype not in _DTYPE_TO_MET:
        raise ValueError(f"Unsupported raster dtype {arr.dtype}")

    rows, cols = arr.shape[:2]
    channels = 1 if arr.ndim == 2 else arr.shape[2]

    payload = np.ascontiguousarray(arr.astype(arr.dtype.newbyteorder("<"), copy=False)).tobytes()
    if compress:
        payload = zlib.compress(payload)

    lines = [
        "ObjectType = Image",
        "NDims = 2",
        "BinaryData = True",
        "BinaryDataByteOrderMSB = False",
        f"CompressedData = {'True' if compress else 'False'}",
    ]
    if compress:
        lines.append(f"CompressedDataSize = {len(payload)}")
    lines += [
        "Offset = 0 0",
        "ElementSpacing = 1 1",
        f"DimSize = {cols} {rows}",
        f"ElementNumberOfChannels = {channels}",
        f"ElementType = {_DTYPE_TO_MET[arr.dtype]}",
        "ElementDataFile = LOCAL",
    ]
    header = ("\n".join(lines) + "\n").encode("ascii")
    return header + payload


def deserialize_raster(data: bytes) -> tuple[dict[str, str], np.ndarray]:
    """Parse MetaImage bytes.

    Returns:
        (header dict, raster) with raster shaped (rows, cols) or (rows, cols, C)

    Raises:
        ValueError: If the header is malformed, refers to an external data
            file, or the payload size does not match the header
    """
    header: dict[str, str] = {}
    pos = 0
    while True:
        end = data.find(b"\n", pos)
        if end < 0:
            raise ValueError("MetaImage header is not terminated by ElementDataFile")
        line = data[pos:end].decode("ascii", errors="replace").strip()
        pos = end + 1
        if not line:
            continue
        if "=" not in line:
            raise ValueError(f"Malformed MetaImage header line: {line!r}")
        key, value = (part.strip() for part in line.split("=", 1))
        header[key] = value
        if key == "ElementDataFile":
            break

    if header["ElementDataFile"] != "LOCAL":
        raise ValueError(
            f"Only LOCAL element data is supported, got {header['ElementDataFile']!r}"
        )
    try:
        ndims = int(header.get("NDims", "2"))
        dims = [int(v) for v in header["DimSize"].split()]
        channels = int(header.get("ElementNumberOfChannels", "1"))
        dtype = MET_TYPES[header["ElementType"]]
    except KeyError as e:
        raise ValueError(f"Missing or unsupported MetaImage header field: {e}") from e
    except ValueError as e:
        raise ValueError(f"Failed to parse MetaImage header: {e}") from e
    if ndims != 2 or len(dims) != 2:
        raise ValueError(f"Only 2-D images are supported, got NDims={ndims}, DimSize={dims}")

    msb = _parse_bool(header.get("BinaryDataByteOrderMSB", header.get("ElementByteOrderMSB", "False")))
    dtype = dtype.newbyteorder(">" if msb else "<")

    payload = data[pos:]
    if _parse_bool(header.get("CompressedData", "False")):
        try:
            payload = zlib.decompress(payload)
        except zlib.error as e:
            raise ValueError(f"Failed to decompress MetaImage data: {e}") from e

    cols, rows = dims
    expected = rows * cols * channels * dtype.itemsize
    if len(payload) < expected:
        raise ValueError(
            f"MetaImage data too short: need {expected} bytes, got {len(payload)}"
        )

    arr = np.frombuffer(payload[:expected], dtype=dtype).astype(dtype.newbyteorder("="))
    shape = (rows, cols) if channels == 1 else (rows, cols, channels)
    return header, arr.reshape(shape)


def write_raster(path: str | Path, raster: np.ndarray, compress: bool = False) -> None:
    """Write a raster to a MetaImage file."""
    Path(path).write_bytes(serialize_raster(raster, compress=compress))


def read_raster(path: str | Path) -> np.ndarray:
    """Read a raster from a MetaImage file."""
    _, raster = deserialize_raster(Path(path).read_bytes())
    logger.debug("Read raster %s with shape %s", path, raster.shape)
    return raster


def write_png(path: str | Path, raster: np.ndarray) -> None:
    """Write a 1- or 3-channel raster as an 8-bit PNG (values clipped to 0..255)."""
    arr = np.asarray(raster)
    if arr.ndim == 3 and arr.shape[2] == 1:
        arr = arr[..., 0]
    if arr.ndim == 3 and arr.shape[2] not in (3, 4):
        raise ValueError(f"PNG output needs 1, 3 or 4 channels, got shape {arr.shape}")
    if arr.dtype != np.uint8:
        arr = np.clip(np.rint(arr), 0, 255).astype(np.uint8)
    Image.fromarray(arr).save(path)


def read_image(path: str | Path) -> np.ndarray:
    """Read a picture file (PNG, BMP, ...) into a uint8 array."""
    with Image.open(path) as img:
        return np.asarray(img)
