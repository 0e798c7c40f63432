"""Mask files.

A mask is either a plain image (white = hole, everything else valid) or a
``.mask`` descriptor naming the image and its labels::

    HoleValue 255
    ValidValue 0
    hole.png

The image path is relative to the descriptor. Pixels equal to HoleValue are
holes; pixels that match neither label are treated as valid.
"""

from __future__ import annotations

import logging
from pathlib import Path

from holefill_ecs.core.mask import ValidityMask
from holefill_ecs.core.serialization import read_image, write_png

logger = logging.getLogger(__name__)

DEFAULT_HOLE_VALUE = 255
DEFAULT_VALID_VALUE = 0


def _parse_descriptor(path: Path) -> tuple[int, int, Path]:
    hole_value = DEFAULT_HOLE_VALUE
    valid_value = DEFAULT_VALID_VALUE
    image_name: str | None = None
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line:
            continue
        key, _, rest = line.partition(" ")
        try:
            if key == "HoleValue":
                hole_value = int(rest)
            elif key == "ValidValue":
                valid_value = int(rest)
            else:
                image_name = line
        except ValueError as e:
            raise ValueError(f"Malformed mask descriptor line in {path}: {line!r}") from e
    if image_name is None:
        raise ValueError(f"Mask descriptor {path} does not name an image file")
    return hole_value, valid_value, path.parent / image_name


def read_mask(path: str | Path, hole_value: int | None = None) -> ValidityMask:
    """Read a mask from an image or ``.mask`` descriptor.

    Args:
        path: Mask file
        hole_value: Override for the hole label of a plain image
    """
    path = Path(path)
    if path.suffix == ".mask":
        label, _, image_path = _parse_descriptor(path)
    else:
        label = DEFAULT_HOLE_VALUE if hole_value is None else hole_value
        image_path = path

    image = read_image(image_path)
    if image.ndim == 3:
        # RGB(A) masks: compare on the first channel
        image = image[..., 0]
    mask = ValidityMask.from_labels(image, hole_value=label)
    logger.info("Read mask %s: %s", path, mask)
    return mask


def write_mask(path: str | Path, mask: ValidityMask) -> None:
    """Write a mask; a ``.mask`` path also writes ``<stem>.png`` beside it."""
    path = Path(path)
    labels = mask.to_labels(valid_value=DEFAULT_VALID_VALUE, hole_value=DEFAULT_HOLE_VALUE)
    if path.suffix == ".mask":
        image_path = path.with_suffix(".png")
        write_png(image_path, labels)
        path.write_text(
            f"HoleValue {DEFAULT_HOLE_VALUE}\nValidValue {DEFAULT_VALID_VALUE}\n{image_path.name}\n"
        )
    else:
        write_png(path, labels)
