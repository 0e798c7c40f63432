"""Command-line entry points.

``holefill-fill``::

    holefill-fill PointCloud.ptx imageMask.mask patchHalfWidth output.ply

``holefill-reconstruct``::

    holefill-reconstruct PointCloud.ptx imageMask.mask RGBDxDy.mha outputPrefix

Both exit with status 1 on bad arguments or any pipeline failure. Argument
errors are reported before any file is read or written.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import NoReturn

from holefill_ecs.api import fill_point_cloud, reconstruct_from_filled
from holefill_ecs.config import load_config
from holefill_ecs.core.diagnostics import DirectorySink
from holefill_ecs.core.serialization import read_raster
from holefill_ecs.errors import HoleFillError
from holefill_ecs.formats.mask import read_mask
from holefill_ecs.formats.ply import write_ply
from holefill_ecs.formats.ptx import read_ptx, write_ptx
from holefill_ecs.logging_config import setup_logging

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class _ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors with an echo of the arguments and exit status 1."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.received: list[str] = []

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        sys.stderr.write(f"{self.prog}: error: {message}\n")
        sys.stderr.write(f"Input arguments: {' '.join(self.received)}\n")
        sys.exit(1)


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="TOML configuration file (default: holefill.toml)")
    parser.add_argument(
        "--log-level", type=str.upper, choices=LOG_LEVELS, help="Logging level (default: config)"
    )
    parser.add_argument("--log-file", help="Also write the log to this file")


def build_fill_parser() -> _ArgumentParser:
    parser = _ArgumentParser(
        prog="holefill-fill",
        description="Fill the masked hole of a PTX point cloud in colour and depth.",
    )
    parser.add_argument("point_cloud", metavar="PointCloud.ptx")
    parser.add_argument("mask", metavar="imageMask.mask")
    parser.add_argument("patch_half_width", metavar="patchHalfWidth", type=int)
    parser.add_argument("output", metavar="output.ply", help="PLY point set, or .ptx for a grid")
    parser.add_argument("--knn", type=int, help="Candidate source patches per target patch")
    _add_common_options(parser)
    return parser


def build_reconstruct_parser() -> _ArgumentParser:
    parser = _ArgumentParser(
        prog="holefill-reconstruct",
        description="Rebuild a PTX point cloud from an inpainted RGBDxDy raster.",
    )
    parser.add_argument("point_cloud", metavar="PointCloud.ptx")
    parser.add_argument("mask", metavar="imageMask.mask")
    parser.add_argument("rgbdxdy", metavar="RGBDxDy.mha")
    parser.add_argument("output_prefix", metavar="outputPrefix")
    parser.add_argument("--kernel-radius", type=int, help="Small-hole kernel radius")
    parser.add_argument("--downsample-factor", type=int, help="Small-hole coarse level factor")
    parser.add_argument(
        "--diagnostics-dir", default=".", help="Directory for intermediate files (default: cwd)"
    )
    _add_common_options(parser)
    return parser


def _parse(parser: _ArgumentParser, argv: Sequence[str] | None) -> argparse.Namespace:
    args = list(sys.argv[1:] if argv is None else argv)
    parser.received = args
    return parser.parse_args(args)


def main_fill(argv: Sequence[str] | None = None) -> int:
    args = _parse(build_fill_parser(), argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = load_config(args.config).override(
            **{"texture.knn": args.knn, "log_level": args.log_level}
        )
        setup_logging(config.log_level, args.log_file)

        cloud = read_ptx(args.point_cloud)
        mask = read_mask(args.mask)
        filled = fill_point_cloud(
            cloud,
            mask,
            args.patch_half_width,
            knn=config.texture.knn,
            arena_bytes=config.arena.bytes,
        )

        output = Path(args.output)
        if output.suffix.lower() == ".ptx":
            write_ptx(output, filled)
        else:
            write_ply(output, filled)
    except (HoleFillError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1

    logger.info("Wrote %s", args.output)
    return 0


def main_reconstruct(argv: Sequence[str] | None = None) -> int:
    args = _parse(build_reconstruct_parser(), argv)
    setup_logging(args.log_level or "INFO")

    try:
        config = load_config(args.config).override(
            **{
                "small_holes.kernel_radius": args.kernel_radius,
                "small_holes.downsample_factor": args.downsample_factor,
                "log_level": args.log_level,
            }
        )
        setup_logging(config.log_level, args.log_file)

        cloud = read_ptx(args.point_cloud)
        mask = read_mask(args.mask)
        rgbdxdy = read_raster(args.rgbdxdy)
        filled = reconstruct_from_filled(
            cloud,
            mask,
            rgbdxdy,
            kernel_radius=config.small_holes.kernel_radius,
            downsample_factor=config.small_holes.downsample_factor,
            diagnostics=DirectorySink(args.diagnostics_dir),
            arena_bytes=config.arena.bytes,
        )

        prefix = args.output_prefix
        write_ptx(f"{prefix}.ptx", filled)
        write_ply(f"{prefix}.ply", filled)
    except (HoleFillError, ValueError, OSError) as e:
        logger.error("%s", e)
        return 1

    logger.info("Wrote %s.ptx and %s.ply", args.output_prefix, args.output_prefix)
    return 0


def fill_entry() -> None:
    sys.exit(main_fill())


def reconstruct_entry() -> None:
    sys.exit(main_reconstruct())
