"""Console and optional file logging for the holefill_ecs command-line tools.

Library modules only create ``logging.getLogger(__name__)`` loggers; handlers
are attached here, once per process entry point, on the package logger.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

PACKAGE_LOGGER = "holefill_ecs"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logging(level: int | str = logging.INFO, log_file: str | Path | None = None) -> None:
    """Attach handlers to the package logger, replacing any from an earlier call.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
        log_file: Also write records to this file, truncating it first
    """
    if isinstance(level, str):
        level = logging.getLevelNamesMapping()[level.upper()]

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.debug("Logging to stderr%s", f" and {log_file}" if log_file is not None else "")
