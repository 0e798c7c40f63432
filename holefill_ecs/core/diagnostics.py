"""Diagnostic sinks for intermediate pipeline artifacts.

Pipelines report intermediate rasters and clouds by name. The World holds
one sink; the default discards everything so pipelines run without
touching the filesystem. ``DirectorySink`` writes each artifact to a file
named after it.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from holefill_ecs.core.grid_cloud import GridCloud

logger = logging.getLogger(__name__)


class DiagnosticSink(ABC):
    """Receives named intermediate artifacts."""

    @abstractmethod
    def write_raster(self, name: str, raster: np.ndarray, as_image: bool = False) -> None:
        """Record a raster. ``as_image`` asks for an 8-bit picture instead of raw data."""

    @abstractmethod
    def write_cloud(self, name: str, cloud: GridCloud) -> None:
        """Record the valid points of a cloud."""


class NullSink(DiagnosticSink):
    """Discards every artifact."""

    def write_raster(self, name: str, raster: np.ndarray, as_image: bool = False) -> None:
        pass

    def write_cloud(self, name: str, cloud: GridCloud) -> None:
        pass


class MemorySink(DiagnosticSink):
    """Keeps copies of artifacts in dictionaries, keyed by name."""

    def __init__(self) -> None:
        self.rasters: dict[str, np.ndarray] = {}
        self.clouds: dict[str, GridCloud] = {}

    def write_raster(self, name: str, raster: np.ndarray, as_image: bool = False) -> None:
        self.rasters[name] = np.array(raster, copy=True)

    def write_cloud(self, name: str, cloud: GridCloud) -> None:
        self.clouds[name] = cloud.copy()


class DirectorySink(DiagnosticSink):
    """Writes artifacts into a directory.

    Rasters go to ``<name>.mha`` (or ``<name>.png`` when ``as_image``),
    clouds to ``<name>.ply``.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, name: str, suffix: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        return self.directory / f"{name}{suffix}"

    def write_raster(self, name: str, raster: np.ndarray, as_image: bool = False) -> None:
        from holefill_ecs.core.serialization import write_png, write_raster

        if as_image:
            path = self._path(name, ".png")
            write_png(path, raster)
        else:
            path = self._path(name, ".mha")
            write_raster(path, raster)
        logger.info("Wrote diagnostic raster %s", path)

    def write_cloud(self, name: str, cloud: GridCloud) -> None:
        from holefill_ecs.formats.ply import write_ply

        path = self._path(name, ".ply")
        write_ply(path, cloud)
        logger.info("Wrote diagnostic point set %s", path)
