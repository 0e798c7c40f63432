"""Run configuration loaded from ``holefill.toml``.

Example file::

    log_level = "INFO"

    [texture]
    knn = 100

    [small_holes]
    kernel_radius = 1
    downsample_factor = 1

    [arena]
    bytes = 268435456

Every key is optional. Command-line flags override file values.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

CONFIG_ENV = "HOLEFILL_CONFIG"
CONFIG_NAME = "holefill.toml"


class TextureConfig(BaseModel):
    knn: int = Field(default=100, ge=1)


class SmallHoleConfig(BaseModel):
    kernel_radius: int = Field(default=1, ge=1)
    downsample_factor: int = Field(default=1, ge=1)


class ArenaConfig(BaseModel):
    """Arena size; None sizes it from the grid dimensions."""

    bytes: int | None = Field(default=None, gt=0)


class HoleFillConfig(BaseModel):
    texture: TextureConfig = Field(default_factory=TextureConfig)
    small_holes: SmallHoleConfig = Field(default_factory=SmallHoleConfig)
    arena: ArenaConfig = Field(default_factory=ArenaConfig)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level {value!r}")
        return level

    def override(self, **values: Any) -> HoleFillConfig:
        """Copy with dotted-path overrides applied; None values are ignored.

        Example:
            >>> cfg.override(**{"texture.knn": 50, "log_level": None})
        """
        data = self.model_dump()
        for key, value in values.items():
            if value is None:
                continue
            *parents, leaf = key.split(".")
            target = data
            for part in parents:
                target = target[part]
            target[leaf] = value
        return HoleFillConfig.model_validate(data)


def resolve_config_path(config_path: str | os.PathLike[str] | None = None) -> Path | None:
    """Resolve the configuration file from env, explicit path, or defaults.

    Returns None when no file is configured and none exists in the default
    locations.
    """
    env_config = os.environ.get(CONFIG_ENV)
    if env_config:
        return Path(env_config)
    if config_path:
        return Path(config_path)
    for candidate in (Path(CONFIG_NAME), Path.home() / CONFIG_NAME):
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: str | os.PathLike[str] | None = None) -> HoleFillConfig:
    """Load and validate the configuration, falling back to defaults.

    Raises:
        FileNotFoundError: If an explicitly configured file does not exist
        ValueError: If the file is not valid TOML or fails validation
    """
    path = resolve_config_path(config_path)
    if path is None:
        return HoleFillConfig()
    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found at {path}. Set {CONFIG_ENV} or create {CONFIG_NAME}"
        )
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        config = HoleFillConfig.model_validate(data)
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        raise ValueError(f"Invalid configuration in {path}: {e}") from e
    logger.debug("Loaded configuration from %s", path)
    return config
