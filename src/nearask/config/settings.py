# src/nearask/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/nearask/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `NEARASK_CONFIG_PATH` (replaces the packaged defaults)
- a small whitelist of environment variables (e.g., `NEARASK_LOG_LEVEL`)

Design rule:
- Tuning knobs (radius defaults, index choice, text limits) live in YAML, not in business logic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from nearask.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `nearask.config`."""
    text = resources.files("nearask.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "NearAsk"
    log_level: str = "INFO"


class StorageSettings(BaseModel):
    backend: Literal["memory", "json"] = "memory"
    dir: str = ".data/nearask"


class CenterSettings(BaseModel):
    lat: float = Field(35.6812, ge=-90, le=90)
    lon: float = Field(139.7671, ge=-180, le=180)


class ProximitySettings(BaseModel):
    default_radius_km: float = Field(10.0, gt=0)
    max_radius_km: float = Field(20_038.0, gt=0)
    index: Literal["linear", "grid"] = "linear"
    grid_cell_size_deg: float = Field(0.05, gt=0, le=90)
    # Used by the CLI when no position is given.
    default_center: CenterSettings = Field(default_factory=CenterSettings)

    @model_validator(mode="after")
    def _validate_radius(self) -> "ProximitySettings":
        if self.default_radius_km > self.max_radius_km:
            raise ValueError("proximity.default_radius_km must not exceed proximity.max_radius_km")
        return self


class LifecycleSettings(BaseModel):
    allow_self_answer: bool = False
    title_max_length: int = Field(100, ge=1)
    description_max_length: int = Field(2000, ge=0)
    comment_max_length: int = Field(2000, ge=1)


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    proximity: ProximitySettings = Field(default_factory=ProximitySettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: only a small whitelist is honored; everything else belongs in YAML.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("NEARASK_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    backend = os.getenv("NEARASK_STORAGE_BACKEND")
    if backend:
        data.setdefault("storage", {})["backend"] = backend.strip().lower()

    data_dir = os.getenv("NEARASK_DATA_DIR")
    if data_dir:
        data.setdefault("storage", {})["dir"] = data_dir

    index = os.getenv("NEARASK_PROXIMITY_INDEX")
    if index:
        data.setdefault("proximity", {})["index"] = index.strip().lower()

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("NEARASK_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
