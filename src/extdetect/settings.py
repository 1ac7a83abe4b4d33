# SPDX-License-Identifier: AGPL-3.0-or-later
"""Central configuration loader with YAML + environment support."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator


def _default_cache_dir() -> Path:
    base = Path(os.getenv("EXTDETECT_CACHE_DIR", "")).expanduser()
    if base and base.name:
        return base
    return Path.home() / ".cache" / "extdetect"


class ClassifierSettings(BaseModel):
    """Limits applied while reading and matching file content."""

    signature_length: int = Field(default=1024, gt=0)
    markup_length: int = Field(default=2048, gt=0)
    assembly_length: int = Field(default=1024, gt=0)
    read_limit_bytes: int = Field(default=1_048_576, gt=0)
    min_file_bytes: int = Field(default=16, ge=0)
    min_signature_chars: int = Field(default=8, ge=0)
    pattern_timeout: float = 5.0

    @field_validator("pattern_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:  # noqa: D401
        if value <= 0:
            raise ValueError("pattern_timeout must be > 0")
        return float(value)


class OracleSettings(BaseModel):
    """Options forwarded to libmagic."""

    magic_file: Optional[str] = None
    uncompress: bool = False

    @field_validator("magic_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Optional[str]) -> Optional[str]:  # noqa: D401
        if not value:
            return None
        return str(Path(value).expanduser())


class DebugSettings(BaseModel):
    """Optional per-file decision log and per-extension summary."""

    enabled: bool = False
    log_path: Optional[str] = None
    summary_path: Optional[str] = None

    @field_validator("log_path", "summary_path", mode="before")
    @classmethod
    def _expand_path(cls, value: Optional[str]) -> Optional[str]:  # noqa: D401
        if not value:
            return None
        return str(Path(value).expanduser())

    @property
    def resolved_log_path(self) -> Path:
        if self.log_path:
            return Path(self.log_path)
        return _default_cache_dir() / "debug" / "decisions.tsv"

    @property
    def resolved_summary_path(self) -> Path:
        if self.summary_path:
            return Path(self.summary_path)
        return _default_cache_dir() / "debug" / "summary.tsv"


class DetectorSettings(BaseModel):
    """Composite settings object loaded from YAML + environment variables."""

    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    oracle: OracleSettings = Field(default_factory=OracleSettings)
    debug: DebugSettings = Field(default_factory=DebugSettings)


def _default_settings_path() -> Path:
    base_dir = Path(__file__).resolve().parents[2]
    return base_dir / "configs" / "settings.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings YAML at {path} must contain a dictionary")
    return data


def _resolve_settings_path(explicit: Optional[str | Path]) -> Path:
    if explicit:
        return Path(explicit).expanduser()
    env_path = os.getenv("EXTDETECT_SETTINGS_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return _default_settings_path()


def _resolve_env_path() -> Optional[Path]:
    candidate = os.getenv("EXTDETECT_DOTENV")
    if candidate:
        return Path(candidate).expanduser()
    base_dir = Path(__file__).resolve().parents[2]
    default = base_dir / ".env"
    return default if default.exists() else None


def _collect_env_overrides() -> Dict[str, Any]:
    prefix = "EXTDETECT_"
    reserved = {"SETTINGS_PATH", "DOTENV", "CACHE_DIR"}
    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        remainder = key[len(prefix) :]
        if remainder in reserved:
            continue
        parts = remainder.split("__")
        cursor = overrides
        for idx, part in enumerate(parts):
            normalized = part.lower()
            if idx == len(parts) - 1:
                cursor[normalized] = value
            else:
                cursor = cursor.setdefault(normalized, {})  # type: ignore[assignment]
    return overrides


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


@lru_cache(maxsize=1)
def get_settings(path: Path | None = None) -> DetectorSettings:
    """Load the global detector settings, caching the resulting object."""

    env_path = _resolve_env_path()
    if env_path is not None:
        load_dotenv(dotenv_path=env_path, override=False)
    data = _read_yaml(_resolve_settings_path(path))
    merged = _deep_merge(data, _collect_env_overrides())
    return DetectorSettings.model_validate(merged)


def reset_settings_cache() -> None:
    """Clear the cached settings instance (useful for tests)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "ClassifierSettings",
    "DebugSettings",
    "DetectorSettings",
    "OracleSettings",
    "get_settings",
    "reset_settings_cache",
]
