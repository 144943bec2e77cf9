from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core.errors import ConfigError
from infrastructure.storage_paths import get_dex_home

CONFIG_FILE_NAME = "config.yaml"
DEFAULT_LABEL_PREFIX = "dex"


@dataclass(frozen=True)
class ArchiveConfig:
    auto: bool = False
    age_days: int = 90
    keep_recent: int = 50

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ArchiveConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("archive: expected a mapping")
        auto = data.get("auto", cls.auto)
        if not isinstance(auto, bool):
            raise ValueError("archive.auto: expected true/false")
        values = {}
        for key in ("age_days", "keep_recent"):
            value = data.get(key, getattr(cls, key))
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValueError(f"archive.{key}: expected a non-negative integer")
            values[key] = value
        return cls(auto=auto, **values)


def user_config_path() -> Path:
    return get_dex_home() / CONFIG_FILE_NAME


def project_config_path(storage_path: Path) -> Path:
    return Path(storage_path) / CONFIG_FILE_NAME


def _load_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(path, str(exc)) from exc
    if not isinstance(data, dict):
        raise ConfigError(path, "top level must be a mapping")
    return data


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(storage_path: Optional[Path] = None) -> Dict[str, Any]:
    """User config overlaid with the per-project config (project wins per key)."""
    data = _load_file(user_config_path())
    if storage_path is not None:
        data = _merge(data, _load_file(project_config_path(storage_path)))
    return data


def load_archive_config(storage_path: Optional[Path] = None) -> ArchiveConfig:
    data = load_config(storage_path)
    try:
        return ArchiveConfig.from_dict(data.get("archive"))
    except ValueError as exc:
        path = project_config_path(storage_path) if storage_path is not None else user_config_path()
        raise ConfigError(path, str(exc)) from exc


def get_label_prefix(storage_path: Optional[Path] = None) -> str:
    github = ((load_config(storage_path).get("sync") or {}).get("github") or {})
    return str(github.get("label_prefix") or DEFAULT_LABEL_PREFIX)


def get_github_token(storage_path: Optional[Path] = None) -> str:
    for var in ("GITHUB_TOKEN", "GH_TOKEN"):
        value = os.environ.get(var, "").strip()
        if value:
            return value
    return str(load_config(storage_path).get("token", "") or "").strip()


def set_user_token(value: str) -> None:
    path = user_config_path()
    data = _load_file(path)
    value = value.strip()
    if value:
        data["token"] = value
    else:
        data.pop("token", None)
    if not data:
        if path.exists():
            path.unlink()
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, allow_unicode=True), encoding="utf-8")
