"""Configuration loading for ccrecover (.ccrecover.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

CONFIG_FILENAME = ".ccrecover.yml"

DEFAULT_SETTINGS_NAMESPACES = ("_CCSettings", "CCSettings")
DEFAULT_DICTIONARY_KEYS = ("uuids", "resourceUuids")
DEFAULT_COMPONENT_CALLEES = ("cc.Class",)
DEFAULT_KIND_PRIORITY = (
    "scene",
    "prefab",
    "animation",
    "sprite_frame",
    "font",
    "audio",
    "texture",
    "script",
    "json",
    "other",
)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass(frozen=True)
class ReconcileConfig:
    """Tie-break settings used by asset reconciliation."""

    kind_priority: tuple[str, ...] = DEFAULT_KIND_PRIORITY


@dataclass(frozen=True)
class RecoveryConfig:
    """Represents the settings defined in .ccrecover.yml."""

    root: Path
    layout: Optional[str] = None
    workers: int = 4
    scripts_dir: str = "assets/scripts"
    settings_namespaces: tuple[str, ...] = DEFAULT_SETTINGS_NAMESPACES
    dictionary_keys: tuple[str, ...] = DEFAULT_DICTIONARY_KEYS
    component_callees: tuple[str, ...] = DEFAULT_COMPONENT_CALLEES
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    exclude_paths: tuple[str, ...] = ()


def load_config(config_path: Path) -> RecoveryConfig:
    """Load configuration from disk, returning defaults when the file is absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return RecoveryConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    layout = _as_str(data.get("layout"))
    if layout is not None and layout not in {"2.3.x", "2.4.x"}:
        raise ConfigError(f"Unsupported layout '{layout}' (expected 2.3.x or 2.4.x)")

    workers = _as_int(data.get("workers"))
    if workers is not None and workers < 1:
        raise ConfigError("workers must be a positive integer")

    reconcile_data = _as_dict(data.get("reconcile"))
    reconcile = ReconcileConfig()
    if reconcile_data:
        priority = _as_str_list(reconcile_data.get("kind_priority"))
        if priority:
            reconcile = ReconcileConfig(kind_priority=tuple(item.lower() for item in priority))

    return RecoveryConfig(
        root=root,
        layout=layout,
        workers=workers or 4,
        scripts_dir=(_as_str(data.get("scripts_dir")) or "assets/scripts").strip("/"),
        settings_namespaces=_as_tuple(data.get("settings_namespaces"), DEFAULT_SETTINGS_NAMESPACES),
        dictionary_keys=_as_tuple(data.get("dictionary_keys"), DEFAULT_DICTIONARY_KEYS),
        component_callees=_as_tuple(data.get("component_callees"), DEFAULT_COMPONENT_CALLEES),
        reconcile=reconcile,
        exclude_paths=tuple(_as_str_list(data.get("exclude_paths"))),
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


def _as_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    items = _as_str_list(value)
    return tuple(items) if items else default


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "ReconcileConfig",
    "RecoveryConfig",
    "load_config",
]
