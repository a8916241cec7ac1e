"""Config loading: .nodoze.toml > env vars > CLI flags."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from nodoze.models import NodozeConfig

_CONFIG_FILENAME = ".nodoze.toml"

_ENV_MAP: dict[str, str] = {
    "NODOZE_POLL_INTERVAL": "poll_interval",
    "NODOZE_STORE_PATH": "store_path",
    "NODOZE_REASON": "reason",
    "NODOZE_LOG_LEVEL": "log_level",
}

_FLOAT_FIELDS = {"poll_interval"}
_PATH_FIELDS = {"store_path"}


def _find_config_file() -> Path | None:
    path = Path.cwd()
    for parent in [path, *path.parents]:
        candidate = parent / _CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def _load_toml(path: Path) -> dict[str, object]:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data.get("nodoze", {})  # type: ignore[return-value]


def _load_env() -> dict[str, object]:
    overrides: dict[str, object] = {}
    for env_key, field_name in _ENV_MAP.items():
        value = os.environ.get(env_key)
        if value is None:
            continue
        if field_name in _FLOAT_FIELDS:
            overrides[field_name] = float(value)
        elif field_name in _PATH_FIELDS:
            overrides[field_name] = Path(value).expanduser()
        else:
            overrides[field_name] = value
    return overrides


def load_config(
    poll_interval: float | None = None,
    store_path: Path | None = None,
    log_level: str | None = None,
    allow_display_sleep: bool = False,
) -> NodozeConfig:
    """Load config with 3-layer precedence: toml < env < CLI flags."""
    merged: dict[str, object] = {}

    config_path = _find_config_file()
    if config_path is not None:
        merged.update(_load_toml(config_path))

    merged.update(_load_env())

    if poll_interval is not None:
        merged["poll_interval"] = poll_interval
    if store_path is not None:
        merged["store_path"] = store_path
    if log_level is not None:
        merged["log_level"] = log_level
    if allow_display_sleep:
        merged["prevent_display_sleep"] = False

    return NodozeConfig(**merged)  # type: ignore[arg-type]
