"""Preference storage in a JSON file."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import TypeVar

from nodoze.adapters.base import Store
from nodoze.preferences import Pref

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _matches(value: object, default: object) -> bool:
    # bool is a subclass of int; keep the two apart.
    if isinstance(default, bool) or isinstance(value, bool):
        return type(value) is type(default)
    return isinstance(value, type(default))


class JsonFileStore(Store):
    """Stores every preference as one key of a JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def get(self, pref: Pref[T]) -> T:
        data = self._load()
        if pref.key not in data:
            return pref.default
        value = data[pref.key]
        if not _matches(value, pref.default):
            logger.warning(
                "Ignoring stored %s=%r: expected %s", pref.key, value, type(pref.default).__name__
            )
            return pref.default
        return value  # type: ignore[return-value]

    def set(self, pref: Pref[T], value: T) -> None:
        data = self._load()
        data[pref.key] = value
        self._write(data)

    def _load(self) -> dict[str, object]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read preferences from %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.warning("Preferences file %s is not a JSON object", self.path)
            return {}
        return data

    def _write(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".prefs-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise
