"""The API object handed to every plugin hook."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger("sia.plugins.api")

_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class ConfigView(Mapping):
    """Live read-only view of a configuration mapping.

    Nested mappings come back as views too and lists as tuples, so no level
    of the configuration can be changed through it.
    """

    def __init__(self, data: Mapping[str, Any]):
        self._data = data

    def __getitem__(self, key: str) -> Any:
        return _read_only(self._data[key])

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ConfigView({self._data!r})"


def _read_only(value: Any) -> Any:
    if isinstance(value, Mapping):
        return ConfigView(value)
    if isinstance(value, list):
        return tuple(_read_only(entry) for entry in value)
    return value


class PluginAPI:
    """File and logging helpers exposed to plugins.

    Attributes:
        config: Read-only view of the site configuration.
    """

    def __init__(self, config: Mapping[str, Any]):
        self.config = ConfigView(config)

    def write_file(self, path: str | os.PathLike, content: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    def read_file(self, path: str | os.PathLike) -> str:
        return Path(path).read_text(encoding="utf-8")

    def join_path(self, *segments: str | os.PathLike) -> str:
        return os.path.join(*segments)

    def log(self, message: str, level: str = "info") -> None:
        logger.log(_LEVELS.get(level, logging.INFO), message)
