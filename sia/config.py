"""Configuration loading for Sia.

Site configuration lives in ``_config.yml`` at the project root. User values
are deep-merged over DEFAULT_CONFIG, camelCase keys are normalized to
snake_case, and directory settings are resolved to absolute paths.

Key functions:
- load_config: Load and normalize the configuration for a project root.
- normalize_config: Apply defaults and normalization to an in-memory mapping.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("_config.yml", "_config.yaml")

DEFAULT_CONFIG: dict[str, Any] = {
    "site": {
        "title": "Sia Site",
        "description": "",
        "url": "",
        "base_path": "",
    },
    "input_dir": "src",
    "output_dir": "dist",
    "layouts_dir": "_layouts",
    "static_dir": "static",
    "collections": {
        "posts": {
            "path": "posts",
            "layout": "post",
            "permalink": "/blog/:slug/",
            "listing": "/blog/",
            "sort_by": "date",
            "sort_order": "desc",
        },
        "pages": {
            "path": "pages",
            "layout": "page",
            "permalink": "/:slug/",
            "sort_by": "title",
            "sort_order": "asc",
        },
        "notes": {
            "path": "notes",
            "layout": "note",
            "permalink": "/notes/:slug/",
            "sort_by": "date",
            "sort_order": "desc",
        },
    },
    "pagination": {"size": 10},
    "feed": {"enabled": True, "collection": "posts", "limit": 20},
    "server": {"show_drafts": False},
    "plugins": {
        "enabled": True,
        "strict_mode": False,
        "order": [],
        "plugins": [],
        "config": {},
        "packages_dir": "_packages",
    },
}

# Config files written for the original tool use camelCase.
KEY_ALIASES = {
    "basePath": "base_path",
    "inputDir": "input_dir",
    "outputDir": "output_dir",
    "layoutsDir": "layouts_dir",
    "staticDir": "static_dir",
    "showDrafts": "show_drafts",
    "strictMode": "strict_mode",
    "sortBy": "sort_by",
    "sortOrder": "sort_order",
    "packagesDir": "packages_dir",
}


def _normalize_keys(value: Any, path: tuple[str, ...] = ()) -> Any:
    if not isinstance(value, Mapping):
        return value
    # Plugin options are opaque to the core.
    if path == ("plugins", "config"):
        return dict(value)
    normalized: dict[str, Any] = {}
    for key, item in value.items():
        name = KEY_ALIASES.get(key, key) if isinstance(key, str) else key
        normalized[name] = _normalize_keys(item, path + (str(name),))
    return normalized


def deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Args:
        base: Mapping providing default values.
        override: Mapping whose values win on conflict.

    Returns:
        A new merged dictionary.
    """
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def normalize_config(
    loaded: Mapping[str, Any] | None, root_dir: Path
) -> dict[str, Any]:
    """Apply defaults and normalization to a raw configuration mapping.

    Args:
        loaded: Raw user configuration (may be None or empty).
        root_dir: Project root used to resolve relative directories.

    Returns:
        Normalized configuration dictionary.

    Raises:
        ConfigError: If a section has the wrong type or pagination is invalid.
    """
    user = _normalize_keys(loaded or {})
    for section in ("site", "collections", "pagination", "feed", "server", "plugins"):
        if section in user and not isinstance(user[section], Mapping):
            raise ConfigError(f"Config section {section!r} must be a mapping")

    defaults = copy.deepcopy(DEFAULT_CONFIG)
    if "collections" in user:
        # A user-defined collection set replaces the defaults entirely.
        defaults["collections"] = {}
    config = deep_merge(defaults, user)

    size = config["pagination"].get("size")
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise ConfigError(f"pagination.size must be a positive integer, got {size!r}")

    root_dir = Path(root_dir).resolve()
    config["root_dir"] = root_dir
    config["input_dir"] = root_dir / str(config["input_dir"])
    config["output_dir"] = root_dir / str(config["output_dir"])
    config["site"]["base_path"] = str(config["site"].get("base_path") or "").rstrip("/")
    return config


def load_config(root_dir: Path) -> dict[str, Any]:
    """Load site configuration from ``_config.yml``.

    Args:
        root_dir: Root directory of the project.

    Returns:
        Dictionary containing configuration values, with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    root_dir = Path(root_dir)
    loaded: Any = {}
    for filename in CONFIG_FILENAMES:
        config_path = root_dir / filename
        if not config_path.exists():
            continue
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
        if not isinstance(loaded, Mapping):
            raise ConfigError(f"{config_path} must contain a mapping")
        logger.debug("Loaded config from %s", config_path)
        break
    else:
        logger.info("No _config.yml found in %s, using defaults", root_dir)
    return normalize_config(loaded, root_dir)


def plugin_options(config: Mapping[str, Any], plugin_name: str) -> dict[str, Any]:
    """Return the resolved options for one plugin.

    Args:
        config: Normalized configuration.
        plugin_name: Plugin name as declared by the plugin.

    Returns:
        The plugin's option mapping, or an empty dict.
    """
    options = config.get("plugins", {}).get("config", {}).get(plugin_name)
    return dict(options) if isinstance(options, Mapping) else {}
