"""Plugin discovery, loading and ordering for Sia.

Plugins come from two places under the project root:

- ``_plugins/*.py``: local single-file plugins.
- ``_packages/``: installed plugin packages named ``sia_plugin_*`` or
  ``sia-plugin-*``, optionally grouped one level deep under ``@scope``
  directories.

A plugin module exposes its definition as the module attribute ``plugin``
(or ``default``): a mapping or object with ``name``, ``version`` and the
optional ``dependencies``, ``config_schema`` and ``hooks``. The registry only
depends on that shape, never on how the module got loaded.

Key functions:
- discover_plugins: Find candidate plugin files.
- load_plugin: Import one file and validate its export.
- order_plugins: Explicit order or dependency-respecting order.
- load_plugins: Discover, load and order in one step.
- register_plugin_hooks: Register every plugin's hooks in a HookRegistry.
"""

from __future__ import annotations

import importlib.util
import itertools
import json
import logging
import sys
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import PluginLoadError, PluginValidationError
from .hooks import HOOK_NAMES, HookRegistry

logger = logging.getLogger(__name__)

LOCAL_PLUGINS_DIR = "_plugins"
PACKAGE_PREFIXES = ("sia_plugin_", "sia-plugin-")
PACKAGE_METADATA = "plugin.json"
PACKAGE_ENTRY_POINTS = ("__init__.py", "plugin.py")
PLUGIN_EXPORTS = ("plugin", "default")

# Type names accepted in a config_schema entry.
SCHEMA_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "boolean": (bool,),
    "number": (int, float),
    "integer": (int,),
    "array": (list, tuple),
    "object": (dict,),
}

_module_counter = itertools.count()


@dataclass
class PluginInfo:
    """A discovered plugin candidate, before loading.

    Attributes:
        name: Name used for allow-list filtering.
        path: Path to the file to import.
        kind: "local" or "package".
        package_name: Package name for package plugins.
        version: Version from package metadata, if any.
    """

    name: str
    path: Path
    kind: str
    package_name: str | None = None
    version: str | None = None


@dataclass
class Plugin:
    """A loaded, validated plugin.

    Attributes:
        name: Unique plugin name.
        version: Plugin version string.
        dependencies: Names of plugins that must run before this one.
        config_schema: Option name to ``{"type": ..., "default": ...}``.
        hooks: Hook name to handler.
        source_path: File the plugin was loaded from.
        source_kind: "local" or "package".
    """

    name: str
    version: str
    dependencies: list[str] = field(default_factory=list)
    config_schema: dict[str, dict[str, Any]] = field(default_factory=dict)
    hooks: dict[str, Callable[..., Any]] = field(default_factory=dict)
    source_path: Path | None = None
    source_kind: str | None = None


def _export_field(export: Any, *names: str) -> Any:
    for name in names:
        if isinstance(export, Mapping):
            if name in export:
                return export[name]
        elif hasattr(export, name):
            return getattr(export, name)
    return None


def validate_plugin(export: Any) -> bool:
    """Check that a plugin export has the expected shape.

    Args:
        export: Mapping or object exported by a plugin module.

    Returns:
        True when the export is valid.

    Raises:
        PluginValidationError: Describing the first problem found.
    """
    if export is None:
        raise PluginValidationError("Plugin is None")

    name = _export_field(export, "name")
    if not name or not isinstance(name, str):
        raise PluginValidationError('Plugin must have a "name" property (string)')

    version = _export_field(export, "version")
    if not version or not isinstance(version, str):
        raise PluginValidationError(
            'Plugin must have a "version" property (string)', name
        )

    hooks = _export_field(export, "hooks")
    if hooks is not None:
        if not isinstance(hooks, Mapping):
            raise PluginValidationError('Plugin "hooks" must be a mapping', name)
        for hook, handler in hooks.items():
            if not callable(handler):
                raise PluginValidationError(
                    f'Plugin hook "{hook}" must be callable', name
                )

    schema = _export_field(export, "config_schema", "configSchema")
    if schema is not None:
        if not isinstance(schema, Mapping):
            raise PluginValidationError(
                'Plugin "config_schema" must be a mapping', name
            )
        for option, spec in schema.items():
            if not isinstance(spec, Mapping):
                raise PluginValidationError(
                    f'Plugin "config_schema" entry "{option}" must be a mapping', name
                )

    dependencies = _export_field(export, "dependencies")
    if dependencies is not None:
        if not isinstance(dependencies, (list, tuple)) or not all(
            isinstance(dep, str) for dep in dependencies
        ):
            raise PluginValidationError(
                'Plugin "dependencies" must be a list of names', name
            )
    return True


def coerce_plugin(export: Any) -> Plugin:
    """Validate an export and turn it into a Plugin.

    Args:
        export: Mapping, object or Plugin.

    Returns:
        Plugin instance (the same object when already a Plugin).
    """
    if isinstance(export, Plugin):
        validate_plugin(export)
        return export
    validate_plugin(export)
    dependencies = list(dict.fromkeys(_export_field(export, "dependencies") or []))
    schema = _export_field(export, "config_schema", "configSchema") or {}
    return Plugin(
        name=_export_field(export, "name"),
        version=_export_field(export, "version"),
        dependencies=dependencies,
        config_schema={k: dict(v) for k, v in schema.items()},
        hooks=dict(_export_field(export, "hooks") or {}),
    )


def load_plugin(path: Path) -> Plugin:
    """Load a plugin from a Python file.

    The module is imported under a fresh name on every call so a rebuild
    always sees the current file contents.

    Args:
        path: Path to the plugin file.

    Returns:
        The validated Plugin with its provenance path set.

    Raises:
        PluginLoadError: If the module cannot be imported or exports nothing.
        PluginValidationError: If the export is malformed.
    """
    path = Path(path)
    module_name = f"sia_plugin_{path.stem.replace('-', '_')}_{next(_module_counter)}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise PluginLoadError(f"Cannot import plugin from {path}", str(path))
    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(module_name, None)
        raise PluginLoadError(
            f"Failed to load plugin from {path}: {exc}", str(path)
        ) from exc

    export = None
    for attr in PLUGIN_EXPORTS:
        export = getattr(module, attr, None)
        if export is not None:
            break
    if export is None:
        raise PluginLoadError(
            f"Plugin file {path} does not export a plugin object", str(path)
        )

    plugin = coerce_plugin(export)
    plugin.source_path = path
    return plugin


def discover_local_plugins(root_dir: Path) -> list[PluginInfo]:
    """Discover single-file plugins in ``<root>/_plugins``.

    Args:
        root_dir: Project root.

    Returns:
        PluginInfo entries sorted by filename.
    """
    plugins_dir = Path(root_dir) / LOCAL_PLUGINS_DIR
    if not plugins_dir.is_dir():
        return []

    found: list[PluginInfo] = []
    entries = sorted(plugins_dir.iterdir(), key=lambda p: p.name)
    logger.debug("Scanning %s: %d item(s)", plugins_dir, len(entries))
    for entry in entries:
        if entry.is_dir():
            logger.debug("Skipping directory %s (plugins must be files)", entry.name)
            continue
        if entry.suffix.lower() != ".py" or entry.name.startswith("_"):
            logger.debug("Skipping %s (not a plugin module)", entry.name)
            continue
        found.append(PluginInfo(name=entry.stem, path=entry, kind="local"))
        logger.debug("Found local plugin %s", entry.name)
    return found


def _is_plugin_package(name: str) -> bool:
    return name.startswith(PACKAGE_PREFIXES)


def _package_plugin(package_dir: Path, package_name: str) -> PluginInfo | None:
    metadata: dict[str, Any] = {}
    metadata_path = package_dir / PACKAGE_METADATA
    if metadata_path.exists():
        try:
            loaded = json.loads(metadata_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Error reading %s: %s", metadata_path, exc)
            return None
        if isinstance(loaded, dict):
            metadata = loaded

    candidates = [metadata["main"]] if metadata.get("main") else list(PACKAGE_ENTRY_POINTS)
    for candidate in candidates:
        entry = package_dir / str(candidate)
        if entry.is_file():
            name = metadata.get("name") or package_name
            return PluginInfo(
                name=str(name),
                path=entry,
                kind="package",
                package_name=str(name),
                version=metadata.get("version"),
            )
    logger.debug("Package %s has no entry point", package_name)
    return None


def discover_package_plugins(
    root_dir: Path, packages_dir: str = "_packages"
) -> list[PluginInfo]:
    """Discover plugin packages in the dependency-packages directory.

    Args:
        root_dir: Project root.
        packages_dir: Directory (relative to root) holding installed packages.

    Returns:
        PluginInfo entries for every matching package.
    """
    base = Path(root_dir) / packages_dir
    if not base.is_dir():
        return []

    found: list[PluginInfo] = []
    for entry in sorted(base.iterdir(), key=lambda p: p.name):
        if not entry.is_dir():
            continue
        if entry.name.startswith("@"):
            for scoped in sorted(entry.iterdir(), key=lambda p: p.name):
                if scoped.is_dir() and _is_plugin_package(scoped.name):
                    info = _package_plugin(scoped, f"{entry.name}/{scoped.name}")
                    if info:
                        found.append(info)
        elif _is_plugin_package(entry.name):
            info = _package_plugin(entry, entry.name)
            if info:
                found.append(info)
    return found


def discover_plugins(config: Mapping[str, Any]) -> list[PluginInfo]:
    """Discover plugin candidates for a build.

    Args:
        config: Normalized configuration.

    Returns:
        Local plugins followed by package plugins, filtered by the
        ``plugins.plugins`` allow-list when one is configured.
    """
    settings = config.get("plugins", {})
    if settings.get("enabled") is False:
        return []

    root_dir = Path(config.get("root_dir") or Path.cwd())
    discovered = discover_local_plugins(root_dir)
    discovered.extend(
        discover_package_plugins(root_dir, settings.get("packages_dir", "_packages"))
    )

    allowed = settings.get("plugins")
    if isinstance(allowed, (list, tuple)) and allowed:
        allowed_set = set(allowed)
        logger.info("Filtering plugins: only loading %s", ", ".join(allowed))
        dropped = [p.name for p in discovered if p.name not in allowed_set]
        if dropped:
            logger.info("Filtered out %d plugin(s): %s", len(dropped), ", ".join(dropped))
        discovered = [p for p in discovered if p.name in allowed_set]
    return discovered


def order_plugins(plugins: Iterable[Plugin], config: Mapping[str, Any]) -> list[Plugin]:
    """Order plugins for registration.

    An explicit ``plugins.order`` list wins: named plugins first, the rest
    appended in discovery order. Otherwise dependencies are placed before
    their dependents by depth-first traversal. Missing dependencies and
    cycles are logged and skipped, never fatal.

    Args:
        plugins: Loaded plugins in discovery order.
        config: Normalized configuration.

    Returns:
        Ordered list containing every plugin exactly once.
    """
    plugins = list(plugins)
    by_name = {p.name: p for p in plugins}

    explicit = config.get("plugins", {}).get("order")
    if isinstance(explicit, (list, tuple)) and explicit:
        ordered: list[Plugin] = []
        added: set[str] = set()
        for name in explicit:
            plugin = by_name.get(name)
            if plugin is None:
                logger.debug("Plugin %s in plugins.order was not loaded", name)
                continue
            if name not in added:
                ordered.append(plugin)
                added.add(name)
        ordered.extend(p for p in plugins if p.name not in added)
        return ordered

    ordered = []
    added = set()
    visiting: set[str] = set()

    def visit(plugin: Plugin) -> None:
        if plugin.name in added:
            return
        if plugin.name in visiting:
            logger.warning("Circular dependency detected involving plugin: %s", plugin.name)
            return
        visiting.add(plugin.name)
        for dep_name in plugin.dependencies:
            dep = by_name.get(dep_name)
            if dep is None:
                logger.warning(
                    "Plugin %s depends on %s, but it's not found", plugin.name, dep_name
                )
                continue
            visit(dep)
        visiting.discard(plugin.name)
        ordered.append(plugin)
        added.add(plugin.name)

    for plugin in plugins:
        visit(plugin)
    return ordered


def apply_config_defaults(config: dict[str, Any], plugin: Plugin) -> dict[str, Any]:
    """Fill a plugin's option defaults into ``plugins.config``.

    User-supplied values win. Values whose type does not match the declared
    schema type are kept but logged.

    Args:
        config: Normalized configuration (mutated in place).
        plugin: Plugin whose schema to apply.

    Returns:
        The resolved option mapping for the plugin.
    """
    all_options = config.setdefault("plugins", {}).setdefault("config", {})
    options = all_options.get(plugin.name)
    if not isinstance(options, dict):
        options = {}
        all_options[plugin.name] = options
    for option, spec in plugin.config_schema.items():
        if option not in options:
            if "default" in spec:
                options[option] = spec["default"]
            continue
        expected = SCHEMA_TYPES.get(str(spec.get("type", "")))
        value = options[option]
        if expected and (
            not isinstance(value, expected)
            or (isinstance(value, bool) and bool not in expected)
        ):
            logger.warning(
                "Plugin %s option %s should be of type %s, got %r",
                plugin.name,
                option,
                spec.get("type"),
                value,
            )
    return options


def load_plugins(config: dict[str, Any]) -> list[Plugin]:
    """Discover, load and order every plugin for a build.

    Args:
        config: Normalized configuration.

    Returns:
        Ordered list of loaded plugins.

    Raises:
        PluginLoadError: In strict mode, if any plugin failed to load.
    """
    settings = config.get("plugins", {})
    if settings.get("enabled") is False:
        logger.info("Plugins are disabled in config")
        return []

    discovered = discover_plugins(config)
    if not discovered:
        logger.info("No plugins discovered")
        return []
    logger.info("Found %d plugin(s)", len(discovered))

    loaded: list[Plugin] = []
    seen: set[str] = set()
    failures: list[tuple[str, str]] = []
    for info in discovered:
        try:
            plugin = load_plugin(info.path)
        except (PluginLoadError, PluginValidationError) as exc:
            failures.append((info.name, str(exc)))
            logger.warning("Failed to load %s: %s", info.name, exc)
            continue
        plugin.source_kind = info.kind
        if plugin.name in seen:
            logger.warning(
                "Duplicate plugin name %s from %s, keeping the first one",
                plugin.name,
                info.path,
            )
            continue
        seen.add(plugin.name)
        apply_config_defaults(config, plugin)
        loaded.append(plugin)
        logger.info("Loaded %s@%s (%s)", plugin.name, plugin.version, info.kind)

    if failures and settings.get("strict_mode"):
        raise PluginLoadError(
            f"Plugin loading failed in strict mode. {len(failures)} plugin(s) failed to load.",
            failures=failures,
        )

    return order_plugins(loaded, config)


def register_plugin_hooks(registry: HookRegistry, plugins: Iterable[Plugin]) -> int:
    """Register each plugin's hooks, in plugin order.

    Args:
        registry: Registry to populate.
        plugins: Ordered plugins.

    Returns:
        Number of handlers registered.
    """
    count = 0
    for plugin in plugins:
        for hook, handler in plugin.hooks.items():
            if hook not in HOOK_NAMES:
                logger.warning("Plugin %s registers unknown hook %s", plugin.name, hook)
                continue
            registry.register(hook, plugin.name, handler)
            count += 1
    logger.debug("Registered %d hook handler(s)", count)
    return count
