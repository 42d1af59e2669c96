import json
import logging
from pathlib import Path

import pytest

from sia.config import normalize_config
from sia.errors import PluginLoadError, PluginValidationError
from sia.hooks import HookRegistry
from sia.plugins import (
    Plugin,
    apply_config_defaults,
    coerce_plugin,
    discover_local_plugins,
    discover_package_plugins,
    discover_plugins,
    load_plugin,
    load_plugins,
    order_plugins,
    register_plugin_hooks,
    validate_plugin,
)


def write_plugin(path: Path, name: str, *, deps=(), body: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        f"""{body}
plugin = {{
    "name": {name!r},
    "version": "1.0.0",
    "dependencies": {list(deps)!r},
    "hooks": {{"before_build": lambda config, api: None}},
}}
""",
        encoding="utf-8",
    )
    return path


def make_config(tmp_path: Path, **plugins) -> dict:
    return normalize_config({"plugins": plugins} if plugins else {}, tmp_path)


def test_discover_local_plugins_skips_non_modules(tmp_path):
    plugins_dir = tmp_path / "_plugins"
    write_plugin(plugins_dir / "b.py", "b")
    write_plugin(plugins_dir / "a.py", "a")
    write_plugin(plugins_dir / "_helper.py", "helper")
    (plugins_dir / "notes.txt").write_text("x", encoding="utf-8")
    (plugins_dir / "nested").mkdir()

    found = discover_local_plugins(tmp_path)
    assert [info.name for info in found] == ["a", "b"]
    assert all(info.kind == "local" for info in found)


def test_discover_local_plugins_missing_dir(tmp_path):
    assert discover_local_plugins(tmp_path) == []


def test_discover_package_plugins_with_scopes_and_metadata(tmp_path):
    packages = tmp_path / "_packages"
    write_plugin(packages / "sia_plugin_rss" / "__init__.py", "rss")
    write_plugin(packages / "@acme" / "sia-plugin-seo" / "plugin.py", "seo")
    custom = packages / "sia-plugin-custom"
    write_plugin(custom / "src" / "entry.py", "custom")
    (custom / "plugin.json").write_text(
        json.dumps({"name": "custom-plugin", "main": "src/entry.py", "version": "2.0.0"}),
        encoding="utf-8",
    )
    write_plugin(packages / "unrelated" / "__init__.py", "unrelated")
    (packages / "sia_plugin_empty").mkdir()

    found = discover_package_plugins(tmp_path)
    by_name = {info.name: info for info in found}

    assert set(by_name) == {"@acme/sia-plugin-seo", "custom-plugin", "sia_plugin_rss"}
    assert by_name["custom-plugin"].version == "2.0.0"
    assert by_name["custom-plugin"].path == custom / "src" / "entry.py"
    assert by_name["@acme/sia-plugin-seo"].path.name == "plugin.py"
    assert all(info.kind == "package" for info in found)


def test_discover_plugins_respects_allow_list_and_enabled(tmp_path):
    write_plugin(tmp_path / "_plugins" / "a.py", "a")
    write_plugin(tmp_path / "_plugins" / "b.py", "b")

    config = make_config(tmp_path, plugins=["b"])
    assert [info.name for info in discover_plugins(config)] == ["b"]

    config = make_config(tmp_path, enabled=False)
    assert discover_plugins(config) == []


def test_validate_plugin_errors():
    with pytest.raises(PluginValidationError, match="name"):
        validate_plugin({"version": "1.0.0"})
    with pytest.raises(PluginValidationError, match="version"):
        validate_plugin({"name": "x"})
    with pytest.raises(PluginValidationError, match="hooks"):
        validate_plugin({"name": "x", "version": "1", "hooks": ["before_build"]})
    with pytest.raises(PluginValidationError, match="callable"):
        validate_plugin({"name": "x", "version": "1", "hooks": {"before_build": 3}})
    with pytest.raises(PluginValidationError, match="dependencies"):
        validate_plugin({"name": "x", "version": "1", "dependencies": "other"})
    with pytest.raises(PluginValidationError):
        validate_plugin(None)
    assert validate_plugin({"name": "x", "version": "1"})


def test_coerce_plugin_accepts_objects_and_camel_case_schema():
    class Export:
        name = "obj"
        version = "0.1.0"
        dependencies = ["a", "a", "b"]
        configSchema = {"limit": {"type": "number", "default": 5}}
        hooks = {}

    plugin = coerce_plugin(Export())
    assert plugin.dependencies == ["a", "b"]
    assert plugin.config_schema == {"limit": {"type": "number", "default": 5}}


def test_load_plugin_errors(tmp_path):
    broken = tmp_path / "broken.py"
    broken.write_text("raise RuntimeError('no')\n", encoding="utf-8")
    with pytest.raises(PluginLoadError, match="Failed to load"):
        load_plugin(broken)

    empty = tmp_path / "empty.py"
    empty.write_text("x = 1\n", encoding="utf-8")
    with pytest.raises(PluginLoadError, match="does not export"):
        load_plugin(empty)

    invalid = tmp_path / "invalid.py"
    invalid.write_text("plugin = {'name': 'x'}\n", encoding="utf-8")
    with pytest.raises(PluginValidationError):
        load_plugin(invalid)


def test_load_plugin_sees_file_changes(tmp_path):
    path = write_plugin(tmp_path / "p.py", "first")
    assert load_plugin(path).name == "first"
    write_plugin(path, "second")
    assert load_plugin(path).name == "second"


def plugin(name, *deps):
    return Plugin(name=name, version="1.0.0", dependencies=list(deps))


def test_order_plugins_places_dependencies_first(tmp_path):
    config = make_config(tmp_path)
    ordered = order_plugins([plugin("c", "b"), plugin("b", "a"), plugin("a")], config)
    assert [p.name for p in ordered] == ["a", "b", "c"]


def test_order_plugins_explicit_order_wins(tmp_path):
    config = make_config(tmp_path, order=["c", "missing", "a"])
    ordered = order_plugins([plugin("a"), plugin("b"), plugin("c", "b")], config)
    assert [p.name for p in ordered] == ["c", "a", "b"]


def test_order_plugins_missing_dependency_warns(tmp_path, caplog):
    ordered = order_plugins([plugin("a", "ghost")], make_config(tmp_path))
    assert [p.name for p in ordered] == ["a"]
    assert "depends on ghost" in caplog.text


def test_order_plugins_cycle_warns_and_keeps_everyone(tmp_path, caplog):
    ordered = order_plugins([plugin("a", "b"), plugin("b", "a")], make_config(tmp_path))
    assert sorted(p.name for p in ordered) == ["a", "b"]
    assert "Circular dependency" in caplog.text


def test_apply_config_defaults(tmp_path, caplog):
    config = normalize_config(
        {"plugins": {"config": {"p": {"limit": "ten"}}}}, tmp_path
    )
    p = Plugin(
        name="p",
        version="1",
        config_schema={
            "limit": {"type": "number", "default": 5},
            "title": {"type": "string", "default": "Feed"},
        },
    )
    options = apply_config_defaults(config, p)
    assert options == {"limit": "ten", "title": "Feed"}
    assert config["plugins"]["config"]["p"] is options
    assert "should be of type number" in caplog.text


def test_load_plugins_collects_failures(tmp_path, caplog):
    write_plugin(tmp_path / "_plugins" / "good.py", "good")
    (tmp_path / "_plugins" / "bad.py").write_text("plugin = {}\n", encoding="utf-8")

    loaded = load_plugins(make_config(tmp_path))
    assert [p.name for p in loaded] == ["good"]
    assert loaded[0].source_kind == "local"
    assert "Failed to load bad" in caplog.text


def test_load_plugins_strict_mode_raises(tmp_path):
    write_plugin(tmp_path / "_plugins" / "good.py", "good")
    (tmp_path / "_plugins" / "bad.py").write_text("raise ImportError('x')\n", encoding="utf-8")

    with pytest.raises(PluginLoadError) as excinfo:
        load_plugins(make_config(tmp_path, strict_mode=True))
    assert [name for name, _ in excinfo.value.failures] == ["bad"]


def test_load_plugins_keeps_first_duplicate(tmp_path, caplog):
    write_plugin(tmp_path / "_plugins" / "a.py", "same")
    write_plugin(tmp_path / "_packages" / "sia_plugin_same" / "__init__.py", "same")

    loaded = load_plugins(make_config(tmp_path))
    assert len(loaded) == 1
    assert loaded[0].source_kind == "local"
    assert "Duplicate plugin name same" in caplog.text


def test_load_plugins_orders_by_dependencies(tmp_path):
    write_plugin(tmp_path / "_plugins" / "a.py", "a", deps=["b"])
    write_plugin(tmp_path / "_plugins" / "b.py", "b")
    assert [p.name for p in load_plugins(make_config(tmp_path))] == ["b", "a"]


def test_register_plugin_hooks_skips_unknown(caplog):
    registry = HookRegistry()
    p = Plugin(
        name="p",
        version="1",
        hooks={"before_build": lambda *a: None, "onBuildStart": lambda *a: None},
    )
    with caplog.at_level(logging.WARNING):
        count = register_plugin_hooks(registry, [p])
    assert count == 1
    assert registry.has_handlers("before_build")
    assert "unknown hook onBuildStart" in caplog.text
