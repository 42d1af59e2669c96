from pathlib import Path

import pytest
from click.testing import CliRunner

from sia import __version__
from sia.cli import cli


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    calls = []
    monkeypatch.setattr("sia.cli.configure_logging", lambda **kwargs: calls.append(kwargs))
    return calls


def create_site(root: Path) -> Path:
    (root / "src" / "posts").mkdir(parents=True)
    (root / "src" / "posts" / "2024-01-01-hello.md").write_text(
        "---\ntitle: Hello\n---\nHi there", encoding="utf-8"
    )
    (root / "_plugins").mkdir()
    (root / "_plugins" / "noop.py").write_text(
        "plugin = {'name': 'noop', 'version': '0.1.0', "
        "'hooks': {'before_build': lambda config, api: None}}\n",
        encoding="utf-8",
    )
    return root


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_build_command(tmp_path, quiet_logging):
    site = create_site(tmp_path / "site")
    result = CliRunner().invoke(cli, ["--verbose", "build", "--root", str(site)])

    assert result.exit_code == 0, result.output
    assert "Built" in result.output
    assert (site / "dist" / "blog" / "hello" / "index.html").exists()
    assert quiet_logging == [{"verbose": True, "log_json": False}]


def test_build_command_reports_build_error(tmp_path):
    site = create_site(tmp_path / "site")
    (site / "_layouts").mkdir()
    (site / "_layouts" / "post.html").write_text("{{ 1 / 0 }}", encoding="utf-8")

    result = CliRunner().invoke(cli, ["build", "--root", str(site)])

    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "2024-01-01-hello.md" in result.output


def test_build_command_reports_config_error(tmp_path):
    site = create_site(tmp_path / "site")
    (site / "_config.yml").write_text("pagination:\n  size: 0\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["build", "--root", str(site)])

    assert result.exit_code == 1
    assert "pagination.size" in result.output


def test_build_command_reports_plugin_failures(tmp_path):
    site = create_site(tmp_path / "site")
    (site / "_config.yml").write_text("plugins:\n  strictMode: true\n", encoding="utf-8")
    (site / "_plugins" / "bad.py").write_text("plugin = {'name': 'bad'}\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["build", "--root", str(site)])

    assert result.exit_code == 1
    assert "Plugin loading failed:" in result.output
    assert "bad:" in result.output


def test_plugins_command(tmp_path):
    site = create_site(tmp_path / "site")
    result = CliRunner().invoke(cli, ["plugins", "--root", str(site)])

    assert result.exit_code == 0
    assert "noop 0.1.0 (local): before_build" in result.output


def test_plugins_command_without_plugins(tmp_path):
    result = CliRunner().invoke(cli, ["plugins", "--root", str(tmp_path)])
    assert result.exit_code == 0
    assert "No plugins found" in result.output
