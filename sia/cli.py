"""Command-line interface for Sia.

Commands:
- build: Build the site into the output directory.
- plugins: List the plugins a build would load, in execution order.
"""

from __future__ import annotations

from pathlib import Path

import click

from . import __version__
from .errors import BuildError, HookExecutionError, PluginLoadError, SiaError
from .log import configure_logging


def _fail(title: str, *details: str) -> None:
    click.echo(click.style(title, fg="red", bold=True), err=True)
    for detail in details:
        click.echo(click.style(f"  {detail}", fg="yellow"), err=True)
    raise SystemExit(1)


def _failure_lines(exc: PluginLoadError) -> list[str]:
    return [f"{name}: {msg}" for name, msg in exc.failures] or [str(exc)]


def _relative(path: Path, root: Path) -> Path:
    try:
        return Path(path).resolve().relative_to(root.resolve())
    except ValueError:
        return Path(path)


@click.group()
@click.version_option(version=__version__, prog_name="sia")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--log-json", is_flag=True, help="Emit logs as JSON lines")
def cli(verbose: bool, log_json: bool):
    """Sia static site generator."""
    configure_logging(verbose=verbose, log_json=log_json)


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root containing _config.yml",
)
@click.option("--dev", "--drafts", "dev_mode", is_flag=True, help="Development build, honours show_drafts")
@click.option("--no-clean", is_flag=True, help="Keep existing files in the output directory")
def build(root: Path, dev_mode: bool, no_clean: bool):
    """Build the site into the output directory."""
    from .build import build as run_build

    project_root = root.resolve()
    try:
        result = run_build(project_root, dev_mode=dev_mode, clean=not no_clean)
    except BuildError as exc:
        _fail(
            "Build failed:",
            f"File: {_relative(exc.source_path, project_root)}",
            f"Error: {exc.message}",
        )
    except PluginLoadError as exc:
        _fail("Plugin loading failed:", *_failure_lines(exc))
    except HookExecutionError as exc:
        _fail("Plugin hook failed:", str(exc))
    except SiaError as exc:
        _fail("Build failed:", str(exc))

    click.echo(
        f"Built {result.pages_written} pages into {result.output_dir} "
        f"in {result.duration:.2f}s"
    )


@cli.command()
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Project root containing _config.yml",
)
def plugins(root: Path):
    """List the plugins a build would load, in execution order."""
    from .config import load_config
    from .plugins import load_plugins

    try:
        loaded = load_plugins(load_config(root.resolve()))
    except PluginLoadError as exc:
        _fail("Plugin loading failed:", *_failure_lines(exc))
    except SiaError as exc:
        _fail("Could not load plugins:", str(exc))

    if not loaded:
        click.echo("No plugins found")
        return
    for plugin in loaded:
        version = f" {plugin.version}" if plugin.version else ""
        hooks = ", ".join(sorted(plugin.hooks)) or "no hooks"
        click.echo(f"{plugin.name}{version} ({plugin.source_kind}): {hooks}")


def main():
    """Entry point for the CLI application."""
    cli()
