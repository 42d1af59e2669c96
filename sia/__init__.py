"""Sia static site generator.

Sia turns Markdown collections into a static site with Jinja2 templates.
Plugins hook into every phase of the build; see ``sia.hooks`` for the
hook names and ``sia.plugins`` for how plugins are found and ordered.

The main entry point is the CLI module; ``sia.build.build`` runs a build
programmatically.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
