"""Template rendering for Sia.

The build only needs ``render(template, data) -> str``; the TemplateRenderer
protocol captures that. TemplateEngine implements it with Jinja2, loading
layouts from the project's layouts directory and falling back to small
built-in templates so a site builds without a theme.

Key classes:
- TemplateRenderer: Protocol used by the build orchestrator.
- TemplateEngine: Jinja2 implementation.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from jinja2 import (
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    TemplateNotFound,
    select_autoescape,
)
from markupsafe import Markup

from .html_utils import join_root_url
from .markdown import default_converter, render_inline

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIXES = (".html.jinja", ".jinja", ".html", "")

_BASE = """<!doctype html>
<html><head><meta charset="utf-8"><title>{% block title %}{{ title or site.title }}{% endblock %}</title></head>
<body>{% block body %}{% endblock %}</body></html>
"""

_LIST = """{% for item in items %}<article><h2><a href="{{ item.url }}">{{ item.title }}</a></h2>
<time datetime="{{ item.date.strftime('%Y-%m-%d') }}">{{ item.date.strftime('%Y-%m-%d') }}</time>
<div>{{ item.excerpt_html | safe }}</div></article>
{% endfor %}{% if pagination %}<nav>{% if pagination.previous_url %}<a rel="prev" href="{{ pagination.previous_url }}">Previous</a>{% endif %}
{% if pagination.next_url %}<a rel="next" href="{{ pagination.next_url }}">Next</a>{% endif %}</nav>{% endif %}"""

DEFAULT_TEMPLATES = {
    "base.html": _BASE,
    "default.html": (
        '{% extends "base.html" %}{% block body %}<article><h1>{{ page.title }}</h1>'
        "{{ content | safe }}</article>{% endblock %}"
    ),
    "index.html": (
        '{% extends "base.html" %}{% block body %}<h1>{{ site.title }}</h1>'
        "{% set items = recent %}" + _LIST + "{% endblock %}"
    ),
    "listing.html": '{% extends "base.html" %}{% block body %}<h1>{{ title }}</h1>' + _LIST + "{% endblock %}",
    "tags.html": (
        '{% extends "base.html" %}{% block body %}<h1>Tags</h1><ul>{% for tag in all_tags %}'
        '<li><a href="{{ url_for("/tags/" ~ tag.slug ~ "/") }}">{{ tag.name }}</a> ({{ tag.count }})</li>'
        "{% endfor %}</ul>{% endblock %}"
    ),
    "tag.html": (
        '{% extends "base.html" %}{% block body %}<h1>Tagged: {{ tag.name }}</h1>'
        + _LIST
        + "{% endblock %}"
    ),
}


@runtime_checkable
class TemplateRenderer(Protocol):
    """Protocol for rendering a named template with data."""

    def render(self, template: str, data: Mapping[str, Any]) -> str: ...


class TemplateEngine:
    """Jinja2 template engine.

    Attributes:
        layouts_dir: Directory searched first for templates.
        base_path: Site base path used by ``url_for``.
        env: Jinja2 environment.
    """

    def __init__(self, config: Mapping[str, Any]):
        """Initialize the template engine.

        Args:
            config: Site configuration (layouts directory and base path).
        """
        root_dir = Path(config.get("root_dir") or ".")
        self.layouts_dir = root_dir / str(config.get("layouts_dir") or "_layouts")
        self.base_path = str(config.get("site", {}).get("base_path") or "")
        self.env = Environment(
            loader=ChoiceLoader(
                [FileSystemLoader(str(self.layouts_dir)), DictLoader(DEFAULT_TEMPLATES)]
            ),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
        )
        self.env.globals["url_for"] = self._url_for
        self.env.globals["pygments_css"] = self._pygments_css
        self.env.filters["markdown"] = lambda text: Markup(default_converter(str(text or "")))
        self.env.filters["markdown_inline"] = lambda text: Markup(
            render_inline(default_converter, str(text or ""))
        )

    @staticmethod
    def _pygments_css() -> Markup:
        """Return Pygments CSS styles for syntax highlighting."""
        from pygments.formatters import HtmlFormatter

        return Markup(HtmlFormatter().get_style_defs(".highlight"))

    def _url_for(self, path: str) -> str:
        """Prefix a site path with the configured base path."""
        if path.startswith(("http://", "https://", "//")):
            return path
        return join_root_url(self.base_path, path) if self.base_path else path

    def resolve(self, template: str):
        """Find a template by name, trying the known suffixes.

        Args:
            template: Template name with or without a suffix.

        Returns:
            Jinja2 Template object.

        Raises:
            TemplateNotFound: If no candidate exists.
        """
        for suffix in TEMPLATE_SUFFIXES:
            try:
                return self.env.get_template(f"{template}{suffix}")
            except TemplateNotFound:
                continue
        raise TemplateNotFound(template)

    def render(self, template: str, data: Mapping[str, Any]) -> str:
        """Render a template with data.

        A missing layout falls back to the ``default`` template.

        Args:
            template: Template name.
            data: Variables to make available in the template.

        Returns:
            Rendered string.
        """
        try:
            resolved = self.resolve(template)
        except TemplateNotFound:
            if template == "default":
                raise
            logger.debug("Template %s not found, using default", template)
            resolved = self.resolve("default")
        return resolved.render(**data)
