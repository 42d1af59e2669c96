"""Markdown conversion for Sia.

Markdown is converted with mistune. Fenced code blocks with a language are
highlighted with Pygments and headings get URL-friendly ids. The content
loader only depends on the MarkdownConverter protocol, so any callable
``str -> str`` can replace this implementation.
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

import mistune


@runtime_checkable
class MarkdownConverter(Protocol):
    """Protocol for converting Markdown source to HTML."""

    def __call__(self, text: str) -> str: ...


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text.

    Args:
        text: The heading text.

    Returns:
        URL-friendly slug suitable for anchor links.
    """
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _HighlightRenderer(mistune.HTMLRenderer):
    """HTML renderer with heading ids and Pygments syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Args:
            code: The code content.
            info: Language identifier (e.g., 'python', 'javascript').

        Returns:
            HTML string with highlighted code.
        """
        lang = info.split()[0] if info else None
        if lang:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound

            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MistuneConverter:
    """Converts Markdown to HTML with mistune.

    A new renderer is created per call so heading id counters never carry
    over from one document to the next.
    """

    plugins = ("strikethrough", "footnotes", "table", "url")

    def __call__(self, text: str) -> str:
        markdown = mistune.create_markdown(
            renderer=_HighlightRenderer(), plugins=list(self.plugins)
        )
        return markdown(text)


def render_inline(converter: MarkdownConverter, text: str) -> str:
    """Convert a short Markdown snippet and drop its wrapping paragraph.

    Args:
        converter: Markdown converter to use.
        text: Snippet such as an excerpt.

    Returns:
        HTML without the outer ``<p>`` element.
    """
    html = converter(text).strip()
    if html.startswith("<p>") and html.endswith("</p>") and html.count("<p>") == 1:
        html = html[3:-4]
    return html


default_converter = MistuneConverter()
