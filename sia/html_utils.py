"""HTML utility functions for Sia.

Functions:
    fix_relative_paths: Make relative image and link URLs absolute under a page URL.
    join_root_url: Join a base URL with a path.
"""

from __future__ import annotations

import re

_IMG_SRC_RE = re.compile(
    r"<img\s+([^>]*?)src\s*=\s*([\"'])([^\"']+)\2([^>]*)>", re.IGNORECASE
)
_A_HREF_RE = re.compile(
    r"<a\s+([^>]*?)href\s*=\s*([\"'])([^\"']+)\2([^>]*)>", re.IGNORECASE
)

# URLs with these prefixes are already absolute or not paths at all
_ABSOLUTE_RE = re.compile(r"^(?:[a-zA-Z][a-zA-Z0-9+.-]*:|/|#)")


def join_root_url(root_url: str, path: str) -> str:
    """Safely join a root URL and a path, avoiding double slashes.

    Args:
        root_url: Base URL (e.g., https://example.com/blog).
        path: Path beginning with or without a leading slash.

    Returns:
        Combined URL with proper slash handling.

    Examples:
        >>> join_root_url('https://example.com', '/about')
        'https://example.com/about'
    """
    if not root_url:
        return path
    base = root_url.rstrip("/")
    suffix = path if path.startswith("/") else f"/{path}"
    return f"{base}{suffix}"


def fix_relative_paths(html: str, base_url: str) -> str:
    """Rewrite relative ``img src`` and ``a href`` values under ``base_url``.

    Content is rendered on its own page and on listing pages; absolute
    paths keep co-located images and links working in both places.

    Args:
        html: HTML content.
        base_url: URL of the page the content belongs to.

    Returns:
        HTML with relative URLs made absolute.

    Examples:
        >>> fix_relative_paths('<img src="./cat.png">', '/blog/cats/')
        '<img src="/blog/cats/cat.png">'
    """
    if not html or not base_url:
        return html
    base = base_url if base_url.endswith("/") else f"{base_url}/"

    def make_absolute(url: str) -> str:
        if _ABSOLUTE_RE.match(url):
            return url
        return base + (url[2:] if url.startswith("./") else url)

    def rebuild(tag: str, attr: str):
        def repl(match: re.Match) -> str:
            before, quote, url, after = match.groups()
            before = f"{before.strip()} " if before.strip() else ""
            after = f" {after.strip()}" if after.strip() else ""
            return f"<{tag} {before}{attr}={quote}{make_absolute(url)}{quote}{after}>"

        return repl

    html = _IMG_SRC_RE.sub(rebuild("img", "src"), html)
    return _A_HREF_RE.sub(rebuild("a", "href"), html)
