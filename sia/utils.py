"""Utility functions for Sia.

String and path helpers shared by the content loader, the collection
builder and the build orchestrator.

Key functions:
    slugify: Convert text to a URL slug.
    titleize: Convert a slug or filename to a human-readable title.
    split_date_prefix: Split a ``YYYY-MM-DD-`` prefix off a name.
    is_markdown: Check if a path is a Markdown file.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import re
import shutil
from datetime import datetime
from pathlib import Path

DATE_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:-(.+))?$")

MARKDOWN_SUFFIXES = (".md", ".markdown")


def slugify(text: str) -> str:
    """Convert text to a URL-friendly slug.

    Args:
        text: Any string.

    Returns:
        Lowercase slug with runs of whitespace, underscores and hyphens
        collapsed to a single hyphen, or "index" when nothing is left.

    Examples:
        >>> slugify("Hello, World!")
        'hello-world'
    """
    cleaned = re.sub(r"[^\w\s-]", "", text.lower())
    cleaned = re.sub(r"[\s_-]+", "-", cleaned)
    cleaned = cleaned.strip("-")
    return cleaned or "index"


def titleize(name: str) -> str:
    """Convert a slug or filename to a human-readable title.

    Removes date prefixes (YYYY-MM-DD), replaces hyphens and underscores
    with spaces, and capitalizes each word.

    Args:
        name: Slug or filename with or without extension.

    Returns:
        Human-readable title string.

    Examples:
        >>> titleize("2024-01-15-hello-world.md")
        'Hello World'
    """
    base = Path(name).stem if name.endswith(MARKDOWN_SUFFIXES) else name
    _, rest = split_date_prefix(base)
    words = re.split(r"[\s\-_]+", rest)
    return " ".join(word.capitalize() for word in words if word) or "Untitled"


def split_date_prefix(name: str) -> tuple[datetime | None, str]:
    """Split a ``YYYY-MM-DD-`` prefix off a file or folder name.

    Args:
        name: Name without extension.

    Returns:
        Tuple of (local midnight datetime or None, remaining name). The
        name is returned unchanged when there is no valid date prefix.

    Examples:
        >>> split_date_prefix("2024-12-17-my-post")
        (datetime.datetime(2024, 12, 17, 0, 0), 'my-post')
    """
    match = DATE_PREFIX_RE.match(name)
    if not match:
        return None, name
    year, month, day, rest = match.groups()
    try:
        date = datetime(int(year), int(month), int(day))
    except ValueError:
        return None, name
    return date, rest if rest is not None else name


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file.

    Args:
        path: Path to check.

    Returns:
        True if the file has a .md or .markdown extension (case-insensitive).
    """
    return path.suffix.lower() in MARKDOWN_SUFFIXES


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)
