"""Content loading for Sia.

This module turns Markdown files with YAML front matter into ContentItem
objects. Each file goes through the content hooks in a fixed order::

    raw text -> before_content_parse -> split front matter
    body     -> before_markdown -> Markdown to HTML -> after_markdown
    item     -> after_content_parse

Slug, date and excerpt are resolved with fallbacks so every item has a
slug and a date:

- slug: front matter, then the file (or, for ``index.md``, the parent
  folder) name without its ``YYYY-MM-DD-`` prefix.
- date: front matter, then the date prefix of the file or folder name,
  then the current date.
- excerpt: front matter, then the first paragraph of the body.

Key classes:
- ContentItem: One loaded source document.
- ContentLoader: Parses every file of a collection concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from .errors import ConfigError, ContentParseError, HookExecutionError
from .hooks import HookName
from .markdown import MarkdownConverter, default_converter, render_inline
from .utils import is_markdown, slugify, split_date_prefix, titleize

if TYPE_CHECKING:
    from .api import PluginAPI
    from .hooks import HookDispatcher

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)(?:\r?\n)?^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)
DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
PATH_TOKEN_RE = re.compile(r":(\w+)")
PARAGRAPH_SPLIT_RE = re.compile(r"\n[ \t]*\n")
HEADING_LINE_RE = re.compile(r"^#{1,6}\s+.*(?:\n|$)", re.MULTILINE)

EXCERPT_LENGTH = 200

# Formats tried after ISO 8601 for front matter dates.
DATE_FORMATS = ("%Y/%m/%d", "%B %d, %Y", "%b %d, %Y", "%d %B %Y")

# Inline Markdown spans an excerpt must never be cut inside of.
INLINE_SPAN_PATTERNS = (
    re.compile(r"!\[[^\]]*\]\([^)]*\)"),
    re.compile(r"\[[^\]]*\]\([^)]*\)"),
    re.compile(r"\[[^\]]*\]\[[^\]]*\]"),
    re.compile(r"\*\*[^*]+\*\*"),
    re.compile(r"__[^_]+__"),
    re.compile(r"\*[^*\n]+\*"),
    re.compile(r"_[^_\n]+_"),
    re.compile(r"`[^`]+`"),
    re.compile(r"~~[^~]+~~"),
)


@dataclass
class ContentItem:
    """One source document with resolved metadata.

    Attributes:
        file_path: Path to the source file.
        front_matter: All front matter fields as parsed.
        title: Title from front matter, else derived from the slug.
        slug: URL slug, always set.
        date: Local calendar date/time, always set.
        tags: Tag names in source order.
        excerpt: Plain Markdown excerpt.
        excerpt_html: Excerpt rendered to HTML without the outer paragraph.
        content: Rendered HTML body.
        raw_content: Markdown body after front matter removal.
        collection: Name of the owning collection.
        layout: Layout template name.
        permalink: Resolved permalink path.
        url: Permalink prefixed with the site base path.
        output_path: File the rendered page is written to.
        draft: Whether the item is a draft.
    """

    file_path: Path
    slug: str
    date: datetime
    front_matter: dict[str, Any] = field(default_factory=dict)
    title: str = ""
    tags: list[str] = field(default_factory=list)
    excerpt: str = ""
    excerpt_html: str = ""
    content: str = ""
    raw_content: str = ""
    collection: str = ""
    layout: str | None = None
    permalink: str | None = None
    url: str = ""
    output_path: Path | None = None
    draft: bool = False

    def get(self, name: str, default: Any = None) -> Any:
        """Return an attribute, falling back to a front matter field."""
        if name in self.__dataclass_fields__:
            return getattr(self, name)
        return self.front_matter.get(name, default)

    def __getitem__(self, name: str) -> Any:
        if name in self.__dataclass_fields__:
            return getattr(self, name)
        return self.front_matter[name]

    def __contains__(self, name: str) -> bool:
        return name in self.__dataclass_fields__ or name in self.front_matter


def split_front_matter(text: str, file_path: Path | None = None) -> tuple[dict[str, Any], str]:
    """Split YAML front matter from the body.

    Args:
        text: Raw file content.
        file_path: Path used in error messages.

    Returns:
        Tuple of (front matter dict, body).

    Raises:
        ContentParseError: If the front matter is not a valid YAML mapping.
    """
    text = text.lstrip("\ufeff")
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise ContentParseError(f"Invalid front matter: {exc}", file_path) from exc
    if not isinstance(data, dict):
        raise ContentParseError("Front matter must be a mapping", file_path)
    return data, text[match.end() :]


def get_base_path(path_template: str) -> str:
    """Return the static prefix of a path template.

    Args:
        path_template: Path such as ``posts/:year/:month``.

    Returns:
        Everything before the first ``:token`` (``posts/``).
    """
    match = PATH_TOKEN_RE.search(path_template)
    return path_template if match is None else path_template[: match.start()]


def expand_date_path(path_template: str, when: datetime) -> str:
    """Substitute ``:year``, ``:month`` and ``:day`` in a path template.

    Args:
        path_template: Path template.
        when: Date to expand with.

    Returns:
        Expanded path, month and day zero-padded.
    """
    return (
        path_template.replace(":year", f"{when.year:04d}")
        .replace(":month", f"{when.month:02d}")
        .replace(":day", f"{when.day:02d}")
    )


def _name_for_metadata(file_path: Path) -> str:
    # index.md takes its identity from the folder it lives in
    if file_path.stem == "index":
        return file_path.parent.name
    return file_path.stem


def get_slug_from_filename(file_path: Path) -> str:
    """Derive a slug from a file name or, for ``index.md``, its folder name.

    A ``YYYY-MM-DD-`` prefix is stripped; names without one are slugified.

    Args:
        file_path: Path to the source file.

    Returns:
        The slug.
    """
    name = _name_for_metadata(Path(file_path))
    found, rest = split_date_prefix(name)
    if found is not None and rest != name:
        return rest
    return slugify(name)


def get_date_from_filename(file_path: Path) -> datetime | None:
    """Parse a ``YYYY-MM-DD`` prefix of a file or folder name.

    Args:
        file_path: Path to the source file.

    Returns:
        Local midnight of that day, or None.
    """
    found, _ = split_date_prefix(_name_for_metadata(Path(file_path)))
    return found


def parse_date(value: Any, file_path: Path | None = None) -> datetime:
    """Parse a front matter date as local time.

    Args:
        value: A ``date``, ``datetime`` or string.
        file_path: Path used in error messages.

    Returns:
        Naive datetime in local time.

    Raises:
        ContentParseError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if DATE_ONLY_RE.match(text):
            year, month, day = (int(part) for part in text.split("-"))
            try:
                return datetime(year, month, day)
            except ValueError as exc:
                raise ContentParseError(f"Invalid date {value!r}", file_path) from exc
        try:
            return parse_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            pass
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    raise ContentParseError(f"Invalid date {value!r}", file_path)


def truncate_markdown_safely(text: str, max_length: int = EXCERPT_LENGTH) -> str:
    """Truncate Markdown without cutting inline formatting in half.

    Links, images, emphasis, code and strikethrough spans are kept whole
    when they end within 50 characters of the limit and dropped otherwise.
    Otherwise the cut snaps back to a nearby word boundary.

    Args:
        text: Markdown text.
        max_length: Target length.

    Returns:
        The text itself when short enough, else the truncated text plus ``...``.
    """
    if len(text) <= max_length:
        return text

    spans = sorted(
        (m.start(), m.end()) for pattern in INLINE_SPAN_PATTERNS for m in pattern.finditer(text)
    )

    truncate_at = max_length
    on_span_boundary = False
    for start, end in spans:
        if start < truncate_at < end:
            truncate_at = end if end <= max_length + 50 else start
            on_span_boundary = True
            break

    if not on_span_boundary and truncate_at > 0:
        last_space = text.rfind(" ", 0, truncate_at + 1)
        inside_span = any(start < last_space < end for start, end in spans)
        if last_space > truncate_at - 30 and last_space > max_length * 0.5 and not inside_span:
            truncate_at = last_space

    return text[:truncate_at].strip() + "..."


def extract_excerpt(body: str, max_length: int = EXCERPT_LENGTH) -> str:
    """Return the first paragraph of a Markdown body as an excerpt.

    Args:
        body: Markdown body without front matter.
        max_length: Length above which the excerpt is truncated.

    Returns:
        The excerpt, or an empty string for an empty body.
    """
    for paragraph in PARAGRAPH_SPLIT_RE.split(body.strip()):
        cleaned = HEADING_LINE_RE.sub("", paragraph).strip()
        if cleaned:
            if len(cleaned) > max_length:
                return truncate_markdown_safely(cleaned, max_length)
            return cleaned
    return ""


def normalize_tags(value: Any) -> list[str]:
    """Normalize a front matter ``tags`` value to a list of strings.

    Args:
        value: List, comma-separated string, scalar or None.

    Returns:
        Tags in source order. Duplicates are kept.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(t).strip() for t in value if t is not None and str(t).strip()]
    return [str(value)]


def _resolve_slug(front_matter: Mapping[str, Any], file_path: Path) -> str:
    slug = front_matter.get("slug")
    if slug is not None and str(slug).strip():
        return str(slug).strip()
    return get_slug_from_filename(file_path)


_TRUE_STRINGS = {"true", "yes", "on", "1"}


def parse_flag(value: Any) -> bool:
    """Read a front matter flag, accepting quoted booleans like ``"false"``."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _resolve_date(front_matter: Mapping[str, Any], file_path: Path) -> datetime:
    if front_matter.get("date"):
        return parse_date(front_matter["date"], file_path)
    return get_date_from_filename(file_path) or datetime.now()


async def parse_content(
    file_path: Path,
    *,
    config: Mapping[str, Any],
    dispatcher: HookDispatcher,
    api: PluginAPI,
    converter: MarkdownConverter = default_converter,
) -> ContentItem:
    """Parse one Markdown file into a ContentItem.

    Args:
        file_path: Path to the Markdown file.
        config: Site configuration.
        dispatcher: Dispatcher used for the content hooks.
        api: Plugin API passed in every hook context.
        converter: Markdown to HTML converter.

    Returns:
        The item as returned by the ``after_content_parse`` hooks.

    Raises:
        ContentParseError: If the file cannot be parsed.
    """
    file_path = Path(file_path)
    raw = await asyncio.to_thread(file_path.read_text, encoding="utf-8")

    context = {"file_path": file_path, "config": config, "api": api}
    raw = await dispatcher.fold(HookName.BEFORE_CONTENT_PARSE, raw, context)

    front_matter, body = split_front_matter(raw, file_path)
    markdown_context = {**context, "front_matter": front_matter}
    body = await dispatcher.fold(HookName.BEFORE_MARKDOWN, body, markdown_context)
    html = converter(body)
    html = await dispatcher.fold(HookName.AFTER_MARKDOWN, html, markdown_context)

    slug = _resolve_slug(front_matter, file_path)
    excerpt = front_matter.get("excerpt")
    excerpt = str(excerpt) if excerpt else extract_excerpt(body)

    item = ContentItem(
        file_path=file_path,
        slug=slug,
        date=_resolve_date(front_matter, file_path),
        front_matter=front_matter,
        title=str(front_matter.get("title") or titleize(slug)),
        tags=normalize_tags(front_matter.get("tags")),
        excerpt=excerpt,
        excerpt_html=render_inline(converter, excerpt) if excerpt else "",
        content=html,
        raw_content=body,
        layout=front_matter.get("layout"),
        permalink=front_matter.get("permalink"),
        draft=parse_flag(front_matter.get("draft", False)),
    )

    item = await dispatcher.fold(HookName.AFTER_CONTENT_PARSE, item, context)
    if not isinstance(item, ContentItem):
        raise ContentParseError(
            "after_content_parse hooks must return a ContentItem", file_path
        )
    return item


def get_markdown_files(directory: Path) -> list[Path]:
    """Recursively list Markdown files under a directory.

    Args:
        directory: Directory to walk.

    Returns:
        Sorted file paths; empty when the directory does not exist.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*") if p.is_file() and is_markdown(p))


class ContentLoader:
    """Loads the items of one collection.

    Files are parsed concurrently on the event loop and merged back in
    file order. A file that fails to parse is logged and dropped.

    Attributes:
        config: Site configuration.
        dispatcher: Dispatcher for the content hooks.
        api: Plugin API passed to hooks.
        converter: Markdown to HTML converter.
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        dispatcher: HookDispatcher,
        api: PluginAPI,
        converter: MarkdownConverter | None = None,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.api = api
        self.converter = converter or default_converter

    def collection_dir(self, name: str, collection_config: Any, source_root: Path) -> Path:
        """Resolve the directory to walk for a collection.

        Raises:
            ConfigError: If the collection config has no usable ``path``.
        """
        if not isinstance(collection_config, Mapping):
            raise ConfigError(f'Collection "{name}" config must be a mapping')
        path_template = collection_config.get("path")
        if not isinstance(path_template, str) or not path_template.strip():
            raise ConfigError(f'Collection "{name}" has no "path"')
        return Path(source_root) / get_base_path(path_template.strip())

    async def _parse_or_none(self, file_path: Path) -> ContentItem | None:
        try:
            return await parse_content(
                file_path,
                config=self.config,
                dispatcher=self.dispatcher,
                api=self.api,
                converter=self.converter,
            )
        except HookExecutionError:
            raise
        except Exception as exc:
            logger.error("Error parsing %s: %s", file_path, exc)
            return None

    async def load_collection(
        self, name: str, collection_config: Any, source_root: Path
    ) -> list[ContentItem]:
        """Parse every Markdown file of a collection.

        Args:
            name: Collection name.
            collection_config: The collection's configuration mapping.
            source_root: Directory the collection path is relative to.

        Returns:
            Parsed items in file order, failures removed.

        Raises:
            ConfigError: If the collection config is invalid.
        """
        directory = self.collection_dir(name, collection_config, source_root)
        files = get_markdown_files(directory)
        logger.debug("Collection %s: %d file(s) under %s", name, len(files), directory)
        results = await asyncio.gather(*(self._parse_or_none(path) for path in files))
        return [item for item in results if item is not None]
