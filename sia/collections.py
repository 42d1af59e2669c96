"""Collections and tags for Sia.

A collection is a named, configured group of content items (posts, pages,
notes, ...). After loading, the builder resolves permalinks, URLs and
output paths, hides drafts and sorts the items. The tag aggregator then
indexes every item of every collection by normalized tag.

Key classes:
- Collection: Ordered sequence of ContentItem with its configuration.
- Tag: One tag bucket.

Key functions:
- build_collection: Enrich, filter and sort loaded items.
- load_all_collections: Load and build every configured collection.
- build_tag_collections: Tag index across all collections.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

from .content import ContentItem, ContentLoader
from .errors import ConfigError
from .html_utils import fix_relative_paths

logger = logging.getLogger(__name__)

DEFAULT_PERMALINK = "/:slug/"
DEFAULT_SORT_BY = "date"
DEFAULT_SORT_ORDER = "desc"


class Collection(Sequence[ContentItem]):
    """Ordered items of one collection plus its configuration.

    Attributes:
        name: Collection name.
        path: Source path template.
        layout: Default layout for items.
        permalink: Default permalink template.
        sort_by: Field items are sorted by.
        sort_order: "asc" or "desc".
    """

    def __init__(
        self,
        name: str,
        items: Iterable[ContentItem] = (),
        *,
        path: str = "",
        layout: str | None = None,
        permalink: str = DEFAULT_PERMALINK,
        sort_by: str = DEFAULT_SORT_BY,
        sort_order: str = DEFAULT_SORT_ORDER,
    ):
        self.name = name
        self.items = list(items)
        self.path = path
        self.layout = layout
        self.permalink = permalink
        self.sort_by = sort_by
        self.sort_order = sort_order

    def __iter__(self) -> Iterator[ContentItem]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]

    def _derive(self, items: Iterable[ContentItem]) -> Collection:
        return Collection(
            self.name,
            items,
            path=self.path,
            layout=self.layout,
            permalink=self.permalink,
            sort_by=self.sort_by,
            sort_order=self.sort_order,
        )

    def with_tag(self, tag: str) -> Collection:
        wanted = normalize_tag(tag)
        return self._derive(i for i in self.items if wanted in map(normalize_tag, i.tags))

    def drafts(self) -> Collection:
        return self._derive(i for i in self.items if i.draft)

    def published(self) -> Collection:
        return self._derive(i for i in self.items if not i.draft)

    def latest(self, count: int = 5) -> Collection:
        return self._derive(sorted(self.items, key=lambda i: i.date, reverse=True)[:count])

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Collection({self.name!r}, {len(self.items)} items)"


@dataclass
class Tag:
    """Items sharing one normalized tag.

    Attributes:
        name: Display name, from the first occurrence.
        slug: URL slug.
        items: Tagged items, newest first once built.
    """

    name: str
    slug: str
    items: list[ContentItem] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)


def normalize_tag(tag: Any) -> str:
    return str(tag).strip().lower()


def tag_slug(normalized: str) -> str:
    return "-".join(normalized.split())


def resolve_permalink(item: ContentItem, template: str) -> str:
    """Substitute ``:slug``, ``:year``, ``:month`` and ``:day`` in a permalink.

    Args:
        item: Item providing slug and date.
        template: Permalink template.

    Returns:
        The permalink, month and day zero-padded.

    Examples:
        ``/:year/:month/:day/:slug/`` with slug ``foo`` dated 2024-05-06
        gives ``/2024/05/06/foo/``.
    """
    return (
        template.replace(":slug", item.slug)
        .replace(":year", f"{item.date.year:04d}")
        .replace(":month", f"{item.date.month:02d}")
        .replace(":day", f"{item.date.day:02d}")
    )


def output_path_for(output_dir: Path, permalink: str) -> Path:
    """Return the file a permalink is written to.

    Args:
        output_dir: Build output directory.
        permalink: Resolved permalink.

    Returns:
        ``<output>/<permalink>/index.html``, or the permalink itself when
        it already names a file.
    """
    relative = permalink.strip("/")
    if Path(relative).suffix in (".html", ".htm", ".xml"):
        return Path(output_dir) / relative
    return Path(output_dir) / relative / "index.html"


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        return (value.casefold(), value)
    # Plain dates sort as midnight; aware datetimes as naive local time.
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return value


def sort_items(
    items: list[ContentItem], sort_by: str, sort_order: str
) -> list[ContentItem]:
    """Sort items by one field.

    Dates compare chronologically, with plain dates taken as midnight and
    timezone-aware datetimes converted to naive local time. Strings compare
    case-insensitively. When the values are not all dates or not all
    strings the order is left as is.

    Args:
        items: Items to sort.
        sort_by: Attribute or front matter field name.
        sort_order: "asc" or "desc".

    Returns:
        A new sorted list (or a copy in the original order).
    """
    values = [item.get(sort_by) for item in items]
    if not values:
        return []
    if not (
        all(isinstance(v, date) for v in values) or all(isinstance(v, str) for v in values)
    ):
        logger.debug("Cannot sort by %s: unsupported or mixed values", sort_by)
        return list(items)
    return sorted(
        items,
        key=lambda item: _sort_key(item.get(sort_by)),
        reverse=str(sort_order).lower() == "desc",
    )


def build_collection(
    name: str,
    collection_config: Mapping[str, Any],
    items: Iterable[ContentItem],
    config: Mapping[str, Any],
) -> Collection:
    """Enrich, filter and sort the loaded items of one collection.

    Args:
        name: Collection name.
        collection_config: The collection's configuration.
        items: Items as returned by the content loader.
        config: Site configuration.

    Returns:
        The built Collection.
    """
    base_path = str(config.get("site", {}).get("base_path") or "")
    output_dir = Path(config.get("output_dir") or "dist")
    show_drafts = bool(config.get("server", {}).get("show_drafts"))
    default_permalink = collection_config.get("permalink") or DEFAULT_PERMALINK

    built: list[ContentItem] = []
    for item in items:
        if item.draft and not show_drafts:
            continue
        item.collection = name
        item.layout = item.layout or collection_config.get("layout")
        permalink = resolve_permalink(item, item.permalink or default_permalink)
        item.permalink = permalink
        item.url = base_path + permalink
        item.output_path = output_path_for(output_dir, permalink)
        item.content = fix_relative_paths(item.content, item.url)
        item.excerpt_html = fix_relative_paths(item.excerpt_html, item.url)
        built.append(item)

    sort_by = collection_config.get("sort_by") or DEFAULT_SORT_BY
    sort_order = collection_config.get("sort_order") or DEFAULT_SORT_ORDER
    return Collection(
        name,
        sort_items(built, sort_by, sort_order),
        path=str(collection_config.get("path", "")),
        layout=collection_config.get("layout"),
        permalink=default_permalink,
        sort_by=sort_by,
        sort_order=sort_order,
    )


async def load_all_collections(
    loader: ContentLoader, config: Mapping[str, Any]
) -> dict[str, Collection]:
    """Load and build every configured collection, in config order.

    A collection with an invalid configuration is logged and left empty.

    Args:
        loader: Content loader bound to the build's dispatcher.
        config: Site configuration.

    Returns:
        Mapping of collection name to Collection.
    """
    collections: dict[str, Collection] = {}
    source_root = Path(config.get("input_dir") or ".")
    for name, collection_config in (config.get("collections") or {}).items():
        try:
            items = await loader.load_collection(name, collection_config, source_root)
        except ConfigError as exc:
            logger.warning("Skipping collection %s: %s", name, exc)
            collections[name] = Collection(name)
            continue
        collections[name] = build_collection(name, collection_config, items, config)
        logger.info("Loaded %d items from %r collection", len(collections[name]), name)
    return collections


def build_tag_collections(
    collections: Mapping[str, Iterable[ContentItem]],
) -> dict[str, Tag]:
    """Index every item of every collection by normalized tag.

    Args:
        collections: Mapping of collection name to items.

    Returns:
        Mapping of normalized tag to Tag, items sorted newest first.
    """
    tags: dict[str, Tag] = {}
    for collection_name, items in collections.items():
        for item in items:
            if not item.collection:
                item.collection = collection_name
            for raw in item.tags:
                normalized = normalize_tag(raw)
                if not normalized:
                    continue
                if normalized not in tags:
                    tags[normalized] = Tag(name=str(raw).strip(), slug=tag_slug(normalized))
                tags[normalized].items.append(item)

    for tag in tags.values():
        tag.items.sort(key=lambda i: i.date, reverse=True)
    return tags


def get_all_tags(tags: Mapping[str, Tag]) -> list[Tag]:
    """Return tag buckets ordered by item count, highest first."""
    return sorted(tags.values(), key=lambda t: t.count, reverse=True)


def get_recent_items(
    collections: Mapping[str, Iterable[ContentItem]], limit: int = 10
) -> list[ContentItem]:
    """Return the newest items across all collections."""
    everything = [item for items in collections.values() for item in items]
    return sorted(everything, key=lambda i: i.date, reverse=True)[:limit]


def get_related_items(
    item: ContentItem,
    collections: Mapping[str, Iterable[ContentItem]],
    limit: int = 5,
) -> list[ContentItem]:
    """Return items sharing tags with ``item``, most shared tags first.

    Args:
        item: Reference item.
        collections: Mapping of collection name to items.
        limit: Maximum number of results.

    Returns:
        Related items, excluding the item itself.
    """
    own = {normalize_tag(t) for t in item.tags}
    scored: list[tuple[int, ContentItem]] = []
    for items in collections.values():
        for candidate in items:
            if candidate.slug == item.slug:
                continue
            shared = len(own & {normalize_tag(t) for t in candidate.tags})
            if shared:
                scored.append((shared, candidate))
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [candidate for _, candidate in scored[:limit]]
