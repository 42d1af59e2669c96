"""Feed generation for Sia.

Feeds are written next to the rendered pages during the listing phase, so
``after_render`` handlers already see them in the output directory.

Classes:
    FeedGenerator: Base class for feed generators.
    RSSGenerator: Generates the RSS 2.0 ``feed.xml``.

Functions:
    write_feed: Write the configured site feed.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from markupsafe import escape

from .content import ContentItem

logger = logging.getLogger(__name__)

RFC_822 = "%a, %d %b %Y %H:%M:%S +0000"


class FeedGenerator(ABC):
    """Base class for feed generators.

    Subclasses name their output file and turn items into feed text.
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename for this feed."""
        ...

    @abstractmethod
    def generate(
        self,
        items: Iterable[ContentItem],
        site: Mapping[str, Any],
    ) -> str:
        """Generate feed content from content items.

        Args:
            items: Items to include, newest first.
            site: The ``site`` section of the configuration.

        Returns:
            Feed content as a string.
        """
        ...

    def write(
        self,
        output_dir: Path,
        items: Iterable[ContentItem],
        site: Mapping[str, Any],
    ) -> Path:
        """Generate the feed and write it to the output directory.

        Returns:
            Path of the written file.
        """
        output_path = Path(output_dir) / self.filename
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.generate(items, site), encoding="utf-8")
        return output_path


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed of the most recent items.

    Links are absolute when ``site.url`` is set and root-relative otherwise.
    """

    def __init__(self, limit: int = 20):
        self.limit = limit

    @property
    def filename(self) -> str:
        return "feed.xml"

    def generate(
        self,
        items: Iterable[ContentItem],
        site: Mapping[str, Any],
    ) -> str:
        base_url = str(site.get("url") or "").rstrip("/")
        base_path = str(site.get("base_path") or "")
        title = site.get("title") or "Sia Feed"

        entries = []
        for item in list(items)[: self.limit]:
            link = f"{base_url}{item.url}"
            description = item.excerpt_html or item.excerpt or item.title
            entries.append(
                f"<item><title>{escape(item.title)}</title>"
                f"<link>{escape(link)}</link>"
                f"<guid>{escape(link)}</guid>"
                f"<description>{escape(description)}</description>"
                f"<pubDate>{item.date.strftime(RFC_822)}</pubDate></item>"
            )

        build_date = datetime.now(timezone.utc).strftime(RFC_822)
        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0"><channel>',
            f"<title>{escape(title)}</title>",
            f"<link>{escape(f'{base_url}{base_path}/')}</link>",
            f"<description>{escape(site.get('description') or '')}</description>",
            f"<lastBuildDate>{build_date}</lastBuildDate>",
        ]
        rss.extend(entries)
        rss.append("</channel></rss>")
        return "\n".join(rss)


def write_feed(
    config: Mapping[str, Any],
    collections: Mapping[str, Iterable[ContentItem]],
    output_dir: Path,
) -> Path | None:
    """Write ``feed.xml`` for the collection named in ``feed.collection``.

    Args:
        config: Site configuration.
        collections: Built collections by name.
        output_dir: Directory the site is written to.

    Returns:
        Path of the feed, or None when feeds are disabled.
    """
    options = config.get("feed") or {}
    if not options.get("enabled", True):
        return None
    name = options.get("collection") or "posts"
    items = sorted(collections.get(name) or [], key=lambda item: item.date, reverse=True)
    generator = RSSGenerator(limit=int(options.get("limit") or 20))
    path = generator.write(output_dir, items, config.get("site") or {})
    logger.info("Generated RSS feed from %s", name)
    return path
