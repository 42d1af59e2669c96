"""Static asset copying for Sia.

Two kinds of files end up in the output next to the rendered HTML:

- everything under the project's static directory, copied as-is;
- non-Markdown files living next to a content item (images in a post
  folder, for example), copied into that item's output directory.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from .content import ContentItem
from .utils import is_markdown

logger = logging.getLogger(__name__)


class AssetPipeline:
    """Copies static and co-located content assets into the output.

    Attributes:
        root_dir: Project root.
        static_dir: Directory whose contents are copied verbatim.
        output_dir: Build output directory.
    """

    def __init__(self, config: Mapping[str, Any]):
        self.root_dir = Path(config.get("root_dir") or ".")
        self.static_dir = self.root_dir / str(config.get("static_dir") or "static")
        self.output_dir = Path(config.get("output_dir") or "dist")

    def copy_static(self) -> int:
        """Copy the static directory into the output root.

        Returns:
            Number of files copied.
        """
        if not self.static_dir.is_dir():
            return 0
        count = 0
        for source in self.static_dir.rglob("*"):
            if source.is_dir():
                continue
            target = self.output_dir / source.relative_to(self.static_dir)
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target)
            count += 1
        logger.debug("Copied %d static file(s)", count)
        return count

    def copy_content_assets(self, item: ContentItem) -> int:
        """Copy files that sit next to an item's source into its output folder.

        Only items that own their folder (``<slug>/index.md``) have assets;
        siblings of a plain ``post.md`` belong to the whole collection.

        Args:
            item: Built content item.

        Returns:
            Number of files copied.
        """
        if item.output_path is None or item.file_path.stem != "index":
            return 0
        source_dir = item.file_path.parent
        target_dir = item.output_path.parent
        count = 0
        for source in source_dir.iterdir():
            if source.is_dir() or is_markdown(source):
                continue
            target_dir.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, target_dir / source.name)
            count += 1
        return count

    def run(self, items: Iterable[ContentItem] = ()) -> int:
        """Copy static files and every item's co-located assets.

        Returns:
            Total number of files copied.
        """
        total = self.copy_static()
        content_assets = sum(self.copy_content_assets(item) for item in items)
        if content_assets:
            logger.info("Copied %d asset(s) from content folders", content_assets)
        return total + content_assets
