"""Site building for Sia.

The BuildOrchestrator drives one build through a fixed sequence of phases.
Each phase finishes, including every handler of its hook, before the next
one starts::

    init-hooks -> load-plugins -> register-hooks
    -> after_config_load -> before_build
    -> load collections -> after_content_load
    -> build tags -> after_tag_collections
    -> paginate -> before_site_data -> before_render
    -> render items, listings, tag pages and feed -> after_render
    -> copy assets -> after_build

Hooks receive the same mutable SiteData object; whatever a handler changes
is what the next phase reads.

Key functions:
- build: Run a build synchronously and return a BuildResult.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .api import PluginAPI
from .assets import AssetPipeline
from .collections import (
    Collection,
    Tag,
    build_tag_collections,
    get_all_tags,
    get_recent_items,
    load_all_collections,
)
from .config import load_config
from .content import ContentItem, ContentLoader
from .errors import BuildError, PluginError
from .feeds import write_feed
from .hooks import HookDispatcher, HookName, HookRegistry
from .markdown import MarkdownConverter
from .pagination import Page, get_pagination_urls, page_output_path, paginate
from .plugins import Plugin, load_plugins, register_plugin_hooks
from .templates import TemplateEngine, TemplateRenderer
from .utils import ensure_clean_dir

logger = logging.getLogger(__name__)


@dataclass
class SiteData:
    """Everything the renderer sees, shared with every lifecycle hook.

    Attributes:
        config: Site configuration.
        site: The ``site`` section of the configuration.
        collections: Built collections by name.
        paginated_collections: Pages of every collection.
        tags: Tag buckets by normalized tag.
        all_tags: Tag buckets, most used first.
        paginated_tags: Pages of every tag bucket.
        custom: Free space for plugins.
    """

    config: dict[str, Any]
    site: dict[str, Any]
    collections: dict[str, Collection] = field(default_factory=dict)
    paginated_collections: dict[str, list[Page]] = field(default_factory=dict)
    tags: dict[str, Tag] = field(default_factory=dict)
    all_tags: list[Tag] = field(default_factory=list)
    paginated_tags: dict[str, list[Page]] = field(default_factory=dict)
    custom: dict[str, Any] = field(default_factory=dict)

    def items(self) -> Iterator[ContentItem]:
        """Iterate over every item of every collection."""
        for collection in self.collections.values():
            yield from collection

    def context(self) -> dict[str, Any]:
        """Return the template context shared by every rendered page."""
        return {
            "config": self.config,
            "site": self.site,
            "collections": self.collections,
            "paginated_collections": self.paginated_collections,
            "tags": self.tags,
            "all_tags": self.all_tags,
            "paginated_tags": self.paginated_tags,
            "recent": get_recent_items(self.collections),
            **self.custom,
        }


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        config: Configuration the build ran with.
        site_data: Final site data.
        plugins: Plugins in execution order.
        output_dir: Directory the site was written to.
        pages_written: Number of HTML files written.
        duration: Build time in seconds.
    """

    config: dict[str, Any]
    site_data: SiteData
    plugins: list[Plugin]
    output_dir: Path
    pages_written: int = 0
    duration: float = 0.0


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    if error_type == "UndefinedError":
        return f"Undefined variable: {exc}"
    if error_type == "TemplateSyntaxError":
        return f"Template syntax error on line {getattr(exc, 'lineno', '?')}: {exc}"
    if error_type == "TemplateNotFound":
        return f"Template not found: {exc}"
    return f"{error_type}: {exc}"


def _listing_url(listing: str) -> str:
    stripped = str(listing).strip("/")
    return f"/{stripped}/" if stripped else "/"


class BuildOrchestrator:
    """Runs one build through its phases.

    Attributes:
        root_dir: Project root.
        dev_mode: When False, drafts are hidden regardless of configuration.
        clean: Whether to empty the output directory first.
        config: Configuration, loaded on run() unless given.
        renderer: Template renderer, a TemplateEngine unless given.
        converter: Markdown converter for the content loader.
        phases: Names of the phases completed so far, in order.
    """

    def __init__(
        self,
        root_dir: Path,
        *,
        dev_mode: bool = False,
        clean: bool = True,
        config: dict[str, Any] | None = None,
        renderer: TemplateRenderer | None = None,
        converter: MarkdownConverter | None = None,
    ):
        self.root_dir = Path(root_dir)
        self.dev_mode = dev_mode
        self.clean = clean
        self.config = config
        self.renderer = renderer
        self.converter = converter
        self.registry: HookRegistry | None = None
        self.dispatcher: HookDispatcher | None = None
        self.plugins: list[Plugin] = []
        self.phases: list[str] = []
        self.pages_written = 0

    def _mark(self, phase: str) -> None:
        self.phases.append(phase)
        logger.debug("Phase complete: %s", phase)

    def initialize_hooks(self) -> HookDispatcher:
        """Start the build with an empty hook registry."""
        strict = bool(self.config.get("plugins", {}).get("strict_mode"))
        self.registry = HookRegistry()
        self.dispatcher = HookDispatcher(self.registry, strict=strict)
        return self.dispatcher

    async def _fire(self, hook: HookName, *args: Any) -> None:
        await self.dispatcher.fire(hook, *args)
        self._mark(hook.value)

    def _load_plugins(self) -> None:
        strict = bool(self.config.get("plugins", {}).get("strict_mode"))
        try:
            self.plugins = load_plugins(self.config)
        except PluginError as exc:
            if strict:
                raise
            logger.warning("Plugin loading error: %s", exc)
            self.plugins = []
        self._mark("load-plugins")
        register_plugin_hooks(self.registry, self.plugins)
        self._mark("register-hooks")

    def _apply_build_mode(self) -> None:
        # Production output never contains drafts.
        if not self.dev_mode:
            self.config.setdefault("server", {})["show_drafts"] = False

    async def _load_site_data(self, api: PluginAPI) -> SiteData:
        loader = ContentLoader(self.config, self.dispatcher, api, self.converter)
        collections = await load_all_collections(loader, self.config)
        self._mark("load-collections")
        return SiteData(
            config=self.config,
            site=self.config.get("site", {}),
            collections=collections,
        )

    async def _build_tags(self, site_data: SiteData, api: PluginAPI) -> None:
        tags = build_tag_collections(site_data.collections)
        self._mark("build-tags")
        logger.info("Found %d unique tags", len(tags))
        await self._fire(
            HookName.AFTER_TAG_COLLECTIONS,
            tags,
            {"config": self.config, "collections": site_data.collections},
            api,
        )
        site_data.tags = tags
        site_data.all_tags = get_all_tags(tags)

    def _paginate(self, site_data: SiteData) -> None:
        size = self.config["pagination"]["size"]
        site_data.paginated_collections = {
            name: paginate(list(items), size)
            for name, items in site_data.collections.items()
        }
        site_data.paginated_tags = {
            key: paginate(tag.items, size) for key, tag in site_data.tags.items()
        }

    def _write(self, path: Path, html: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        self.pages_written += 1

    def _render(self, template: str, data: Mapping[str, Any], source: Path) -> str:
        try:
            return self.renderer.render(template, data)
        except Exception as exc:
            raise BuildError(source, _format_error_message(exc), exc) from exc

    def _render_items(self, site_data: SiteData, context: dict[str, Any]) -> None:
        count = 0
        for item in site_data.items():
            data = {**context, "page": item, "content": item.content, "title": item.title}
            html = self._render(item.layout or "default", data, item.file_path)
            self._write(item.output_path, html)
            count += 1
        logger.info("Generated %d content pages", count)

    def _render_paginated(
        self,
        template: str,
        pages: list[Page],
        base_url: str,
        output_base: Path,
        context: dict[str, Any],
        extra: Mapping[str, Any],
    ) -> None:
        base_path = str(self.config.get("site", {}).get("base_path") or "")
        for page in pages:
            pagination = get_pagination_urls(base_url, page, base_path)
            data = {**context, **extra, "pagination": pagination, "items": page.items}
            html = self._render(template, data, output_base)
            self._write(page_output_path(output_base, page.page_number), html)

    def _render_listings(self, site_data: SiteData, context: dict[str, Any]) -> None:
        output_dir = Path(self.config["output_dir"])
        self._write(
            output_dir / "index.html",
            self._render("index", {**context, "title": site_data.site.get("title")}, output_dir),
        )

        collection_configs = self.config.get("collections") or {}
        for name, pages in site_data.paginated_collections.items():
            if not pages:
                continue
            options = collection_configs.get(name) or {}
            base_url = _listing_url(options.get("listing") or f"/{name}/")
            self._render_paginated(
                str(options.get("listing_layout") or "listing"),
                pages,
                base_url,
                output_dir / base_url.strip("/"),
                context,
                {"title": name.title(), "collection": site_data.collections[name]},
            )

        if site_data.tags:
            self._write(
                output_dir / "tags" / "index.html",
                self._render("tags", {**context, "title": "Tags"}, output_dir),
            )
        for key, tag in site_data.tags.items():
            self._render_paginated(
                "tag",
                site_data.paginated_tags.get(key, []),
                f"/tags/{tag.slug}/",
                output_dir / "tags" / tag.slug,
                context,
                {"tag": tag, "title": f"Tagged: {tag.name}"},
            )
        logger.info("Generated %d tag pages", len(site_data.tags))
        write_feed(self.config, site_data.collections, output_dir)

    async def run(self) -> BuildResult:
        """Run every phase of the build.

        Returns:
            BuildResult with the final site data.

        Raises:
            PluginError: In strict mode, on plugin load or hook failures.
            BuildError: If rendering an item or listing fails.
        """
        started = time.perf_counter()
        if self.config is None:
            self.config = load_config(self.root_dir)
        self.initialize_hooks()
        self._mark("init-hooks")
        self._load_plugins()

        api = PluginAPI(self.config)
        await self._fire(HookName.AFTER_CONFIG_LOAD, self.config, api)
        await self._fire(HookName.BEFORE_BUILD, self.config, api)
        self._apply_build_mode()

        output_dir = Path(self.config["output_dir"])
        if self.clean:
            ensure_clean_dir(output_dir)
        else:
            output_dir.mkdir(parents=True, exist_ok=True)

        site_data = await self._load_site_data(api)
        await self._fire(HookName.AFTER_CONTENT_LOAD, site_data, self.config, api)
        await self._build_tags(site_data, api)
        self._paginate(site_data)
        await self._fire(HookName.BEFORE_SITE_DATA, site_data, self.config, api)
        if self.renderer is None:
            self.renderer = TemplateEngine(self.config)
        await self._fire(HookName.BEFORE_RENDER, site_data, self.config, api)

        context = site_data.context()
        self._render_items(site_data, context)
        self._mark("render-items")
        self._render_listings(site_data, context)
        self._mark("render-listings")
        await self._fire(HookName.AFTER_RENDER, site_data, self.config, api)

        AssetPipeline(self.config).run(site_data.items())
        self._mark("copy-assets")
        await self._fire(HookName.AFTER_BUILD, site_data, self.config, api)

        duration = time.perf_counter() - started
        logger.info("Build complete in %.2fs, output: %s", duration, output_dir)
        return BuildResult(
            config=self.config,
            site_data=site_data,
            plugins=self.plugins,
            output_dir=output_dir,
            pages_written=self.pages_written,
            duration=duration,
        )


def build(
    root_dir: Path,
    *,
    dev_mode: bool = False,
    clean: bool = True,
    config: dict[str, Any] | None = None,
    renderer: TemplateRenderer | None = None,
    converter: MarkdownConverter | None = None,
) -> BuildResult:
    """Build the site synchronously.

    Args:
        root_dir: Project root.
        dev_mode: Honour ``server.show_drafts`` instead of hiding drafts.
        clean: Whether to wipe the output directory before building.
        config: Pre-loaded configuration; loaded from ``_config.yml`` if None.
        renderer: Template renderer override.
        converter: Markdown converter override.

    Returns:
        BuildResult of the finished build.
    """
    orchestrator = BuildOrchestrator(
        root_dir,
        dev_mode=dev_mode,
        clean=clean,
        config=config,
        renderer=renderer,
        converter=converter,
    )
    return asyncio.run(orchestrator.run())
