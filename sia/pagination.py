"""Pagination for listing pages.

Pages are a read-only view over an already ordered sequence; paginating
never reorders or mutates the input.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Page:
    """One page of a paginated sequence.

    Attributes:
        items: Items on this page.
        page_number: 1-based page number.
        total_pages: Number of pages.
        total_items: Length of the whole sequence.
        is_first: Whether this is the first page.
        is_last: Whether this is the last page.
        previous_page: Previous page number, or None on the first page.
        next_page: Next page number, or None on the last page.
        start_index: Index of the first item in the whole sequence.
        end_index: One past the index of the last item.
    """

    items: list[Any]
    page_number: int
    total_pages: int
    total_items: int
    is_first: bool
    is_last: bool
    previous_page: int | None
    next_page: int | None
    start_index: int
    end_index: int


@dataclass(frozen=True)
class PaginationUrls:
    """A Page together with its canonical and neighbouring URLs."""

    page: Page
    url: str
    previous_url: str | None
    next_url: str | None

    def __getattr__(self, name: str) -> Any:
        # Expose the page fields directly to templates.
        if name == "page" or name.startswith("__"):
            raise AttributeError(name)
        return getattr(self.page, name)


def paginate(items: Sequence[Any], page_size: int = 10) -> list[Page]:
    """Split a sequence into pages.

    Args:
        items: Ordered sequence.
        page_size: Items per page, a positive integer.

    Returns:
        ``ceil(len(items) / page_size)`` pages; empty for empty input.

    Raises:
        ValueError: If page_size is not a positive integer.
    """
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise ValueError(f"page_size must be a positive integer, got {page_size!r}")

    total_items = len(items)
    total_pages = math.ceil(total_items / page_size)
    pages: list[Page] = []
    for i in range(total_pages):
        start = i * page_size
        end = min(start + page_size, total_items)
        pages.append(
            Page(
                items=list(items[start:end]),
                page_number=i + 1,
                total_pages=total_pages,
                total_items=total_items,
                is_first=i == 0,
                is_last=i == total_pages - 1,
                previous_page=i if i > 0 else None,
                next_page=i + 2 if i < total_pages - 1 else None,
                start_index=start,
                end_index=end,
            )
        )
    return pages


def page_url(base_url: str, page_number: int, base_path: str = "") -> str:
    """Return the canonical URL of a page number.

    Page 1 lives at the listing URL itself, never at ``.../page/1/``.
    """
    prefixed = base_path + base_url
    if page_number == 1:
        return prefixed
    return f"{prefixed}page/{page_number}/"


def get_pagination_urls(base_url: str, page: Page, base_path: str = "") -> PaginationUrls:
    """Attach canonical, previous and next URLs to a page.

    Args:
        base_url: Listing URL without the base path, e.g. ``/blog/``.
        page: Page from paginate().
        base_path: Site base path for subpath hosting.

    Returns:
        PaginationUrls for the page.
    """
    return PaginationUrls(
        page=page,
        url=page_url(base_url, page.page_number, base_path),
        previous_url=(
            page_url(base_url, page.previous_page, base_path)
            if page.previous_page
            else None
        ),
        next_url=(
            page_url(base_url, page.next_page, base_path) if page.next_page else None
        ),
    )


def page_output_path(output_base: Path, page_number: int) -> Path:
    """Return the file a listing page is written to."""
    if page_number == 1:
        return Path(output_base) / "index.html"
    return Path(output_base) / "page" / str(page_number) / "index.html"
