"""Pagination strategies shared by all source adapters.

Adapters configure a strategy and pull pages lazily:

    strategy = OffsetPagination(data_key="data", limit=100, total_key="meta.total")
    async for page in paginate(client.get, "/chats", strategy, source_name="HelpCrunch"):
        for chat in page.items:
            ...
"""

from typing import Any, AsyncIterator, Dict, Optional

from deskbridge.platform.pagination._base import (
    FetchFn,
    Page,
    PaginationStrategy,
    dig,
    extract_items,
)
from deskbridge.platform.pagination.strategies import (
    CursorPagination,
    OffsetPagination,
    PagePagination,
    ScrollPagination,
)


def paginate(
    fetch: FetchFn,
    path: str,
    strategy: PaginationStrategy,
    params: Optional[Dict[str, Any]] = None,
    source_name: str = "API",
) -> AsyncIterator[Page]:
    """Iterate over the pages of ``path`` using ``strategy``."""
    return strategy.pages(fetch, path, params=params, source_name=source_name)


async def paginate_items(
    fetch: FetchFn,
    path: str,
    strategy: PaginationStrategy,
    params: Optional[Dict[str, Any]] = None,
    source_name: str = "API",
) -> AsyncIterator[Any]:
    """Iterate over individual records across all pages."""
    async for page in paginate(fetch, path, strategy, params=params, source_name=source_name):
        for item in page.items:
            yield item


__all__ = [
    "CursorPagination",
    "FetchFn",
    "OffsetPagination",
    "Page",
    "PagePagination",
    "PaginationStrategy",
    "ScrollPagination",
    "dig",
    "extract_items",
    "paginate",
    "paginate_items",
]
