"""Cursor, offset, page-number and scroll pagination."""

from typing import Any, AsyncIterator, Dict, Optional

from pydantic import Field

from deskbridge.platform.pagination._base import (
    FetchFn,
    Page,
    PaginationStrategy,
    dig,
    extract_items,
)


def _as_cursor(value: Any) -> Optional[str]:
    if value is None or value == "" or value is False:
        return None
    return str(value)


class CursorPagination(PaginationStrategy):
    """Follow an opaque cursor or next-page URL until the stream ends.

    When ``cursor_param`` is None the value at ``next_key`` is a full URL to
    request next (Zendesk ``next_page``, ``links.next``). Otherwise it is a
    token sent back as ``cursor_param=<value>`` on the original path (Zendesk
    incremental ``after_cursor``, Intercom ``starting_after``).
    """

    next_key: str = Field("next_page", description="Dotted key of the next URL or cursor")
    cursor_param: Optional[str] = Field(None, description="Query param carrying the cursor")
    end_flag_key: Optional[str] = Field(None, description="Dotted key of an end-of-stream flag")
    page_params: Dict[str, Any] = Field(
        default_factory=dict, description="Query params sent with every cursor request"
    )

    async def pages(
        self,
        fetch: FetchFn,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        source_name: str = "API",
    ) -> AsyncIterator[Page]:
        """Iterate pages until the end flag, a null cursor, or an empty page."""
        url = path
        query: Optional[Dict[str, Any]] = {**self.page_params, **(params or {})} or None

        while True:
            response = await fetch(url, params=query)
            items = extract_items(response, self.data_key, source_name)
            if items is None:
                return

            cursor = _as_cursor(dig(response, self.next_key))
            if items:
                yield Page(items=items, response=response, cursor=cursor)

            if not items or cursor is None:
                return
            if self.end_flag_key and dig(response, self.end_flag_key):
                return

            if self.cursor_param:
                url = path
                query = {**self.page_params, self.cursor_param: cursor}
            else:
                url = cursor
                query = None


class OffsetPagination(PaginationStrategy):
    """Advance a numeric offset by the page size.

    Stops on a short page, or once ``offset + limit`` reaches the total reported
    at ``total_key`` when the source reports one.
    """

    limit: int = Field(100, description="Requested page size")
    offset_param: str = Field("offset", description="Query param for the offset")
    limit_param: str = Field("limit", description="Query param for the page size")
    total_key: Optional[str] = Field(None, description="Dotted key of the total record count")
    start: int = Field(0, description="First offset")

    async def pages(
        self,
        fetch: FetchFn,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        source_name: str = "API",
    ) -> AsyncIterator[Page]:
        """Iterate pages until a short page or the reported total."""
        offset = self.start
        while True:
            query = {**(params or {}), self.offset_param: offset, self.limit_param: self.limit}
            response = await fetch(path, params=query)
            items = extract_items(response, self.data_key, source_name)
            if items is None:
                return

            yield Page(items=items, response=response, cursor=str(offset))

            if len(items) < self.limit:
                return
            total = dig(response, self.total_key) if self.total_key else None
            if isinstance(total, (int, float)) and offset + self.limit >= total:
                return
            offset += self.limit


class PagePagination(PaginationStrategy):
    """Page-number variant of offset pagination (the offset counts pages).

    Termination, in order of preference: ``page >= total_pages`` when the source
    reports it, a null next-page marker, or a short page.
    """

    page_size: int = Field(100, description="Requested page size")
    page_param: str = Field("page", description="Query param for the page number")
    size_param: Optional[str] = Field("per_page", description="Query param for the page size")
    total_pages_key: Optional[str] = Field(None, description="Dotted key of the page count")
    next_page_key: Optional[str] = Field(None, description="Dotted key of a next-page marker")
    start_page: int = Field(1, description="First page number")

    async def pages(
        self,
        fetch: FetchFn,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        source_name: str = "API",
    ) -> AsyncIterator[Page]:
        """Iterate pages until the source signals the last one."""
        page = self.start_page
        while True:
            query = {**(params or {}), self.page_param: page}
            if self.size_param:
                query[self.size_param] = self.page_size
            response = await fetch(path, params=query)
            items = extract_items(response, self.data_key, source_name)
            if not items:
                return

            yield Page(items=items, response=response, cursor=str(page))

            total_pages = dig(response, self.total_pages_key) if self.total_pages_key else None
            if isinstance(total_pages, (int, float)):
                if page >= total_pages:
                    return
            elif self.next_page_key:
                if not dig(response, self.next_page_key):
                    return
            elif len(items) < self.page_size:
                return
            page += 1


class ScrollPagination(PaginationStrategy):
    """Follow an opaque scroll handle until it comes back null or the page is empty."""

    data_key: Optional[str] = Field("data", description="Dotted key holding the record list")
    scroll_key: str = Field("scroll_param", description="Dotted key of the scroll handle")
    scroll_param: str = Field("scroll_param", description="Query param carrying the handle")

    async def pages(
        self,
        fetch: FetchFn,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        source_name: str = "API",
    ) -> AsyncIterator[Page]:
        """Iterate pages until the scroll handle is exhausted."""
        query: Dict[str, Any] = dict(params or {})
        while True:
            response = await fetch(path, params=query or None)
            items = extract_items(response, self.data_key, source_name)
            if not items:
                return

            scroll = _as_cursor(dig(response, self.scroll_key))
            yield Page(items=items, response=response, cursor=scroll)

            if scroll is None:
                return
            query = {**(params or {}), self.scroll_param: scroll}
