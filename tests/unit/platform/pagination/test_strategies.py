"""Tests for the pagination strategies."""

from typing import Any, Dict, List, Optional, Tuple

import pytest

from deskbridge.core.exceptions import ResponseShapeError
from deskbridge.platform.pagination import (
    CursorPagination,
    OffsetPagination,
    PagePagination,
    ScrollPagination,
    paginate,
    paginate_items,
)


class RecordingFetch:
    """Fetch function that returns canned responses and records its calls."""

    def __init__(self, responses: List[Any]):
        """Initialize with responses served in order."""
        self.responses = list(responses)
        self.calls: List[Tuple[str, Optional[Dict[str, Any]]]] = []

    async def __call__(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Record the call and return the next response."""
        self.calls.append((path, params))
        return self.responses.pop(0)


async def _collect(strategy, fetch, path="/items", params=None) -> List[List[Any]]:
    return [page.items async for page in paginate(fetch, path, strategy, params=params)]


@pytest.mark.asyncio
async def test_offset_short_page_fetches_exactly_once():
    """Test that a page shorter than the limit ends pagination after one fetch."""
    fetch = RecordingFetch([{"data": [{"id": 1}]}])

    pages = await _collect(OffsetPagination(data_key="data", limit=50), fetch)

    assert pages == [[{"id": 1}]]
    assert fetch.calls == [("/items", {"offset": 0, "limit": 50})]


@pytest.mark.asyncio
async def test_offset_advances_until_total_reached():
    """Test that the reported total stops pagination without an extra request."""
    fetch = RecordingFetch(
        [
            {"data": [1, 2], "meta": {"total": 4}},
            {"data": [3, 4], "meta": {"total": 4}},
        ]
    )
    strategy = OffsetPagination(
        data_key="data", limit=2, offset_param="from", total_key="meta.total"
    )

    pages = await _collect(strategy, fetch)

    assert pages == [[1, 2], [3, 4]]
    assert [params["from"] for _, params in fetch.calls] == [0, 2]


@pytest.mark.asyncio
async def test_cursor_follows_next_url_until_null():
    """Test that next-page URLs are followed until the cursor is null."""
    fetch = RecordingFetch(
        [
            {"comments": [1], "next_page": "https://x.example.com/comments?page=2"},
            {"comments": [2], "next_page": None},
        ]
    )

    pages = await _collect(CursorPagination(data_key="comments"), fetch, params={"per_page": 1})

    assert pages == [[1], [2]]
    assert fetch.calls == [
        ("/items", {"per_page": 1}),
        ("https://x.example.com/comments?page=2", None),
    ]


@pytest.mark.asyncio
async def test_cursor_param_and_end_flag():
    """Test that opaque cursors are sent back and the end flag stops the stream."""
    fetch = RecordingFetch(
        [
            {"tickets": [1], "after_cursor": "c1", "end_of_stream": False},
            {"tickets": [2], "after_cursor": "c2", "end_of_stream": True},
        ]
    )
    strategy = CursorPagination(
        data_key="tickets",
        next_key="after_cursor",
        cursor_param="cursor",
        end_flag_key="end_of_stream",
    )

    pages = [page async for page in paginate(fetch, "/inc", strategy, params={"start_time": 0})]

    assert [p.items for p in pages] == [[1], [2]]
    assert [p.cursor for p in pages] == ["c1", "c2"]
    assert fetch.calls == [("/inc", {"start_time": 0}), ("/inc", {"cursor": "c1"})]


@pytest.mark.asyncio
async def test_cursor_stops_on_empty_page():
    """Test that an empty page ends the stream even with a cursor."""
    fetch = RecordingFetch([{"data": [], "pages": {"next": {"starting_after": "x"}}}])
    strategy = CursorPagination(data_key="data", next_key="pages.next.starting_after")

    assert await _collect(strategy, fetch) == []
    assert len(fetch.calls) == 1


@pytest.mark.asyncio
async def test_page_pagination_uses_total_pages():
    """Test that page numbers advance until the reported page count."""
    fetch = RecordingFetch(
        [
            {"items": [1], "page": {"totalPages": 2}},
            {"items": [2], "page": {"totalPages": 2}},
        ]
    )
    strategy = PagePagination(data_key="items", size_param=None, total_pages_key="page.totalPages")

    pages = await _collect(strategy, fetch)

    assert pages == [[1], [2]]
    assert fetch.calls == [("/items", {"page": 1}), ("/items", {"page": 2})]


@pytest.mark.asyncio
async def test_page_pagination_stops_on_null_next_page():
    """Test the next-page marker variant."""
    fetch = RecordingFetch(
        [
            {"tickets": [1, 2], "meta": {"pagination": {"next_page": "/tickets?page=2"}}},
            {"tickets": [3], "meta": {"pagination": {"next_page": None}}},
        ]
    )
    strategy = PagePagination(
        data_key="tickets", page_size=2, next_page_key="meta.pagination.next_page"
    )

    assert await _collect(strategy, fetch) == [[1, 2], [3]]
    assert fetch.calls[0][1] == {"page": 1, "per_page": 2}


@pytest.mark.asyncio
async def test_scroll_stops_when_handle_is_null():
    """Test that scroll pagination ends when the handle disappears."""
    fetch = RecordingFetch(
        [
            {"data": [1], "scroll_param": "s1"},
            {"data": [2], "scroll_param": None},
        ]
    )

    pages = await _collect(ScrollPagination(), fetch)

    assert pages == [[1], [2]]
    assert fetch.calls == [("/items", None), ("/items", {"scroll_param": "s1"})]


@pytest.mark.asyncio
async def test_missing_data_key_ends_stream():
    """Test that an absent data key is treated as the end of the stream."""
    fetch = RecordingFetch([{"meta": {}}])

    assert await _collect(OffsetPagination(data_key="data"), fetch) == []


@pytest.mark.asyncio
async def test_non_list_data_raises_shape_error():
    """Test that a non-list data value is rejected."""
    fetch = RecordingFetch([{"data": {"id": 1}}])

    with pytest.raises(ResponseShapeError):
        await _collect(OffsetPagination(data_key="data"), fetch)


@pytest.mark.asyncio
async def test_consumer_can_stop_early():
    """Test that pages are pulled lazily."""
    fetch = RecordingFetch([{"data": [1, 2]}, {"data": [3, 4]}])
    strategy = OffsetPagination(data_key="data", limit=2)

    async for item in paginate_items(fetch, "/items", strategy):
        assert item == 1
        break

    assert len(fetch.calls) == 1


@pytest.mark.asyncio
async def test_root_array_responses():
    """Test that a missing data key reads the response root as the page."""
    fetch = RecordingFetch([[{"id": 1}, {"id": 2}]])
    strategy = PagePagination(page_size=100)

    assert await _collect(strategy, fetch) == [[{"id": 1}, {"id": 2}]]
    assert fetch.calls == [("/items", {"page": 1, "per_page": 100})]
