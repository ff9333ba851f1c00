"""Base types for pagination strategies."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from deskbridge.core.exceptions import ResponseShapeError

# fetch(path, params=None) -> decoded JSON; ConnectorClient.get fits this shape
FetchFn = Callable[..., Awaitable[Any]]


class Page(BaseModel):
    """One page of results pulled from a paginated endpoint."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: List[Any] = Field(default_factory=list, description="Records on this page")
    response: Any = Field(None, description="Full decoded response body")
    cursor: Optional[str] = Field(
        None, description="Position marker returned with this page (cursor, offset or page)"
    )


def dig(data: Any, dotted_key: Optional[str]) -> Any:
    """Follow a dotted key path (e.g. ``"meta.pagination.next_page"``) into a dict."""
    if not dotted_key:
        return data
    value = data
    for key in dotted_key.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_items(response: Any, data_key: Optional[str], source_name: str) -> Optional[List[Any]]:
    """Pull the record list out of a page response.

    Returns:
        The list of records, or None when the key is absent (end of stream)

    Raises:
        ResponseShapeError: If the key holds something other than a list
    """
    value = dig(response, data_key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise ResponseShapeError(
            source_name,
            f"{source_name} page field '{data_key or '<root>'}' is "
            f"{type(value).__name__}, expected list",
        )
    return value


class PaginationStrategy(BaseModel, ABC):
    """A page-advancement protocol.

    Strategies are plain configuration; ``pages`` returns a fresh lazy iterator
    on every call, so a pagination run can be restarted by calling it again.
    """

    data_key: Optional[str] = Field(None, description="Dotted key holding the record list")

    @abstractmethod
    def pages(
        self,
        fetch: FetchFn,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        source_name: str = "API",
    ) -> AsyncIterator[Page]:
        """Iterate over pages of ``path``.

        Args:
            fetch: Coroutine function ``fetch(path, params=None)``
            path: Endpoint path or absolute URL
            params: Query parameters for the first request
            source_name: Source name used in error messages
        """
        pass
