"""Shared fixtures for platform tests."""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest


class FakeApi:
    """Routes requests of a MockTransport to canned JSON responses.

    Routes are keyed by ``(method, path)``; a route holds a list of responses
    served in order, the last one repeating.
    """

    def __init__(self):
        """Initialize an empty route table."""
        self.routes: Dict[Tuple[str, str], List[Tuple[int, Any, Optional[dict]]]] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, path: str, json_body=None, status: int = 200, headers=None):
        """Register a response for ``method path``."""
        self.routes.setdefault((method, path), []).append((status, json_body, headers))
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        """MockTransport handler."""
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"error": "not found"})
        status, json_body, headers = responses.pop(0) if len(responses) > 1 else responses[0]
        return httpx.Response(status, json=json_body, headers=headers)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        """Requests received for ``method path``."""
        return [r for r in self.requests if r.method == method and r.url.path == path]

    @staticmethod
    def body(request: httpx.Request):
        """Decoded JSON body of a request."""
        return json.loads(request.content)


@pytest.fixture
def fake_api() -> FakeApi:
    """Create an empty fake API."""
    return FakeApi()


@pytest.fixture
def http_client(fake_api) -> httpx.AsyncClient:
    """Create an httpx client whose transport is the fake API."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler))


@pytest.fixture
def handler_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx client from an arbitrary request handler."""

    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build
