"""ConnectorClient - JSON HTTP client shared by all helpdesk sources.

Wraps an httpx.AsyncClient and adds:
1. Base URL resolution (absolute URLs pass through untouched)
2. Auth header injection, with one transparent refresh on 401 for OAuth
3. Rate-limit retries driven by a per-client RetryPolicy
4. Classification of every other failure into a typed ConnectorError
"""

import asyncio
import json
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, RetryError

from deskbridge.core.exceptions import (
    AuthError,
    ConnectorError,
    NetworkError,
    NotFoundOrUnavailableError,
    RateLimitedError,
    ResponseShapeError,
    ServerError,
)
from deskbridge.core.logging import ContextualLogger, logger as default_logger
from deskbridge.platform.http_client.auth import ConnectorAuth
from deskbridge.platform.http_client.retry_helpers import (
    parse_retry_after,
    retry_if_rate_limit,
    stop_for_policy,
    wait_for_retry_after,
)
from deskbridge.platform.http_client.retry_policy import RetryPolicy

ModelT = TypeVar("ModelT", bound=BaseModel)


class ConnectorClient:
    """HTTP client for one helpdesk account.

    A client is built once per credential set and handed to the source adapter.
    The auth strategy (and any token it caches) lives on the client, never in
    module state.
    """

    def __init__(
        self,
        base_url: str,
        source_name: str,
        auth: Optional[ConnectorAuth] = None,
        retry_policy: Optional[RetryPolicy] = None,
        extra_headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Optional[ContextualLogger] = None,
    ):
        """Create a connector client.

        Args:
            base_url: Prefix for relative request paths
            source_name: Human readable source name used in error messages
            auth: Auth strategy; None sends no Authorization header
            retry_policy: Rate-limit policy; defaults to RetryPolicy()
            extra_headers: Headers sent with every request
            timeout: Request timeout in seconds when the client owns its httpx client
            http_client: Pre-built httpx client (e.g. with a mock transport)
            logger: Contextual logger
        """
        self.base_url = base_url.rstrip("/")
        self.source_name = source_name
        self.auth = auth
        self.retry_policy = retry_policy or RetryPolicy()
        self.extra_headers = dict(extra_headers or {})
        self.logger = logger or default_logger.with_context(source=source_name)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    def build_url(self, path: str) -> str:
        """Resolve a request path against the base URL."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            path: Relative path or absolute URL
            method: HTTP method
            body: JSON-serializable request body
            headers: Per-call headers, merged over client headers
            params: Query parameters

        Returns:
            Decoded JSON; ``{}`` for 204, ``{"location": ...}`` for an empty 201

        Raises:
            RateLimitedError: If the policy's retries are exhausted
            AuthError / NotFoundOrUnavailableError / ServerError / ConnectorError:
                For non-2xx responses
            NetworkError: If the request never got a response
        """
        url = self.build_url(path)
        policy = self.retry_policy
        try:
            async for attempt in AsyncRetrying(
                stop=stop_for_policy(policy),
                retry=retry_if_rate_limit,
                wait=wait_for_retry_after(policy),
                before_sleep=self._log_rate_limited,
            ):
                with attempt:
                    return await self._send(method, url, body, headers, params)
        except RetryError as e:
            last = e.last_attempt.exception()
            raise RateLimitedError(
                self.source_name,
                f"{self.source_name} rate limit exceeded after {policy.max_retries} retries",
                status_code=getattr(last, "status_code", 429),
                url=url,
                retry_after=getattr(last, "retry_after", None),
            ) from last

    async def request_model(
        self,
        path: str,
        model: Type[ModelT],
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> ModelT:
        """Send a request and decode the response into a schema.

        Raises:
            ResponseShapeError: If the response does not validate against ``model``
        """
        data = await self.request(path, method=method, body=body, headers=headers, params=params)
        return self.decode(data, model, path)

    def decode(self, data: Any, model: Type[ModelT], context: str = "") -> ModelT:
        """Validate raw JSON against a response schema."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ResponseShapeError(
                self.source_name,
                f"{self.source_name} response {context} did not match {model.__name__}: "
                f"{e.error_count()} validation errors",
            ) from e

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> Any:
        """GET shortcut; matches the fetch signature used by pagination."""
        return await self.request(path, method="GET", params=params, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs) -> Any:
        """POST shortcut."""
        return await self.request(path, method="POST", body=body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs) -> Any:
        """PUT shortcut."""
        return await self.request(path, method="PUT", body=body, **kwargs)

    async def delete(self, path: str, **kwargs) -> Any:
        """DELETE shortcut."""
        return await self.request(path, method="DELETE", **kwargs)

    async def _headers(self, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = {"Content-Type": "application/json", "Accept": "application/json"}
        merged.update(self.extra_headers)
        if self.auth:
            merged.update(await self.auth.headers(self._client))
        if headers:
            merged.update(headers)
        return merged

    async def _send(
        self,
        method: str,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, Any]],
    ) -> Any:
        """Send one attempt; raises RateLimitedError for the retry loop to catch."""
        if self.retry_policy.pre_request_delay:
            await asyncio.sleep(self.retry_policy.pre_request_delay)

        response = await self._send_once(method, url, body, headers, params)

        if response.status_code == 401 and self.auth and self.auth.can_refresh:
            self.logger.warning(
                f"Got 401 Unauthorized from {self.source_name} at {url}, refreshing token..."
            )
            self.auth.reset_session()
            response = await self._send_once(method, url, body, headers, params)

        self._raise_for_status(response, url)
        if self.auth:
            self.auth.observe(response)
        return self._decode_body(response, url)

    async def _send_once(
        self,
        method: str,
        url: str,
        body: Any,
        headers: Optional[Dict[str, str]],
        params: Optional[Dict[str, Any]],
    ) -> httpx.Response:
        request_headers = await self._headers(headers)
        try:
            return await self._client.request(
                method,
                url,
                json=body,
                headers=request_headers,
                params=params,
            )
        except httpx.TransportError as e:
            raise NetworkError(
                self.source_name, f"{self.source_name} request to {url} failed: {e}", url=url
            ) from e

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        status = response.status_code
        if status in self.retry_policy.rate_limit_statuses:
            raise RateLimitedError(
                self.source_name,
                f"{self.source_name} rate limited: {status}",
                status_code=status,
                url=url,
                retry_after=parse_retry_after(response),
            )
        if response.is_success:
            return

        message = f"{self.source_name} API error: {status} {response.reason_phrase}"
        detail = response.text[:200] if response.content else ""
        if detail:
            self.logger.debug(f"{message} for {url}: {detail}")

        if status in (401, 403):
            raise AuthError(self.source_name, message, status_code=status, url=url)
        if status == 404:
            raise NotFoundOrUnavailableError(self.source_name, message, status_code=status, url=url)
        if status >= 500:
            raise ServerError(self.source_name, message, status_code=status, url=url)
        raise ConnectorError(self.source_name, message, status_code=status, url=url)

    def _decode_body(self, response: httpx.Response, url: str) -> Any:
        if response.status_code == 204:
            return {}
        if not response.content.strip():
            if response.status_code == 201:
                return {"location": response.headers.get("Location", "")}
            return {}
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ResponseShapeError(
                self.source_name,
                f"{self.source_name} returned non-JSON body from {url}",
                status_code=response.status_code,
                url=url,
            ) from e

    def _log_rate_limited(self, retry_state) -> None:
        exception = retry_state.outcome.exception()
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        self.logger.warning(
            f"Rate limited by {self.source_name} ({getattr(exception, 'status_code', 429)}), "
            f"retry {retry_state.attempt_number} in {wait:.1f}s"
        )

    async def aclose(self) -> None:
        """Close the underlying httpx client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ConnectorClient":
        """Enter async context."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context, closing owned resources."""
        await self.aclose()
