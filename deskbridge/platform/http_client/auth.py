"""Authentication strategies for connector clients.

Each strategy produces the headers for one request. OAuth strategies also keep
a token session on the instance and can be refreshed after a 401.
"""

import base64
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

import httpx
from pydantic import BaseModel

from deskbridge.core.exceptions import (
    AuthError,
    ConnectorError,
    NetworkError,
    RateLimitedError,
    ResponseShapeError,
    ServerError,
)
from deskbridge.platform.http_client.retry_helpers import parse_retry_after


class ConnectorAuth(ABC):
    """Base class for request authentication."""

    #: Whether a 401 should trigger a token refresh and one retry
    can_refresh: bool = False

    @abstractmethod
    async def headers(self, http: httpx.AsyncClient) -> Dict[str, str]:
        """Headers to send with the next request."""
        pass

    def observe(self, response: httpx.Response) -> None:
        """Inspect a successful response, e.g. to pick up a session id."""
        pass

    def reset_session(self) -> None:
        """Drop any cached credentials so the next request re-authenticates."""
        pass


class BearerTokenAuth(ConnectorAuth):
    """Static ``Authorization: Bearer <token>``."""

    def __init__(self, token: str):
        """Create bearer auth for a static token."""
        self.token = token

    async def headers(self, http: httpx.AsyncClient) -> Dict[str, str]:
        """Return the bearer header."""
        return {"Authorization": f"Bearer {self.token}"}


class BasicAuth(ConnectorAuth):
    """HTTP Basic auth."""

    def __init__(self, username: str, password: str):
        """Create Basic auth from a username/password pair."""
        encoded = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        self._header = f"Basic {encoded}"

    async def headers(self, http: httpx.AsyncClient) -> Dict[str, str]:
        """Return the Basic header."""
        return {"Authorization": self._header}


class SessionBasicAuth(BasicAuth):
    """Basic auth that echoes back the session id the server hands out.

    Kayako returns ``session_id`` in response bodies; sending it as
    ``X-Session-ID`` lets later requests reuse the session.
    """

    def __init__(self, username: str, password: str, header: str = "X-Session-ID"):
        """Create session-aware Basic auth."""
        super().__init__(username, password)
        self.header = header
        self.session_id: Optional[str] = None

    async def headers(self, http: httpx.AsyncClient) -> Dict[str, str]:
        """Return the Basic header plus the session header once known."""
        headers = await super().headers(http)
        if self.session_id:
            headers[self.header] = self.session_id
        return headers

    def observe(self, response: httpx.Response) -> None:
        """Remember ``session_id`` from a JSON object body."""
        try:
            data = response.json()
        except ValueError:
            return
        if isinstance(data, dict) and isinstance(data.get("session_id"), str):
            self.session_id = data["session_id"]

    def reset_session(self) -> None:
        """Forget the session id."""
        self.session_id = None


class HeaderAuth(ConnectorAuth):
    """Custom authorization scheme plus any fixed headers the API requires.

    Zoho Desk, for example, wants ``Authorization: Zoho-oauthtoken <token>``
    together with an ``orgId`` header on every call.
    """

    def __init__(self, scheme: str, token: str, extra: Optional[Dict[str, str]] = None):
        """Create header auth."""
        self.scheme = scheme
        self.token = token
        self.extra = dict(extra or {})

    async def headers(self, http: httpx.AsyncClient) -> Dict[str, str]:
        """Return the authorization header and fixed extras."""
        return {"Authorization": f"{self.scheme} {self.token}", **self.extra}


class TokenSession(BaseModel):
    """A cached OAuth access token."""

    access_token: str
    expires_at: datetime

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Whether the token can still be used."""
        return (now or datetime.now(timezone.utc)) < self.expires_at


class OAuthClientCredentials(ConnectorAuth):
    """OAuth2 client-credentials grant with an instance-scoped token cache.

    One instance belongs to one credential set. Two instances never share a
    session, so several accounts of the same source can be synced side by side.
    """

    can_refresh = True

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        source_name: str = "OAuth",
        expiry_skew_seconds: int = 60,
    ):
        """Create a client-credentials auth strategy.

        Args:
            token_url: Absolute URL of the token endpoint
            client_id: OAuth client id
            client_secret: OAuth client secret
            source_name: Source name used in error messages
            expiry_skew_seconds: Refresh this many seconds before the token expires
        """
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.source_name = source_name
        self.expiry_skew_seconds = expiry_skew_seconds
        self.session: Optional[TokenSession] = None

    async def headers(self, http: httpx.AsyncClient) -> Dict[str, str]:
        """Return the bearer header, fetching a token if needed."""
        token = await self.get_access_token(http)
        return {"Authorization": f"Bearer {token}"}

    async def get_access_token(self, http: httpx.AsyncClient) -> str:
        """Return a valid access token, requesting a new one when the cache is stale."""
        if self.session and self.session.is_valid():
            return self.session.access_token

        try:
            response = await http.post(
                self.token_url,
                json={
                    "grant_type": "client_credentials",
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Content-Type": "application/json"},
            )
        except httpx.TransportError as e:
            raise NetworkError(
                self.source_name,
                f"{self.source_name} OAuth request failed: {e}",
                url=self.token_url,
            ) from e

        self._raise_for_status(response)
        access_token, expires_in = self._parse_token(response)
        self.session = TokenSession(
            access_token=access_token,
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=max(expires_in - self.expiry_skew_seconds, 0)),
        )
        return self.session.access_token

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        message = f"{self.source_name} OAuth error: {status}"
        kwargs = {"status_code": status, "url": self.token_url}
        if status == 429:
            raise RateLimitedError(
                self.source_name, message, retry_after=parse_retry_after(response), **kwargs
            )
        if status >= 500:
            raise ServerError(self.source_name, message, **kwargs)
        if status in (400, 401, 403):
            raise AuthError(self.source_name, message, **kwargs)
        raise ConnectorError(self.source_name, message, **kwargs)

    def _parse_token(self, response: httpx.Response) -> Tuple[str, int]:
        try:
            data = response.json()
            access_token = data["access_token"]
            expires_in = int(data.get("expires_in", 3600))
            if not isinstance(access_token, str) or not access_token:
                raise ValueError("empty access_token")
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise ResponseShapeError(
                self.source_name,
                f"{self.source_name} OAuth response has no usable access_token",
                status_code=response.status_code,
                url=self.token_url,
            ) from e
        return access_token, expires_in

    def reset_session(self) -> None:
        """Forget the cached token."""
        self.session = None
