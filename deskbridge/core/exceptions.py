"""Shared exceptions for deskbridge.

Connector errors are classified by how the export pipeline treats them:

- AuthError: fatal for the current run, always propagated.
- RateLimitedError: retried by the connector client, surfaced once retries
  are exhausted.
- NotFoundOrUnavailableError: optional categories downgrade it to a warning.
- ServerError / NetworkError: not retried by the client; the adapter decides
  per category whether to continue.
- ResponseShapeError: the response did not match the source's schema.
"""

from typing import Optional


class DeskbridgeException(Exception):
    """Base exception for all deskbridge errors."""

    pass


class ConnectorError(DeskbridgeException):
    """Raised when a helpdesk API call fails."""

    def __init__(
        self,
        source: str,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ):
        """Create a new ConnectorError.

        Args:
            source: Human readable source name (e.g. "Zendesk")
            message: Error message
            status_code: HTTP status code, if any
            url: Request URL, if any
        """
        self.source = source
        self.message = message
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class AuthError(ConnectorError):
    """Raised on 401/403 responses."""

    pass


class RateLimitedError(ConnectorError):
    """Raised on rate-limit responses; carries the server's Retry-After hint."""

    def __init__(
        self,
        source: str,
        message: str,
        status_code: Optional[int] = 429,
        url: Optional[str] = None,
        retry_after: Optional[float] = None,
    ):
        """Create a new RateLimitedError."""
        self.retry_after = retry_after
        super().__init__(source, message, status_code=status_code, url=url)


class NotFoundOrUnavailableError(ConnectorError):
    """Raised on 404 responses."""

    pass


class CategoryNotSupportedError(NotFoundOrUnavailableError):
    """Raised when a source does not expose a category or operation at all."""

    def __init__(self, source: str, category: str):
        """Create a new CategoryNotSupportedError."""
        self.category = category
        super().__init__(source, f"{source} does not support {category}")


class ServerError(ConnectorError):
    """Raised on 5xx responses."""

    pass


class NetworkError(ConnectorError):
    """Raised when the request fails at the transport level."""

    pass


class ResponseShapeError(ConnectorError):
    """Raised when a response does not match the expected schema."""

    pass


class MissingCredentialsError(DeskbridgeException):
    """Raised when a connector has no credentials configured."""

    def __init__(self, connector: str):
        """Create a new MissingCredentialsError."""
        self.connector = connector
        super().__init__(f"No credentials configured for connector '{connector}'")


class UnknownConnectorError(DeskbridgeException):
    """Raised when a connector short name is not registered."""

    def __init__(self, connector: str):
        """Create a new UnknownConnectorError."""
        self.connector = connector
        super().__init__(f"Unknown connector '{connector}'")


class InvalidSandboxIdError(DeskbridgeException):
    """Raised when a sandbox id could escape the sandbox root."""

    def __init__(self, sandbox_id: str):
        """Create a new InvalidSandboxIdError."""
        self.sandbox_id = sandbox_id
        super().__init__(f"Invalid sandbox id: {sandbox_id!r}")
