"""HTTP client module for helpdesk connectors."""

from deskbridge.platform.http_client.auth import (
    BasicAuth,
    BearerTokenAuth,
    ConnectorAuth,
    HeaderAuth,
    OAuthClientCredentials,
    SessionBasicAuth,
    TokenSession,
)
from deskbridge.platform.http_client.connector_client import ConnectorClient
from deskbridge.platform.http_client.retry_policy import RetryPolicy

__all__ = [
    "BasicAuth",
    "BearerTokenAuth",
    "ConnectorAuth",
    "ConnectorClient",
    "HeaderAuth",
    "OAuthClientCredentials",
    "RetryPolicy",
    "SessionBasicAuth",
    "TokenSession",
]
