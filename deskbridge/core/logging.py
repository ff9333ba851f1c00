"""Logging for deskbridge.

Usage:
    from deskbridge.core.logging import logger

    logger.info("Starting export")
    logger.with_context(connector="zendesk").info("Exported 10 tickets")

Contextual loggers carry a set of dimensions (connector, sandbox id, ...) that
are rendered as a ``[key=value ...]`` prefix on every message.
"""

import logging
import sys
from typing import Any, Dict, MutableMapping, Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler

from deskbridge.core.config import settings

_ROOT_NAME = "deskbridge"


class ContextualLogger(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with bound dimensions."""

    def __init__(self, logger: logging.Logger, dimensions: Optional[Dict[str, Any]] = None):
        """Bind a logger to a set of dimensions."""
        super().__init__(logger, {})
        self.dimensions: Dict[str, Any] = dict(dimensions or {})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping]:
        """Render the bound dimensions in front of the message."""
        if not self.dimensions:
            return msg, kwargs
        prefix = " ".join(f"{key}={value}" for key, value in self.dimensions.items())
        return f"[{prefix}] {msg}", kwargs

    def with_context(self, **dimensions: Any) -> "ContextualLogger":
        """Return a new logger with additional dimensions merged in."""
        return ContextualLogger(self.logger, {**self.dimensions, **dimensions})


class LoggerConfigurator:
    """Builds configured loggers for the package."""

    _configured = False

    @classmethod
    def _configure_root(cls) -> None:
        if cls._configured:
            return

        root = logging.getLogger(_ROOT_NAME)
        root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

        if settings.LOCAL_DEVELOPMENT:
            console = Console(width=200, stderr=True)
            handler: logging.Handler = RichHandler(
                console=console, show_time=True, show_path=False, rich_tracebacks=True
            )
            handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
        else:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )

        root.addHandler(handler)
        root.propagate = False
        cls._configured = True

    @classmethod
    def configure_logger(
        cls, name: str, dimensions: Optional[Dict[str, Any]] = None
    ) -> ContextualLogger:
        """Get a contextual logger.

        Args:
            name: Logger name, usually a dotted module path under ``deskbridge``
            dimensions: Context bound to every message from this logger

        Returns:
            Configured contextual logger
        """
        cls._configure_root()
        return ContextualLogger(logging.getLogger(name), dimensions)


logger = LoggerConfigurator.configure_logger(_ROOT_NAME)
