"""Tests for the contextual logger."""

import logging

from deskbridge.core.logging import ContextualLogger, LoggerConfigurator, logger


def test_with_context_prefixes_dimensions():
    """Test that bound dimensions are rendered in front of the message."""
    contextual = logger.with_context(connector="zendesk", out_dir="/tmp/x")

    msg, _ = contextual.process("Exported 3 tickets", {})

    assert msg == "[connector=zendesk out_dir=/tmp/x] Exported 3 tickets"


def test_with_context_merges_and_does_not_mutate_parent():
    """Test that child loggers merge dimensions without touching the parent."""
    parent = logger.with_context(connector="groove")
    child = parent.with_context(sandbox="s1")

    assert child.dimensions == {"connector": "groove", "sandbox": "s1"}
    assert parent.dimensions == {"connector": "groove"}


def test_logger_without_dimensions_leaves_message_untouched():
    """Test that a plain logger adds no prefix."""
    plain = ContextualLogger(logging.getLogger("deskbridge.test"))

    msg, _ = plain.process("hello", {})

    assert msg == "hello"


def test_configure_logger_returns_contextual_logger(caplog):
    """Test that configured loggers emit under the package logger."""
    configured = LoggerConfigurator.configure_logger("deskbridge.tests", {"worker": "w1"})
    logging.getLogger("deskbridge").propagate = True
    try:
        with caplog.at_level(logging.INFO, logger="deskbridge"):
            configured.info("cycle done")
    finally:
        logging.getLogger("deskbridge").propagate = False

    assert isinstance(configured, ContextualLogger)
    assert "[worker=w1] cycle done" in caplog.text
