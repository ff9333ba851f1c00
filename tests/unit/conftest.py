"""Unit test conftest for setting up test environment."""

import os
import tempfile

# Set environment defaults before importing any deskbridge modules so the
# module-level Settings instance never picks up a developer's real data dir
os.environ.setdefault("DESKBRIDGE_DATA_DIR", tempfile.mkdtemp(prefix="deskbridge-test-"))
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("LOCAL_DEVELOPMENT", "false")
