"""Cursor schemas for resumable exports."""

from ._base import BaseCursor
from .zendesk import ZendeskCursor

__all__ = ["BaseCursor", "ZendeskCursor"]
