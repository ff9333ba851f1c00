"""Zendesk cursor schema for incremental exports."""

from typing import Optional

from pydantic import Field

from ._base import BaseCursor


class ZendeskCursor(BaseCursor):
    """Zendesk incremental export cursor.

    Zendesk's cursor-based incremental endpoints return an ``after_cursor`` with
    every page; feeding it back resumes the stream where the last run stopped.
    Tickets and users are tracked independently.
    """

    ticket_cursor: Optional[str] = Field(
        default=None, description="after_cursor of the last incremental tickets page"
    )
    user_cursor: Optional[str] = Field(
        default=None, description="after_cursor of the last incremental users page"
    )
