"""Tests for the Zoho Desk source."""

import pytest

from deskbridge.platform.sources import ZohoDeskSource

CREDENTIALS = {"org_id": "600", "access_token": "tok"}


@pytest.mark.asyncio
async def test_ticket_hydrates_threads_and_comments(fake_api, http_client):
    """Test that threads and comments both become messages of the ticket."""
    fake_api.add(
        "GET",
        "/api/v1/tickets",
        {
            "data": [
                {
                    "id": "900",
                    "ticketNumber": "101",
                    "subject": "VPN",
                    "status": "On Hold",
                    "priority": "Medium",
                    "contactId": "55",
                    "createdTime": "2024-05-01T10:00:00.000Z",
                }
            ]
        },
    )
    fake_api.add(
        "GET",
        "/api/v1/tickets/900/threads",
        {
            "data": [
                {
                    "id": "t1",
                    "content": "Cannot connect",
                    "createdTime": "2024-05-01T10:00:00.000Z",
                    "author": {"name": "Dana"},
                }
            ]
        },
    )
    fake_api.add(
        "GET",
        "/api/v1/tickets/900/comments",
        {
            "data": [
                {
                    "id": "c1",
                    "content": "Escalate",
                    "commentedTime": "2024-05-01T11:00:00.000Z",
                    "commenter": {"id": "a9"},
                }
            ]
        },
    )
    source = await ZohoDeskSource.create(CREDENTIALS, http_client=http_client)

    ticket, thread, comment = [r async for r in source.generate_tickets()]

    assert ticket.id == "zd-desk-900"
    assert ticket.status == "on_hold"
    assert ticket.priority == "normal"
    assert thread.id == "zd-desk-msg-t1" and thread.author == "Dana"
    assert comment.id == "zd-desk-note-c1" and comment.type == "note"
    first = fake_api.requests[0]
    assert first.headers["Authorization"] == "Zoho-oauthtoken tok"
    assert first.headers["orgId"] == "600"
    assert first.url.params["sortBy"] == "createdTime"
    assert first.url.params["from"] == "0"


@pytest.mark.asyncio
async def test_reply_and_comment_endpoints(fake_api, http_client):
    """Test that replies and notes use different endpoints."""
    fake_api.add("POST", "/api/v1/tickets/900/sendReply", {"id": "r"})
    fake_api.add("POST", "/api/v1/tickets/900/comments", {"id": "c"})
    source = await ZohoDeskSource.create(CREDENTIALS, http_client=http_client)

    await source.reply("900", "Fixed")
    await source.add_note("900", "Root cause: DNS")

    reply, note = (fake_api.body(r) for r in fake_api.requests)
    assert reply == {"content": "Fixed", "channel": "FORUMS"}
    assert note == {"content": "Root cause: DNS", "isPublic": False}
