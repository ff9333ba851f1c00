"""Tests for the Groove source."""

import pytest
import pytest_asyncio

from deskbridge.platform.http_client import RetryPolicy
from deskbridge.platform.sources import GrooveSource
from deskbridge.platform.sources.groove import href_tail


@pytest_asyncio.fixture
async def groove(http_client):
    """Create a Groove source without the pre-request delay."""
    source = await GrooveSource.create({"api_token": "tok"}, http_client=http_client)
    source.client.retry_policy = RetryPolicy.fixed_delay(
        pre_request_delay=0, min_retry_after=0, default_retry_after=0
    )
    yield source
    await source.close()


def test_href_tail():
    """Test extracting ids from resource links."""
    assert href_tail("https://api.groovehq.com/v1/customers/ann@x.com") == "ann@x.com"
    assert href_tail("https://api.groovehq.com/v1/messages/42/") == "42"
    assert href_tail(None) is None


def test_client_uses_fixed_delay_policy():
    """Test that Groove paces requests and treats 503 as a rate limit."""
    policy = RetryPolicy.fixed_delay()

    assert policy.pre_request_delay == 2.5
    assert policy.rate_limit_statuses == [429, 503]
    assert policy.min_retry_after == 60


@pytest.mark.asyncio
async def test_tickets_keyed_by_number(fake_api, groove):
    """Test ticket mapping from links and message note flags."""
    fake_api.add(
        "GET",
        "/v1/tickets",
        {
            "tickets": [
                {
                    "number": 12,
                    "title": "Broken link",
                    "state": "unread",
                    "tags": ["web"],
                    "created_at": "2024-02-01T00:00:00Z",
                    "links": {
                        "customer": {"href": "https://api.groovehq.com/v1/customers/ann@x.com"},
                        "assignee": {"href": "https://api.groovehq.com/v1/agents/bo@y.com"},
                    },
                }
            ],
            "meta": {"pagination": {"next_page": None}},
        },
    )
    fake_api.add(
        "GET",
        "/v1/tickets/12/messages",
        {
            "messages": [
                {
                    "href": "https://api.groovehq.com/v1/messages/500",
                    "created_at": "2024-02-01T00:00:00Z",
                    "plain_text_body": "fyi",
                    "note": True,
                }
            ],
            "meta": {"pagination": {"next_page": None}},
        },
    )

    ticket, message = [r async for r in groove.generate_tickets()]

    assert ticket.id == "gv-12"
    assert ticket.requester == "ann@x.com"
    assert ticket.assignee == "bo@y.com"
    assert ticket.status == "open"
    assert message.id == "gv-msg-500" and message.type == "note"


@pytest.mark.asyncio
async def test_update_sends_separate_puts(fake_api, groove):
    """Test state, assignee and tags go to their own endpoints."""
    for field in ("state", "assignee", "tags"):
        fake_api.add("PUT", f"/v1/tickets/12/{field}", status=204)

    await groove.update_ticket("12", state="closed", assignee="bo@y.com", tags=["a", "b"])

    assert [(r.url.path, fake_api.body(r)) for r in fake_api.requests] == [
        ("/v1/tickets/12/state", {"state": "closed"}),
        ("/v1/tickets/12/assignee", {"assignee": "bo@y.com"}),
        ("/v1/tickets/12/tags", ["a", "b"]),
    ]


@pytest.mark.asyncio
async def test_note_is_a_flag_on_messages(fake_api, groove):
    """Test that notes and replies share the messages endpoint."""
    fake_api.add("POST", "/v1/tickets/12/messages", {"message": {}}, status=201)

    await groove.reply("12", "hi")
    await groove.add_note("12", "psst")

    assert [fake_api.body(r) for r in fake_api.requests] == [
        {"body": "hi", "note": False},
        {"body": "psst", "note": True},
    ]
