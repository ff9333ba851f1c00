"""Tests for the Help Scout source."""

import pytest

from deskbridge.platform.sources import HelpScoutSource

CREDENTIALS = {"app_id": "app", "app_secret": "secret"}


@pytest.fixture
def token(fake_api):
    """Register the OAuth token endpoint."""
    fake_api.add("POST", "/v2/oauth2/token", {"access_token": "hs-token", "expires_in": 7200})


@pytest.mark.asyncio
async def test_conversations_use_oauth_and_page_numbers(fake_api, http_client, token):
    """Test OAuth bearer usage, status=all and thread hydration."""
    fake_api.add(
        "GET",
        "/v2/conversations",
        {
            "_embedded": {
                "conversations": [
                    {
                        "id": 10,
                        "number": 1,
                        "subject": "Login",
                        "status": "active",
                        "primaryCustomer": {"id": 5, "email": "c@x.com"},
                        "tags": [{"tag": "auth"}],
                        "createdAt": "2024-01-01T00:00:00Z",
                        "customFields": [{"name": "Plan", "value": "Pro"}],
                    }
                ]
            },
            "page": {"totalPages": 1},
        },
    )
    fake_api.add(
        "GET",
        "/v2/conversations/10/threads",
        {
            "_embedded": {
                "threads": [
                    {"id": 1, "type": "customer", "body": "Help", "createdAt": "2024-01-01"},
                    {"id": 2, "type": "lineitem", "createdAt": "2024-01-01"},
                    {"id": 3, "type": "note", "body": "FYI", "createdAt": "2024-01-01"},
                ]
            },
            "page": {"totalPages": 1},
        },
    )
    source = await HelpScoutSource.create(CREDENTIALS, http_client=http_client)

    ticket, customer_msg, note = [r async for r in source.generate_tickets()]

    assert ticket.id == "hs-10"
    assert ticket.requester == "c@x.com"
    assert ticket.tags == ["auth"]
    assert ticket.custom_fields == {"Plan": "Pro"}
    assert customer_msg.type == "reply" and note.type == "note"
    conv_request = fake_api.calls("GET", "/v2/conversations")[0]
    assert conv_request.headers["Authorization"] == "Bearer hs-token"
    assert conv_request.url.params["status"] == "all"
    assert len(fake_api.calls("POST", "/v2/oauth2/token")) == 1


@pytest.mark.asyncio
async def test_create_returns_id_from_location(fake_api, http_client, token):
    """Test that the new conversation id comes from the Location header."""
    fake_api.add(
        "POST",
        "/v2/conversations",
        status=201,
        headers={"Location": "https://api.helpscout.net/v2/conversations/321"},
    )
    source = await HelpScoutSource.create(CREDENTIALS, http_client=http_client)

    new_id = await source.create_ticket("Hi", "Body", mailbox_id=1, customer_email="c@x.com")

    assert new_id == "321"
    body = fake_api.body(fake_api.calls("POST", "/v2/conversations")[0])
    assert body["mailboxId"] == 1
    assert body["threads"] == [
        {"type": "customer", "customer": {"email": "c@x.com"}, "text": "Body"}
    ]


@pytest.mark.asyncio
async def test_reply_and_note_use_separate_endpoints(fake_api, http_client, token):
    """Test reply vs note endpoints."""
    fake_api.add("POST", "/v2/conversations/7/reply", status=201)
    fake_api.add("POST", "/v2/conversations/7/notes", status=201)
    source = await HelpScoutSource.create(CREDENTIALS, http_client=http_client)

    await source.reply("7", "Hello")
    await source.add_note("7", "Internal")

    assert fake_api.body(fake_api.calls("POST", "/v2/conversations/7/reply")[0]) == {
        "text": "Hello"
    }
    assert fake_api.body(fake_api.calls("POST", "/v2/conversations/7/notes")[0]) == {
        "text": "Internal"
    }
