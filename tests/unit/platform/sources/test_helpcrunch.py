"""Tests for the HelpCrunch source."""

import pytest

from deskbridge.platform.sources import HelpCrunchSource

CREDENTIALS = {"api_key": "key"}


@pytest.mark.asyncio
async def test_chats_become_tickets_with_messages(fake_api, http_client):
    """Test chat mapping, epoch timestamps and message authorship."""
    fake_api.add(
        "GET",
        "/v1/chats",
        {
            "data": [
                {
                    "id": 3,
                    "status": 5,
                    "createdAt": "1700000000",
                    "lastMessageText": "Where is my order?",
                    "customer": {"id": 8},
                    "assignee": {"id": 2},
                    "department": {"id": 1, "name": "Sales"},
                }
            ],
            "meta": {"total": 1},
        },
    )
    fake_api.add(
        "GET",
        "/v1/chats/3/messages",
        {
            "data": [
                {"id": 30, "text": "Hi", "from": "customer", "createdAt": 1700000000},
                {"id": 31, "text": "Hello", "from": "agent", "agent": {"id": 2}},
            ]
        },
    )
    source = await HelpCrunchSource.create(CREDENTIALS, http_client=http_client)

    ticket, first, second = [r async for r in source.generate_tickets()]

    assert ticket.id == "hc-3"
    assert ticket.subject == "Where is my order?"
    assert ticket.status == "closed"
    assert ticket.priority == "normal"
    assert ticket.tags == ["Sales"]
    assert ticket.created_at == "2023-11-14T22:13:20+00:00"
    assert first.author == "8"
    assert second.author == "2"
    assert fake_api.requests[0].headers["Authorization"] == "Bearer key"


@pytest.mark.asyncio
async def test_organizations_derive_from_customer_companies(fake_api, http_client):
    """Test that organizations come from distinct company names."""
    fake_api.add(
        "GET",
        "/v1/customers",
        {
            "data": [
                {"id": 1, "name": "A", "company": "Acme"},
                {"id": 2, "name": "B", "company": "Acme"},
                {"id": 3, "name": "C"},
            ],
            "total": 3,
        },
    )
    source = await HelpCrunchSource.create(CREDENTIALS, http_client=http_client)

    customers = [c async for c in source.generate_customers()]
    orgs = [o async for o in source.generate_organizations()]

    assert [c.org_id for c in customers] == ["hc-org-Acme", "hc-org-Acme", None]
    assert [o.id for o in orgs] == ["hc-org-Acme"]


@pytest.mark.asyncio
async def test_update_uses_one_put_per_field(fake_api, http_client):
    """Test that updates go to separate sub-resource endpoints."""
    for field in ("status", "assignee"):
        fake_api.add("PUT", f"/v1/chats/3/{field}", {})
    source = await HelpCrunchSource.create(CREDENTIALS, http_client=http_client)

    await source.update_ticket("3", status=5, assignee=2)

    assert [(r.url.path, fake_api.body(r)) for r in fake_api.requests] == [
        ("/v1/chats/3/status", {"status": 5}),
        ("/v1/chats/3/assignee", {"assignee": 2}),
    ]


@pytest.mark.asyncio
async def test_create_requires_customer(http_client):
    """Test that chats cannot be opened without a customer."""
    source = await HelpCrunchSource.create(CREDENTIALS, http_client=http_client)

    with pytest.raises(ValueError):
        await source.create_ticket("", "Hi")
