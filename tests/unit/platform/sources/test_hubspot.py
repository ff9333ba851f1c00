"""Tests for the HubSpot source."""

import pytest

from deskbridge.core.exceptions import CategoryNotSupportedError
from deskbridge.platform.sources import HubSpotSource

CREDENTIALS = {"access_token": "pat-na1-x"}
TICKETS = "/crm/v3/objects/tickets"


def _ticket(ticket_id: str, **properties) -> dict:
    return {
        "id": ticket_id,
        "properties": {"createdate": "2024-05-01T00:00:00Z", **properties},
    }


@pytest.mark.asyncio
async def test_tickets_follow_after_cursor_with_requester_and_notes(fake_api, http_client):
    """Test cursor pages, association lookups and skipping a note that fails to load."""
    fake_api.add(
        "GET",
        TICKETS,
        {
            "results": [
                _ticket(
                    "1",
                    subject="Invoice",
                    hs_pipeline_stage="4",
                    hs_ticket_priority="HIGH",
                    hs_ticket_category="BILLING",
                    hubspot_owner_id="55",
                    hs_lastmodifieddate="2024-05-02T00:00:00Z",
                )
            ],
            "paging": {"next": {"after": "abc"}},
        },
    )
    fake_api.add(
        "GET", TICKETS, {"results": [_ticket("2", hs_pipeline_stage="Waiting on contact")]}
    )
    fake_api.add(
        "GET", f"{TICKETS}/1/associations/contacts", {"results": [{"id": "701", "type": "x"}]}
    )
    fake_api.add("GET", f"{TICKETS}/1/associations/notes", {"results": [{"id": "9"}, {"id": "10"}]})
    fake_api.add(
        "GET",
        "/crm/v3/objects/notes/9",
        {
            "id": "9",
            "properties": {"hs_note_body": "Called back", "hs_timestamp": "2024-05-01T10:00:00Z"},
        },
    )
    fake_api.add("GET", "/crm/v3/objects/notes/10", {"message": "boom"}, status=500)
    fake_api.add("GET", f"{TICKETS}/2/associations/notes", {"results": []})
    source = await HubSpotSource.create(CREDENTIALS, http_client=http_client)

    records = [r async for r in source.generate_tickets()]

    assert [r.id for r in records] == ["hub-1", "hub-note-9", "hub-2"]
    first, note, second = records
    assert (first.status, first.priority) == ("closed", "high")
    assert first.requester == "701"
    assert first.assignee == "55"
    assert first.tags == ["BILLING"]
    assert note.type == "note" and note.ticket_id == "hub-1"
    assert note.created_at == "2024-05-01T10:00:00Z"
    assert second.status == "pending"
    assert second.requester == "unknown"
    assert second.updated_at == second.created_at
    assert source.hydration_failures == []

    pages = fake_api.calls("GET", TICKETS)
    assert pages[0].url.params["limit"] == "100"
    assert "hs_pipeline_stage" in pages[0].url.params["properties"]
    assert pages[1].url.params["after"] == "abc"
    assert pages[0].headers["Authorization"] == "Bearer pat-na1-x"


@pytest.mark.parametrize(
    "stage, status",
    [("1", "open"), ("2", "pending"), ("3", "closed"), ("New", "open"), ("Resolved", "closed")],
)
def test_pipeline_stage_mapping(stage, status):
    """Test numeric default-pipeline stages and label keywords."""
    assert HubSpotSource.map_status(stage) == status


@pytest.mark.asyncio
async def test_contacts_owners_and_companies(fake_api, http_client):
    """Test customer, agent and organization mapping."""
    fake_api.add(
        "GET",
        "/crm/v3/objects/contacts",
        {
            "results": [
                {
                    "id": "701",
                    "properties": {
                        "firstname": "Ann",
                        "lastname": "Lee",
                        "email": "ann@x.com",
                        "associatedcompanyid": "3",
                    },
                },
                {"id": "702", "properties": {"email": "bo@x.com"}},
            ]
        },
    )
    fake_api.add(
        "GET",
        "/crm/v3/owners",
        {"results": [{"id": "55", "email": "agent@x.com", "firstName": "Kim", "lastName": ""}]},
    )
    fake_api.add(
        "GET",
        "/crm/v3/objects/companies",
        {"results": [{"id": "3", "properties": {"name": "X Inc", "domain": "x.com"}}]},
    )
    source = await HubSpotSource.create(CREDENTIALS, http_client=http_client)

    customers = [c async for c in source.generate_customers()]
    agents = [a async for a in source.generate_agents()]
    orgs = [o async for o in source.generate_organizations()]

    assert [(c.id, c.name, c.org_id) for c in customers] == [
        ("hub-user-701", "Ann Lee", "hub-org-3"),
        ("hub-user-702", "bo@x.com", None),
    ]
    assert (agents[0].id, agents[0].name, agents[0].external_id) == (
        "hub-agent-55",
        "Kim",
        "agent-55",
    )
    assert (orgs[0].id, orgs[0].domains) == ("hub-org-3", ["x.com"])


@pytest.mark.asyncio
async def test_kb_and_rules_are_not_supported(http_client):
    """Test that the knowledge base and rules report as unsupported."""
    source = await HubSpotSource.create(CREDENTIALS, http_client=http_client)

    with pytest.raises(CategoryNotSupportedError):
        async for _ in source.generate_kb_articles():
            pass
    with pytest.raises(CategoryNotSupportedError):
        async for _ in source.generate_rules():
            pass


@pytest.mark.asyncio
async def test_write_operations_payloads(fake_api, http_client):
    """Test ticket creation, property patch and note association."""
    fake_api.add("POST", TICKETS, {"id": "90"}, status=201)
    fake_api.add("PATCH", f"{TICKETS}/90", {"id": "90"})
    fake_api.add("POST", "/crm/v3/objects/notes", {"id": "300"}, status=201)
    fake_api.add("PUT", "/crm/v4/objects/notes/300/associations/tickets/90", {})
    source = await HubSpotSource.create(CREDENTIALS, http_client=http_client)

    assert await source.create_ticket("Help", "Details", priority="HIGH") == "90"
    await source.update_ticket("90", hs_pipeline_stage="4")
    await source.add_note("90", "Checked logs", owner_id="55")

    create, patch, note, link = (fake_api.body(r) for r in fake_api.requests)
    assert create == {
        "properties": {"subject": "Help", "content": "Details", "hs_ticket_priority": "HIGH"}
    }
    assert patch == {"properties": {"hs_pipeline_stage": "4"}}
    assert note["properties"]["hs_note_body"] == "Checked logs"
    assert note["properties"]["hubspot_owner_id"] == "55"
    assert link == [{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": 17}]
