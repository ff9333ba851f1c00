"""HubSpot source implementation."""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple, Union

import httpx
from pydantic import Field

from deskbridge.core.exceptions import ConnectorError
from deskbridge.platform.decorators import source
from deskbridge.platform.entities import (
    Customer,
    Message,
    MessageType,
    Organization,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from deskbridge.platform.http_client import BearerTokenAuth, ConnectorClient, RetryPolicy
from deskbridge.platform.pagination import CursorPagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema

TICKET_PROPERTIES = (
    "subject,content,hs_pipeline_stage,hs_ticket_priority,hubspot_owner_id,"
    "createdate,hs_lastmodifieddate,hs_ticket_category"
)
CONTACT_PROPERTIES = "firstname,lastname,email,phone,company,associatedcompanyid"
COMPANY_PROPERTIES = "name,domain,website,industry"
NOTE_PROPERTIES = "hs_note_body,hs_timestamp,hubspot_owner_id"

# HUBSPOT_DEFINED association type "note to ticket"
NOTE_TO_TICKET = 17


class HubSpotTicketProperties(SourceSchema):
    """Requested ticket properties."""

    subject: Optional[str] = None
    content: Optional[str] = None
    hs_pipeline_stage: Optional[str] = None
    hs_ticket_priority: Optional[str] = None
    hubspot_owner_id: Optional[str] = None
    createdate: Optional[str] = None
    hs_lastmodifieddate: Optional[str] = None
    hs_ticket_category: Optional[str] = None


class HubSpotTicketSchema(SourceSchema):
    """CRM ticket object."""

    id: str
    properties: HubSpotTicketProperties = Field(default_factory=HubSpotTicketProperties)


class HubSpotContactProperties(SourceSchema):
    """Requested contact properties."""

    firstname: Optional[str] = None
    lastname: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    associatedcompanyid: Optional[str] = None


class HubSpotContactSchema(SourceSchema):
    """CRM contact object."""

    id: str
    properties: HubSpotContactProperties = Field(default_factory=HubSpotContactProperties)


class HubSpotCompanyProperties(SourceSchema):
    """Requested company properties."""

    name: Optional[str] = None
    domain: Optional[str] = None
    website: Optional[str] = None


class HubSpotCompanySchema(SourceSchema):
    """CRM company object."""

    id: str
    properties: HubSpotCompanyProperties = Field(default_factory=HubSpotCompanyProperties)


class HubSpotNoteProperties(SourceSchema):
    """Requested note properties."""

    hs_note_body: Optional[str] = None
    hs_timestamp: Optional[str] = None
    hubspot_owner_id: Optional[str] = None


class HubSpotNoteSchema(SourceSchema):
    """CRM note object."""

    id: str
    properties: HubSpotNoteProperties = Field(default_factory=HubSpotNoteProperties)


class HubSpotAssociationSchema(SourceSchema):
    """One associated object reference."""

    id: str


class HubSpotOwnerSchema(SourceSchema):
    """Owner (agent)."""

    id: str
    email: Optional[str] = None
    firstName: Optional[str] = None
    lastName: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@source(name="HubSpot", short_name="hubspot", id_prefix="hub")
class HubSpotSource(BaseSource):
    """HubSpot Service Hub source connector.

    Tickets, contacts and companies are CRM objects listed with ``after``
    cursors. Ticket requesters and notes are associations, read one ticket at
    a time. The knowledge base lives in CMS Hub and business rules have no
    public API, so neither category is exported.
    """

    # Pipeline stages are numeric ids on the default pipeline, labels otherwise
    STAGE_KEYWORDS: List[Tuple[str, TicketStatus]] = [
        ("new", TicketStatus.OPEN),
        ("open", TicketStatus.OPEN),
        ("waiting", TicketStatus.PENDING),
        ("pending", TicketStatus.PENDING),
        ("closed", TicketStatus.CLOSED),
        ("resolved", TicketStatus.CLOSED),
    ]
    STATUS_MAP = {
        "1": TicketStatus.OPEN,
        "2": TicketStatus.PENDING,
        "3": TicketStatus.CLOSED,
        "4": TicketStatus.CLOSED,
    }
    PRIORITY_MAP = {
        "low": TicketPriority.LOW,
        "medium": TicketPriority.NORMAL,
        "high": TicketPriority.HIGH,
    }

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Private app access token."""
        return ConnectorClient(
            base_url="https://api.hubapi.com",
            source_name=self._name,
            auth=BearerTokenAuth(credentials["access_token"]),
            retry_policy=RetryPolicy.reactive(default_retry_after=10),
            http_client=http_client,
            logger=self.logger,
        )

    @classmethod
    def map_status(cls, raw: Any) -> TicketStatus:
        """Map a pipeline stage id or label."""
        if raw is None:
            return cls.DEFAULT_STATUS
        stage = str(raw).strip().lower()
        if stage in cls.STATUS_MAP:
            return cls.STATUS_MAP[stage]
        for keyword, status in cls.STAGE_KEYWORDS:
            if keyword in stage:
                return status
        return cls.DEFAULT_STATUS

    @staticmethod
    def _cursor(properties: str) -> CursorPagination:
        return CursorPagination(
            data_key="results",
            next_key="paging.next.after",
            cursor_param="after",
            page_params={"limit": 100, "properties": properties},
        )

    async def _associations(self, ticket_id: str, kind: str) -> List[HubSpotAssociationSchema]:
        data = await self.client.get(f"/crm/v3/objects/tickets/{ticket_id}/associations/{kind}")
        return self.decode_all((data or {}).get("results"), HubSpotAssociationSchema)

    async def _requester(self, ticket_id: str) -> str:
        try:
            contacts = await self._associations(ticket_id, "contacts")
        except ConnectorError as e:
            if self.is_fatal(e):
                raise
            self.logger.debug(f"No contact associations for ticket {ticket_id}: {e}")
            return "unknown"
        return contacts[0].id if contacts else "unknown"

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate tickets, each followed by its associated notes."""
        async for t in self.records(
            "/crm/v3/objects/tickets", self._cursor(TICKET_PROPERTIES), HubSpotTicketSchema
        ):
            p = t.properties
            ticket_id = self.make_id(t.id)
            created_at = p.createdate or _now()
            yield Ticket(
                id=ticket_id,
                external_id=t.id,
                source=self._short_name,
                subject=p.subject or f"Ticket #{t.id}",
                status=self.map_status(p.hs_pipeline_stage),
                priority=self.map_priority(p.hs_ticket_priority),
                assignee=p.hubspot_owner_id,
                requester=await self._requester(t.id),
                tags=[p.hs_ticket_category] if p.hs_ticket_category else [],
                created_at=created_at,
                updated_at=p.hs_lastmodifieddate or created_at,
            )
            async for message in self.hydrate(ticket_id, self._notes(t.id, ticket_id, created_at)):
                yield message

    async def _notes(
        self, external_id: str, ticket_id: str, ticket_created_at: str
    ) -> AsyncGenerator[Message, None]:
        """Fetch each associated note; a note that fails to load is skipped."""
        for ref in await self._associations(external_id, "notes"):
            try:
                data = await self.client.get(
                    f"/crm/v3/objects/notes/{ref.id}", params={"properties": NOTE_PROPERTIES}
                )
            except ConnectorError as e:
                if self.is_fatal(e):
                    raise
                self.logger.warning(f"Skipping note {ref.id} of ticket {external_id}: {e}")
                continue

            notes = self.decode_all([data], HubSpotNoteSchema)
            if not notes or not notes[0].properties.hs_note_body:
                continue
            note = notes[0]
            yield Message(
                id=self.make_id("note", note.id),
                ticket_id=ticket_id,
                author=note.properties.hubspot_owner_id or "unknown",
                body=note.properties.hs_note_body,
                type=MessageType.NOTE,
                created_at=note.properties.hs_timestamp or ticket_created_at,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate contacts."""
        async for c in self.records(
            "/crm/v3/objects/contacts", self._cursor(CONTACT_PROPERTIES), HubSpotContactSchema
        ):
            p = c.properties
            full_name = " ".join(part for part in (p.firstname, p.lastname) if part)
            yield Customer(
                id=self.make_id("user", c.id),
                external_id=c.id,
                source=self._short_name,
                name=full_name or p.email or f"Contact {c.id}",
                email=p.email or "",
                phone=p.phone,
                org_id=self.make_id("org", p.associatedcompanyid)
                if p.associatedcompanyid
                else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate owners."""
        data = await self.client.get("/crm/v3/owners")
        for o in self.decode_all((data or {}).get("results"), HubSpotOwnerSchema):
            yield Customer(
                id=self.make_id("agent", o.id),
                external_id=f"agent-{o.id}",
                source=self._short_name,
                name=f"{o.firstName or ''} {o.lastName or ''}".strip() or o.email or o.id,
                email=o.email or "",
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate companies."""
        async for co in self.records(
            "/crm/v3/objects/companies", self._cursor(COMPANY_PROPERTIES), HubSpotCompanySchema
        ):
            p = co.properties
            yield Organization(
                id=self.make_id("org", co.id),
                external_id=co.id,
                source=self._short_name,
                name=p.name or f"Company {co.id}",
                domains=[d for d in (p.domain, p.website) if d],
            )

    async def _verify(self) -> Dict[str, Any]:
        account = await self.client.get("/account-info/v3/details")
        owners = await self.client.get("/crm/v3/owners")
        return {
            "portalId": str((account or {}).get("portalId")),
            "ownerCount": len((owners or {}).get("results") or []),
        }

    # ------------------------------------------------------------------
    # Write operations (notes are separate objects linked by association)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a ticket; options: priority, owner_id, pipeline_stage."""
        properties: Dict[str, Any] = {"subject": subject, "content": body}
        for option, prop in (
            ("priority", "hs_ticket_priority"),
            ("owner_id", "hubspot_owner_id"),
            ("pipeline_stage", "hs_pipeline_stage"),
        ):
            if options.get(option):
                properties[prop] = options[option]
        result = await self.client.post("/crm/v3/objects/tickets", body={"properties": properties})
        return str(result["id"])

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Patch ticket properties, given by their HubSpot property names."""
        await self.client.request(
            f"/crm/v3/objects/tickets/{ticket_id}", method="PATCH", body={"properties": updates}
        )

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Create a note and associate it with the ticket; options: owner_id."""
        properties: Dict[str, Any] = {
            "hs_note_body": body,
            "hs_timestamp": _now(),
        }
        if options.get("owner_id"):
            properties["hubspot_owner_id"] = options["owner_id"]
        note = await self.client.post("/crm/v3/objects/notes", body={"properties": properties})
        await self.client.put(
            f"/crm/v4/objects/notes/{note['id']}/associations/tickets/{ticket_id}",
            body=[{"associationCategory": "HUBSPOT_DEFINED", "associationTypeId": NOTE_TO_TICKET}],
        )

    async def delete_ticket(self, ticket_id: str) -> None:
        """Archive a ticket."""
        await self.client.delete(f"/crm/v3/objects/tickets/{ticket_id}")
