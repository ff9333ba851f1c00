"""Intercom source implementation."""

from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import httpx
from pydantic import Field

from deskbridge.platform.decorators import source
from deskbridge.platform.entities import (
    Customer,
    KBArticle,
    Message,
    MessageType,
    Organization,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from deskbridge.platform.http_client import BearerTokenAuth, ConnectorClient, RetryPolicy
from deskbridge.platform.pagination import CursorPagination, PagePagination, ScrollPagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema, epoch_to_iso

API_VERSION = "2.11"


class IntercomRef(SourceSchema):
    """Reference to an author, contact, assignee or company."""

    id: Optional[str] = None
    type: Optional[str] = None


class IntercomOpeningMessage(SourceSchema):
    """Opening message of a conversation."""

    author: Optional[IntercomRef] = None
    body: Optional[str] = None


class IntercomTag(SourceSchema):
    """Tag."""

    name: str


class IntercomTagList(SourceSchema):
    """``tags`` wrapper."""

    tags: List[IntercomTag] = Field(default_factory=list)


class IntercomContactList(SourceSchema):
    """``contacts`` wrapper on a conversation."""

    contacts: List[IntercomRef] = Field(default_factory=list)


class IntercomConversationSchema(SourceSchema):
    """Conversation; timestamps are UNIX epoch seconds."""

    id: str
    title: Optional[str] = None
    state: Optional[str] = None
    priority: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    source: Optional[IntercomOpeningMessage] = None
    assignee: Optional[IntercomRef] = None
    tags: IntercomTagList = Field(default_factory=IntercomTagList)
    contacts: IntercomContactList = Field(default_factory=IntercomContactList)


class IntercomPartSchema(SourceSchema):
    """Conversation part (comment, note, assignment, ...)."""

    id: str
    part_type: Optional[str] = None
    body: Optional[str] = None
    author: Optional[IntercomRef] = None
    created_at: Optional[int] = None


class IntercomCompanyList(SourceSchema):
    """``companies`` wrapper on a contact."""

    data: List[IntercomRef] = Field(default_factory=list)


class IntercomContactSchema(SourceSchema):
    """Contact (user or lead)."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    companies: Optional[IntercomCompanyList] = None


class IntercomAdminSchema(SourceSchema):
    """Admin (teammate)."""

    id: str
    name: str = ""
    email: Optional[str] = None


class IntercomCompanySchema(SourceSchema):
    """Company."""

    id: str
    name: str = ""
    website: Optional[str] = None


class IntercomArticleSchema(SourceSchema):
    """Help Center article."""

    id: str
    title: str = ""
    body: Optional[str] = None
    parent_id: Optional[str] = None


@source(name="Intercom", short_name="intercom", id_prefix="ic")
class IntercomSource(BaseSource):
    """Intercom source connector.

    Conversations become tickets. The conversation's opening message is
    emitted as a message of its own, followed by the conversation parts that
    carry a body. Intercom has no rules API.
    """

    STATUS_MAP = {
        "open": TicketStatus.OPEN,
        "closed": TicketStatus.CLOSED,
        "snoozed": TicketStatus.ON_HOLD,
    }
    PRIORITY_MAP = {
        "priority": TicketPriority.HIGH,
        "not_priority": TicketPriority.NORMAL,
    }

    def __init__(self):
        """Initialize per-run state."""
        super().__init__()
        self.admin_id: Optional[str] = None

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Bearer access token pinned to API version 2.11."""
        self.admin_id = credentials.get("admin_id")
        return ConnectorClient(
            base_url="https://api.intercom.io",
            source_name=self._name,
            auth=BearerTokenAuth(credentials["access_token"]),
            retry_policy=RetryPolicy.reactive(default_retry_after=10),
            extra_headers={"Intercom-Version": API_VERSION},
            http_client=http_client,
            logger=self.logger,
        )

    @staticmethod
    def _cursor(data_key: str) -> CursorPagination:
        return CursorPagination(
            data_key=data_key,
            next_key="pages.next.starting_after",
            cursor_param="starting_after",
            page_params={"per_page": 50},
        )

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate conversations, each followed by its messages."""
        async for conv in self.records(
            "/conversations", self._cursor("conversations"), IntercomConversationSchema
        ):
            ticket_id = self.make_id(conv.id)
            contacts = conv.contacts.contacts
            opening = conv.source
            yield Ticket(
                id=ticket_id,
                external_id=conv.id,
                source=self._short_name,
                subject=(
                    conv.title
                    or ((opening.body or "")[:100] if opening else "")
                    or f"Conversation #{conv.id}"
                ),
                status=self.map_status(conv.state),
                priority=self.map_priority(conv.priority),
                assignee=conv.assignee.id if conv.assignee else None,
                requester=(contacts[0].id if contacts else None) or "unknown",
                tags=[t.name for t in conv.tags.tags],
                created_at=epoch_to_iso(conv.created_at),
                updated_at=epoch_to_iso(conv.updated_at),
            )

            if opening and opening.body:
                yield Message(
                    id=self.make_id("msg", conv.id, "source"),
                    ticket_id=ticket_id,
                    author=(opening.author.id if opening.author else None) or "unknown",
                    body=opening.body,
                    type=MessageType.REPLY,
                    created_at=epoch_to_iso(conv.created_at),
                )

            async for message in self.hydrate(ticket_id, self._parts(conv.id, ticket_id)):
                yield message

    async def _parts(self, conversation_id: str, ticket_id: str) -> AsyncGenerator[Message, None]:
        data = await self.client.get(f"/conversations/{conversation_id}")
        parts = (data.get("conversation_parts") or {}).get("conversation_parts") or []
        for part in self.decode_all(parts, IntercomPartSchema):
            if not part.body:
                continue
            yield Message(
                id=self.make_id("msg", part.id),
                ticket_id=ticket_id,
                author=(part.author.id if part.author else None) or "unknown",
                body=part.body,
                type=MessageType.NOTE if part.part_type == "note" else MessageType.REPLY,
                created_at=epoch_to_iso(part.created_at),
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate contacts."""
        async for c in self.records("/contacts", self._cursor("data"), IntercomContactSchema):
            companies = c.companies.data if c.companies else []
            company_id = companies[0].id if companies else None
            yield Customer(
                id=self.make_id("user", c.id),
                external_id=c.id,
                source=self._short_name,
                name=c.name or c.email or f"Contact {c.id}",
                email=c.email or "",
                phone=c.phone,
                org_id=self.make_id("org", company_id) if company_id else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate admins."""
        data = await self.client.get("/admins")
        for a in self.decode_all(data.get("admins") or [], IntercomAdminSchema):
            yield Customer(
                id=self.make_id("admin", a.id),
                external_id=f"admin-{a.id}",
                source=self._short_name,
                name=a.name,
                email=a.email or "",
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate companies through the scroll API."""
        async for co in self.records(
            "/companies/scroll", ScrollPagination(data_key="data"), IntercomCompanySchema
        ):
            yield Organization(
                id=self.make_id("org", co.id),
                external_id=co.id,
                source=self._short_name,
                name=co.name,
                domains=[co.website] if co.website else [],
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Generate Help Center articles."""
        strategy = PagePagination(
            data_key="data", page_size=50, total_pages_key="pages.total_pages"
        )
        async for a in self.records("/articles", strategy, IntercomArticleSchema):
            yield KBArticle(
                id=self.make_id("kb", a.id),
                external_id=a.id,
                source=self._short_name,
                title=a.title,
                body=a.body or "",
                category_path=[a.parent_id] if a.parent_id else [],
            )

    async def _verify(self) -> Dict[str, Any]:
        me = await self.client.get("/me")
        admins = await self.client.get("/admins")
        return {
            "appName": (me.get("app") or {}).get("name") or "Unknown",
            "adminCount": len(admins.get("admins") or []),
        }

    # ------------------------------------------------------------------
    # Write operations (reply and note share one endpoint)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Start a conversation as a contact; requires ``from_contact_id``."""
        contact_id = options.get("from_contact_id")
        if not contact_id:
            raise ValueError("Intercom conversations need a from_contact_id")
        result = await self.client.post(
            "/conversations", body={"from": {"type": "user", "id": contact_id}, "body": body}
        )
        return str(result["conversation_id"])

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Reply as an admin."""
        await self._admin_reply(ticket_id, body, "comment", options.get("admin_id"))

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Add an internal note as an admin."""
        await self._admin_reply(ticket_id, body, "note", options.get("admin_id"))

    async def _admin_reply(
        self, ticket_id: str, body: str, message_type: str, admin_id: Optional[str]
    ) -> None:
        admin_id = admin_id or self.admin_id
        if not admin_id:
            raise ValueError("Intercom replies need an admin_id")
        await self.client.post(
            f"/conversations/{ticket_id}/reply",
            body={
                "message_type": message_type,
                "type": "admin",
                "admin_id": admin_id,
                "body": body,
            },
        )

    async def delete_ticket(self, ticket_id: str) -> None:
        """Delete a conversation; only available on the Unstable API version."""
        await self.client.delete(
            f"/conversations/{ticket_id}", headers={"Intercom-Version": "Unstable"}
        )
