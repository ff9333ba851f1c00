"""Zoho Desk source implementation."""

from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import httpx

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
from deskbridge.platform.http_client import ConnectorClient, HeaderAuth, RetryPolicy
from deskbridge.platform.pagination import OffsetPagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema


class ZohoDeskTicketSchema(SourceSchema):
    """Ticket."""

    id: str
    ticketNumber: Optional[str] = None
    subject: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assigneeId: Optional[str] = None
    contactId: Optional[str] = None
    tags: Optional[List[str]] = None
    createdTime: str
    modifiedTime: Optional[str] = None
    customFields: Optional[Dict[str, Any]] = None


class ZohoDeskPerson(SourceSchema):
    """Thread author or commenter."""

    id: Optional[str] = None
    name: Optional[str] = None


class ZohoDeskThreadSchema(SourceSchema):
    """Thread (reply or note)."""

    id: str
    type: Optional[str] = None
    content: Optional[str] = None
    createdTime: str
    author: Optional[ZohoDeskPerson] = None
    isPrivate: bool = False


class ZohoDeskCommentSchema(SourceSchema):
    """Ticket comment."""

    id: str
    content: Optional[str] = None
    commentedTime: str
    commenter: Optional[ZohoDeskPerson] = None
    isPublic: bool = False


class ZohoDeskContactSchema(SourceSchema):
    """Contact."""

    id: str
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    accountId: Optional[str] = None


class ZohoDeskAgentSchema(SourceSchema):
    """Agent."""

    id: str
    name: str = ""
    emailId: Optional[str] = None


class ZohoDeskAccountSchema(SourceSchema):
    """Account."""

    id: str
    accountName: str = ""
    website: Optional[str] = None


class ZohoDeskArticleSchema(SourceSchema):
    """Knowledge base article."""

    id: str
    title: str = ""
    answer: Optional[str] = None
    categoryId: Optional[str] = None
    sectionId: Optional[str] = None


@source(name="Zoho Desk", short_name="zoho_desk", id_prefix="zd-desk")
class ZohoDeskSource(BaseSource):
    """Zoho Desk source connector.

    Every list endpoint pages with ``from``/``limit`` offsets. Messages come
    from two sub-resources: threads (replies and private notes) and comments.
    """

    STATUS_MAP = {
        "new": TicketStatus.OPEN,
        "open": TicketStatus.OPEN,
        "on hold": TicketStatus.ON_HOLD,
        "escalated": TicketStatus.PENDING,
        "closed": TicketStatus.CLOSED,
    }
    PRIORITY_MAP = {
        "low": TicketPriority.LOW,
        "medium": TicketPriority.NORMAL,
        "normal": TicketPriority.NORMAL,
        "high": TicketPriority.HIGH,
        "urgent": TicketPriority.URGENT,
    }

    def __init__(self):
        """Initialize per-run state."""
        super().__init__()
        self.org_id = ""

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """``Zoho-oauthtoken`` authorization plus the ``orgId`` header."""
        self.org_id = credentials["org_id"]
        return ConnectorClient(
            base_url="https://desk.zoho.com/api/v1",
            source_name=self._name,
            auth=HeaderAuth(
                "Zoho-oauthtoken", credentials["access_token"], {"orgId": self.org_id}
            ),
            retry_policy=RetryPolicy.reactive(default_retry_after=30),
            http_client=http_client,
            logger=self.logger,
        )

    @staticmethod
    def _offsets(limit: int = 100) -> OffsetPagination:
        return OffsetPagination(data_key="data", limit=limit, offset_param="from")

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate tickets, each followed by its threads and comments."""
        async for t in self.records(
            "/tickets", self._offsets(), ZohoDeskTicketSchema, params={"sortBy": "createdTime"}
        ):
            ticket_id = self.make_id(t.id)
            yield Ticket(
                id=ticket_id,
                external_id=t.id,
                source=self._short_name,
                subject=t.subject or f"Ticket #{t.ticketNumber}",
                status=self.map_status(t.status),
                priority=self.map_priority(t.priority),
                assignee=t.assigneeId,
                requester=t.contactId or "unknown",
                tags=t.tags or [],
                created_at=t.createdTime,
                updated_at=t.modifiedTime or t.createdTime,
                custom_fields=t.customFields,
            )
            async for message in self.hydrate(ticket_id, self._threads(t.id, ticket_id)):
                yield message
            async for message in self.hydrate(ticket_id, self._comments(t.id, ticket_id)):
                yield message

    async def _threads(self, external_id: str, ticket_id: str) -> AsyncGenerator[Message, None]:
        async for th in self.records(
            f"/tickets/{external_id}/threads", self._offsets(), ZohoDeskThreadSchema
        ):
            author = th.author
            yield Message(
                id=self.make_id("msg", th.id),
                ticket_id=ticket_id,
                author=(author.name or author.id if author else None) or "unknown",
                body=th.content or "",
                type=MessageType.NOTE if th.type == "note" or th.isPrivate else MessageType.REPLY,
                created_at=th.createdTime,
            )

    async def _comments(self, external_id: str, ticket_id: str) -> AsyncGenerator[Message, None]:
        data = await self.client.get(
            f"/tickets/{external_id}/comments", params={"from": 0, "limit": 100}
        )
        for c in self.decode_all(data.get("data") or [], ZohoDeskCommentSchema):
            commenter = c.commenter
            yield Message(
                id=self.make_id("note", c.id),
                ticket_id=ticket_id,
                author=(commenter.name or commenter.id if commenter else None) or "unknown",
                body=c.content or "",
                type=MessageType.REPLY if c.isPublic else MessageType.NOTE,
                created_at=c.commentedTime,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate contacts."""
        async for c in self.records("/contacts", self._offsets(), ZohoDeskContactSchema):
            full_name = " ".join(part for part in (c.firstName, c.lastName) if part)
            yield Customer(
                id=self.make_id("user", c.id),
                external_id=c.id,
                source=self._short_name,
                name=full_name or c.email or f"Contact {c.id}",
                email=c.email or "",
                phone=c.phone or c.mobile,
                org_id=self.make_id("org", c.accountId) if c.accountId else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate agents (first 200)."""
        data = await self.client.get("/agents", params={"from": 0, "limit": 200})
        for a in self.decode_all(data.get("data") or [], ZohoDeskAgentSchema):
            yield Customer(
                id=self.make_id("agent", a.id),
                external_id=f"agent-{a.id}",
                source=self._short_name,
                name=a.name,
                email=a.emailId or "",
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate accounts."""
        async for a in self.records("/accounts", self._offsets(), ZohoDeskAccountSchema):
            yield Organization(
                id=self.make_id("org", a.id),
                external_id=a.id,
                source=self._short_name,
                name=a.accountName,
                domains=[a.website] if a.website else [],
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Generate knowledge base articles."""
        async for a in self.records("/articles", self._offsets(), ZohoDeskArticleSchema):
            yield KBArticle(
                id=self.make_id("kb", a.id),
                external_id=a.id,
                source=self._short_name,
                title=a.title,
                body=a.answer or "",
                category_path=[part for part in (a.categoryId, a.sectionId) if part],
            )

    async def _verify(self) -> Dict[str, Any]:
        agents = await self.client.get("/agents", params={"from": 0, "limit": 1})
        return {
            "orgName": f"Org {self.org_id}",
            "agentCount": len(agents.get("data") or []),
        }

    # ------------------------------------------------------------------
    # Write operations (reply and comment are separate endpoints)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a ticket; options: contact_id, priority, status, department_id."""
        ticket: Dict[str, Any] = {"subject": subject, "description": body}
        for option, field in (
            ("contact_id", "contactId"),
            ("priority", "priority"),
            ("status", "status"),
            ("department_id", "departmentId"),
        ):
            if options.get(option):
                ticket[field] = options[option]
        result = await self.client.post("/tickets", body=ticket)
        return str(result["id"])

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Send a public reply."""
        await self.client.post(
            f"/tickets/{ticket_id}/sendReply", body={"content": body, "channel": "FORUMS"}
        )

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Add a private comment."""
        await self.client.post(
            f"/tickets/{ticket_id}/comments", body={"content": body, "isPublic": False}
        )

