"""Freshdesk source implementation."""

from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import httpx
from pydantic import Field

from deskbridge.core.exceptions import ConnectorError
from deskbridge.platform.decorators import source
from deskbridge.platform.entities import (
    Customer,
    KBArticle,
    Message,
    MessageType,
    Organization,
    Rule,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from deskbridge.platform.http_client import BasicAuth, ConnectorClient, RetryPolicy
from deskbridge.platform.pagination import PagePagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema


class FreshdeskTicketSchema(SourceSchema):
    """Ticket."""

    id: int
    subject: Optional[str] = None
    status: Optional[int] = None
    priority: Optional[int] = None
    responder_id: Optional[int] = None
    requester_id: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    custom_fields: Optional[Dict[str, Any]] = None


class FreshdeskConversationSchema(SourceSchema):
    """Reply or note on a ticket."""

    id: int
    user_id: Optional[int] = None
    body: Optional[str] = None
    body_text: Optional[str] = None
    private: bool = False
    created_at: str


class FreshdeskContactSchema(SourceSchema):
    """Contact."""

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None
    company_id: Optional[int] = None


class FreshdeskAgentContact(SourceSchema):
    """Contact block of an agent."""

    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None


class FreshdeskAgentSchema(SourceSchema):
    """Agent."""

    id: int
    contact: FreshdeskAgentContact = Field(default_factory=FreshdeskAgentContact)


class FreshdeskCompanySchema(SourceSchema):
    """Company."""

    id: int
    name: str
    domains: List[str] = Field(default_factory=list)


class FreshdeskNamedSchema(SourceSchema):
    """Solution category or folder."""

    id: int
    name: str = ""


class FreshdeskArticleSchema(SourceSchema):
    """Solution article."""

    id: int
    title: str
    description: Optional[str] = None


class FreshdeskSLAPolicySchema(SourceSchema):
    """SLA policy."""

    id: int
    name: str
    applicable_to: Any = None
    sla_target: Any = None


@source(name="Freshdesk", short_name="freshdesk", id_prefix="fd")
class FreshdeskSource(BaseSource):
    """Freshdesk source connector.

    Freshdesk list endpoints return bare JSON arrays and use page-number
    pagination with at most 100 records per page.
    """

    STATUS_MAP = {
        "2": TicketStatus.OPEN,
        "3": TicketStatus.PENDING,
        "4": TicketStatus.SOLVED,
        "5": TicketStatus.CLOSED,
    }
    PRIORITY_MAP = {
        "1": TicketPriority.LOW,
        "2": TicketPriority.NORMAL,
        "3": TicketPriority.HIGH,
        "4": TicketPriority.URGENT,
    }

    def __init__(self):
        """Initialize per-run state."""
        super().__init__()
        self.subdomain = ""

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Basic auth with the API key as username and ``X`` as password."""
        self.subdomain = credentials["subdomain"]
        return ConnectorClient(
            base_url=f"https://{self.subdomain}.freshdesk.com",
            source_name=self._name,
            auth=BasicAuth(credentials["api_key"], "X"),
            retry_policy=RetryPolicy.reactive(default_retry_after=30),
            http_client=http_client,
            logger=self.logger,
        )

    @staticmethod
    def _pages() -> PagePagination:
        return PagePagination(page_size=100)

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate tickets, each followed by its conversations."""
        async for t in self.records("/api/v2/tickets", self._pages(), FreshdeskTicketSchema):
            ticket_id = self.make_id(t.id)
            yield Ticket(
                id=ticket_id,
                external_id=str(t.id),
                source=self._short_name,
                subject=t.subject or f"Ticket #{t.id}",
                status=self.map_status(t.status),
                priority=self.map_priority(t.priority),
                assignee=str(t.responder_id) if t.responder_id else None,
                requester=str(t.requester_id) if t.requester_id else "unknown",
                tags=t.tags,
                created_at=t.created_at,
                updated_at=t.updated_at,
                custom_fields=t.custom_fields,
            )
            async for message in self.hydrate(ticket_id, self._conversations(t.id, ticket_id)):
                yield message

    async def _conversations(
        self, external_id: int, ticket_id: str
    ) -> AsyncGenerator[Message, None]:
        async for c in self.records(
            f"/api/v2/tickets/{external_id}/conversations",
            self._pages(),
            FreshdeskConversationSchema,
        ):
            yield Message(
                id=self.make_id("msg", c.id),
                ticket_id=ticket_id,
                author=str(c.user_id) if c.user_id else "unknown",
                body=c.body_text or c.body or "",
                body_html=c.body,
                type=MessageType.NOTE if c.private else MessageType.REPLY,
                created_at=c.created_at,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate contacts."""
        async for c in self.records("/api/v2/contacts", self._pages(), FreshdeskContactSchema):
            yield Customer(
                id=self.make_id("user", c.id),
                external_id=str(c.id),
                source=self._short_name,
                name=c.name or c.email or f"Contact {c.id}",
                email=c.email or "",
                phone=c.phone or c.mobile,
                org_id=self.make_id("org", c.company_id) if c.company_id else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate agents (first page of 100)."""
        agents = await self.client.get("/api/v2/agents", params={"per_page": 100})
        for a in self.decode_all(agents or [], FreshdeskAgentSchema):
            yield Customer(
                id=self.make_id("agent", a.id),
                external_id=f"agent-{a.id}",
                source=self._short_name,
                name=a.contact.name,
                email=a.contact.email or "",
                phone=a.contact.phone,
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate companies."""
        async for o in self.records("/api/v2/companies", self._pages(), FreshdeskCompanySchema):
            yield Organization(
                id=self.make_id("org", o.id),
                external_id=str(o.id),
                source=self._short_name,
                name=o.name,
                domains=o.domains,
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Walk solution categories, then folders, then articles.

        A failing folder or category is skipped so the rest of the knowledge
        base is still exported.
        """
        categories = await self.client.get("/api/v2/solutions/categories")
        for cat in self.decode_all(categories or [], FreshdeskNamedSchema):
            try:
                folders = await self.client.get(f"/api/v2/solutions/categories/{cat.id}/folders")
            except ConnectorError as e:
                if self.is_fatal(e):
                    raise
                self.logger.warning(f"Skipping KB category {cat.id}: {e}")
                continue

            for folder in self.decode_all(folders or [], FreshdeskNamedSchema):
                try:
                    async for a in self.records(
                        f"/api/v2/solutions/folders/{folder.id}/articles",
                        self._pages(),
                        FreshdeskArticleSchema,
                    ):
                        yield KBArticle(
                            id=self.make_id("kb", a.id),
                            external_id=str(a.id),
                            source=self._short_name,
                            title=a.title,
                            body=a.description or "",
                            category_path=[cat.name, folder.name],
                        )
                except ConnectorError as e:
                    if self.is_fatal(e):
                        raise
                    self.logger.warning(f"Skipping KB folder {folder.id}: {e}")

    async def generate_rules(self) -> AsyncGenerator[Rule, None]:
        """Generate SLA policies."""
        policies = await self.client.get("/api/v2/sla_policies")
        for s in self.decode_all(policies or [], FreshdeskSLAPolicySchema):
            yield Rule(
                id=self.make_id("sla", s.id),
                external_id=str(s.id),
                source=self._short_name,
                type="sla",
                title=s.name,
                conditions=s.applicable_to,
                actions=s.sla_target,
                active=True,
            )

    async def _verify(self) -> Dict[str, Any]:
        me = await self.client.get("/api/v2/agents/me")
        tickets = await self.client.get("/api/v2/tickets", params={"per_page": 1})
        return {
            "userName": ((me or {}).get("contact") or {}).get("name"),
            "ticketCount": len(tickets or []),
        }

    # ------------------------------------------------------------------
    # Write operations (reply and note are separate endpoints)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a ticket; options: email, priority, status, tags."""
        ticket: Dict[str, Any] = {
            "subject": subject,
            "description": body,
            "email": options.get("email") or f"devops@{self.subdomain}.freshdesk.com",
            "status": options.get("status", 2),
            "priority": options.get("priority", 1),
        }
        if options.get("tags"):
            ticket["tags"] = options["tags"]
        result = await self.client.post("/api/v2/tickets", body=ticket)
        return str(result["id"])

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Update status, priority, responder_id or tags in one PUT."""
        await self.client.put(f"/api/v2/tickets/{ticket_id}", body=updates)

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a public reply."""
        await self.client.post(f"/api/v2/tickets/{ticket_id}/reply", body={"body": body})

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a private note."""
        await self.client.post(
            f"/api/v2/tickets/{ticket_id}/notes", body={"body": body, "private": True}
        )

    async def delete_ticket(self, ticket_id: str) -> None:
        """Delete a ticket."""
        await self.client.delete(f"/api/v2/tickets/{ticket_id}")
