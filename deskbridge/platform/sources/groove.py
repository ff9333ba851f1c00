"""Groove source implementation."""

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
    TicketStatus,
)
from deskbridge.platform.http_client import BearerTokenAuth, ConnectorClient, RetryPolicy
from deskbridge.platform.pagination import PagePagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema


def href_tail(href: Optional[str]) -> Optional[str]:
    """Last path segment of a Groove resource link (an id or an email)."""
    if not href:
        return None
    return href.rstrip("/").rsplit("/", 1)[-1] or None


class GrooveLink(SourceSchema):
    """HAL-style link."""

    href: Optional[str] = None


class GrooveTicketLinks(SourceSchema):
    """Links of a ticket."""

    assignee: Optional[GrooveLink] = None
    customer: Optional[GrooveLink] = None


class GrooveTicketSchema(SourceSchema):
    """Ticket, identified by its number."""

    number: int
    title: Optional[str] = None
    state: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: Optional[str] = None
    links: GrooveTicketLinks = Field(default_factory=GrooveTicketLinks)


class GrooveMessageLinks(SourceSchema):
    """Links of a message."""

    author: Optional[GrooveLink] = None


class GrooveMessageSchema(SourceSchema):
    """Message; its id is the tail of ``href``."""

    href: str
    created_at: str
    body: Optional[str] = None
    plain_text_body: Optional[str] = None
    note: bool = False
    links: GrooveMessageLinks = Field(default_factory=GrooveMessageLinks)


class GrooveCustomerSchema(SourceSchema):
    """Customer, identified by email."""

    email: str
    name: Optional[str] = None
    company_name: Optional[str] = None
    phone_number: Optional[str] = None


class GrooveAgentSchema(SourceSchema):
    """Agent, identified by email."""

    email: str
    first_name: str = ""
    last_name: str = ""


class GrooveKnowledgeBaseSchema(SourceSchema):
    """Knowledge base."""

    id: str
    title: str = ""


class GrooveArticleSchema(SourceSchema):
    """Knowledge base article."""

    id: str
    title: str = ""
    body: Optional[str] = None
    category_id: Optional[str] = None


@source(name="Groove", short_name="groove", id_prefix="gv")
class GrooveSource(BaseSource):
    """Groove source connector.

    Groove allows roughly 30 requests per minute, so the client waits before
    every request and treats 503 as a rate-limit response as well. Tickets are
    keyed by number; customers and agents by email.
    """

    STATUS_MAP = {
        "unread": TicketStatus.OPEN,
        "opened": TicketStatus.OPEN,
        "pending": TicketStatus.PENDING,
        "closed": TicketStatus.CLOSED,
        "spam": TicketStatus.CLOSED,
    }

    def __init__(self):
        """Initialize per-run state."""
        super().__init__()
        self.company_names: List[str] = []

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Bearer API token with a fixed pre-request delay."""
        return ConnectorClient(
            base_url="https://api.groovehq.com/v1",
            source_name=self._name,
            auth=BearerTokenAuth(credentials["api_token"]),
            retry_policy=RetryPolicy.fixed_delay(),
            http_client=http_client,
            logger=self.logger,
        )

    @staticmethod
    def _pages(data_key: str) -> PagePagination:
        return PagePagination(
            data_key=data_key, page_size=50, next_page_key="meta.pagination.next_page"
        )

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate tickets, each followed by its messages."""
        async for t in self.records("/tickets", self._pages("tickets"), GrooveTicketSchema):
            ticket_id = self.make_id(t.number)
            links = t.links
            requester = href_tail(links.customer.href) if links.customer else None
            yield Ticket(
                id=ticket_id,
                external_id=str(t.number),
                source=self._short_name,
                subject=t.title or f"Ticket #{t.number}",
                status=self.map_status(t.state),
                priority=self.DEFAULT_PRIORITY,
                assignee=href_tail(links.assignee.href) if links.assignee else None,
                requester=requester or "unknown",
                tags=t.tags,
                created_at=t.created_at,
                updated_at=t.updated_at or t.created_at,
            )
            async for message in self.hydrate(ticket_id, self._messages(t.number, ticket_id)):
                yield message

    async def _messages(self, number: int, ticket_id: str) -> AsyncGenerator[Message, None]:
        async for m in self.records(
            f"/tickets/{number}/messages", self._pages("messages"), GrooveMessageSchema
        ):
            author = m.links.author
            yield Message(
                id=self.make_id("msg", href_tail(m.href)),
                ticket_id=ticket_id,
                author=(href_tail(author.href) if author else None) or "unknown",
                body=m.plain_text_body or m.body or "",
                body_html=m.body,
                type=MessageType.NOTE if m.note else MessageType.REPLY,
                created_at=m.created_at,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate customers and remember their company names."""
        self.company_names = []
        async for c in self.records("/customers", self._pages("customers"), GrooveCustomerSchema):
            if c.company_name and c.company_name not in self.company_names:
                self.company_names.append(c.company_name)
            yield Customer(
                id=self.make_id("user", c.email),
                external_id=c.email,
                source=self._short_name,
                name=c.name or c.email,
                email=c.email,
                phone=c.phone_number,
                org_id=self.make_id("org", c.company_name) if c.company_name else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate agents."""
        data = await self.client.get("/agents")
        for a in self.decode_all(data.get("agents") or [], GrooveAgentSchema):
            yield Customer(
                id=self.make_id("agent", a.email),
                external_id=f"agent-{a.email}",
                source=self._short_name,
                name=f"{a.first_name} {a.last_name}".strip(),
                email=a.email,
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate organizations from the company names collected with customers."""
        for name in self.company_names:
            yield Organization(
                id=self.make_id("org", name),
                external_id=name,
                source=self._short_name,
                name=name,
                domains=[],
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Generate articles of every knowledge base (an empty search returns all)."""
        data = await self.client.get("/kb")
        for kb in self.decode_all(data.get("knowledge_bases"), GrooveKnowledgeBaseSchema):
            async for a in self.records(
                f"/kb/{kb.id}/articles/search", self._pages("articles"), GrooveArticleSchema
            ):
                yield KBArticle(
                    id=self.make_id("kb", a.id),
                    external_id=a.id,
                    source=self._short_name,
                    title=a.title,
                    body=a.body or "",
                    category_path=[part for part in (kb.title, a.category_id) if part],
                )

    async def _verify(self) -> Dict[str, Any]:
        data = await self.client.get("/agents")
        return {"agentCount": len(data.get("agents") or [])}

    # ------------------------------------------------------------------
    # Write operations (one PUT per ticket sub-resource; note is a flag)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a ticket; requires ``to``. Options: assignee, tags, from.

        Returns:
            The new ticket number
        """
        to = options.get("to")
        if not to:
            raise ValueError("Groove tickets need a 'to' address")
        ticket: Dict[str, Any] = {"to": to, "body": body}
        if subject:
            ticket["subject"] = subject
        for key in ("assignee", "tags", "from"):
            if options.get(key):
                ticket[key] = options[key]
        result = await self.client.post("/tickets", body=ticket)
        return str(result["ticket"]["number"])

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Update state, assignee and tags with separate calls."""
        if updates.get("state"):
            await self.client.put(f"/tickets/{ticket_id}/state", body={"state": updates["state"]})
        if updates.get("assignee"):
            await self.client.put(
                f"/tickets/{ticket_id}/assignee", body={"assignee": updates["assignee"]}
            )
        if updates.get("tags") is not None:
            await self.client.put(f"/tickets/{ticket_id}/tags", body=updates["tags"])

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a reply."""
        await self._post_message(ticket_id, body, note=False)

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post an internal note."""
        await self._post_message(ticket_id, body, note=True)

    async def _post_message(self, ticket_id: str, body: str, note: bool) -> None:
        await self.client.post(f"/tickets/{ticket_id}/messages", body={"body": body, "note": note})
