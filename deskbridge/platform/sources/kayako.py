"""Kayako source implementation."""

from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple, Union

import httpx
from pydantic import Field

from deskbridge.core.exceptions import NotFoundOrUnavailableError
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
from deskbridge.platform.http_client import ConnectorClient, RetryPolicy, SessionBasicAuth
from deskbridge.platform.pagination import OffsetPagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema

POSTS_PAGE_SIZE = 100


def _label(value: Any) -> Optional[str]:
    """Status and priority come either as a label string or as ``{"label": ...}``."""
    if isinstance(value, dict):
        return value.get("label")
    return value


class KayakoRef(SourceSchema):
    """Embedded user or agent reference."""

    id: Optional[int] = None
    full_name: Optional[str] = None
    email: Optional[str] = None


class KayakoTag(SourceSchema):
    """Case tag."""

    name: str


class KayakoCaseSchema(SourceSchema):
    """Case."""

    id: int
    subject: Optional[str] = None
    status: Any = None
    priority: Any = None
    assigned_agent: Optional[KayakoRef] = None
    requester: Optional[KayakoRef] = None
    tags: List[KayakoTag] = Field(default_factory=list)
    created_at: str
    updated_at: str


class KayakoPostSchema(SourceSchema):
    """Case post (message)."""

    id: int
    contents: str = ""
    creator: Optional[KayakoRef] = None
    source: Optional[str] = None
    created_at: str


class KayakoNoteSchema(SourceSchema):
    """Internal note."""

    id: int
    body_text: Optional[str] = None
    user: Optional[KayakoRef] = None
    created_at: str


class KayakoEmail(SourceSchema):
    """User email identity."""

    email: str
    is_primary: bool = False


class KayakoPhone(SourceSchema):
    """User phone identity."""

    number: Optional[str] = None
    phone: Optional[str] = None


class KayakoUserSchema(SourceSchema):
    """User."""

    id: int
    full_name: str = ""
    emails: List[KayakoEmail] = Field(default_factory=list)
    phones: List[KayakoPhone] = Field(default_factory=list)
    organization: Optional[KayakoRef] = None


class KayakoOrgSchema(SourceSchema):
    """Organization; domains are strings or identity_domain references."""

    id: int
    name: str
    domains: List[Any] = Field(default_factory=list)


class KayakoTranslation(SourceSchema):
    """Localized string."""

    translation: str = ""


class KayakoArticleSchema(SourceSchema):
    """Help center article."""

    id: int
    titles: List[KayakoTranslation] = Field(default_factory=list)
    title: Optional[str] = None
    contents: List[KayakoTranslation] = Field(default_factory=list)
    body: Optional[str] = None
    section_id: Optional[int] = None


class KayakoTriggerSchema(SourceSchema):
    """Trigger."""

    id: int
    title: str
    is_enabled: bool = True
    predicate_collections: Any = None
    conditions: Any = None
    actions: Any = None


@source(name="Kayako", short_name="kayako", id_prefix="ky")
class KayakoSource(BaseSource):
    """Kayako (cloud) source connector.

    List endpoints use offset pagination under ``data`` with a ``total_count``.
    Case posts page with an ``after_id`` cursor instead. Authentication is
    Basic with the agent's email and password; the session id the API returns
    is sent back on later calls.
    """

    STATUS_KEYWORDS: List[Tuple[str, TicketStatus]] = [
        ("new", TicketStatus.OPEN),
        ("open", TicketStatus.OPEN),
        ("pending", TicketStatus.PENDING),
        ("hold", TicketStatus.ON_HOLD),
        ("wait", TicketStatus.ON_HOLD),
        ("solved", TicketStatus.SOLVED),
        ("resolved", TicketStatus.SOLVED),
        ("completed", TicketStatus.SOLVED),
        ("closed", TicketStatus.CLOSED),
    ]
    PRIORITY_KEYWORDS: List[Tuple[str, TicketPriority]] = [
        ("low", TicketPriority.LOW),
        ("high", TicketPriority.HIGH),
        ("urgent", TicketPriority.URGENT),
        ("critical", TicketPriority.URGENT),
    ]

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Basic auth with session reuse."""
        return ConnectorClient(
            base_url=f"https://{credentials['domain']}",
            source_name=self._name,
            auth=SessionBasicAuth(credentials["email"], credentials["password"]),
            retry_policy=RetryPolicy.reactive(default_retry_after=10),
            http_client=http_client,
            logger=self.logger,
        )

    @classmethod
    def map_status(cls, raw: Any) -> TicketStatus:
        """Map a status label by keyword."""
        label = str(_label(raw) or "").lower()
        for keyword, status in cls.STATUS_KEYWORDS:
            if keyword in label:
                return status
        return cls.DEFAULT_STATUS

    @classmethod
    def map_priority(cls, raw: Any) -> TicketPriority:
        """Map a priority label by keyword."""
        label = str(_label(raw) or "").lower()
        for keyword, priority in cls.PRIORITY_KEYWORDS:
            if keyword in label:
                return priority
        return cls.DEFAULT_PRIORITY

    @staticmethod
    def _offsets() -> OffsetPagination:
        return OffsetPagination(data_key="data", limit=100, total_key="total_count")

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate cases, each followed by its posts and internal notes."""
        async for c in self.records("/api/v1/cases.json", self._offsets(), KayakoCaseSchema):
            ticket_id = self.make_id(c.id)
            requester = c.requester or KayakoRef()
            yield Ticket(
                id=ticket_id,
                external_id=str(c.id),
                source=self._short_name,
                subject=c.subject or f"Case #{c.id}",
                status=self.map_status(c.status),
                priority=self.map_priority(c.priority),
                assignee=c.assigned_agent.full_name if c.assigned_agent else None,
                requester=requester.email or str(requester.id or "unknown"),
                tags=[t.name for t in c.tags],
                created_at=c.created_at,
                updated_at=c.updated_at,
            )
            async for message in self.hydrate(ticket_id, self._posts(c.id, ticket_id)):
                yield message
            async for message in self.hydrate(ticket_id, self._notes(c.id, ticket_id)):
                yield message

    async def _posts(self, case_id: int, ticket_id: str) -> AsyncGenerator[Message, None]:
        """Page through posts by ``after_id`` until a short page."""
        params: Dict[str, Any] = {"limit": POSTS_PAGE_SIZE}
        while True:
            data = await self.client.get(f"/api/v1/cases/{case_id}/posts.json", params=params)
            items = (data or {}).get("data") or []
            for p in self.decode_all(items, KayakoPostSchema):
                creator = p.creator or KayakoRef()
                yield Message(
                    id=self.make_id("msg", p.id),
                    ticket_id=ticket_id,
                    author=creator.full_name or str(creator.id or "unknown"),
                    body=p.contents,
                    # Posts created by agents or the API are internal
                    type=MessageType.NOTE if p.source in ("AGENT", "API") else MessageType.REPLY,
                    created_at=p.created_at,
                )
            last_id = items[-1].get("id") if items and isinstance(items[-1], dict) else None
            if len(items) < POSTS_PAGE_SIZE or last_id is None:
                return
            params = {"limit": POSTS_PAGE_SIZE, "after_id": last_id}

    async def _notes(self, case_id: int, ticket_id: str) -> AsyncGenerator[Message, None]:
        """Internal notes; older Kayako versions have no notes endpoint."""
        try:
            data = await self.client.get(
                f"/api/v1/cases/{case_id}/notes.json", params={"limit": 100}
            )
        except NotFoundOrUnavailableError:
            return
        for n in self.decode_all((data or {}).get("data"), KayakoNoteSchema):
            user = n.user or KayakoRef()
            yield Message(
                id=self.make_id("note", n.id),
                ticket_id=ticket_id,
                author=user.full_name or str(user.id or "system"),
                body=n.body_text or "",
                type=MessageType.NOTE,
                created_at=n.created_at,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate users."""
        async for u in self.records("/api/v1/users.json", self._offsets(), KayakoUserSchema):
            primary = next((e for e in u.emails if e.is_primary), None)
            email = primary or (u.emails[0] if u.emails else None)
            phone = u.phones[0] if u.phones else None
            org = u.organization
            yield Customer(
                id=self.make_id("user", u.id),
                external_id=str(u.id),
                source=self._short_name,
                name=u.full_name or (email.email if email else f"User {u.id}"),
                email=email.email if email else "",
                phone=(phone.number or phone.phone) if phone else None,
                org_id=self.make_id("org", org.id) if org and org.id else None,
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate organizations.

        Domains that come back as ``identity_domain`` references keep only the
        reference id.
        """
        async for o in self.records(
            "/api/v1/organizations.json", self._offsets(), KayakoOrgSchema
        ):
            yield Organization(
                id=self.make_id("org", o.id),
                external_id=str(o.id),
                source=self._short_name,
                name=o.name,
                domains=[
                    d if isinstance(d, str) else str(d.get("id")) for d in o.domains if d
                ],
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Generate help center articles (first translation of each field)."""
        async for a in self.records("/api/v1/articles.json", self._offsets(), KayakoArticleSchema):
            title = (a.titles[0].translation if a.titles else None) or a.title
            yield KBArticle(
                id=self.make_id("kb", a.id),
                external_id=str(a.id),
                source=self._short_name,
                title=title or f"Article {a.id}",
                body=(a.contents[0].translation if a.contents else None) or a.body or "",
                category_path=[str(a.section_id)] if a.section_id else [],
            )

    async def generate_rules(self) -> AsyncGenerator[Rule, None]:
        """Generate triggers."""
        data = await self.client.get("/api/v1/triggers.json", params={"limit": 200})
        for t in self.decode_all((data or {}).get("data"), KayakoTriggerSchema):
            yield Rule(
                id=self.make_id("trigger", t.id),
                external_id=str(t.id),
                source=self._short_name,
                type="trigger",
                title=t.title,
                conditions=t.predicate_collections or t.conditions,
                actions=t.actions,
                active=t.is_enabled,
            )

    async def _verify(self) -> Dict[str, Any]:
        users = await self.client.get("/api/v1/users.json", params={"limit": 1})
        cases = await self.client.get("/api/v1/cases.json", params={"limit": 1})
        first = ((users or {}).get("data") or [{}])[0]
        return {
            "userName": first.get("full_name") or "Unknown",
            "caseCount": (cases or {}).get("total_count") or 0,
        }

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a case; options: requester_id, priority, tags."""
        case: Dict[str, Any] = {"subject": subject, "contents": body}
        if options.get("requester_id"):
            case["requester"] = {"id": options["requester_id"]}
        if options.get("priority"):
            case["priority"] = options["priority"]
        if options.get("tags"):
            case["tags"] = [{"name": name} for name in options["tags"]]
        result = await self.client.post("/api/v1/cases.json", body=case)
        return str(result["data"]["id"])

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Patch status, priority, assigned_agent (an agent id) or tags."""
        body: Dict[str, Any] = {}
        for key in ("status", "priority"):
            if updates.get(key):
                body[key] = updates[key]
        if updates.get("assigned_agent") is not None:
            body["assigned_agent"] = {"id": updates["assigned_agent"]}
        if updates.get("tags"):
            body["tags"] = [{"name": name} for name in updates["tags"]]
        await self.client.request(f"/api/v1/cases/{ticket_id}.json", method="PATCH", body=body)

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a public reply."""
        await self.client.post(f"/api/v1/cases/{ticket_id}/reply.json", body={"contents": body})

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post an internal note."""
        await self.client.post(f"/api/v1/cases/{ticket_id}/notes.json", body={"body_text": body})
