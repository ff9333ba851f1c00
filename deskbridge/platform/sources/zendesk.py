"""Zendesk source implementation."""

from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Type, Union

import httpx
from pydantic import Field

from deskbridge.core.exceptions import ConnectorError
from deskbridge.platform.cursors import ZendeskCursor
from deskbridge.platform.decorators import source
from deskbridge.platform.entities import (
    EXTRA_CATEGORIES,
    AuditEvent,
    Brand,
    CanonicalRecord,
    CSATRating,
    Customer,
    CustomField,
    Group,
    KBArticle,
    Message,
    MessageType,
    Organization,
    Rule,
    Ticket,
    TicketForm,
    TicketPriority,
    TicketStatus,
    TimeEntry,
    View,
)
from deskbridge.platform.http_client import BasicAuth, ConnectorClient, RetryPolicy
from deskbridge.platform.pagination import CursorPagination
from deskbridge.platform.sources._base import BaseSource, SchemaT, SourceSchema

# ---------------------------------------------------------------------------
# API schemas
# ---------------------------------------------------------------------------


class ZendeskTicketSchema(SourceSchema):
    """Ticket from the incremental tickets export."""

    id: int
    subject: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[int] = None
    requester_id: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    custom_fields: Optional[List[Dict[str, Any]]] = None


class ZendeskCommentSchema(SourceSchema):
    """Ticket comment."""

    id: int
    author_id: Optional[int] = None
    body: str = ""
    html_body: Optional[str] = None
    public: bool = True
    created_at: str


class ZendeskUserSchema(SourceSchema):
    """User from the incremental users export."""

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    organization_id: Optional[int] = None


class ZendeskOrganizationSchema(SourceSchema):
    """Organization."""

    id: int
    name: str
    domain_names: List[str] = Field(default_factory=list)


class ZendeskArticleSchema(SourceSchema):
    """Help Center article."""

    id: int
    title: str
    body: Optional[str] = None
    section_id: Optional[int] = None


class ZendeskRuleSchema(SourceSchema):
    """Macro, trigger, automation or SLA policy."""

    id: int
    title: str
    active: bool = True
    restriction: Any = None
    conditions: Any = None
    actions: Any = None
    filter: Any = None
    policy_metrics: Any = None


class ZendeskGroupSchema(SourceSchema):
    id: int
    name: str


class ZendeskTicketFieldSchema(SourceSchema):
    """Ticket field definition; system fields are included."""

    id: int
    title: str
    type: str
    required: bool = False
    custom_field_options: Optional[List[Dict[str, Any]]] = None


class ZendeskViewSchema(SourceSchema):
    id: int
    title: str
    active: bool = True
    conditions: Any = None
    execution: Any = None


class ZendeskTicketFormSchema(SourceSchema):
    id: int
    name: str
    active: bool = True
    position: Optional[int] = None
    ticket_field_ids: List[int] = Field(default_factory=list)


class ZendeskBrandSchema(SourceSchema):
    id: int
    name: str


class ZendeskAuditSchema(SourceSchema):
    """Ticket audit; ``events`` holds the individual changes."""

    id: int
    ticket_id: int
    author_id: Optional[int] = None
    created_at: str
    events: List[Dict[str, Any]] = Field(default_factory=list)


class ZendeskSatisfactionSchema(SourceSchema):
    id: int
    ticket_id: Optional[int] = None
    score: Optional[str] = None
    comment: Optional[str] = None
    created_at: str


class ZendeskTimeEntrySchema(SourceSchema):
    """Time tracking entry; ``time_spent`` is in seconds."""

    id: int
    ticket_id: int
    user_id: Optional[int] = None
    time_spent: int = 0
    created_at: str


@source(name="Zendesk", short_name="zendesk", id_prefix="zd")
class ZendeskSource(BaseSource):
    """Zendesk source connector.

    Tickets and users come from the cursor-based incremental export endpoints
    so a later run can resume from the last ``after_cursor``. Comments,
    organizations and Help Center articles use ``next_page`` link pagination.
    """

    STATUS_MAP = {
        "new": TicketStatus.OPEN,
        "open": TicketStatus.OPEN,
        "pending": TicketStatus.PENDING,
        "hold": TicketStatus.ON_HOLD,
        "solved": TicketStatus.SOLVED,
        "closed": TicketStatus.CLOSED,
    }
    PRIORITY_MAP = {
        "low": TicketPriority.LOW,
        "normal": TicketPriority.NORMAL,
        "high": TicketPriority.HIGH,
        "urgent": TicketPriority.URGENT,
    }

    cursor_class = ZendeskCursor
    EXTRA_CATEGORIES = EXTRA_CATEGORIES

    TICKETS_PATH = "/api/v2/incremental/tickets/cursor.json"
    USERS_PATH = "/api/v2/incremental/users/cursor.json"

    # (endpoint, response key, rule type, id prefix)
    RULE_ENDPOINTS = [
        ("/api/v2/macros.json", "macros", "macro", "macro"),
        ("/api/v2/triggers.json", "triggers", "trigger", "trigger"),
        ("/api/v2/automations.json", "automations", "automation", "auto"),
        ("/api/v2/slas/policies.json", "sla_policies", "sla", "sla"),
    ]

    # (endpoint, response key, schema, mapper method); all use links.next paging
    EXTRA_ENDPOINTS = [
        ("/api/v2/groups.json", "groups", ZendeskGroupSchema, "_group"),
        ("/api/v2/ticket_fields.json", "ticket_fields", ZendeskTicketFieldSchema, "_field"),
        ("/api/v2/views.json", "views", ZendeskViewSchema, "_view"),
        ("/api/v2/ticket_forms.json", "ticket_forms", ZendeskTicketFormSchema, "_form"),
        ("/api/v2/brands.json", "brands", ZendeskBrandSchema, "_brand"),
        ("/api/v2/ticket_audits.json", "audits", ZendeskAuditSchema, "_audit"),
        (
            "/api/v2/satisfaction_ratings.json",
            "satisfaction_ratings",
            ZendeskSatisfactionSchema,
            "_rating",
        ),
        ("/api/v2/time_entries.json", "time_entries", ZendeskTimeEntrySchema, "_time_entry"),
    ]

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Basic auth with an API token: ``<email>/token:<token>``."""
        return ConnectorClient(
            base_url=f"https://{credentials['subdomain']}.zendesk.com",
            source_name=self._name,
            auth=BasicAuth(f"{credentials['email']}/token", credentials["token"]),
            retry_policy=RetryPolicy.reactive(default_retry_after=30),
            http_client=http_client,
            logger=self.logger,
        )

    def _incremental(self, cursor: Optional[str]) -> Dict[str, Any]:
        if cursor:
            return {"cursor": cursor}
        return {"start_time": 0}

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate tickets from the incremental export, each followed by its comments."""
        strategy = CursorPagination(
            data_key="tickets",
            next_key="after_cursor",
            cursor_param="cursor",
            end_flag_key="end_of_stream",
        )
        params = self._incremental(self.cursor.ticket_cursor)
        async for page, tickets in self.decoded_pages(
            self.TICKETS_PATH, strategy, ZendeskTicketSchema, params=params
        ):
            for t in tickets:
                ticket_id = self.make_id(t.id)
                yield Ticket(
                    id=ticket_id,
                    external_id=str(t.id),
                    source=self._short_name,
                    subject=t.subject or f"Ticket #{t.id}",
                    status=self.map_status(t.status),
                    priority=self.map_priority(t.priority),
                    assignee=str(t.assignee_id) if t.assignee_id else None,
                    requester=str(t.requester_id) if t.requester_id else "unknown",
                    tags=t.tags,
                    created_at=t.created_at,
                    updated_at=t.updated_at,
                    custom_fields=(
                        {str(f.get("id")): f.get("value") for f in t.custom_fields}
                        if t.custom_fields
                        else None
                    ),
                )
                async for message in self.hydrate(ticket_id, self._comments(t.id, ticket_id)):
                    yield message
            if page.cursor:
                self.cursor.ticket_cursor = page.cursor

    async def _comments(self, external_id: int, ticket_id: str) -> AsyncGenerator[Message, None]:
        async for c in self.records(
            f"/api/v2/tickets/{external_id}/comments.json",
            CursorPagination(data_key="comments", next_key="next_page"),
            ZendeskCommentSchema,
        ):
            yield Message(
                id=self.make_id("msg", c.id),
                ticket_id=ticket_id,
                author=str(c.author_id) if c.author_id else "unknown",
                body=c.body,
                body_html=c.html_body,
                type=MessageType.REPLY if c.public else MessageType.NOTE,
                created_at=c.created_at,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate users from the incremental users export."""
        strategy = CursorPagination(
            data_key="users",
            next_key="after_cursor",
            cursor_param="cursor",
            end_flag_key="end_of_stream",
        )
        params = self._incremental(self.cursor.user_cursor)
        async for page, users in self.decoded_pages(
            self.USERS_PATH, strategy, ZendeskUserSchema, params=params
        ):
            for u in users:
                yield Customer(
                    id=self.make_id("user", u.id),
                    external_id=str(u.id),
                    source=self._short_name,
                    name=u.name or u.email or f"User {u.id}",
                    email=u.email or "",
                    phone=u.phone,
                    org_id=self.make_id("org", u.organization_id) if u.organization_id else None,
                )
            if page.cursor:
                self.cursor.user_cursor = page.cursor

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate organizations (``links.next`` pagination)."""
        async for o in self.records(
            "/api/v2/organizations.json",
            CursorPagination(data_key="organizations", next_key="links.next"),
            ZendeskOrganizationSchema,
            params={"page[size]": 100},
        ):
            yield Organization(
                id=self.make_id("org", o.id),
                external_id=str(o.id),
                source=self._short_name,
                name=o.name,
                domains=o.domain_names,
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Generate Help Center articles."""
        async for a in self.records(
            "/api/v2/help_center/articles.json",
            CursorPagination(data_key="articles", next_key="next_page"),
            ZendeskArticleSchema,
            params={"per_page": 100},
        ):
            yield KBArticle(
                id=self.make_id("kb", a.id),
                external_id=str(a.id),
                source=self._short_name,
                title=a.title,
                body=a.body or "",
                category_path=[str(a.section_id)] if a.section_id else [],
            )

    async def generate_rules(self) -> AsyncGenerator[Rule, None]:
        """Generate macros, triggers, automations and SLA policies.

        Each endpoint may need admin access; one failing endpoint is skipped
        without hiding the others.
        """
        for path, key, rule_type, prefix in self.RULE_ENDPOINTS:
            try:
                data = await self.client.get(path)
            except ConnectorError as e:
                if self.is_fatal(e):
                    raise
                self.logger.warning(f"Skipping {rule_type} rules: {e}")
                continue
            for r in self.decode_all(data.get(key) or [], ZendeskRuleSchema):
                if rule_type == "sla":
                    conditions, actions = r.filter, r.policy_metrics
                elif rule_type == "macro":
                    conditions, actions = r.restriction, r.actions
                else:
                    conditions, actions = r.conditions, r.actions
                yield Rule(
                    id=self.make_id(prefix, r.id),
                    external_id=str(r.id),
                    source=self._short_name,
                    type=rule_type,
                    title=r.title,
                    conditions=conditions,
                    actions=actions,
                    active=True if rule_type == "sla" else r.active,
                )

    async def generate_extras(self) -> AsyncGenerator[CanonicalRecord, None]:
        """Generate groups, fields, views, forms, brands, audits, ratings and time entries.

        Like rules, each endpoint may be unavailable on the plan or to the
        token; a failing endpoint is skipped and the rest still export.
        """
        for path, key, schema, mapper in self.EXTRA_ENDPOINTS:
            convert: Callable[[Any], CanonicalRecord] = getattr(self, mapper)
            try:
                async for item in self._linked(path, key, schema):
                    yield convert(item)
            except ConnectorError as e:
                if self.is_fatal(e):
                    raise
                self.logger.warning(f"Skipping {key}: {e}")

    def _linked(
        self, path: str, key: str, schema: Type[SchemaT]
    ) -> AsyncGenerator[SchemaT, None]:
        return self.records(
            path,
            CursorPagination(data_key=key, next_key="links.next"),
            schema,
            params={"page[size]": 100},
        )

    def _group(self, g: ZendeskGroupSchema) -> Group:
        return Group(
            id=self.make_id("group", g.id),
            external_id=str(g.id),
            source=self._short_name,
            name=g.name,
        )

    def _field(self, f: ZendeskTicketFieldSchema) -> CustomField:
        options = None
        if f.custom_field_options:
            options = [
                {"value": o.get("value"), "label": o.get("name")} for o in f.custom_field_options
            ]
        return CustomField(
            id=self.make_id("field", f.id),
            external_id=str(f.id),
            source=self._short_name,
            object_type="ticket",
            name=f.title,
            field_type=f.type,
            required=f.required,
            options=options,
        )

    def _view(self, v: ZendeskViewSchema) -> View:
        return View(
            id=self.make_id("view", v.id),
            external_id=str(v.id),
            source=self._short_name,
            name=v.title,
            query=v.conditions if v.conditions is not None else v.execution,
            active=v.active,
        )

    def _form(self, f: ZendeskTicketFormSchema) -> TicketForm:
        return TicketForm(
            id=self.make_id("form", f.id),
            external_id=str(f.id),
            source=self._short_name,
            name=f.name,
            active=f.active,
            position=f.position,
            field_ids=f.ticket_field_ids,
            raw=f.model_dump(),
        )

    def _brand(self, b: ZendeskBrandSchema) -> Brand:
        return Brand(
            id=self.make_id("brand", b.id),
            external_id=str(b.id),
            source=self._short_name,
            name=b.name,
            raw=b.model_dump(),
        )

    def _audit(self, a: ZendeskAuditSchema) -> AuditEvent:
        return AuditEvent(
            id=self.make_id("audit", a.id),
            external_id=str(a.id),
            source=self._short_name,
            ticket_id=self.make_id(a.ticket_id),
            author_id=str(a.author_id) if a.author_id else None,
            event_type=(a.events[0].get("type") if a.events else None) or "audit",
            created_at=a.created_at,
            raw=a.model_dump(),
        )

    def _rating(self, r: ZendeskSatisfactionSchema) -> CSATRating:
        return CSATRating(
            id=self.make_id("csat", r.id),
            external_id=str(r.id),
            source=self._short_name,
            ticket_id=self.make_id(r.ticket_id) if r.ticket_id else None,
            rating={"good": 1, "bad": -1}.get(r.score or "", 0),
            comment=r.comment,
            created_at=r.created_at,
        )

    def _time_entry(self, t: ZendeskTimeEntrySchema) -> TimeEntry:
        # Half-up rounding of seconds to minutes
        return TimeEntry(
            id=self.make_id("time", t.id),
            external_id=str(t.id),
            source=self._short_name,
            ticket_id=self.make_id(t.ticket_id),
            agent_id=str(t.user_id) if t.user_id else None,
            minutes=(t.time_spent + 30) // 60,
            created_at=t.created_at,
        )

    async def _verify(self) -> Dict[str, Any]:
        me = await self.client.get("/api/v2/users/me.json")
        count = await self.client.get("/api/v2/tickets/count.json")
        return {
            "userName": (me.get("user") or {}).get("name"),
            "ticketCount": (count.get("count") or {}).get("value"),
        }

    # ------------------------------------------------------------------
    # Write operations (one combined PUT on the ticket resource)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a ticket; options: requester_id, priority, tags, assignee_id."""
        ticket: Dict[str, Any] = {"subject": subject, "comment": {"body": body}}
        for key in ("requester_id", "priority", "tags", "assignee_id"):
            if options.get(key):
                ticket[key] = options[key]
        result = await self.client.post("/api/v2/tickets.json", body={"ticket": ticket})
        return str(result["ticket"]["id"])

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Update status, priority, assignee_id, tags, subject or custom_fields."""
        await self.client.put(f"/api/v2/tickets/{ticket_id}.json", body={"ticket": updates})

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Add a public comment."""
        await self._comment(ticket_id, body, public=True)

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Add a private comment."""
        await self._comment(ticket_id, body, public=False)

    async def _comment(self, ticket_id: str, body: str, public: bool) -> None:
        await self.client.put(
            f"/api/v2/tickets/{ticket_id}.json",
            body={"ticket": {"comment": {"body": body, "public": public}}},
        )

    async def delete_ticket(self, ticket_id: str) -> None:
        """Delete a ticket."""
        await self.client.delete(f"/api/v2/tickets/{ticket_id}.json")
