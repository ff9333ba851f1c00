"""Help Scout source implementation."""

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
from deskbridge.platform.http_client import ConnectorClient, OAuthClientCredentials, RetryPolicy
from deskbridge.platform.pagination import PagePagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema

TOKEN_URL = "https://api.helpscout.net/v2/oauth2/token"


class HelpScoutPerson(SourceSchema):
    """Customer, assignee or thread author reference."""

    id: Optional[str] = None
    email: Optional[str] = None


class HelpScoutTag(SourceSchema):
    """Conversation tag."""

    tag: str


class HelpScoutCustomField(SourceSchema):
    """Custom field value."""

    name: str
    value: Any = None


class HelpScoutConversationSchema(SourceSchema):
    """Conversation."""

    id: int
    number: Optional[int] = None
    subject: Optional[str] = None
    status: Optional[str] = None
    assignee: Optional[HelpScoutPerson] = None
    primaryCustomer: Optional[HelpScoutPerson] = None
    tags: List[HelpScoutTag] = Field(default_factory=list)
    createdAt: str
    userUpdatedAt: Optional[str] = None
    customFields: Optional[List[HelpScoutCustomField]] = None


class HelpScoutThreadSchema(SourceSchema):
    """Thread (customer message, reply, note, ...)."""

    id: int
    type: Optional[str] = None
    body: Optional[str] = None
    createdAt: str
    createdBy: Optional[HelpScoutPerson] = None


class HelpScoutValue(SourceSchema):
    """Email or phone entry."""

    value: str


class HelpScoutCustomerSchema(SourceSchema):
    """Customer."""

    id: int
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    emails: List[HelpScoutValue] = Field(default_factory=list)
    phones: List[HelpScoutValue] = Field(default_factory=list)
    organization: Optional[str] = None


class HelpScoutUserSchema(SourceSchema):
    """User (agent)."""

    id: int
    firstName: str = ""
    lastName: str = ""
    email: Optional[str] = None


class HelpScoutCollectionSchema(SourceSchema):
    """Docs collection."""

    id: str
    name: str = ""


class HelpScoutCategory(SourceSchema):
    """Docs category reference."""

    name: str = ""


class HelpScoutArticleSchema(SourceSchema):
    """Docs article."""

    id: str
    name: str = ""
    text: Optional[str] = None
    categories: List[HelpScoutCategory] = Field(default_factory=list)


@source(name="Help Scout", short_name="helpscout", id_prefix="hs")
class HelpScoutSource(BaseSource):
    """Help Scout source connector.

    Authenticates with OAuth client credentials; the token is cached on the
    client and refreshed on expiry or on a 401. Conversations carry no
    priority, and organizations are derived from customer ``organization``
    names. Help Scout has no rules API.
    """

    STATUS_MAP = {
        "active": TicketStatus.OPEN,
        "pending": TicketStatus.PENDING,
        "closed": TicketStatus.CLOSED,
        "spam": TicketStatus.CLOSED,
    }

    def __init__(self):
        """Initialize per-run state."""
        super().__init__()
        self.organization_names: List[str] = []

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """OAuth2 client-credentials grant with a cached bearer token."""
        auth = OAuthClientCredentials(
            token_url=TOKEN_URL,
            client_id=credentials["app_id"],
            client_secret=credentials["app_secret"],
            source_name=self._name,
        )
        return ConnectorClient(
            base_url="https://api.helpscout.net/v2",
            source_name=self._name,
            auth=auth,
            retry_policy=RetryPolicy.reactive(default_retry_after=10),
            http_client=http_client,
            logger=self.logger,
        )

    @staticmethod
    def _pages(data_key: str, total_pages_key: str = "page.totalPages") -> PagePagination:
        # Help Scout fixes the page size server-side
        return PagePagination(data_key=data_key, size_param=None, total_pages_key=total_pages_key)

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate conversations of every status, each followed by its threads."""
        async for conv in self.records(
            "/conversations",
            self._pages("_embedded.conversations"),
            HelpScoutConversationSchema,
            params={"status": "all"},
        ):
            ticket_id = self.make_id(conv.id)
            customer = conv.primaryCustomer
            yield Ticket(
                id=ticket_id,
                external_id=str(conv.id),
                source=self._short_name,
                subject=conv.subject or f"Conversation #{conv.number}",
                status=self.map_status(conv.status),
                priority=self.DEFAULT_PRIORITY,
                assignee=conv.assignee.id if conv.assignee else None,
                requester=(customer.email or customer.id if customer else None) or "unknown",
                tags=[t.tag for t in conv.tags],
                created_at=conv.createdAt,
                updated_at=conv.userUpdatedAt or conv.createdAt,
                custom_fields=(
                    {f.name: f.value for f in conv.customFields} if conv.customFields else None
                ),
            )
            async for message in self.hydrate(ticket_id, self._threads(conv.id, ticket_id)):
                yield message

    async def _threads(self, conversation_id: int, ticket_id: str) -> AsyncGenerator[Message, None]:
        async for t in self.records(
            f"/conversations/{conversation_id}/threads",
            self._pages("_embedded.threads"),
            HelpScoutThreadSchema,
        ):
            if not t.body:
                continue
            yield Message(
                id=self.make_id("msg", t.id),
                ticket_id=ticket_id,
                author=(t.createdBy.id if t.createdBy else None) or "unknown",
                body=t.body,
                type=MessageType.NOTE if t.type == "note" else MessageType.REPLY,
                created_at=t.createdAt,
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate customers and remember their organization names."""
        self.organization_names = []
        async for c in self.records(
            "/customers", self._pages("_embedded.customers"), HelpScoutCustomerSchema
        ):
            email = c.emails[0].value if c.emails else ""
            if c.organization and c.organization not in self.organization_names:
                self.organization_names.append(c.organization)
            full_name = f"{c.firstName or ''} {c.lastName or ''}".strip()
            yield Customer(
                id=self.make_id("user", c.id),
                external_id=str(c.id),
                source=self._short_name,
                name=full_name or email or f"Customer {c.id}",
                email=email,
                phone=c.phones[0].value if c.phones else None,
                org_id=self.make_id("org", c.organization) if c.organization else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate users."""
        async for u in self.records("/users", self._pages("_embedded.users"), HelpScoutUserSchema):
            yield Customer(
                id=self.make_id("agent", u.id),
                external_id=f"agent-{u.id}",
                source=self._short_name,
                name=f"{u.firstName} {u.lastName}".strip(),
                email=u.email or "",
            )

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Generate organizations from the names collected with customers."""
        for name in self.organization_names:
            yield Organization(
                id=self.make_id("org", name),
                external_id=name,
                source=self._short_name,
                name=name,
                domains=[],
            )

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Generate Docs articles, collection by collection."""
        data = await self.client.get("/docs/collections")
        collections = (data.get("collections") or {}).get("items")
        for coll in self.decode_all(collections, HelpScoutCollectionSchema):
            async for a in self.records(
                f"/docs/collections/{coll.id}/articles",
                self._pages("articles.items", total_pages_key="pages.totalPages"),
                HelpScoutArticleSchema,
            ):
                yield KBArticle(
                    id=self.make_id("kb", a.id),
                    external_id=a.id,
                    source=self._short_name,
                    title=a.name,
                    body=a.text or "",
                    category_path=[coll.name, *(c.name for c in a.categories)],
                )

    async def _verify(self) -> Dict[str, Any]:
        mailboxes = await self.client.get("/mailboxes")
        users = await self.client.get("/users", params={"page": 1})
        user_list = (users.get("_embedded") or {}).get("users") or []
        me = user_list[0] if user_list else None
        return {
            "userName": (
                f"{me.get('firstName', '')} {me.get('lastName', '')}".strip() if me else "Unknown"
            ),
            "mailboxCount": len((mailboxes.get("_embedded") or {}).get("mailboxes") or []),
        }

    # ------------------------------------------------------------------
    # Write operations (reply and note are separate endpoints)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create an email conversation; requires ``mailbox_id``.

        Help Scout answers 201 with an empty body; the new id is the last
        segment of the ``Location`` header.
        """
        mailbox_id = options.get("mailbox_id")
        if mailbox_id is None:
            raise ValueError("Help Scout conversations need a mailbox_id")
        conversation: Dict[str, Any] = {
            "type": "email",
            "mailboxId": mailbox_id,
            "subject": subject,
            "status": "active",
            "threads": [
                {
                    "type": "customer",
                    "customer": {"email": options.get("customer_email") or "unknown@example.com"},
                    "text": body,
                }
            ],
        }
        if options.get("tags"):
            conversation["tags"] = options["tags"]
        if options.get("assign_to"):
            conversation["assignTo"] = options["assign_to"]
        result = await self.client.post("/conversations", body=conversation)
        location = (result or {}).get("location") or ""
        return location.rstrip("/").rsplit("/", 1)[-1]

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a reply."""
        await self.client.post(f"/conversations/{ticket_id}/reply", body={"text": body})

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post an internal note."""
        await self.client.post(f"/conversations/{ticket_id}/notes", body={"text": body})
