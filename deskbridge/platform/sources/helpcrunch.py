"""HelpCrunch source implementation."""

from typing import Any, AsyncGenerator, Dict, List, Optional, Union

import httpx
from pydantic import Field

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
from deskbridge.platform.pagination import OffsetPagination
from deskbridge.platform.sources._base import BaseSource, SourceSchema, epoch_to_iso


class HelpCrunchRef(SourceSchema):
    """Embedded reference to a customer, agent or department."""

    id: int
    name: Optional[str] = None


class HelpCrunchChatSchema(SourceSchema):
    """Chat; timestamps are UNIX epoch strings."""

    id: int
    status: Optional[int] = None
    createdAt: Optional[str] = None
    lastMessageAt: Optional[str] = None
    lastMessageText: Optional[str] = None
    customer: Optional[HelpCrunchRef] = None
    assignee: Optional[HelpCrunchRef] = None
    department: Optional[HelpCrunchRef] = None


class HelpCrunchMessageSchema(SourceSchema):
    """Chat message."""

    id: int
    text: Optional[str] = None
    from_: Optional[str] = Field(None, alias="from")
    createdAt: Optional[str] = None
    agent: Optional[HelpCrunchRef] = None


class HelpCrunchCustomerSchema(SourceSchema):
    """Customer."""

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None


class HelpCrunchAgentSchema(SourceSchema):
    """Agent."""

    id: int
    name: str = ""
    email: Optional[str] = None


@source(name="HelpCrunch", short_name="helpcrunch", id_prefix="hc")
class HelpCrunchSource(BaseSource):
    """HelpCrunch source connector.

    Chats are exported as tickets. HelpCrunch has no priorities, knowledge base
    or rules API; organizations are derived from the ``company`` names seen
    while exporting customers.
    """

    STATUS_MAP = {
        "1": TicketStatus.OPEN,  # new
        "2": TicketStatus.OPEN,  # opened
        "3": TicketStatus.PENDING,
        "4": TicketStatus.ON_HOLD,
        "5": TicketStatus.CLOSED,
        "6": TicketStatus.CLOSED,  # no communication
        "7": TicketStatus.CLOSED,  # empty
    }
    PRIORITY_MAP: Dict[str, TicketPriority] = {}

    def __init__(self):
        """Initialize per-run state."""
        super().__init__()
        self.company_names: List[str] = []

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Bearer API key."""
        return ConnectorClient(
            base_url="https://api.helpcrunch.com/v1",
            source_name=self._name,
            auth=BearerTokenAuth(credentials["api_key"]),
            retry_policy=RetryPolicy.reactive(default_retry_after=5),
            http_client=http_client,
            logger=self.logger,
        )

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Generate chats, each followed by its messages."""
        strategy = OffsetPagination(data_key="data", limit=100, total_key="meta.total")
        async for chat in self.records("/chats", strategy, HelpCrunchChatSchema):
            ticket_id = self.make_id(chat.id)
            customer_id = str(chat.customer.id) if chat.customer else None
            department = chat.department
            yield Ticket(
                id=ticket_id,
                external_id=str(chat.id),
                source=self._short_name,
                subject=(chat.lastMessageText or "")[:100] or f"Chat #{chat.id}",
                status=self.map_status(chat.status),
                priority=self.DEFAULT_PRIORITY,
                assignee=str(chat.assignee.id) if chat.assignee else None,
                requester=customer_id or "unknown",
                tags=[department.name or f"dept-{department.id}"] if department else [],
                created_at=epoch_to_iso(chat.createdAt),
                updated_at=epoch_to_iso(chat.lastMessageAt or chat.createdAt),
            )
            messages = self._messages(chat.id, ticket_id, customer_id or "customer")
            async for message in self.hydrate(ticket_id, messages):
                yield message

    async def _messages(
        self, chat_id: int, ticket_id: str, customer_id: str
    ) -> AsyncGenerator[Message, None]:
        strategy = OffsetPagination(data_key="data", limit=100)
        async for m in self.records(
            f"/chats/{chat_id}/messages", strategy, HelpCrunchMessageSchema
        ):
            from_agent = m.from_ == "agent" and m.agent is not None
            yield Message(
                id=self.make_id("msg", m.id),
                ticket_id=ticket_id,
                author=str(m.agent.id) if from_agent else customer_id,
                body=m.text or "",
                type=MessageType.REPLY,
                created_at=epoch_to_iso(m.createdAt),
            )

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Generate customers and remember their company names."""
        self.company_names = []
        strategy = OffsetPagination(data_key="data", limit=100, total_key="total")
        async for c in self.records("/customers", strategy, HelpCrunchCustomerSchema):
            if c.company and c.company not in self.company_names:
                self.company_names.append(c.company)
            yield Customer(
                id=self.make_id("user", c.id),
                external_id=str(c.id),
                source=self._short_name,
                name=c.name or c.email or f"Customer {c.id}",
                email=c.email or "",
                phone=c.phone,
                org_id=self.make_id("org", c.company) if c.company else None,
            )

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Generate agents."""
        data = await self.client.get("/agents")
        for a in self.decode_all(data.get("data") or [], HelpCrunchAgentSchema):
            yield Customer(
                id=self.make_id("agent", a.id),
                external_id=f"agent-{a.id}",
                source=self._short_name,
                name=a.name,
                email=a.email or "",
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

    async def _verify(self) -> Dict[str, Any]:
        agents = await self.client.get("/agents")
        chats = await self.client.get("/chats", params={"offset": 0, "limit": 1})
        return {
            "agentCount": len(agents.get("data") or []),
            "chatCount": (chats.get("meta") or {}).get("total"),
        }

    # ------------------------------------------------------------------
    # Write operations (one PUT per chat sub-resource)
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Open a chat with a customer; requires ``customer_id``. Chats have no subject."""
        customer_id = options.get("customer_id")
        if customer_id is None:
            raise ValueError("HelpCrunch chats need a customer_id")
        result = await self.client.post(
            "/chats", body={"customer": customer_id, "message": {"text": body}}
        )
        return str(result["id"])

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Update status, assignee and department with separate calls."""
        for field in ("status", "assignee", "department"):
            if updates.get(field) is not None:
                await self.client.put(
                    f"/chats/{ticket_id}/{field}", body={field: updates[field]}
                )

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a chat message."""
        await self.client.post(
            f"/chats/{ticket_id}/messages", body={"text": body, "type": "message"}
        )
