"""Base class for helpdesk source adapters."""

from datetime import datetime, timezone
from typing import (
    Any,
    AsyncGenerator,
    AsyncIterator,
    ClassVar,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

import httpx
from pydantic import BaseModel, ConfigDict

from deskbridge.core.exceptions import (
    AuthError,
    CategoryNotSupportedError,
    ConnectorError,
)
from deskbridge.core.logging import logger
from deskbridge.platform.cursors import BaseCursor
from deskbridge.platform.entities import (
    CanonicalRecord,
    Customer,
    KBArticle,
    Message,
    Organization,
    Rule,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from deskbridge.platform.http_client import ConnectorClient
from deskbridge.platform.pagination import Page, PaginationStrategy, paginate
from deskbridge.platform.sync.exceptions import EntityProcessingError

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def epoch_to_iso(value: Any) -> str:
    """Convert UNIX epoch seconds (int or numeric string) to an ISO 8601 UTC timestamp.

    Missing or unparseable values fall back to the current time.
    """
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return datetime.now(timezone.utc).isoformat()
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


class SourceSchema(BaseModel):
    """Base for per-source API response schemas.

    Only the fields an adapter reads are declared; everything else is kept.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)


class BaseSource:
    """Base class for all helpdesk sources.

    Subclasses are registered with ``@source(...)`` and implement the
    ``generate_*`` async generators. ``generate_tickets`` yields each Ticket
    immediately followed by that ticket's Messages, so a consumer appending to
    files keeps every message after its parent.

    Status and priority mapping is table driven: ``STATUS_MAP`` and
    ``PRIORITY_MAP`` list every known source value (lower-cased) and anything
    else falls back to ``DEFAULT_STATUS`` / ``DEFAULT_PRIORITY``.
    """

    _name: ClassVar[str] = "Source"
    _short_name: ClassVar[str] = "source"
    _id_prefix: ClassVar[str] = "src"

    STATUS_MAP: ClassVar[Dict[str, TicketStatus]] = {}
    PRIORITY_MAP: ClassVar[Dict[str, TicketPriority]] = {}
    DEFAULT_STATUS: ClassVar[TicketStatus] = TicketStatus.OPEN
    DEFAULT_PRIORITY: ClassVar[TicketPriority] = TicketPriority.NORMAL

    #: Cursor model for sources with resumable endpoints
    cursor_class: ClassVar[Optional[Type[BaseCursor]]] = None
    EXTRA_CATEGORIES: ClassVar[Tuple[str, ...]] = ()

    def __init__(self):
        """Initialize per-run state."""
        self.client: Optional[ConnectorClient] = None
        self.cursor: Optional[BaseCursor] = None
        self.hydration_failures: List[str] = []
        self.skipped_records = 0
        self.logger = logger.with_context(source=self._short_name)

    @classmethod
    async def create(
        cls,
        credentials: Dict[str, Any],
        http_client: Optional[httpx.AsyncClient] = None,
        cursor_state: Optional[Dict[str, str]] = None,
    ) -> "BaseSource":
        """Create a new source instance.

        Args:
            credentials: Source-specific credential dict
            http_client: Optional pre-built httpx client (used by tests)
            cursor_state: Manifest ``cursorState`` to resume from

        Returns:
            A ready source instance
        """
        instance = cls()
        instance.client = instance.build_client(credentials, http_client)
        if cls.cursor_class is not None:
            instance.cursor = cls.cursor_class.from_state(cursor_state)
        return instance

    def build_client(
        self, credentials: Dict[str, Any], http_client: Optional[httpx.AsyncClient]
    ) -> ConnectorClient:
        """Build the connector client for this source."""
        raise NotImplementedError

    @property
    def name(self) -> str:
        """Human readable source name."""
        return self._name

    @property
    def short_name(self) -> str:
        """Connector short name, also written as the canonical ``source``."""
        return self._short_name

    @property
    def cursor_state(self) -> Optional[Dict[str, str]]:
        """Current resumable cursors, or None for sources without them."""
        if self.cursor is None:
            return None
        return self.cursor.to_state()

    async def close(self) -> None:
        """Release the HTTP client."""
        if self.client is not None:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Mapping helpers
    # ------------------------------------------------------------------

    @classmethod
    def map_status(cls, raw: Any) -> TicketStatus:
        """Map a source status to the canonical enum."""
        if raw is None:
            return cls.DEFAULT_STATUS
        return cls.STATUS_MAP.get(str(raw).strip().lower(), cls.DEFAULT_STATUS)

    @classmethod
    def map_priority(cls, raw: Any) -> TicketPriority:
        """Map a source priority to the canonical enum."""
        if raw is None:
            return cls.DEFAULT_PRIORITY
        return cls.PRIORITY_MAP.get(str(raw).strip().lower(), cls.DEFAULT_PRIORITY)

    @staticmethod
    def is_fatal(error: ConnectorError) -> bool:
        """Whether an error must abort the run rather than skip one sub-resource."""
        return isinstance(error, AuthError) and error.status_code == 401

    def make_id(self, *parts: Union[str, int]) -> str:
        """Build a canonical id: ``<prefix>-<part>-<part>...``."""
        return "-".join([self._id_prefix, *(str(part) for part in parts)])

    def external_id(self, canonical_id: str) -> str:
        """Recover the source identifier from a canonical ticket id.

        Raises:
            ValueError: If the id was not issued by this source
        """
        prefix = f"{self._id_prefix}-"
        if not canonical_id.startswith(prefix) or len(canonical_id) == len(prefix):
            raise ValueError(f"{canonical_id!r} is not a {self._name} id")
        return canonical_id[len(prefix):]

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    def pages(
        self,
        path: str,
        strategy: PaginationStrategy,
        params: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[Page]:
        """Lazily iterate over the pages of an endpoint."""
        return paginate(self.client.get, path, strategy, params=params, source_name=self._name)

    def decode_item(self, item: Any, model: Type[SchemaT]) -> SchemaT:
        """Decode one record against its schema.

        Raises:
            EntityProcessingError: If the record does not match the schema
        """
        try:
            return self.client.decode(item, model, context="item")
        except ConnectorError as e:
            raise EntityProcessingError(f"Malformed {model.__name__} from {self._name}: {e}") from e

    def decode_all(self, items: Optional[Iterable[Any]], model: Type[SchemaT]) -> List[SchemaT]:
        """Decode a list of records, skipping malformed ones.

        Skipped records are logged and counted in ``skipped_records``.
        """
        records = []
        for item in items or []:
            try:
                records.append(self.decode_item(item, model))
            except EntityProcessingError as e:
                self.skipped_records += 1
                self.logger.warning(f"Skipping record: {e}")
        return records

    async def decoded_pages(
        self,
        path: str,
        strategy: PaginationStrategy,
        model: Type[SchemaT],
        params: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[Tuple[Page, List[SchemaT]], None]:
        """Iterate pages together with their decoded records; malformed records are skipped."""
        async for page in self.pages(path, strategy, params=params):
            yield page, self.decode_all(page.items, model)

    async def records(
        self,
        path: str,
        strategy: PaginationStrategy,
        model: Type[SchemaT],
        params: Optional[Dict[str, Any]] = None,
    ) -> AsyncGenerator[SchemaT, None]:
        """Iterate decoded records across all pages."""
        async for _, records in self.decoded_pages(path, strategy, model, params=params):
            for record in records:
                yield record

    async def hydrate(
        self, ticket_id: str, messages: AsyncIterator[Message]
    ) -> AsyncGenerator[Message, None]:
        """Yield a ticket's messages, tolerating failures of the sub-request.

        A failed thread fetch is logged and recorded in ``hydration_failures``;
        the export carries on with the next ticket. A 401 still propagates since
        no further request can succeed.
        """
        try:
            async for message in messages:
                yield message
        except ConnectorError as e:
            if self.is_fatal(e):
                raise
            self.hydration_failures.append(ticket_id)
            self.logger.warning(f"Message fetch failed for ticket {ticket_id}: {e}")
        except EntityProcessingError as e:
            self.hydration_failures.append(ticket_id)
            self.logger.warning(f"Malformed message data for ticket {ticket_id}: {e}")

    # ------------------------------------------------------------------
    # Export surface
    # ------------------------------------------------------------------

    async def generate_tickets(self) -> AsyncGenerator[Union[Ticket, Message], None]:
        """Yield tickets, each followed by its messages."""
        raise NotImplementedError
        yield  # pragma: no cover

    async def generate_customers(self) -> AsyncGenerator[Customer, None]:
        """Yield end-user customers."""
        raise NotImplementedError
        yield  # pragma: no cover

    async def generate_agents(self) -> AsyncGenerator[Customer, None]:
        """Yield agents, exported alongside customers."""
        raise CategoryNotSupportedError(self._name, "agents")
        yield  # pragma: no cover

    async def generate_organizations(self) -> AsyncGenerator[Organization, None]:
        """Yield organizations."""
        raise CategoryNotSupportedError(self._name, "organizations")
        yield  # pragma: no cover

    async def generate_kb_articles(self) -> AsyncGenerator[KBArticle, None]:
        """Yield knowledge base articles."""
        raise CategoryNotSupportedError(self._name, "KB articles")
        yield  # pragma: no cover

    async def generate_rules(self) -> AsyncGenerator[Rule, None]:
        """Yield business rules."""
        raise CategoryNotSupportedError(self._name, "business rules")
        yield  # pragma: no cover

    async def generate_extras(self) -> AsyncGenerator[CanonicalRecord, None]:
        """Yield records of the source-specific files named in ``EXTRA_CATEGORIES``."""
        return
        yield  # pragma: no cover

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify_connection(self) -> Dict[str, Any]:
        """Check credentials against the live API.

        Returns:
            ``{"success": True, ...counts}`` or ``{"success": False, "error": msg}``;
            never raises.
        """
        try:
            details = await self._verify()
        except Exception as e:
            self.logger.warning(f"Connection check failed: {e}")
            return {"success": False, "error": str(e)}
        return {"success": True, **details}

    async def _verify(self) -> Dict[str, Any]:
        """Source-specific verification calls; return extra details."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def create_ticket(self, subject: str, body: str, **options: Any) -> str:
        """Create a ticket and return its external id."""
        raise CategoryNotSupportedError(self._name, "ticket creation")

    async def update_ticket(self, ticket_id: str, **updates: Any) -> None:
        """Update status, assignee, tags or other ticket fields."""
        raise CategoryNotSupportedError(self._name, "ticket updates")

    async def reply(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post a public reply."""
        raise CategoryNotSupportedError(self._name, "replies")

    async def add_note(self, ticket_id: str, body: str, **options: Any) -> None:
        """Post an internal note."""
        raise CategoryNotSupportedError(self._name, "internal notes")

    async def delete_ticket(self, ticket_id: str) -> None:
        """Delete a ticket."""
        raise CategoryNotSupportedError(self._name, "ticket deletion")
