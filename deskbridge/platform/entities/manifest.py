"""Export manifest schema."""

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

CATEGORIES = ("tickets", "messages", "customers", "organizations", "kb_articles", "rules")


class ExportCounts(BaseModel):
    """Per-category record counts for one export run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    tickets: int = 0
    messages: int = 0
    customers: int = 0
    organizations: int = 0
    kb_articles: int = 0
    rules: int = 0

    def increment(self, category: str, amount: int = 1) -> None:
        """Add to a category count."""
        setattr(self, category, getattr(self, category, 0) + amount)


class ExportManifest(BaseModel):
    """Summary of one export run, written to ``manifest.json``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    source: str = Field(..., description="Source short name")
    exported_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO 8601 completion timestamp",
    )
    counts: ExportCounts = Field(default_factory=ExportCounts)
    cursor_state: Optional[Dict[str, str]] = Field(
        None, description="Resumable cursors for sources with incremental endpoints"
    )
    hydration_failures: Optional[int] = Field(
        None, description="Tickets whose thread/notes could not be fetched"
    )
    skipped_records: Optional[int] = Field(
        None, description="Records dropped because they did not match the source schema"
    )
    extra_counts: Optional[Dict[str, int]] = Field(
        None, description="Counts of source-specific files such as groups or brands"
    )

    def to_record(self) -> Dict:
        """Serialize to the on-disk JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
