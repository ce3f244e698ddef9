"""audiencesync — Key-Value Store Table."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class KVEntry(SQLModel, table=True):
    """One durable cache entry.

    Keys are namespaced by purpose (``audience:``, ``lookalike:``,
    ``last_metrics``, ``active_campaigns``). Last write wins.
    """

    __tablename__ = "kv_entries"

    key: str = Field(primary_key=True, description="Namespaced cache key")
    value: str = Field(description="Opaque string value (IDs or JSON)")
    expires_at: Optional[datetime] = Field(
        default=None, description="Absolute expiry; None = never expires"
    )
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
