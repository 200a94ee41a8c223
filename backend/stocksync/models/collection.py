"""CollectionRecord ORM — one row per keyed-store name.

Invariants:
    - name is the primary key (collection name or the reserved "lastSync")
    - records holds the whole list as JSON; a write replaces it entirely
    - updated_at moves on every write

Design Decisions:
    - JSON column over per-record tables: record shapes are owned by the server
      and merged field-by-field, so the store never needs to know them
"""

from datetime import datetime, timezone

from sqlalchemy import String, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column

from stocksync.db.base import Base


class CollectionRecord(Base):
    """A named list of records persisted as a unit."""
    __tablename__ = "collections"

    name: Mapped[str] = mapped_column(String(64), primary_key=True)
    records: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
