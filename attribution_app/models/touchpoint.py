"""
Persistence model for raw touch-point events loaded from source systems.

``occurred_at`` is stored exactly as received so timestamps that cannot be
parsed still reach the timeline builder and are reported as defects there.
"""

from __future__ import annotations

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db


class SourceEventRecord(BaseModel):
    __tablename__ = "source_events"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_source_events_source_id"),
        Index("idx_source_events_source_contact", "source", "contact_id"),
        Index("idx_source_events_source_record", "source", "record_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    source: Mapped[str] = mapped_column(db.String(20), nullable=False)
    source_id: Mapped[str] = mapped_column(db.String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(db.String(100), nullable=False)
    occurred_at: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    contact_id: Mapped[str | None] = mapped_column(db.String(36), nullable=True)
    record_id: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    metadata_json: Mapped[dict | None] = mapped_column(db.JSON, nullable=True)

    def __repr__(self):
        return f"<SourceEventRecord {self.source}:{self.source_id} {self.event_type}>"
