"""
Persistence models for canonical contacts and their source links.

The unique ``(source, source_id)`` constraint is the storage-level guarantee
that each external record is linked to at most one canonical contact.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class CanonicalContactRecord(BaseModel):
    """Row backing one ``CanonicalContact``."""

    __tablename__ = "canonical_contacts"

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(db.String(320), nullable=True)
    normalized_email: Mapped[str | None] = mapped_column(db.String(320), nullable=True, index=True)
    phone: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    company: Mapped[str | None] = mapped_column(db.String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(db.DateTime(timezone=True), nullable=False)

    linked_sources = relationship(
        "LinkedSourceRecord",
        back_populates="contact",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="LinkedSourceRecord.id",
    )

    def __repr__(self):
        return f"<CanonicalContactRecord id={self.id} email={self.email}>"


class LinkedSourceRecord(BaseModel):
    """Link from a canonical contact to one source-native record."""

    __tablename__ = "linked_sources"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_linked_sources_source_id"),
        Index("idx_linked_sources_contact", "contact_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    contact_id: Mapped[str] = mapped_column(
        ForeignKey("canonical_contacts.id", ondelete="CASCADE"),
        nullable=False,
    )
    source: Mapped[str] = mapped_column(db.String(20), nullable=False)
    source_id: Mapped[str] = mapped_column(db.String(255), nullable=False)

    contact = relationship("CanonicalContactRecord", back_populates="linked_sources")

    def __repr__(self):
        return f"<LinkedSourceRecord {self.source}:{self.source_id} -> {self.contact_id}>"
