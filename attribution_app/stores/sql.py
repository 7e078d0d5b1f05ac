"""
Flask-SQLAlchemy backed contact store and event source.

Every ``SQLAlchemyError`` is rolled back and re-raised as ``StoreUnavailable``
so the engine only ever sees its own error taxonomy.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Sequence

from flask import current_app, has_app_context
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

from attribution_app.engine.errors import ContactNotFound, StoreUnavailable
from attribution_app.engine.normalize import normalize_email
from attribution_app.engine.types import CanonicalContact, LinkedSource, Source, SourceEvent
from attribution_app.models import CanonicalContactRecord, LinkedSourceRecord, SourceEventRecord, db
from attribution_app.models.base import as_utc

from .base import ContactStore, EventSource


def _to_domain(row: CanonicalContactRecord) -> CanonicalContact:
    return CanonicalContact(
        id=row.id,
        name=row.name or "",
        email=row.email,
        phone=row.phone,
        company=row.company,
        linked_sources=frozenset(LinkedSource(Source.parse(link.source), link.source_id) for link in row.linked_sources),
        notes=row.notes,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _copy_fields(row: CanonicalContactRecord, contact: CanonicalContact) -> None:
    row.name = contact.name or ""
    row.email = contact.email
    row.normalized_email = normalize_email(contact.email) or None
    row.phone = contact.phone
    row.company = contact.company
    row.notes = contact.notes
    row.created_at = contact.created_at
    row.updated_at = contact.updated_at


def _rollback_and_wrap(action: str, exc: SQLAlchemyError) -> StoreUnavailable:
    db.session.rollback()
    if has_app_context():
        current_app.logger.error("Contact store failed to %s: %s", action, exc)
    return StoreUnavailable(f"Unable to {action}: {exc}")


class SqlAlchemyContactStore(ContactStore):
    """
    ``ContactStore`` over the ``canonical_contacts`` and ``linked_sources`` tables.

    Must be used inside a Flask application context. Keyed locks only cover
    this process; the unique source-link constraint protects other writers.
    """

    def get(self, contact_id: str) -> Optional[CanonicalContact]:
        try:
            row = db.session.get(CanonicalContactRecord, contact_id)
            return _to_domain(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap(f"load contact {contact_id}", exc) from exc

    def find_all(self) -> Sequence[CanonicalContact]:
        try:
            rows = db.session.scalars(select(CanonicalContactRecord).order_by(CanonicalContactRecord.id)).all()
            return [_to_domain(row) for row in rows]
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap("list contacts", exc) from exc

    def list_ids(self) -> list[str]:
        try:
            return list(db.session.scalars(select(CanonicalContactRecord.id).order_by(CanonicalContactRecord.id)))
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap("list contact ids", exc) from exc

    def create(self, contact: CanonicalContact) -> CanonicalContact:
        try:
            row = CanonicalContactRecord(id=contact.id)
            _copy_fields(row, contact)
            for link in sorted(contact.linked_sources):
                row.linked_sources.append(LinkedSourceRecord(source=link.source.value, source_id=link.source_id))
            db.session.add(row)
            db.session.commit()
            return _to_domain(row)
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap(f"create contact {contact.id}", exc) from exc

    def update(self, contact_id: str, contact: CanonicalContact) -> CanonicalContact:
        try:
            row = db.session.get(CanonicalContactRecord, contact_id)
            if row is None:
                raise ContactNotFound(contact_id)
            _copy_fields(row, contact)
            present = {(link.source, link.source_id) for link in row.linked_sources}
            for link in sorted(contact.linked_sources):
                if (link.source.value, link.source_id) not in present:
                    row.linked_sources.append(
                        LinkedSourceRecord(source=link.source.value, source_id=link.source_id)
                    )
            db.session.commit()
            return _to_domain(row)
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap(f"update contact {contact_id}", exc) from exc

    def find_by_source(self, source: Source, source_id: str) -> Optional[CanonicalContact]:
        try:
            row = db.session.scalars(
                select(CanonicalContactRecord)
                .join(LinkedSourceRecord, LinkedSourceRecord.contact_id == CanonicalContactRecord.id)
                .where(LinkedSourceRecord.source == Source.parse(source).value, LinkedSourceRecord.source_id == source_id)
            ).first()
            return _to_domain(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap(f"look up {Source.parse(source).value}:{source_id}", exc) from exc


def _serialize_timestamp(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)[:64]


class SqlAlchemyEventSource(EventSource):
    """Event source reading one system's rows from ``source_events``."""

    def __init__(self, source: Source):
        self.source = Source.parse(source)

    def list_events_for_contact(self, contact_id: str, source_ids: Sequence[str] = ()) -> Sequence[SourceEvent]:
        conditions = [SourceEventRecord.contact_id == contact_id]
        record_ids = [source_id for source_id in source_ids if source_id]
        if record_ids:
            conditions.append(SourceEventRecord.record_id.in_(record_ids))
        try:
            rows = db.session.scalars(
                select(SourceEventRecord)
                .where(SourceEventRecord.source == self.source.value, or_(*conditions))
                .order_by(SourceEventRecord.id)
            ).all()
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap(f"list {self.source.value} events for {contact_id}", exc) from exc
        return [
            SourceEvent(
                source=self.source,
                source_id=row.source_id,
                type=row.event_type,
                occurred_at=row.occurred_at,
                contact_id=row.contact_id,
                record_id=row.record_id,
                metadata=dict(row.metadata_json or {}),
            )
            for row in rows
        ]

    def save_events(self, events: Iterable[SourceEvent]) -> int:
        """Insert events not already stored for this source; returns rows added."""

        batch = list(events)
        for event in batch:
            if event.source != self.source:
                raise ValueError(f"Event from {event.source.value} saved to {self.source.value} event source.")
        try:
            existing = set(
                db.session.scalars(select(SourceEventRecord.source_id).where(SourceEventRecord.source == self.source.value))
            )
            added = 0
            for event in batch:
                if event.source_id in existing:
                    continue
                db.session.add(
                    SourceEventRecord(
                        source=self.source.value,
                        source_id=event.source_id,
                        event_type=event.type,
                        occurred_at=_serialize_timestamp(event.occurred_at),
                        contact_id=event.contact_id,
                        record_id=event.record_id,
                        metadata_json=dict(event.metadata) or None,
                    )
                )
                existing.add(event.source_id)
                added += 1
            db.session.commit()
            return added
        except SQLAlchemyError as exc:
            raise _rollback_and_wrap(f"save {self.source.value} events", exc) from exc


__all__ = ["SqlAlchemyContactStore", "SqlAlchemyEventSource"]
