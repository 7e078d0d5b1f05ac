"""
Rebuilds a contact's multi-source touch-point timeline.

Events are gathered from every event source, de-duplicated by
``(source, source_id)``, parsed, optionally windowed and sorted. Events whose
timestamp cannot be used are excluded and reported as ``EventDefect``s.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Optional, Sequence

from flask import current_app, has_app_context

from attribution_app import metrics

from .errors import ContactNotFound
from .types import (
    AttributionTimeline,
    CanonicalContact,
    DateWindow,
    EventDefect,
    SourceEvent,
    TouchPointEvent,
)

if TYPE_CHECKING:
    from attribution_app.stores.base import ContactStore, EventSource

logger = logging.getLogger(__name__)

# Epoch values above this are taken to be milliseconds.
_EPOCH_MILLIS_CUTOFF = 1e11


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _from_epoch(number: float) -> Optional[datetime]:
    if not math.isfinite(number):
        return None
    if abs(number) > _EPOCH_MILLIS_CUTOFF:
        number = number / 1000.0
    try:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: object) -> Optional[datetime]:
    """
    Parse an event timestamp into an aware UTC datetime.

    Accepts datetimes (naive values are taken as UTC), epoch seconds or
    milliseconds, and ISO-8601 strings including a trailing ``Z``. Returns
    ``None`` for anything else.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return _as_aware(value)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    try:
        return _from_epoch(float(text))
    except ValueError:
        pass
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _as_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


class TimelineBuilder:
    """Builds ``AttributionTimeline``s from a contact store and event sources."""

    def __init__(self, store: "ContactStore", sources: Iterable["EventSource"]):
        self.store = store
        self.sources = tuple(sources)

    def build_timeline(self, contact_id: str, *, window: DateWindow | None = None) -> AttributionTimeline:
        """
        Build the timeline for ``contact_id``.

        Raises:
            ContactNotFound: when the store has no such contact.
            StoreUnavailable: when the store or an event source fails.
        """

        contact = self.store.get(contact_id)
        if contact is None:
            raise ContactNotFound(contact_id)
        return self.build_for_contact(contact, window=window)

    def collect_events(self, contact: CanonicalContact) -> list[SourceEvent]:
        seen: set[tuple] = set()
        events: list[SourceEvent] = []
        for event_source in self.sources:
            source_ids = contact.source_ids_for(event_source.source)
            for event in event_source.list_events_for_contact(contact.id, source_ids):
                if event.key in seen:
                    continue
                seen.add(event.key)
                events.append(event)
        return events

    def build_for_contact(self, contact: CanonicalContact, *, window: DateWindow | None = None) -> AttributionTimeline:
        parsed: list[tuple[datetime, SourceEvent]] = []
        defects: list[EventDefect] = []

        for event in self.collect_events(contact):
            occurred_at = parse_timestamp(event.occurred_at)
            if occurred_at is None:
                reason = "missing timestamp" if event.occurred_at in (None, "") else (
                    f"unparseable timestamp {event.occurred_at!r}"
                )
                defects.append(EventDefect(source=event.source, source_id=event.source_id, reason=reason))
                continue
            if window is not None and not window.contains(occurred_at):
                continue
            parsed.append((occurred_at, event))

        parsed.sort(key=lambda item: (item[0], item[1].source.value, item[1].source_id))

        per_type: Counter[str] = Counter()
        events: list[TouchPointEvent] = []
        for occurred_at, event in parsed:
            per_type[event.type] += 1
            events.append(
                TouchPointEvent(
                    contact_id=contact.id,
                    source=event.source,
                    source_id=event.source_id,
                    type=event.type,
                    occurred_at=occurred_at,
                    sequence_in_type=per_type[event.type],
                )
            )

        if defects:
            for source_value, count in Counter(defect.source.value for defect in defects).items():
                metrics.record_timeline_defects(source_value, count)
            if has_app_context():
                current_app.logger.warning(
                    "Excluded %s event(s) with unusable timestamps from timeline of contact %s",
                    len(defects),
                    contact.id,
                )
            else:
                logger.warning(
                    "Excluded %s event(s) with unusable timestamps from timeline of contact %s",
                    len(defects),
                    contact.id,
                )

        return AttributionTimeline(
            contact_id=contact.id,
            events=tuple(events),
            first_touch=events[0] if events else None,
            last_touch=events[-1] if events else None,
            defects=tuple(defects),
        )


__all__ = ["TimelineBuilder", "parse_timestamp"]
