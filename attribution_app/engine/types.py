"""
Domain types shared by the resolver, timeline builder and statistics.

Everything here is an immutable value. Stores hand out ``CanonicalContact``
snapshots and accept new snapshots on ``create``/``update``; nothing mutates a
contact in place.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from .errors import MalformedRecord


class Source(str, enum.Enum):
    """External systems that feed the canonical contact store."""

    CRM = "crm"
    SCHEDULING = "scheduling"
    FORM = "form"

    @classmethod
    def parse(cls, value: object) -> "Source":
        if isinstance(value, Source):
            return value
        token = str(value or "").strip().lower()
        for member in cls:
            if token in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown source '{value}'.")


class MatchConfidence(enum.IntEnum):
    """Ordered match strength: NONE < LOW < MEDIUM < HIGH < EXACT."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    EXACT = 4

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: object) -> "MatchConfidence":
        if isinstance(value, MatchConfidence):
            return value
        token = str(value or "").strip().upper()
        try:
            return cls[token]
        except KeyError as exc:
            raise ValueError(f"Unknown match confidence '{value}'.") from exc


@dataclass(frozen=True, order=True)
class LinkedSource:
    source: Source
    source_id: str

    def as_dict(self) -> dict[str, str]:
        return {"source": self.source.value, "source_id": self.source_id}


def _clean_optional(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class SourceRecord:
    """
    One contact-like record emitted by an ingester.

    ``raw`` keeps the source payload for auditing; the engine never reads it.
    ``notes`` carries whatever note-like text the ingester extracted and is the
    only note input the merge policy considers.
    """

    source: Source
    source_id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def key(self) -> tuple[Source, str]:
        return (self.source, self.source_id)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SourceRecord":
        """
        Build a record from a plain mapping (JSON files, ingester payloads).

        Raises:
            MalformedRecord: when ``source`` or ``source_id`` is missing or the
                source is not one of the known systems.
        """

        if not isinstance(payload, Mapping):
            raise MalformedRecord(f"Expected a mapping, got {type(payload).__name__}.")

        raw_source = payload.get("source")
        if raw_source is None or not str(raw_source).strip():
            raise MalformedRecord("Record is missing 'source'.", field_name="source")
        try:
            source = Source.parse(raw_source)
        except ValueError as exc:
            raise MalformedRecord(str(exc), field_name="source") from exc

        source_id = _clean_optional(payload.get("source_id"))
        if source_id is None:
            raise MalformedRecord("Record is missing 'source_id'.", field_name="source_id")

        name = _clean_optional(payload.get("name"))
        if name is None:
            parts = (_clean_optional(payload.get("first_name")), _clean_optional(payload.get("last_name")))
            name = " ".join(part for part in parts if part)

        raw = payload.get("raw")
        return cls(
            source=source,
            source_id=source_id,
            name=name or "",
            email=_clean_optional(payload.get("email")),
            phone=_clean_optional(payload.get("phone")),
            company=_clean_optional(payload.get("company")),
            notes=_clean_optional(payload.get("notes")),
            raw=dict(raw) if isinstance(raw, Mapping) else dict(payload),
        )


@dataclass(frozen=True)
class CanonicalContact:
    """The system's single record for one real-world person."""

    id: str
    name: str
    email: Optional[str]
    phone: Optional[str]
    company: Optional[str]
    linked_sources: frozenset[LinkedSource]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    @property
    def source_count(self) -> int:
        return len({link.source for link in self.linked_sources})

    def source_ids_for(self, source: Source) -> tuple[str, ...]:
        return tuple(sorted(link.source_id for link in self.linked_sources if link.source == source))

    def is_linked_to(self, source: Source, source_id: str) -> bool:
        return LinkedSource(source, source_id) in self.linked_sources

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "notes": self.notes,
            "source_count": self.source_count,
            "linked_sources": [link.as_dict() for link in sorted(self.linked_sources)],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of scoring one record against the known contacts.

    ``reason`` is audit text only. ``ambiguous_with`` lists the ids of other
    candidates tied with ``candidate`` at the winning confidence.
    """

    confidence: MatchConfidence
    candidate: Optional[CanonicalContact]
    reason: str
    similarity: float = 0.0
    ambiguous_with: tuple[str, ...] = ()

    @property
    def is_ambiguous(self) -> bool:
        return bool(self.ambiguous_with)


@dataclass(frozen=True)
class SourceEvent:
    """
    A raw touch-point as reported by an event source.

    ``occurred_at`` may be a datetime, an ISO-8601 string, an epoch number or
    junk; the timeline builder decides which events it can use.
    """

    source: Source
    source_id: str
    type: str
    occurred_at: Any
    contact_id: Optional[str] = None
    record_id: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def key(self) -> tuple[Source, str]:
        return (self.source, self.source_id)


@dataclass(frozen=True)
class TouchPointEvent:
    contact_id: str
    source: Source
    source_id: str
    type: str
    occurred_at: datetime
    sequence_in_type: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "contact_id": self.contact_id,
            "source": self.source.value,
            "source_id": self.source_id,
            "type": self.type,
            "occurred_at": self.occurred_at.isoformat(),
            "sequence_in_type": self.sequence_in_type,
        }


@dataclass(frozen=True)
class EventDefect:
    """An event excluded from a timeline, with the reason it was excluded."""

    source: Source
    source_id: str
    reason: str

    def as_dict(self) -> dict[str, str]:
        return {"source": self.source.value, "source_id": self.source_id, "reason": self.reason}


@dataclass(frozen=True)
class DateWindow:
    """Inclusive time window; either bound may be open."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self):
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError("DateWindow start must not be after end.")

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


@dataclass(frozen=True)
class AttributionTimeline:
    contact_id: str
    events: tuple[TouchPointEvent, ...]
    first_touch: Optional[TouchPointEvent]
    last_touch: Optional[TouchPointEvent]
    defects: tuple[EventDefect, ...] = ()

    @property
    def sources(self) -> frozenset[Source]:
        return frozenset(event.source for event in self.events)

    @property
    def is_multi_source(self) -> bool:
        return len(self.sources) >= 2

    @property
    def has_attribution(self) -> bool:
        return bool(self.events)

    def events_of_type(self, event_type: str) -> Sequence[TouchPointEvent]:
        return tuple(event for event in self.events if event.type == event_type)

    def as_dict(self) -> dict[str, Any]:
        return {
            "contact_id": self.contact_id,
            "events": [event.as_dict() for event in self.events],
            "first_touch": self.first_touch.as_dict() if self.first_touch else None,
            "last_touch": self.last_touch.as_dict() if self.last_touch else None,
            "sources": sorted(source.value for source in self.sources),
            "is_multi_source": self.is_multi_source,
            "defects": [defect.as_dict() for defect in self.defects],
        }


__all__ = [
    "AttributionTimeline",
    "CanonicalContact",
    "DateWindow",
    "EventDefect",
    "LinkedSource",
    "MatchConfidence",
    "MatchResult",
    "Source",
    "SourceEvent",
    "SourceRecord",
    "TouchPointEvent",
]
