"""
Field-level merge policy for folding a source record into a canonical contact.

The policy is monotonic: a populated field never becomes empty and linked
sources are only ever added. Each field yields a ``FieldDecision`` so callers
can audit what changed and why. Confidence gating is the caller's concern.
"""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Sequence

from config.matching import DEFAULT_PROFILE, MatchingProfile

from .types import CanonicalContact, LinkedSource, MatchConfidence, SourceRecord

# Scalar fields in merge order; linked_sources is always unioned after them.
MERGED_FIELDS = ("name", "email", "phone", "company", "notes")


def _normalize_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


@dataclass(frozen=True)
class FieldDecision:
    field_name: str
    winner: str  # "existing", "incoming", "appended" or "union"
    value: Any
    changed: bool
    reason: str


@dataclass(frozen=True)
class MergeOutcome:
    contact: CanonicalContact
    decisions: Sequence[FieldDecision]
    stats: Mapping[str, int]

    @property
    def changed(self) -> bool:
        return any(decision.changed for decision in self.decisions)

    @property
    def changed_fields(self) -> tuple[str, ...]:
        return tuple(decision.field_name for decision in self.decisions if decision.changed)


def _prefer_longer(existing: Optional[str], incoming: Optional[str]) -> tuple[Optional[str], str, str]:
    if incoming is None:
        return existing, "existing", "incoming empty"
    if existing is None:
        return incoming, "incoming", "existing empty"
    if len(incoming) > len(existing):
        return incoming, "incoming", "incoming longer"
    return existing, "existing", "existing kept (longer or equal)"


def _prefer_existing(existing: Optional[str], incoming: Optional[str]) -> tuple[Optional[str], str, str]:
    if existing is not None:
        return existing, "existing", "existing populated"
    if incoming is not None:
        return incoming, "incoming", "existing empty"
    return None, "existing", "both empty"


def _append_notes(existing: Optional[str], incoming: Optional[str], separator: str) -> tuple[Optional[str], str, str]:
    if incoming is None:
        return existing, "existing", "no incoming notes"
    if existing is None:
        return incoming, "incoming", "existing empty"
    # Only an identical fragment counts as already present.
    if incoming in (fragment.strip() for fragment in existing.split(separator)):
        return existing, "existing", "incoming notes already present"
    return f"{existing}{separator}{incoming}", "appended", "incoming notes appended"


def apply_merge_policy(
    existing: CanonicalContact | None,
    record: SourceRecord,
    confidence: MatchConfidence = MatchConfidence.NONE,
    *,
    profile: MatchingProfile | None = None,
    now: datetime | None = None,
    contact_id: str | None = None,
) -> MergeOutcome:
    """
    Merge ``record`` into ``existing`` (or seed a new contact when ``None``).

    Args:
        existing: Current canonical snapshot, or ``None`` for a new contact.
        record: Incoming source record.
        confidence: Match confidence that led here; recorded in decision reasons.
        profile: Matching profile providing the notes separator.
        now: Timestamp for ``created_at``/``updated_at``; defaults to UTC now.
        contact_id: Id for a new contact; a UUID is generated when omitted.

    Returns:
        MergeOutcome with the resulting snapshot, per-field decisions and counters.
    """

    profile = profile or DEFAULT_PROFILE
    now = now or datetime.now(timezone.utc)
    confidence = MatchConfidence.parse(confidence)
    decisions: list[FieldDecision] = []
    stats: Counter[str] = Counter()

    current = {
        field_name: _normalize_value(getattr(existing, field_name)) if existing else None
        for field_name in MERGED_FIELDS
    }
    incoming = {field_name: _normalize_value(getattr(record, field_name)) for field_name in MERGED_FIELDS}

    resolved: dict[str, Optional[str]] = {}
    for field_name in MERGED_FIELDS:
        if field_name == "name":
            value, winner, reason = _prefer_longer(current[field_name], incoming[field_name])
        elif field_name == "notes":
            value, winner, reason = _append_notes(current[field_name], incoming[field_name], profile.notes_separator)
        else:
            value, winner, reason = _prefer_existing(current[field_name], incoming[field_name])

        changed = value != current[field_name]
        resolved[field_name] = value
        if winner == "existing":
            stats["existing_wins"] += 1
        else:
            stats["incoming_wins"] += 1
        stats["fields_changed" if changed else "fields_unchanged"] += 1
        if winner == "appended":
            stats["notes_appended"] += 1

        decisions.append(
            FieldDecision(
                field_name=field_name,
                winner=winner,
                value=value,
                changed=changed,
                reason=f"{reason} at {confidence.label} confidence",
            )
        )

    previous_links = existing.linked_sources if existing else frozenset()
    new_link = LinkedSource(record.source, record.source_id)
    linked_sources = previous_links | {new_link}
    links_changed = new_link not in previous_links
    if links_changed:
        stats["sources_added"] += 1
        stats["fields_changed"] += 1
    else:
        stats["fields_unchanged"] += 1
    decisions.append(
        FieldDecision(
            field_name="linked_sources",
            winner="union",
            value=linked_sources,
            changed=links_changed,
            reason=f"linked {record.source.value}:{record.source_id}" if links_changed else "source already linked",
        )
    )

    any_changed = any(decision.changed for decision in decisions)
    if existing is None:
        contact = CanonicalContact(
            id=contact_id or str(uuid.uuid4()),
            name=resolved["name"] or "",
            email=resolved["email"],
            phone=resolved["phone"],
            company=resolved["company"],
            linked_sources=frozenset(linked_sources),
            notes=resolved["notes"],
            created_at=now,
            updated_at=now,
        )
    else:
        contact = CanonicalContact(
            id=existing.id,
            name=resolved["name"] or "",
            email=resolved["email"],
            phone=resolved["phone"],
            company=resolved["company"],
            linked_sources=frozenset(linked_sources),
            notes=resolved["notes"],
            created_at=existing.created_at,
            updated_at=now if any_changed else existing.updated_at,
        )

    return MergeOutcome(contact=contact, decisions=tuple(decisions), stats=dict(stats))


def summarize_decisions(decisions: Iterable[FieldDecision]) -> dict[str, dict[str, int]]:
    """Count kept, taken and changed outcomes per field across many merges."""

    summary: dict[str, Counter[str]] = {}
    for decision in decisions:
        counter = summary.setdefault(decision.field_name, Counter())
        counter["kept" if decision.winner == "existing" else "taken"] += 1
        if decision.changed:
            counter["changed"] += 1
    return {field_name: dict(counter) for field_name, counter in summary.items()}


__all__ = [
    "FieldDecision",
    "MERGED_FIELDS",
    "MergeOutcome",
    "apply_merge_policy",
    "summarize_decisions",
]
