"""
Contact resolver: decides create-versus-merge for each incoming source record.

Per record the resolver takes, in this order, the store lock for the record's
``(source, source_id)``, the lock for its normalized email and the lock for the
matched candidate. Merges into one contact are therefore serialized while
unrelated records proceed in parallel.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Iterable, Literal, Optional, Sequence

from flask import current_app, has_app_context

from attribution_app import metrics
from config.matching import DEFAULT_PROFILE, MatchingProfile

from .matching import MatchScorer
from .merge import FieldDecision, apply_merge_policy
from .normalize import normalize_email
from .types import CanonicalContact, MatchConfidence, MatchResult, SourceRecord

if TYPE_CHECKING:
    from attribution_app.stores.base import ContactStore

logger = logging.getLogger(__name__)

ResolutionAction = Literal["created", "updated", "unchanged"]


def _log(level: int, message: str, *args) -> None:
    if has_app_context():
        current_app.logger.log(level, message, *args)
    else:
        logger.log(level, message, *args)


@dataclass(frozen=True)
class Resolution:
    contact: CanonicalContact
    action: ResolutionAction
    match: Optional[MatchResult]
    decisions: Sequence[FieldDecision] = ()


@dataclass(frozen=True)
class BatchFailure:
    key: Optional[tuple[str, str]]
    error_type: str
    message: str

    def as_dict(self) -> dict[str, object]:
        return {
            "key": list(self.key) if self.key else None,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class BatchResolutionSummary:
    records_considered: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    ambiguous: int = 0
    failures: list[BatchFailure] = field(default_factory=list)
    contact_ids: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "records_considered": self.records_considered,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "ambiguous": self.ambiguous,
            "failures": [failure.as_dict() for failure in self.failures],
        }


class ContactResolver:
    """Resolves source records into canonical contacts held by ``store``."""

    def __init__(
        self,
        store: "ContactStore",
        *,
        profile: MatchingProfile | None = None,
        scorer: MatchScorer | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.profile = profile or DEFAULT_PROFILE
        self.scorer = scorer or MatchScorer(self.profile)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _threshold(self, confidence_threshold) -> MatchConfidence:
        if confidence_threshold is None:
            return MatchConfidence.parse(self.profile.auto_merge_confidence)
        return MatchConfidence.parse(confidence_threshold)

    def resolve(self, record: SourceRecord, confidence_threshold=None) -> CanonicalContact:
        """Return the canonical contact ``record`` belongs to, creating one if needed."""
        return self.resolve_detailed(record, confidence_threshold).contact

    def resolve_detailed(self, record: SourceRecord, confidence_threshold=None) -> Resolution:
        threshold = self._threshold(confidence_threshold)

        with ExitStack() as stack:
            stack.enter_context(self.store.locked(f"record:{record.source.value}:{record.source_id}"))

            linked = self.store.find_by_source(record.source, record.source_id)
            if linked is not None:
                metrics.record_resolution("unchanged", MatchConfidence.EXACT.label)
                return Resolution(contact=linked, action="unchanged", match=None)

            email_key = normalize_email(record.email, dot_insensitive_domains=self.profile.dot_insensitive_domains)
            if email_key:
                stack.enter_context(self.store.locked(f"email:{email_key}"))

            match = self.scorer.score(record, self.store.find_all())
            if match.is_ambiguous:
                metrics.record_ambiguous_match()

            if match.candidate is not None and match.confidence >= threshold:
                stack.enter_context(self.store.locked(f"contact:{match.candidate.id}"))
                current = self.store.get(match.candidate.id)
                if current is not None:
                    outcome = apply_merge_policy(
                        current, record, match.confidence, profile=self.profile, now=self._clock()
                    )
                    updated = self.store.update(current.id, outcome.contact)
                    _log(
                        logging.INFO,
                        "Merged %s:%s into contact %s (%s; changed=%s)",
                        record.source.value,
                        record.source_id,
                        updated.id,
                        match.reason,
                        ",".join(outcome.changed_fields) or "none",
                    )
                    metrics.record_resolution("updated", match.confidence.label)
                    return Resolution(contact=updated, action="updated", match=match, decisions=outcome.decisions)
                _log(logging.WARNING, "Matched contact %s vanished before merge; creating new", match.candidate.id)

            outcome = apply_merge_policy(None, record, match.confidence, profile=self.profile, now=self._clock())
            created = self.store.create(outcome.contact)
            _log(
                logging.INFO,
                "Created contact %s from %s:%s (best match %s)",
                created.id,
                record.source.value,
                record.source_id,
                match.confidence.label,
            )
            metrics.record_resolution("created", match.confidence.label)
            return Resolution(contact=created, action="created", match=match, decisions=outcome.decisions)

    def resolve_batch(
        self,
        records: Iterable[SourceRecord],
        confidence_threshold=None,
    ) -> BatchResolutionSummary:
        """
        Resolve every record, isolating failures per item.

        Failures are counted and the first ``max_failure_reasons`` are kept with
        their error type and message; the batch always runs to the end.
        """

        summary = BatchResolutionSummary()
        for record in records:
            summary.records_considered += 1
            key = (record.source.value, record.source_id) if isinstance(record, SourceRecord) else None
            try:
                resolution = self.resolve_detailed(record, confidence_threshold)
            except Exception as exc:  # noqa: BLE001 - one bad record must not stop the batch
                self._record_failure(summary, key, exc)
                continue

            if resolution.action == "created":
                summary.created += 1
            elif resolution.action == "updated":
                summary.updated += 1
            else:
                summary.unchanged += 1
            if resolution.match is not None and resolution.match.is_ambiguous:
                summary.ambiguous += 1
            summary.contact_ids.append(resolution.contact.id)

        _log(
            logging.INFO,
            "Resolved %s records: created=%s updated=%s unchanged=%s failed=%s",
            summary.records_considered,
            summary.created,
            summary.updated,
            summary.unchanged,
            summary.failed,
        )
        return summary

    def _record_failure(self, summary: BatchResolutionSummary, key, exc: Exception) -> None:
        summary.failed += 1
        error_type = type(exc).__name__
        metrics.record_resolution_failure(error_type)
        _log(logging.WARNING, "Failed to resolve record %s: %s", key, exc)
        if len(summary.failures) < self.profile.max_failure_reasons:
            summary.failures.append(BatchFailure(key=key, error_type=error_type, message=str(exc)))


__all__ = ["BatchFailure", "BatchResolutionSummary", "ContactResolver", "Resolution"]
