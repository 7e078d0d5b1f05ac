"""
Confidence-level match scoring between a source record and canonical contacts.

Levels are evaluated in strictly decreasing order and the first level with any
candidate wins:

- EXACT: normalized emails are equal
- HIGH: digit-only phones are equal, or names and company keys are equal
- MEDIUM: similar names plus a shared phone or company key
- LOW: similar names alone
- NONE: nothing matched
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Sequence

from flask import current_app, has_app_context
from rapidfuzz import utils
from rapidfuzz.distance import Levenshtein

from config.matching import DEFAULT_PROFILE, MatchingProfile

from .errors import AmbiguousMatch
from .normalize import company_key, normalize_email, normalize_name, normalize_phone
from .types import CanonicalContact, MatchConfidence, MatchResult, SourceRecord

logger = logging.getLogger(__name__)


def compute_name_similarity(name1: object | None, name2: object | None) -> float:
    """Return normalized Levenshtein similarity between two names (0..1)."""

    processed1 = utils.default_process(normalize_name(name1))
    processed2 = utils.default_process(normalize_name(name2))
    if not processed1 or not processed2:
        return 0.0
    score = Levenshtein.normalized_similarity(processed1, processed2)
    return float(max(0.0, min(1.0, score)))


@dataclass(frozen=True)
class _Signals:
    email: str
    phone: str
    name: str
    company: str


@dataclass(frozen=True)
class _Scored:
    contact: CanonicalContact
    confidence: MatchConfidence
    similarity: float
    reason: str


class MatchScorer:
    """Scores a record against candidates using a ``MatchingProfile``."""

    def __init__(self, profile: MatchingProfile | None = None):
        self.profile = profile or DEFAULT_PROFILE

    def _signals(self, *, name, email, phone, company) -> _Signals:
        profile = self.profile
        return _Signals(
            email=normalize_email(email, dot_insensitive_domains=profile.dot_insensitive_domains),
            phone=normalize_phone(phone),
            name=normalize_name(name),
            company=company_key(
                company,
                email,
                suffixes=profile.company_suffixes,
                free_mail_domains=profile.free_mail_domains,
            ),
        )

    def signals_for_record(self, record: SourceRecord) -> _Signals:
        return self._signals(name=record.name, email=record.email, phone=record.phone, company=record.company)

    def signals_for_contact(self, contact: CanonicalContact) -> _Signals:
        return self._signals(name=contact.name, email=contact.email, phone=contact.phone, company=contact.company)

    def _score_one(self, incoming: _Signals, record: SourceRecord, contact: CanonicalContact) -> _Scored:
        existing = self.signals_for_contact(contact)

        if incoming.email and incoming.email == existing.email:
            return _Scored(contact, MatchConfidence.EXACT, 1.0, f"email match ({incoming.email})")

        phones_equal = bool(incoming.phone) and incoming.phone == existing.phone
        if phones_equal and len(incoming.phone) >= self.profile.min_phone_digits:
            return _Scored(contact, MatchConfidence.HIGH, 0.0, "phone match")

        companies_equal = bool(incoming.company) and incoming.company == existing.company
        if incoming.name and incoming.name == existing.name and companies_equal:
            return _Scored(contact, MatchConfidence.HIGH, 1.0, f"name and company match ({incoming.company})")

        similarity = compute_name_similarity(record.name, contact.name)
        if similarity >= self.profile.name_similarity_threshold:
            if phones_equal or companies_equal:
                corroboration = "phone" if phones_equal else "company"
                return _Scored(
                    contact,
                    MatchConfidence.MEDIUM,
                    similarity,
                    f"name similarity {similarity:.2f} with shared {corroboration}",
                )
            return _Scored(contact, MatchConfidence.LOW, similarity, f"name similarity {similarity:.2f}")

        return _Scored(contact, MatchConfidence.NONE, similarity, "")

    def score(self, record: SourceRecord, contacts: Iterable[CanonicalContact]) -> MatchResult:
        """
        Score ``record`` against ``contacts`` and return the best candidate.

        Ties at the winning level go to the most recently updated contact, then
        to the highest id. A tie at HIGH or EXACT is reported as ambiguous but
        still returns a candidate.
        """

        incoming = self.signals_for_record(record)
        best_level = MatchConfidence.NONE
        best: list[_Scored] = []

        for contact in contacts:
            scored = self._score_one(incoming, record, contact)
            if scored.confidence == MatchConfidence.NONE:
                continue
            if scored.confidence > best_level:
                best_level = scored.confidence
                best = [scored]
            elif scored.confidence == best_level:
                best.append(scored)

        if not best:
            return MatchResult(confidence=MatchConfidence.NONE, candidate=None, reason="no candidate matched")

        ranked: Sequence[_Scored] = sorted(
            best,
            key=lambda item: (item.contact.updated_at, item.contact.id),
            reverse=True,
        )
        winner = ranked[0]
        others = tuple(item.contact.id for item in ranked[1:])
        reason = winner.reason
        ambiguous_with: tuple[str, ...] = ()

        if others and best_level >= MatchConfidence.HIGH:
            ambiguous_with = others
            warning = AmbiguousMatch(
                (record.source.value, record.source_id),
                best_level.label,
                (winner.contact.id,) + others,
            )
            reason = f"{reason}; ambiguous: {warning}"
            if has_app_context():
                current_app.logger.warning("Ambiguous contact match: %s", warning)
            else:
                logger.warning("Ambiguous contact match: %s", warning)

        return MatchResult(
            confidence=best_level,
            candidate=winner.contact,
            reason=reason,
            similarity=winner.similarity,
            ambiguous_with=ambiguous_with,
        )


__all__ = ["MatchScorer", "compute_name_similarity"]
