"""
Attribution statistics over a population of canonical contacts.

Statistics are the only population-sized operation in the engine, so they
accept an optional uniform sample size and an ``OperationBudget``. When the
budget runs out the partial result is returned flagged ``timed_out``.
"""

from __future__ import annotations

import logging
import random
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

from flask import current_app, has_app_context

from attribution_app import metrics
from config.matching import DEFAULT_PROFILE, MatchingProfile

from .attribution_models import determine_model
from .budget import OperationBudget
from .errors import BudgetExceeded, ContactNotFound
from .types import CanonicalContact, DateWindow

if TYPE_CHECKING:
    from attribution_app.stores.base import ContactStore

    from .timeline import TimelineBuilder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContactFailure:
    contact_id: str
    error_type: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"contact_id": self.contact_id, "error_type": self.error_type, "message": self.message}


@dataclass
class AttributionStats:
    """
    Aggregate attribution metrics for the analysed contacts.

    Rates use ``contacts_analyzed`` (successful timelines) as the denominator;
    failed contacts are reported separately and never count toward a rate.
    """

    total_contacts: int = 0
    sample_size: int = 0
    contacts_analyzed: int = 0
    contacts_with_attribution: int = 0
    multi_source_contacts: int = 0
    attribution_rate: float = 0.0
    multi_source_rate: float = 0.0
    field_coverage: float = 0.0
    defect_count: int = 0
    failed_contacts: int = 0
    failures: list[ContactFailure] = field(default_factory=list)
    timed_out: bool = False
    complete: bool = True
    stop_reason: Optional[str] = None
    total_touchpoints: int = 0
    max_touchpoints: int = 0
    average_touchpoints_per_contact: float = 0.0
    channel_breakdown: dict[str, int] = field(default_factory=dict)
    touchpoint_types: dict[str, int] = field(default_factory=dict)
    first_touch_sources: dict[str, int] = field(default_factory=dict)
    last_touch_sources: dict[str, int] = field(default_factory=dict)
    model_counts: dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0

    def as_dict(self) -> dict[str, object]:
        return {
            "total_contacts": self.total_contacts,
            "sample_size": self.sample_size,
            "contacts_analyzed": self.contacts_analyzed,
            "contacts_with_attribution": self.contacts_with_attribution,
            "multi_source_contacts": self.multi_source_contacts,
            "attribution_rate": round(self.attribution_rate, 4),
            "multi_source_rate": round(self.multi_source_rate, 4),
            "field_coverage": round(self.field_coverage, 4),
            "defect_count": self.defect_count,
            "failed_contacts": self.failed_contacts,
            "failures": [failure.as_dict() for failure in self.failures],
            "timed_out": self.timed_out,
            "complete": self.complete,
            "stop_reason": self.stop_reason,
            "total_touchpoints": self.total_touchpoints,
            "max_touchpoints": self.max_touchpoints,
            "average_touchpoints_per_contact": round(self.average_touchpoints_per_contact, 4),
            "channel_breakdown": dict(self.channel_breakdown),
            "touchpoint_types": dict(self.touchpoint_types),
            "first_touch_sources": dict(self.first_touch_sources),
            "last_touch_sources": dict(self.last_touch_sources),
            "model_counts": dict(self.model_counts),
            "duration_seconds": round(self.duration_seconds, 3),
        }


def field_coverage_for(contact: CanonicalContact, expected_fields: Iterable[str]) -> float:
    """Fraction of ``expected_fields`` that are populated on ``contact``."""

    fields = tuple(expected_fields)
    if not fields:
        return 0.0
    populated = sum(1 for name in fields if str(getattr(contact, name, "") or "").strip())
    return populated / len(fields)


def _dedupe(contact_ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(contact_ids))


class AttributionStatsAggregator:
    def __init__(
        self,
        store: "ContactStore",
        timeline_builder: "TimelineBuilder",
        *,
        profile: MatchingProfile | None = None,
    ):
        self.store = store
        self.timeline_builder = timeline_builder
        self.profile = profile or DEFAULT_PROFILE

    def select_sample(self, contact_ids: Iterable[str], sample_size: int | None, seed: int | None) -> list[str]:
        """
        Choose the contacts to analyse.

        ``random.Random(seed).sample`` draws without replacement, so a fixed
        seed reproduces the same sample for the same population order.
        """

        population = _dedupe(contact_ids)
        if sample_size is None:
            return population
        if sample_size < 0:
            raise ValueError("sample_size must be non-negative.")
        if sample_size >= len(population):
            return population
        return random.Random(seed).sample(population, sample_size)

    def compute_stats(
        self,
        contact_ids: Iterable[str] | None = None,
        sample_size: int | None = None,
        *,
        seed: int | None = None,
        budget: OperationBudget | None = None,
        window: DateWindow | None = None,
    ) -> AttributionStats:
        """
        Compute attribution statistics.

        Args:
            contact_ids: Population to analyse; defaults to every stored contact.
            sample_size: Optional uniform sample size (without replacement).
            seed: Sampling seed; falls back to the profile's ``stats_seed``.
            budget: Optional operation/time budget checked before each contact.
            window: Optional date window applied to every timeline.
        """

        started = time.monotonic()
        population = _dedupe(self.store.list_ids() if contact_ids is None else contact_ids)
        seed = seed if seed is not None else self.profile.stats_seed
        selected = self.select_sample(population, sample_size, seed)

        stats = AttributionStats(total_contacts=len(population), sample_size=len(selected))
        coverage_total = 0.0
        channels: Counter[str] = Counter()
        types: Counter[str] = Counter()
        first_sources: Counter[str] = Counter()
        last_sources: Counter[str] = Counter()
        models: Counter[str] = Counter()

        for contact_id in selected:
            if budget is not None:
                try:
                    budget.consume()
                except BudgetExceeded as exc:
                    stats.timed_out = True
                    stats.complete = False
                    stats.stop_reason = exc.reason
                    break

            try:
                contact = self.store.get(contact_id)
                if contact is None:
                    raise ContactNotFound(contact_id)
                timeline = self.timeline_builder.build_for_contact(contact, window=window)
            except Exception as exc:  # noqa: BLE001 - one bad contact must not stop the scan
                stats.failed_contacts += 1
                if len(stats.failures) < self.profile.max_failure_reasons:
                    stats.failures.append(
                        ContactFailure(contact_id=contact_id, error_type=type(exc).__name__, message=str(exc))
                    )
                continue

            stats.contacts_analyzed += 1
            coverage_total += field_coverage_for(contact, self.profile.expected_fields)
            stats.defect_count += len(timeline.defects)
            if timeline.has_attribution:
                stats.contacts_with_attribution += 1
                first_sources[timeline.first_touch.source.value] += 1
                last_sources[timeline.last_touch.source.value] += 1
            if timeline.is_multi_source:
                stats.multi_source_contacts += 1

            touchpoints = len(timeline.events)
            stats.total_touchpoints += touchpoints
            stats.max_touchpoints = max(stats.max_touchpoints, touchpoints)
            for event in timeline.events:
                channels[event.source.value] += 1
                types[event.type] += 1
            if touchpoints:
                models[determine_model(timeline.events).value] += 1

        analyzed = stats.contacts_analyzed
        if analyzed:
            stats.attribution_rate = stats.contacts_with_attribution / analyzed
            stats.multi_source_rate = stats.multi_source_contacts / analyzed
            stats.field_coverage = coverage_total / analyzed
            stats.average_touchpoints_per_contact = stats.total_touchpoints / analyzed
        stats.channel_breakdown = dict(sorted(channels.items()))
        stats.touchpoint_types = dict(sorted(types.items()))
        stats.first_touch_sources = dict(sorted(first_sources.items()))
        stats.last_touch_sources = dict(sorted(last_sources.items()))
        stats.model_counts = dict(sorted(models.items()))
        stats.duration_seconds = time.monotonic() - started

        metrics.record_stats_run(
            status="timed_out" if stats.timed_out else "complete",
            duration_seconds=stats.duration_seconds,
        )
        message = "Attribution stats analysed %s/%s contacts (failed=%s, timed_out=%s, multi_source_rate=%.3f)"
        args = (analyzed, stats.sample_size, stats.failed_contacts, stats.timed_out, stats.multi_source_rate)
        if has_app_context():
            current_app.logger.info(message, *args)
        else:
            logger.info(message, *args)
        return stats


__all__ = ["AttributionStats", "AttributionStatsAggregator", "ContactFailure", "field_coverage_for"]
