"""Prometheus metrics helpers for the attribution engine."""

from __future__ import annotations

from typing import Literal

from prometheus_client import Counter, Histogram

_resolution_counter = Counter(
    "attribution_contact_resolutions_total",
    "Contact resolutions by action and match confidence.",
    ["action", "confidence"],
)
_ambiguous_counter = Counter(
    "attribution_ambiguous_matches_total",
    "Matches where several candidates tied at HIGH or EXACT confidence.",
)
_resolution_failures = Counter(
    "attribution_resolution_failures_total",
    "Records that failed to resolve, by error type.",
    ["error_type"],
)
_timeline_defects = Counter(
    "attribution_timeline_defects_total",
    "Events excluded from timelines because their timestamp could not be used.",
    ["source"],
)
_stats_runs = Counter(
    "attribution_stats_runs_total",
    "Attribution statistics runs by completion status.",
    ["status"],
)
_stats_duration = Histogram(
    "attribution_stats_duration_seconds",
    "Duration of attribution statistics runs in seconds.",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300),
)


def record_resolution(action: Literal["created", "updated", "unchanged"], confidence: str) -> None:
    """Increment the resolution counter."""

    _resolution_counter.labels(action=action, confidence=confidence).inc()


def record_ambiguous_match() -> None:
    _ambiguous_counter.inc()


def record_resolution_failure(error_type: str) -> None:
    _resolution_failures.labels(error_type=error_type).inc()


def record_timeline_defects(source: str, count: int = 1) -> None:
    if count <= 0:
        return
    _timeline_defects.labels(source=source).inc(count)


def record_stats_run(*, status: Literal["complete", "timed_out"], duration_seconds: float) -> None:
    """Capture metrics for one statistics run."""

    _stats_runs.labels(status=status).inc()
    _stats_duration.observe(duration_seconds)
