"""
Identity resolution and attribution engine.

Exposes the three public operations (``ContactResolver.resolve``,
``TimelineBuilder.build_timeline``, ``AttributionStatsAggregator.compute_stats``)
together with the pure helpers they are built from.
"""

from .attribution_models import AttributionModel, channel_breakdown, determine_model, touchpoint_weights
from .budget import OperationBudget
from .errors import (
    AmbiguousMatch,
    AttributionError,
    BudgetExceeded,
    ContactNotFound,
    MalformedRecord,
    MatchingProfileError,
    StoreUnavailable,
)
from .matching import MatchScorer, compute_name_similarity
from .merge import FieldDecision, MergeOutcome, apply_merge_policy, summarize_decisions
from .normalize import company_key, normalize_email, normalize_name, normalize_phone
from .resolver import BatchFailure, BatchResolutionSummary, ContactResolver, Resolution
from .stats import AttributionStats, AttributionStatsAggregator, ContactFailure, field_coverage_for
from .timeline import TimelineBuilder, parse_timestamp
from .types import (
    AttributionTimeline,
    CanonicalContact,
    DateWindow,
    EventDefect,
    LinkedSource,
    MatchConfidence,
    MatchResult,
    Source,
    SourceEvent,
    SourceRecord,
    TouchPointEvent,
)

__all__ = [
    "AmbiguousMatch",
    "AttributionError",
    "AttributionModel",
    "AttributionStats",
    "AttributionStatsAggregator",
    "AttributionTimeline",
    "BatchFailure",
    "BatchResolutionSummary",
    "BudgetExceeded",
    "CanonicalContact",
    "ContactFailure",
    "ContactNotFound",
    "ContactResolver",
    "DateWindow",
    "EventDefect",
    "FieldDecision",
    "LinkedSource",
    "MalformedRecord",
    "MatchConfidence",
    "MatchResult",
    "MatchScorer",
    "MatchingProfileError",
    "MergeOutcome",
    "OperationBudget",
    "Resolution",
    "Source",
    "SourceEvent",
    "SourceRecord",
    "StoreUnavailable",
    "TimelineBuilder",
    "TouchPointEvent",
    "apply_merge_policy",
    "channel_breakdown",
    "company_key",
    "compute_name_similarity",
    "determine_model",
    "field_coverage_for",
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    "parse_timestamp",
    "summarize_decisions",
    "touchpoint_weights",
]
