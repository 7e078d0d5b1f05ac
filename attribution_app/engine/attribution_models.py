"""
Multi-touch attribution models applied to a contact's ordered touch-points.

Weights are (first, middle, last) triples. The middle weight is split evenly
across every touch-point between the first and the last one.
"""

from __future__ import annotations

import enum
from collections import Counter
from typing import Mapping, NamedTuple, Sequence

from .types import Source, TouchPointEvent


class AttributionModel(str, enum.Enum):
    FIRST_TOUCH = "first_touch"
    LAST_TOUCH = "last_touch"
    LINEAR = "linear"
    U_SHAPED = "u_shaped"
    W_SHAPED = "w_shaped"
    MULTI_TOUCH = "multi_touch"


class ModelWeights(NamedTuple):
    first: float
    middle: float
    last: float


MODEL_WEIGHTS: Mapping[AttributionModel, ModelWeights] = {
    AttributionModel.FIRST_TOUCH: ModelWeights(1.0, 0.0, 0.0),
    AttributionModel.LAST_TOUCH: ModelWeights(0.0, 0.0, 1.0),
    AttributionModel.LINEAR: ModelWeights(0.33, 0.34, 0.33),
    AttributionModel.U_SHAPED: ModelWeights(0.4, 0.2, 0.4),
    AttributionModel.W_SHAPED: ModelWeights(0.3, 0.4, 0.3),
    AttributionModel.MULTI_TOUCH: ModelWeights(0.25, 0.5, 0.25),
}

# Scheduling events are meetings; CRM events are sales activities.
MEETING_SOURCE = Source.SCHEDULING
ACTIVITY_SOURCE = Source.CRM


def determine_model(events: Sequence[TouchPointEvent]) -> AttributionModel:
    """
    Pick the model that best fits a journey.

    Zero or one touch-point is first touch. A journey with both meetings and
    CRM activities is W-shaped. Three or more touch-points of one kind are
    U-shaped, and two are linear.
    """

    if len(events) <= 1:
        return AttributionModel.FIRST_TOUCH
    sources = {event.source for event in events}
    if MEETING_SOURCE in sources and ACTIVITY_SOURCE in sources:
        return AttributionModel.W_SHAPED
    if len(events) >= 3:
        return AttributionModel.U_SHAPED
    return AttributionModel.LINEAR


def _event_key(event: TouchPointEvent) -> str:
    return f"{event.source.value}:{event.source_id}"


def touchpoint_weights(
    events: Sequence[TouchPointEvent],
    model: AttributionModel | None = None,
) -> dict[str, float]:
    """Return the credit each touch-point receives, keyed by ``source:source_id``."""

    if not events:
        return {}
    model = model or determine_model(events)
    weights = MODEL_WEIGHTS[AttributionModel(model)]

    if len(events) == 1:
        return {_event_key(events[0]): 1.0}
    if len(events) == 2:
        return {_event_key(events[0]): weights.first, _event_key(events[1]): weights.last}

    middle_weight = weights.middle / (len(events) - 2)
    result = {_event_key(events[0]): weights.first}
    for event in events[1:-1]:
        result[_event_key(event)] = middle_weight
    result[_event_key(events[-1])] = weights.last
    return result


def channel_breakdown(events: Sequence[TouchPointEvent]) -> dict[str, dict[str, float]]:
    """Count touch-points per source along with each source's share."""

    counts = Counter(event.source.value for event in events)
    total = len(events)
    return {
        channel: {"count": count, "percentage": count / total if total else 0.0}
        for channel, count in sorted(counts.items())
    }


__all__ = [
    "AttributionModel",
    "MODEL_WEIGHTS",
    "ModelWeights",
    "channel_breakdown",
    "determine_model",
    "touchpoint_weights",
]
