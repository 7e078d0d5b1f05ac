"""
Error taxonomy for the identity resolution engine.

Only ``MalformedRecord`` and ``ContactNotFound`` reach callers during normal
operation. Unparseable emails and timestamps are recovered where they are
found, and ``AmbiguousMatch`` is logged rather than raised.
"""

from __future__ import annotations

from typing import Sequence

from config.matching import MatchingProfileError


class AttributionError(Exception):
    """Base class for engine errors."""


class MalformedRecord(AttributionError, ValueError):
    """An inbound record is missing its source or source-native id."""

    def __init__(self, message: str, *, field_name: str | None = None):
        super().__init__(message)
        self.field_name = field_name


class AmbiguousMatch(AttributionError, UserWarning):
    """Several candidates tied at a strong confidence level."""

    def __init__(self, record_key: tuple[str, str], confidence: str, candidate_ids: Sequence[str]):
        self.record_key = record_key
        self.confidence = confidence
        self.candidate_ids = tuple(candidate_ids)
        super().__init__(
            f"{record_key[0]}:{record_key[1]} tied at {confidence} with contacts {', '.join(self.candidate_ids)}"
        )


class StoreUnavailable(AttributionError, RuntimeError):
    """The canonical store or an event source failed to answer."""


class ContactNotFound(AttributionError, LookupError):
    def __init__(self, contact_id: str):
        super().__init__(f"Contact {contact_id} does not exist.")
        self.contact_id = contact_id


class BudgetExceeded(AttributionError):
    """Raised by ``OperationBudget.consume`` once the budget is spent."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "AttributionError",
    "AmbiguousMatch",
    "BudgetExceeded",
    "ContactNotFound",
    "MalformedRecord",
    "MatchingProfileError",
    "StoreUnavailable",
]
