"""Contact store and event source implementations."""

from .base import ContactStore, EventSource, KeyedLock
from .memory import InMemoryContactStore, InMemoryEventSource
from .sql import SqlAlchemyContactStore, SqlAlchemyEventSource

__all__ = [
    "ContactStore",
    "EventSource",
    "InMemoryContactStore",
    "InMemoryEventSource",
    "KeyedLock",
    "SqlAlchemyContactStore",
    "SqlAlchemyEventSource",
]
