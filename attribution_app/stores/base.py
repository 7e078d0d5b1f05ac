"""
Collaborator contracts for the canonical contact store and event sources.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, Optional, Sequence

from attribution_app.engine.types import CanonicalContact, Source, SourceEvent


class KeyedLock:
    """
    Process-local registry of re-entrant locks keyed by string.

    Entries are reference counted and dropped once no thread holds or waits on
    them, so the registry does not grow with the number of keys ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list] = {}

    @contextmanager
    def acquire(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class ContactStore(ABC):
    """Canonical contact storage used by the resolver and timeline builder."""

    def __init__(self):
        self._locks = KeyedLock()

    @abstractmethod
    def get(self, contact_id: str) -> Optional[CanonicalContact]:
        ...

    @abstractmethod
    def find_all(self) -> Sequence[CanonicalContact]:
        ...

    @abstractmethod
    def create(self, contact: CanonicalContact) -> CanonicalContact:
        ...

    @abstractmethod
    def update(self, contact_id: str, contact: CanonicalContact) -> CanonicalContact:
        ...

    @abstractmethod
    def find_by_source(self, source: Source, source_id: str) -> Optional[CanonicalContact]:
        ...

    def list_ids(self) -> list[str]:
        return [contact.id for contact in self.find_all()]

    def locked(self, key: str):
        """Context manager serializing work on ``key`` within this process."""
        return self._locks.acquire(key)


class EventSource(ABC):
    """Supplies touch-point events from one external system."""

    source: Source

    @abstractmethod
    def list_events_for_contact(self, contact_id: str, source_ids: Sequence[str] = ()) -> Sequence[SourceEvent]:
        """
        Return events attributed to ``contact_id`` or to any of the contact's
        source-native record ids in this system.
        """


__all__ = ["ContactStore", "EventSource", "KeyedLock"]
