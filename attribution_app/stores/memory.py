"""In-process store and event source, used by tests and dry runs."""

from __future__ import annotations

import threading
from typing import Iterable, Optional, Sequence

from attribution_app.engine.errors import ContactNotFound, StoreUnavailable
from attribution_app.engine.types import CanonicalContact, LinkedSource, Source, SourceEvent

from .base import ContactStore, EventSource


class InMemoryContactStore(ContactStore):
    """Dictionary-backed ``ContactStore`` enforcing one contact per source link."""

    def __init__(self, contacts: Iterable[CanonicalContact] = ()):
        super().__init__()
        self._guard = threading.Lock()
        self._contacts: dict[str, CanonicalContact] = {}
        self._links: dict[LinkedSource, str] = {}
        self.writes = 0
        for contact in contacts:
            self.create(contact)

    def _claim_links(self, contact: CanonicalContact) -> None:
        for link in contact.linked_sources:
            owner = self._links.get(link)
            if owner is not None and owner != contact.id:
                raise StoreUnavailable(
                    f"{link.source.value}:{link.source_id} is already linked to contact {owner}."
                )
        for link in contact.linked_sources:
            self._links[link] = contact.id

    def get(self, contact_id: str) -> Optional[CanonicalContact]:
        with self._guard:
            return self._contacts.get(contact_id)

    def find_all(self) -> Sequence[CanonicalContact]:
        with self._guard:
            return list(self._contacts.values())

    def create(self, contact: CanonicalContact) -> CanonicalContact:
        with self._guard:
            if contact.id in self._contacts:
                raise StoreUnavailable(f"Contact {contact.id} already exists.")
            self._claim_links(contact)
            self._contacts[contact.id] = contact
            self.writes += 1
            return contact

    def update(self, contact_id: str, contact: CanonicalContact) -> CanonicalContact:
        with self._guard:
            if contact_id not in self._contacts:
                raise ContactNotFound(contact_id)
            if contact.id != contact_id:
                raise StoreUnavailable(f"Cannot change contact id {contact_id} to {contact.id}.")
            self._claim_links(contact)
            self._contacts[contact_id] = contact
            self.writes += 1
            return contact

    def find_by_source(self, source: Source, source_id: str) -> Optional[CanonicalContact]:
        with self._guard:
            owner = self._links.get(LinkedSource(source, source_id))
            return self._contacts.get(owner) if owner is not None else None

    def __len__(self) -> int:
        with self._guard:
            return len(self._contacts)


class InMemoryEventSource(EventSource):
    """Holds events for a single source system in memory."""

    def __init__(self, source: Source, events: Iterable[SourceEvent] = ()):
        self.source = source
        self._events: list[SourceEvent] = []
        for event in events:
            self.add(event)

    def add(self, event: SourceEvent) -> None:
        if event.source != self.source:
            raise ValueError(f"Event from {event.source.value} added to {self.source.value} event source.")
        self._events.append(event)

    def list_events_for_contact(self, contact_id: str, source_ids: Sequence[str] = ()) -> Sequence[SourceEvent]:
        record_ids = set(source_ids)
        return [
            event
            for event in self._events
            if event.contact_id == contact_id or (event.record_id is not None and event.record_id in record_ids)
        ]


__all__ = ["InMemoryContactStore", "InMemoryEventSource"]
