"""Shared builders for engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from attribution_app.engine import CanonicalContact, LinkedSource, Source, SourceEvent, SourceRecord
from attribution_app.stores import InMemoryContactStore, InMemoryEventSource

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def build_contact(
    contact_id,
    name="",
    *,
    email=None,
    phone=None,
    company=None,
    notes=None,
    links=(),
    updated_offset_minutes=0,
):
    linked = frozenset(LinkedSource(Source.parse(source), str(source_id)) for source, source_id in links)
    return CanonicalContact(
        id=contact_id,
        name=name,
        email=email,
        phone=phone,
        company=company,
        linked_sources=linked,
        notes=notes,
        created_at=BASE_TIME,
        updated_at=BASE_TIME + timedelta(minutes=updated_offset_minutes),
    )


def build_record(source, source_id, name="", **fields):
    return SourceRecord(source=Source.parse(source), source_id=str(source_id), name=name, **fields)


def build_event(source, source_id, occurred_at, *, event_type="touch", contact_id=None, record_id=None):
    return SourceEvent(
        source=Source.parse(source),
        source_id=str(source_id),
        type=event_type,
        occurred_at=occurred_at,
        contact_id=contact_id,
        record_id=record_id,
    )


@pytest.fixture
def make_contact():
    return build_contact


@pytest.fixture
def make_record():
    return build_record


@pytest.fixture
def make_event():
    return build_event


@pytest.fixture
def memory_store():
    return InMemoryContactStore()


@pytest.fixture
def event_sources():
    return {source: InMemoryEventSource(source) for source in Source}
