from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from attribution_app.engine import ContactResolver, MatchConfidence, Source, StoreUnavailable
from attribution_app.stores import InMemoryContactStore
from config.matching import DEFAULT_PROFILE


class _Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class _FlakyStore(InMemoryContactStore):
    """Refuses to create contacts whose name starts with 'Boom'."""

    def create(self, contact):
        if contact.name.startswith("Boom"):
            raise StoreUnavailable("database is down")
        return super().create(contact)


@pytest.fixture
def resolver(memory_store):
    return ContactResolver(memory_store, clock=_Clock())


def test_first_record_creates_contact(resolver, memory_store, make_record):
    resolution = resolver.resolve_detailed(make_record("crm", "1", "Jane Doe", email="jane@acme.com"))

    assert resolution.action == "created"
    assert resolution.match.confidence == MatchConfidence.NONE
    assert len(memory_store) == 1
    assert resolution.contact.is_linked_to(Source.CRM, "1")


def test_resolving_same_record_twice_is_idempotent(resolver, memory_store, make_record):
    record = make_record("crm", "1", "Jane Doe", email="jane@acme.com", notes="hello")

    first = resolver.resolve(record)
    second = resolver.resolve_detailed(record)

    assert second.action == "unchanged"
    assert second.contact == first
    assert memory_store.writes == 1


@pytest.mark.parametrize("crm_first", [True, False], ids=["crm-first", "form-first"])
def test_gmail_variants_across_sources_resolve_to_one_contact(resolver, memory_store, make_record, crm_first):
    crm = make_record("crm", "sf-1", "John Smith", email="John.Smith@gmail.com")
    form = make_record("form", "f-7", "John", email="johnsmith+promo@gmail.com")
    first_record, second_record = (crm, form) if crm_first else (form, crm)

    first = resolver.resolve(first_record)
    second = resolver.resolve_detailed(second_record)

    assert second.action == "updated"
    assert second.match.confidence == MatchConfidence.EXACT
    assert second.contact.id == first.id
    assert second.contact.source_count == 2
    assert second.contact.name == "John Smith"
    assert len(memory_store) == 1


def test_same_name_at_different_companies_is_not_merged(resolver, memory_store, make_record):
    first = resolver.resolve(make_record("crm", "1", "Jane Doe", email="jane@alpha.com"))
    second = resolver.resolve_detailed(make_record("form", "2", "Jane Doe", email="jane@beta.com"))

    assert second.action == "created"
    assert second.match.confidence == MatchConfidence.LOW
    assert second.contact.id != first.id
    assert len(memory_store) == 2


def test_lower_threshold_allows_name_only_merge(resolver, memory_store, make_record):
    resolver.resolve(make_record("crm", "1", "Jane Doe", email="jane@alpha.com"))

    resolution = resolver.resolve_detailed(make_record("form", "2", "Jane Doe", email="jane@beta.com"), "low")

    assert resolution.action == "updated"
    assert len(memory_store) == 1


def test_exact_threshold_refuses_phone_match(resolver, memory_store, make_record):
    resolver.resolve(make_record("crm", "1", "A", phone="555-123-4567"))

    resolution = resolver.resolve_detailed(make_record("scheduling", "2", "B", phone="5551234567"), "exact")

    assert resolution.action == "created"
    assert resolution.match.confidence == MatchConfidence.HIGH


def test_profile_supplies_default_threshold(memory_store, make_record):
    strict = ContactResolver(memory_store, profile=replace(DEFAULT_PROFILE, auto_merge_confidence="exact"))
    strict.resolve(make_record("crm", "1", "A", phone="555-123-4567"))

    strict.resolve(make_record("scheduling", "2", "B", phone="5551234567"))

    assert len(memory_store) == 2


def test_unknown_threshold_is_rejected(resolver, make_record):
    with pytest.raises(ValueError):
        resolver.resolve(make_record("crm", "1", "A"), "certain")


def test_merge_bumps_updated_at_and_keeps_created_at(resolver, make_record):
    created = resolver.resolve(make_record("crm", "1", "Jane", email="jane@acme.com"))

    merged = resolver.resolve(make_record("form", "2", "Jane Doe", email="jane@acme.com"))

    assert merged.created_at == created.created_at
    assert merged.updated_at > created.updated_at


def test_resolve_batch_counts_outcomes(resolver, make_record):
    records = [
        make_record("crm", "1", "Jane Doe", email="jane@acme.com"),
        make_record("form", "2", "Jane", email="jane@acme.com"),
        make_record("crm", "1", "Jane Doe", email="jane@acme.com"),
        make_record("scheduling", "3", "Bob Stone", email="bob@acme.com"),
    ]

    summary = resolver.resolve_batch(records)

    assert summary.records_considered == 4
    assert (summary.created, summary.updated, summary.unchanged, summary.failed) == (2, 1, 1, 0)
    assert len(set(summary.contact_ids)) == 2
    assert summary.as_dict()["failures"] == []


def test_resolve_batch_isolates_failures(make_record):
    store = _FlakyStore()
    resolver = ContactResolver(store)

    summary = resolver.resolve_batch(
        [
            make_record("crm", "1", "Jane", email="jane@acme.com"),
            make_record("crm", "2", "Boom Town", email="boom@acme.com"),
            make_record("crm", "3", "Bob", email="bob@acme.com"),
        ]
    )

    assert summary.created == 2
    assert summary.failed == 1
    failure = summary.failures[0]
    assert failure.key == ("crm", "2")
    assert failure.error_type == "StoreUnavailable"
    assert "database is down" in failure.message


def test_resolve_batch_keeps_bounded_failure_reasons(make_record):
    store = _FlakyStore()
    resolver = ContactResolver(store, profile=replace(DEFAULT_PROFILE, max_failure_reasons=2))

    summary = resolver.resolve_batch(
        make_record("crm", str(index), f"Boom {index}", email=f"b{index}@acme.com") for index in range(5)
    )

    assert summary.failed == 5
    assert len(summary.failures) == 2


def test_resolve_batch_counts_ambiguous_matches(memory_store, make_contact, make_record):
    memory_store.create(make_contact("c-1", "A", email="dup@acme.com"))
    memory_store.create(make_contact("c-2", "B", email="dup@acme.com", updated_offset_minutes=1))
    resolver = ContactResolver(memory_store)

    summary = resolver.resolve_batch([make_record("form", "f-1", "C", email="dup@acme.com")])

    assert summary.ambiguous == 1
    assert summary.updated == 1
    assert summary.contact_ids == ["c-2"]


@pytest.mark.concurrency
def test_concurrent_records_for_one_person_produce_one_contact(memory_store, make_record):
    resolver = ContactResolver(memory_store)
    sources = list(Source)
    records = [
        make_record(sources[index % len(sources)], f"r-{index}", "Jane Doe", email="Jane.Doe@gmail.com")
        for index in range(24)
    ]

    with ThreadPoolExecutor(max_workers=8) as pool:
        contacts = list(pool.map(resolver.resolve, records))

    assert len(memory_store) == 1
    assert {contact.id for contact in contacts} == {contacts[0].id}
    final = memory_store.find_all()[0]
    assert len(final.linked_sources) == 24
    assert final.source_count == 3


@pytest.mark.concurrency
def test_concurrent_distinct_people_stay_separate(memory_store, make_record):
    resolver = ContactResolver(memory_store)
    records = [make_record("crm", str(index), f"Person {index}", email=f"p{index}@gmail.com") for index in range(12)]

    with ThreadPoolExecutor(max_workers=6) as pool:
        list(pool.map(resolver.resolve, records))

    assert len(memory_store) == 12
