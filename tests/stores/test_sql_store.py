from dataclasses import replace
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import OperationalError

from attribution_app.engine import (
    CanonicalContact,
    ContactNotFound,
    ContactResolver,
    LinkedSource,
    Source,
    SourceEvent,
    SourceRecord,
    StoreUnavailable,
    TimelineBuilder,
)
from attribution_app.models import CanonicalContactRecord, SourceEventRecord, db
from attribution_app.stores import SqlAlchemyContactStore, SqlAlchemyEventSource

CREATED = datetime(2024, 2, 1, 8, 30, tzinfo=timezone.utc)


def _contact(contact_id="c-1", *, links=(("crm", "sf-1"),), **fields):
    values = {"name": "Jane Doe", "email": "Jane.Doe@Gmail.com", "phone": None, "company": "Acme", "notes": None}
    values.update(fields)
    return CanonicalContact(
        id=contact_id,
        linked_sources=frozenset(LinkedSource(Source.parse(source), source_id) for source, source_id in links),
        created_at=CREATED,
        updated_at=CREATED,
        **values,
    )


@pytest.fixture
def store():
    return SqlAlchemyContactStore()


def test_create_and_get_round_trip(store):
    created = store.create(_contact())

    loaded = store.get("c-1")

    assert loaded == created
    assert loaded.created_at == CREATED
    assert loaded.created_at.tzinfo is not None
    assert loaded.linked_sources == frozenset({LinkedSource(Source.CRM, "sf-1")})
    row = db.session.get(CanonicalContactRecord, "c-1")
    assert row.normalized_email == "janedoe@gmail.com"


def test_get_missing_contact_returns_none(store):
    assert store.get("nope") is None


def test_find_by_source_and_list_ids(store):
    store.create(_contact("c-2", links=[("form", "f-1")]))
    store.create(_contact("c-1", links=[("crm", "sf-1"), ("scheduling", "cal-1")]))

    assert store.find_by_source(Source.SCHEDULING, "cal-1").id == "c-1"
    assert store.find_by_source("form", "f-1").id == "c-2"
    assert store.find_by_source(Source.CRM, "unknown") is None
    assert store.list_ids() == ["c-1", "c-2"]
    assert [contact.id for contact in store.find_all()] == ["c-1", "c-2"]


def test_update_adds_links_and_fields(store):
    store.create(_contact())
    later = datetime(2024, 3, 1, tzinfo=timezone.utc)
    updated = _contact(links=[("crm", "sf-1"), ("form", "f-9")], phone="555-0100")
    updated = replace(updated, updated_at=later)

    result = store.update("c-1", updated)

    assert result.phone == "555-0100"
    assert result.source_count == 2
    assert result.updated_at == later
    assert store.find_by_source(Source.FORM, "f-9").id == "c-1"


def test_update_missing_contact_raises(store):
    with pytest.raises(ContactNotFound):
        store.update("ghost", _contact("ghost"))


def test_duplicate_source_link_is_rejected(store):
    store.create(_contact("c-1"))

    with pytest.raises(StoreUnavailable):
        store.create(_contact("c-2", email="other@acme.com"))

    assert store.list_ids() == ["c-1"]
    assert store.find_by_source(Source.CRM, "sf-1").id == "c-1"


def test_database_errors_surface_as_store_unavailable(store, monkeypatch):
    def _boom():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", _boom)

    with pytest.raises(StoreUnavailable, match="create contact c-1"):
        store.create(_contact())


def test_resolver_runs_against_sql_store(store):
    resolver = ContactResolver(store)

    first = resolver.resolve(SourceRecord(Source.CRM, "sf-1", "John Smith", email="John.Smith@gmail.com"))
    second = resolver.resolve_detailed(SourceRecord(Source.FORM, "f-1", "John", email="johnsmith+x@gmail.com"))
    again = resolver.resolve_detailed(SourceRecord(Source.FORM, "f-1", "John", email="johnsmith+x@gmail.com"))

    assert second.action == "updated"
    assert second.contact.id == first.id
    assert second.contact.source_count == 2
    assert again.action == "unchanged"
    assert store.list_ids() == [first.id]


def test_event_source_saves_and_lists_events(store):
    store.create(_contact(links=[("scheduling", "cal-7")]))
    scheduling = SqlAlchemyEventSource("scheduling")
    first_meeting = datetime(2024, 1, 5, tzinfo=timezone.utc)
    events = [
        SourceEvent(Source.SCHEDULING, "m-1", "meeting", first_meeting, contact_id="c-1"),
        SourceEvent(
            Source.SCHEDULING,
            "m-2",
            "meeting",
            "2024-01-06T10:00:00Z",
            record_id="cal-7",
            metadata={"title": "Demo"},
        ),
        SourceEvent(Source.SCHEDULING, "m-3", "meeting", "2024-01-07T10:00:00Z", record_id="someone-else"),
    ]

    assert scheduling.save_events(events) == 3
    assert scheduling.save_events(events[:1]) == 0

    listed = scheduling.list_events_for_contact("c-1", ["cal-7"])

    assert [event.source_id for event in listed] == ["m-1", "m-2"]
    assert listed[1].metadata == {"title": "Demo"}
    assert db.session.query(SourceEventRecord).count() == 3


def test_event_source_rejects_foreign_events():
    crm = SqlAlchemyEventSource(Source.CRM)

    with pytest.raises(ValueError):
        crm.save_events([SourceEvent(Source.FORM, "f-1", "submission", None)])


def test_timeline_over_sql_sources_reports_defects(store):
    store.create(_contact(links=[("crm", "sf-1"), ("form", "f-1")]))
    SqlAlchemyEventSource(Source.CRM).save_events(
        [
            SourceEvent(Source.CRM, "a-1", "call", 1704067200, record_id="sf-1"),
            SourceEvent(Source.CRM, "a-2", "call", "sometime soon", contact_id="c-1"),
        ]
    )
    SqlAlchemyEventSource(Source.FORM).save_events(
        [SourceEvent(Source.FORM, "s-1", "submission", "2023-12-31T09:00:00Z", record_id="f-1")]
    )
    builder = TimelineBuilder(store, [SqlAlchemyEventSource(source) for source in Source])

    timeline = builder.build_timeline("c-1")

    assert [event.source_id for event in timeline.events] == ["s-1", "a-1"]
    assert timeline.first_touch.source == Source.FORM
    assert timeline.is_multi_source
    assert [defect.source_id for defect in timeline.defects] == ["a-2"]
