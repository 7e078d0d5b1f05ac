from datetime import datetime, timedelta, timezone

import pytest

from attribution_app.engine import ContactNotFound, DateWindow, Source, TimelineBuilder, parse_timestamp


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def jane(memory_store, make_contact):
    contact = make_contact("c-jane", "Jane Doe", links=[("crm", "sf-1"), ("scheduling", "cal-9")])
    memory_store.create(contact)
    return contact


@pytest.fixture
def builder(memory_store, event_sources):
    return TimelineBuilder(memory_store, event_sources.values())


def test_parse_timestamp_accepts_common_shapes():
    expected = _utc(2024, 1, 2, 3, 4, 5)

    assert parse_timestamp(expected) == expected
    assert parse_timestamp(datetime(2024, 1, 2, 3, 4, 5)) == expected
    assert parse_timestamp("2024-01-02T03:04:05Z") == expected
    assert parse_timestamp("2024-01-02T05:04:05+02:00") == expected
    assert parse_timestamp(int(expected.timestamp())) == expected
    assert parse_timestamp(expected.timestamp() * 1000) == expected
    assert parse_timestamp(str(int(expected.timestamp()))) == expected


@pytest.mark.parametrize("value", [None, "", "   ", "yesterday", "2024-13-45", True, float("nan"), {"at": 1}])
def test_parse_timestamp_rejects_unusable_values(value):
    assert parse_timestamp(value) is None


def test_timeline_merges_sources_in_time_order(builder, event_sources, jane, make_event):
    event_sources[Source.CRM].add(make_event("crm", "a-2", "2024-02-03T10:00:00Z", contact_id=jane.id))
    event_sources[Source.SCHEDULING].add(
        make_event("scheduling", "m-1", _utc(2024, 2, 1, 9), event_type="meeting", record_id="cal-9")
    )
    event_sources[Source.FORM].add(make_event("form", "s-1", _utc(2024, 2, 2).timestamp(), contact_id=jane.id))

    timeline = builder.build_timeline(jane.id)

    assert [event.source_id for event in timeline.events] == ["m-1", "s-1", "a-2"]
    assert timeline.first_touch.source == Source.SCHEDULING
    assert timeline.last_touch.source_id == "a-2"
    assert timeline.is_multi_source
    assert timeline.sources == {Source.CRM, Source.SCHEDULING, Source.FORM}
    assert all(event.contact_id == jane.id for event in timeline.events)
    assert timeline.defects == ()


def test_equal_timestamps_order_by_source_then_id(builder, event_sources, jane, make_event):
    moment = _utc(2024, 3, 1)
    event_sources[Source.SCHEDULING].add(make_event("scheduling", "b", moment, contact_id=jane.id))
    event_sources[Source.CRM].add(make_event("crm", "z", moment, contact_id=jane.id))
    event_sources[Source.CRM].add(make_event("crm", "y", moment, contact_id=jane.id))

    timeline = builder.build_timeline(jane.id)

    assert [(event.source.value, event.source_id) for event in timeline.events] == [
        ("crm", "y"),
        ("crm", "z"),
        ("scheduling", "b"),
    ]


def test_sequence_in_type_counts_per_type(builder, event_sources, jane, make_event):
    start = _utc(2024, 1, 1)
    for index, event_type in enumerate(["call", "email", "call", "call", "email"]):
        event_sources[Source.CRM].add(
            make_event("crm", f"e-{index}", start + timedelta(hours=index), event_type=event_type, contact_id=jane.id)
        )

    timeline = builder.build_timeline(jane.id)

    assert [event.sequence_in_type for event in timeline.events_of_type("call")] == [1, 2, 3]
    assert [event.sequence_in_type for event in timeline.events_of_type("email")] == [1, 2]


def test_unusable_timestamps_become_defects(builder, event_sources, jane, make_event, caplog):
    event_sources[Source.CRM].add(make_event("crm", "ok", _utc(2024, 1, 1), contact_id=jane.id))
    event_sources[Source.CRM].add(make_event("crm", "bad", "not a date", contact_id=jane.id))
    event_sources[Source.FORM].add(make_event("form", "none", None, contact_id=jane.id))

    timeline = builder.build_timeline(jane.id)

    assert [event.source_id for event in timeline.events] == ["ok"]
    reasons = {defect.source_id: defect.reason for defect in timeline.defects}
    assert reasons["none"] == "missing timestamp"
    assert reasons["bad"].startswith("unparseable timestamp")
    assert "unusable timestamps" in caplog.text


def test_duplicate_events_are_counted_once(builder, event_sources, jane, make_event):
    event = make_event("crm", "a-1", _utc(2024, 1, 1), contact_id=jane.id, record_id="sf-1")
    event_sources[Source.CRM].add(event)
    event_sources[Source.CRM].add(event)

    timeline = builder.build_timeline(jane.id)

    assert len(timeline.events) == 1


def test_events_for_unlinked_records_are_ignored(builder, event_sources, jane, make_event):
    event_sources[Source.CRM].add(make_event("crm", "a-1", _utc(2024, 1, 1), record_id="someone-else"))

    timeline = builder.build_timeline(jane.id)

    assert not timeline.has_attribution
    assert timeline.first_touch is None
    assert timeline.last_touch is None


def test_window_excludes_events_without_defects(builder, event_sources, jane, make_event):
    for day in (1, 10, 20):
        event_sources[Source.CRM].add(make_event("crm", f"d{day}", _utc(2024, 1, day), contact_id=jane.id))

    timeline = builder.build_timeline(jane.id, window=DateWindow(_utc(2024, 1, 10), _utc(2024, 1, 20)))

    assert [event.source_id for event in timeline.events] == ["d10", "d20"]
    assert timeline.defects == ()


def test_window_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        DateWindow(_utc(2024, 2, 1), _utc(2024, 1, 1))


def test_unknown_contact_raises(builder):
    with pytest.raises(ContactNotFound):
        builder.build_timeline("missing")


def test_timeline_as_dict_is_serializable(builder, event_sources, jane, make_event):
    event_sources[Source.CRM].add(make_event("crm", "a", "2024-01-01T00:00:00Z", contact_id=jane.id))
    event_sources[Source.CRM].add(make_event("crm", "b", "junk", contact_id=jane.id))

    payload = builder.build_timeline(jane.id).as_dict()

    assert payload["first_touch"]["occurred_at"] == "2024-01-01T00:00:00+00:00"
    assert payload["sources"] == ["crm"]
    assert payload["is_multi_source"] is False
    assert payload["defects"][0]["source_id"] == "b"
