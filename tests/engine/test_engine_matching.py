import logging

import pytest

from attribution_app.engine import MatchConfidence, MatchScorer, compute_name_similarity


@pytest.fixture
def scorer():
    return MatchScorer()


def test_no_candidates_scores_none(scorer, make_record):
    result = scorer.score(make_record("crm", "1", "Jane Doe", email="jane@acme.com"), [])

    assert result.confidence == MatchConfidence.NONE
    assert result.candidate is None
    assert not result.is_ambiguous


def test_normalized_email_equality_is_exact(scorer, make_record, make_contact):
    contact = make_contact("c-1", "John Smith", email="John.Smith@gmail.com")
    record = make_record("form", "f-1", "J. Smith", email="johnsmith+promo@gmail.com")

    result = scorer.score(record, [contact])

    assert result.confidence == MatchConfidence.EXACT
    assert result.candidate.id == "c-1"
    assert "email match" in result.reason


def test_phone_equality_is_high(scorer, make_record, make_contact):
    contact = make_contact("c-1", "Someone Else", phone="(555) 123-4567")
    record = make_record("crm", "1", "Jane Doe", phone="555.123.4567")

    result = scorer.score(record, [contact])

    assert result.confidence == MatchConfidence.HIGH
    assert result.reason == "phone match"


def test_short_phone_never_reaches_high(scorer, make_record, make_contact):
    contact = make_contact("c-1", "Jane Doe", phone="12345")
    record = make_record("crm", "1", "Jane Doe", phone="12345")

    result = scorer.score(record, [contact])

    # Similar names plus the shared short phone still corroborate at MEDIUM.
    assert result.confidence == MatchConfidence.MEDIUM


def test_short_phone_alone_does_not_match(scorer, make_record, make_contact):
    contact = make_contact("c-1", "Completely Different", phone="12345")
    record = make_record("crm", "1", "Jane Doe", phone="12345")

    assert scorer.score(record, [contact]).confidence == MatchConfidence.NONE


def test_name_and_company_equality_is_high(scorer, make_record, make_contact):
    contact = make_contact("c-1", "Jane Doe", company="Acme, Inc.")
    record = make_record("scheduling", "m-1", "  jane   DOE ", company="acme.com")

    result = scorer.score(record, [contact])

    assert result.confidence == MatchConfidence.HIGH
    assert "name and company" in result.reason


def test_similar_name_with_shared_company_is_medium(scorer, make_record, make_contact):
    contact = make_contact("c-1", "John Smith", company="Acme Inc")
    record = make_record("crm", "1", "Jon Smith", company="https://acme.com")

    result = scorer.score(record, [contact])

    assert result.confidence == MatchConfidence.MEDIUM
    assert 0.8 <= result.similarity < 1.0


def test_similar_name_alone_is_only_low(scorer, make_record, make_contact):
    contact = make_contact("c-1", "Jane Doe", email="jane@alpha.com", company="Alpha")
    record = make_record("form", "f-1", "Jane Doe", email="jane@beta.com", company="Beta")

    result = scorer.score(record, [contact])

    assert result.confidence == MatchConfidence.LOW
    assert result.candidate.id == "c-1"


def test_higher_level_wins_over_earlier_candidates(scorer, make_record, make_contact):
    by_phone = make_contact("c-phone", "Other", phone="5551234567", updated_offset_minutes=60)
    by_email = make_contact("c-email", "Other", email="jane@acme.com")
    record = make_record("crm", "1", "Jane", email="JANE@acme.com", phone="555-123-4567")

    result = scorer.score(record, [by_phone, by_email])

    assert result.confidence == MatchConfidence.EXACT
    assert result.candidate.id == "c-email"
    assert result.ambiguous_with == ()


def test_high_confidence_tie_is_reported_ambiguous(scorer, make_record, make_contact, caplog):
    older = make_contact("c-old", "A", email="dup@acme.com", updated_offset_minutes=0)
    newer = make_contact("c-new", "B", email="dup@acme.com", updated_offset_minutes=5)
    record = make_record("form", "f-1", "C", email="dup@acme.com")

    with caplog.at_level(logging.WARNING):
        result = scorer.score(record, [older, newer])

    assert result.confidence == MatchConfidence.EXACT
    assert result.candidate.id == "c-new"
    assert result.ambiguous_with == ("c-old",)
    assert result.is_ambiguous
    assert "ambiguous" in result.reason
    assert "Ambiguous contact match" in caplog.text


def test_low_confidence_tie_prefers_recent_without_ambiguity(scorer, make_record, make_contact):
    first = make_contact("c-1", "Jane Doe", updated_offset_minutes=1)
    second = make_contact("c-2", "Jane Doe", updated_offset_minutes=9)

    result = scorer.score(make_record("crm", "1", "Jane Doe"), [first, second])

    assert result.confidence == MatchConfidence.LOW
    assert result.candidate.id == "c-2"
    assert not result.is_ambiguous


def test_tie_with_equal_timestamps_prefers_highest_id(scorer, make_record, make_contact):
    contacts = [make_contact(cid, "X", phone="5551234567") for cid in ("c-a", "c-c", "c-b")]

    result = scorer.score(make_record("crm", "1", "Y", phone="5551234567"), contacts)

    assert result.candidate.id == "c-c"
    assert result.ambiguous_with == ("c-b", "c-a")


def test_name_similarity_bounds():
    assert compute_name_similarity("Jane Doe", "  JANE   doe") == 1.0
    assert compute_name_similarity("", "Jane") == 0.0
    assert compute_name_similarity(None, None) == 0.0
    assert 0.0 < compute_name_similarity("Jon Smith", "John Smith") < 1.0


def test_profile_threshold_controls_similarity(make_record, make_contact):
    from dataclasses import replace

    from config.matching import DEFAULT_PROFILE

    strict = MatchScorer(replace(DEFAULT_PROFILE, name_similarity_threshold=0.99))
    contact = make_contact("c-1", "John Smith")

    assert strict.score(make_record("crm", "1", "Jon Smith"), [contact]).confidence == MatchConfidence.NONE
