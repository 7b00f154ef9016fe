"""
Tests de l’empreinte de contenu.
"""

from datetime import datetime, timedelta, timezone

import pytest

from factory_events.services.fingerprint import compute_fingerprint, fingerprint_event

BASE = dict(
    event_time=datetime(2026, 1, 16, 8, 0, tzinfo=timezone.utc),
    machine_id="machine-1",
    line_id="line-1",
    factory_id="factory-1",
    duration_ms=1000,
    defect_count=3,
)


def test_same_fields_give_same_fingerprint():
    assert compute_fingerprint(**BASE) == compute_fingerprint(**BASE)


def test_fingerprint_is_hex_sha256():
    fp = compute_fingerprint(**BASE)
    assert len(fp) == 64
    int(fp, 16)


@pytest.mark.parametrize("field", ["line_id", "factory_id"])
def test_none_and_empty_optionals_are_equivalent(field):
    assert compute_fingerprint(**{**BASE, field: None}) == compute_fingerprint(**{**BASE, field: ""})


@pytest.mark.parametrize(
    "field, value",
    [
        ("event_time", datetime(2026, 1, 16, 8, 0, 0, 1000, tzinfo=timezone.utc)),
        ("machine_id", "machine-2"),
        ("line_id", "line-2"),
        ("factory_id", None),
        ("duration_ms", 1001),
        ("defect_count", -1),
    ],
)
def test_any_semantic_change_changes_fingerprint(field, value):
    assert compute_fingerprint(**{**BASE, field: value}) != compute_fingerprint(**BASE)


def test_same_instant_in_other_timezone_is_equal():
    paris = timezone(timedelta(hours=1))
    shifted = {**BASE, "event_time": datetime(2026, 1, 16, 9, 0, tzinfo=paris)}
    assert compute_fingerprint(**shifted) == compute_fingerprint(**BASE)


def test_field_boundaries_are_not_ambiguous():
    """'ab' + 'c' et 'a' + 'bc' ne doivent pas se confondre."""
    a = compute_fingerprint(**{**BASE, "line_id": "ab", "factory_id": "c"})
    b = compute_fingerprint(**{**BASE, "line_id": "a", "factory_id": "bc"})
    assert a != b


def test_received_time_does_not_affect_fingerprint(make_event, now):
    first = make_event(received_time="2026-01-01T00:00:00Z")
    second = make_event(received_time="2026-01-02T00:00:00Z")
    assert fingerprint_event(first) == fingerprint_event(second)
