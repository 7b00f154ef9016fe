"""
Tests du store SQLAlchemy sur SQLite (aiosqlite).

Même contrat que l’InMemoryEventStore : conflits typés, fenêtres [start, end),
sentinelles exclues des sommes, dates relues en UTC aware.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import Text
from sqlalchemy.exc import OperationalError

from factory_events.core.clock import fixed_clock
from factory_events.core.errors import StoreUnavailableError
from factory_events.db.event_store import SqlAlchemyEventStore
from factory_events.models import Event
from factory_events.services.fingerprint import fingerprint_event
from factory_events.services.ingestion_service import IngestionService, build_record

START = datetime(2026, 1, 15, 0, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=1)


@pytest.fixture
def record(make_event, now):
    def _make(event_id, minute=1, **overrides):
        event = make_event(event_id, event_time=START + timedelta(minutes=minute), **overrides)
        return build_record(event, now, fingerprint_event(event))

    return _make


class TestWrites:
    @pytest.mark.asyncio
    async def test_insert_then_find(self, sqlite_session, record, now):
        store = SqlAlchemyEventStore(sqlite_session)
        outcome = await store.insert_all([record("a"), record("b", line_id=None)])

        assert outcome.inserted == ["a", "b"]
        assert not outcome.has_conflicts

        found = {r.event_id: r for r in await store.find_by_ids(["a", "b", "missing"])}
        assert set(found) == {"a", "b"}
        assert found["a"] == record("a")
        assert found["a"].received_time == now
        assert found["a"].received_time.tzinfo is not None
        assert found["b"].line_id is None

    @pytest.mark.asyncio
    async def test_existing_ids_come_back_as_conflicts(self, sqlite_session, record):
        store = SqlAlchemyEventStore(sqlite_session)
        await store.insert_all([record("a")])

        outcome = await store.insert_all([record("b"), record("a", defect_count=4)])

        assert outcome.inserted == ["b"]
        assert outcome.conflicted == ["a"]
        (kept,) = await store.find_by_ids(["a"])
        assert kept.defect_count == 0

    @pytest.mark.asyncio
    async def test_empty_writes_are_noops(self, sqlite_session):
        store = SqlAlchemyEventStore(sqlite_session)
        outcome = await store.insert_all([])
        await store.update_all([])
        assert (outcome.inserted, outcome.conflicted) == ([], [])

    @pytest.mark.asyncio
    async def test_update_replaces_whole_row(self, sqlite_session, record, now):
        store = SqlAlchemyEventStore(sqlite_session)
        await store.insert_all([record("a", defect_count=1)])

        corrected = replace(
            record("a", minute=5, defect_count=7, duration_ms=2500),
            received_time=now + timedelta(minutes=1),
        )
        await store.update_all([corrected])

        (row,) = await store.find_by_ids(["a"])
        assert row == corrected

    @pytest.mark.asyncio
    async def test_large_insert_is_chunked(self, sqlite_session, record):
        store = SqlAlchemyEventStore(sqlite_session)
        records = [record(f"bulk-{i:04d}") for i in range(2500)]

        outcome = await store.insert_all(records)

        assert len(outcome.inserted) == 2500
        assert len(await store.find_by_ids([r.event_id for r in records])) == 2500

    @pytest.mark.asyncio
    async def test_update_never_rolls_back_a_newer_row(self, sqlite_session, record, now):
        store = SqlAlchemyEventStore(sqlite_session)
        newest = replace(record("a", defect_count=9), received_time=now + timedelta(minutes=5))
        await store.insert_all([newest])

        # Correction issue d’un snapshot périmé : réception plus ancienne que la ligne stockée
        stale = replace(record("a", defect_count=2), received_time=now + timedelta(minutes=1))
        await store.update_all([stale])

        (row,) = await store.find_by_ids(["a"])
        assert row == newest

    @pytest.mark.asyncio
    async def test_long_identifiers_are_stored(self, sqlite_session, record):
        store = SqlAlchemyEventStore(sqlite_session)
        long_id = "evt-" + "x" * 400
        long_record = record(long_id, machine_id="m" * 300, line_id="l" * 300, factory_id="f" * 300)

        outcome = await store.insert_all([long_record])

        assert outcome.inserted == [long_id]
        (row,) = await store.find_by_ids([long_id])
        assert row == long_record

    def test_identifier_columns_are_unbounded(self):
        columns = Event.__table__.c
        for name in ("event_id", "machine_id", "line_id", "factory_id"):
            assert isinstance(columns[name].type, Text)
            assert columns[name].type.length is None


class TestWindows:
    @pytest.mark.asyncio
    async def test_count_and_sum(self, sqlite_session, record):
        store = SqlAlchemyEventStore(sqlite_session)
        await store.insert_all(
            [
                record("start", minute=0, defect_count=2),
                record("inside", minute=30, defect_count=3),
                record("sentinel", minute=31, defect_count=-1),
                record("end", minute=60, defect_count=9),
                record("other", minute=10, defect_count=5, machine_id="machine-2"),
            ]
        )

        assert await store.count_in_window("machine-1", START, END) == 3
        assert await store.sum_defects_in_window("machine-1", START, END) == 5
        assert await store.sum_defects_in_window("machine-9", START, END) == 0

    @pytest.mark.asyncio
    async def test_group_by_line(self, sqlite_session, record):
        store = SqlAlchemyEventStore(sqlite_session)
        await store.insert_all(
            [
                record("a", line_id="line-2", defect_count=2),
                record("b", line_id="line-1", defect_count=4),
                record("c", line_id="line-2", defect_count=2),
                record("d", line_id="line-1", defect_count=0),
                record("e", line_id="line-3", defect_count=-1),
                record("f", line_id=None, defect_count=8),
                record("g", line_id="line-4", defect_count=1, factory_id="factory-2"),
            ]
        )

        groups = await store.group_defects_by_line("factory-1", START, END)

        assert [(g.line_id, g.total_defects, g.event_count) for g in groups] == [
            ("line-1", 4, 2),
            ("line-2", 4, 2),
        ]


class TestFailures:
    @pytest.mark.asyncio
    async def test_driver_error_becomes_store_unavailable(self):
        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))

        store = SqlAlchemyEventStore(session)
        with pytest.raises(StoreUnavailableError) as info:
            await store.count_in_window("machine-1", START, END)

        assert info.value.operation == "count_in_window"
        session.rollback.assert_awaited_once()


class TestIngestionOverSql:
    @pytest.mark.asyncio
    async def test_resend_and_correction(self, sqlite_sessionmaker, make_event, now):
        events = [make_event(f"e-{i}", defect_count=i % 3) for i in range(50)]

        async with sqlite_sessionmaker() as session:
            first = await IngestionService(SqlAlchemyEventStore(session), clock=fixed_clock(now)).process_batch(events)

        later = now + timedelta(seconds=10)
        async with sqlite_sessionmaker() as session:
            second = await IngestionService(SqlAlchemyEventStore(session), clock=fixed_clock(later)).process_batch(
                events[:10] + [make_event("e-0", defect_count=6)]
            )

        assert (first.accepted, first.deduped) == (50, 0)
        assert (second.accepted, second.deduped, second.updated) == (0, 10, 1)

        async with sqlite_sessionmaker() as session:
            (row,) = await SqlAlchemyEventStore(session).find_by_ids(["e-0"])
        assert row.defect_count == 6
        assert row.received_time == later

