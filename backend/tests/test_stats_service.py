"""
Tests des agrégats (synthèse machine + top lignes).
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from factory_events.services.ingestion_service import build_record
from factory_events.services.stats_service import (
    HEALTHY,
    WARNING,
    StatsService,
    round_half_up,
    window_hours,
)
from factory_events.services.store import InMemoryEventStore, LineDefectTotals

START = datetime(2026, 1, 15, 0, 0, tzinfo=timezone.utc)
END = START + timedelta(hours=1)


def _records(make_event, rows):
    """rows : (event_id, minute_offset, defect_count[, line_id[, machine_id]])."""
    out = []
    for row in rows:
        event_id, minute, defects, *rest = row
        line_id = rest[0] if rest else "line-1"
        machine_id = rest[1] if len(rest) > 1 else "machine-1"
        event = make_event(
            event_id,
            event_time=START + timedelta(minutes=minute),
            defect_count=defects,
            line_id=line_id,
            machine_id=machine_id,
        )
        out.append(build_record(event, START, f"hash-{event_id}"))
    return out


class TestHelpers:
    @pytest.mark.parametrize(
        "value, places, expected",
        [(2.25, 1, 2.3), (2.35, 1, 2.4), (0.05, 1, 0.1), (66.665, 2, 66.67), (1.0, 1, 1.0)],
    )
    def test_round_half_up(self, value, places, expected):
        assert round_half_up(value, places) == expected

    def test_window_hours_uses_whole_seconds(self):
        assert window_hours(START, START + timedelta(hours=2)) == 2.0
        assert window_hours(START, START + timedelta(seconds=1, milliseconds=999)) == 1 / 3600

    def test_window_hours_inverted_is_negative(self):
        assert window_hours(END, START) < 0


class TestMachineStats:
    @pytest.mark.asyncio
    async def test_ten_events_two_defects_over_one_hour(self, make_event):
        rows = [(f"e{i}", i * 5, 1 if i in (2, 7) else 0) for i in range(10)]
        store = InMemoryEventStore(_records(make_event, rows))

        stats = await StatsService(store).get_machine_stats("machine-1", START, END)

        assert stats.events_count == 10
        assert stats.defects_count == 2
        assert stats.avg_defect_rate == 2.0
        assert stats.status == WARNING

    @pytest.mark.asyncio
    async def test_sentinel_is_counted_but_not_summed(self, make_event):
        store = InMemoryEventStore(_records(make_event, [("a", 1, 1), ("b", 2, -1)]))

        stats = await StatsService(store).get_machine_stats("machine-1", START, END)

        assert (stats.events_count, stats.defects_count) == (2, 1)
        assert stats.avg_defect_rate == 1.0
        assert stats.status == HEALTHY

    @pytest.mark.asyncio
    async def test_window_is_half_open(self, make_event):
        store = InMemoryEventStore(_records(make_event, [("at-start", 0, 1), ("at-end", 60, 5)]))

        stats = await StatsService(store).get_machine_stats("machine-1", START, END)

        assert (stats.events_count, stats.defects_count) == (1, 1)

    @pytest.mark.asyncio
    async def test_other_machines_are_ignored(self, make_event):
        store = InMemoryEventStore(
            _records(make_event, [("a", 1, 3), ("b", 2, 4, "line-1", "machine-2")])
        )

        stats = await StatsService(store).get_machine_stats("machine-2", START, END)

        assert (stats.events_count, stats.defects_count) == (1, 4)

    @pytest.mark.asyncio
    async def test_threshold_uses_unrounded_rate(self, make_event):
        # 49 défauts sur 25 h = 1.96 : affiché 2.0 mais sous le seuil
        store = InMemoryEventStore(_records(make_event, [("a", 1, 49)]))
        stats = await StatsService(store).get_machine_stats("machine-1", START, START + timedelta(hours=25))
        assert (stats.avg_defect_rate, stats.status) == (2.0, HEALTHY)

        # 7 défauts sur 4 h = 1.75 -> 1.8
        store = InMemoryEventStore(_records(make_event, [("a", 1, 7)]))
        stats = await StatsService(store).get_machine_stats("machine-1", START, START + timedelta(hours=4))
        assert (stats.avg_defect_rate, stats.status) == (1.8, HEALTHY)

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, make_event):
        store = InMemoryEventStore(_records(make_event, [("a", 1, 50)]))
        stats = await StatsService(store).get_machine_stats("machine-1", START, START + timedelta(hours=25))
        assert (stats.avg_defect_rate, stats.status) == (2.0, WARNING)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("end", [START, START - timedelta(hours=1)])
    async def test_empty_or_inverted_window_has_zero_rate(self, end):
        store = AsyncMock()
        store.count_in_window.return_value = 0
        store.sum_defects_in_window.return_value = 0

        stats = await StatsService(store).get_machine_stats("machine-1", START, end)

        assert (stats.avg_defect_rate, stats.status) == (0.0, HEALTHY)

    @pytest.mark.asyncio
    async def test_custom_threshold(self, make_event):
        store = InMemoryEventStore(_records(make_event, [("a", 1, 1)]))
        stats = await StatsService(store, warning_threshold=1.0).get_machine_stats("machine-1", START, END)
        assert stats.status == WARNING

    @pytest.mark.asyncio
    async def test_naive_bounds_are_read_as_utc(self, make_event):
        store = InMemoryEventStore(_records(make_event, [("a", 1, 1)]))

        stats = await StatsService(store).get_machine_stats(
            "machine-1", START.replace(tzinfo=None), END.replace(tzinfo=None)
        )

        assert stats.events_count == 1
        assert stats.start == START

    @pytest.mark.asyncio
    async def test_serialized_in_camel_case(self, make_event):
        stats = await StatsService(InMemoryEventStore()).get_machine_stats("machine-1", START, END)

        body = stats.model_dump(by_alias=True)
        assert set(body) == {
            "machineId",
            "start",
            "end",
            "eventsCount",
            "defectsCount",
            "avgDefectRate",
            "status",
        }


class TestTopDefectLines:
    @pytest.mark.asyncio
    async def test_percent_and_tie_on_line_id(self, make_event):
        rows = [("a", 1, 2, "line-2"), ("b", 2, 4, "line-1"), ("c", 3, 2, "line-2"), ("d", 4, 0, "line-1")]
        store = InMemoryEventStore(_records(make_event, rows))

        lines = await StatsService(store).get_top_defect_lines("factory-1", START, END)

        assert [(x.line_id, x.total_defects, x.event_count, x.defects_percent) for x in lines] == [
            ("line-1", 4, 2, 200.0),
            ("line-2", 4, 2, 200.0),
        ]

    @pytest.mark.asyncio
    async def test_limit_and_ordering(self):
        store = AsyncMock()
        store.group_defects_by_line.return_value = [
            LineDefectTotals("line-c", 1, 3),
            LineDefectTotals("line-a", 9, 4),
            LineDefectTotals("line-b", 5, 5),
        ]

        lines = await StatsService(store).get_top_defect_lines("factory-1", START, END, limit=2)

        assert [x.line_id for x in lines] == ["line-a", "line-b"]
        assert lines[0].defects_percent == 225.0
        assert lines[1].defects_percent == 100.0

    @pytest.mark.asyncio
    async def test_percent_rounded_to_two_places(self):
        store = AsyncMock()
        store.group_defects_by_line.return_value = [LineDefectTotals("line-1", 2, 3)]

        (line,) = await StatsService(store).get_top_defect_lines("factory-1", START, END)

        assert line.defects_percent == 66.67

    @pytest.mark.asyncio
    async def test_sentinels_and_lineless_events_are_left_out(self, make_event):
        rows = [("a", 1, 3, "line-1"), ("b", 2, -1, "line-1"), ("c", 3, 8, None)]
        store = InMemoryEventStore(_records(make_event, rows))

        (line,) = await StatsService(store).get_top_defect_lines("factory-1", START, END)

        assert (line.line_id, line.total_defects, line.event_count) == ("line-1", 3, 1)

    @pytest.mark.asyncio
    async def test_unknown_factory_is_empty(self, make_event):
        store = InMemoryEventStore(_records(make_event, [("a", 1, 3)]))
        assert await StatsService(store).get_top_defect_lines("factory-9", START, END) == []

    @pytest.mark.asyncio
    async def test_non_positive_limit_skips_store(self):
        store = AsyncMock()
        assert await StatsService(store).get_top_defect_lines("factory-1", START, END, limit=0) == []
        store.group_defects_by_line.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_top_two_of_three_lines(self):
        store = AsyncMock()
        store.group_defects_by_line.return_value = [
            LineDefectTotals("line-3", 60, 60),
            LineDefectTotals("line-2", 80, 40),
            LineDefectTotals("line-1", 100, 50),
        ]

        lines = await StatsService(store).get_top_defect_lines("factory-1", START, END, limit=2)

        assert [(x.line_id, x.defects_percent) for x in lines] == [("line-1", 200.0), ("line-2", 200.0)]
