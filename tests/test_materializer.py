"""Tests for session materialization over the override ledger."""

from __future__ import annotations

from datetime import date, datetime, time

import pytest

from core.errors import InvalidScheduleError
from core.services.ledger import OverrideLedger
from core.services.materializer import (
    ClassScheduleConfig,
    generate_class_sessions,
    month_window,
    projected_end_date,
    regular_sessions,
    sessions_in_window,
)
from core.services.recurrence import recalculate_schedule

BEFORE_COURSE = datetime(2023, 12, 1)


def _config(count: int = 6, pattern: str = "T2 / T4 / T6 • 18:30", start: date = date(2024, 1, 1)) -> ClassScheduleConfig:
    return ClassScheduleConfig.from_pattern(pattern, start, count)


def _days(sessions):
    return [s.day for s in sessions]


def test_fresh_class_matches_canonical_sequence():
    sessions = generate_class_sessions(_config(), now=BEFORE_COURSE)
    assert _days(sessions) == [
        date(2024, 1, 1),
        date(2024, 1, 3),
        date(2024, 1, 5),
        date(2024, 1, 8),
        date(2024, 1, 10),
        date(2024, 1, 12),
    ]
    assert all(s.date.time() == time(18, 30) for s in sessions)
    assert not any(s.is_locked or s.is_extra for s in sessions)


def test_cancellation_extends_tail_by_one_occurrence():
    ledger = OverrideLedger()
    ledger.add_cancellation(date(2024, 1, 5))
    sessions = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE)
    assert _days(sessions) == [
        date(2024, 1, 1),
        date(2024, 1, 3),
        date(2024, 1, 8),
        date(2024, 1, 10),
        date(2024, 1, 12),
        date(2024, 1, 15),
    ]


@pytest.mark.parametrize("cancelled", [[], [date(2024, 1, 1)], [date(2024, 1, 3), date(2024, 1, 10), date(2024, 1, 12)]])
def test_count_invariant_and_dense_indices(cancelled):
    ledger = OverrideLedger()
    for day in cancelled:
        ledger.add_cancellation(day)
    ledger.add_extra(datetime(2024, 1, 6, 10, 0))
    sessions = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE)
    regular = regular_sessions(sessions)
    assert len(regular) == 6
    assert [s.index for s in regular] == [1, 2, 3, 4, 5, 6]
    assert not set(cancelled) & set(_days(regular))
    assert sum(1 for s in sessions if s.is_extra) == 1


def test_shifts_accumulate_across_ranges():
    ledger = OverrideLedger()
    ledger.add_shift(3, 5, applied_at=BEFORE_COURSE)
    ledger.add_shift(5, 2, applied_at=BEFORE_COURSE)
    sessions = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE)
    assert _days(sessions) == [
        date(2024, 1, 1),
        date(2024, 1, 3),
        date(2024, 1, 10),
        date(2024, 1, 13),
        date(2024, 1, 17),
        date(2024, 1, 19),
    ]
    assert sessions[2].canonical_date == date(2024, 1, 5)


def test_shift_beyond_count_is_ignored():
    ledger = OverrideLedger()
    ledger.add_shift(9, 3, applied_at=BEFORE_COURSE)
    sessions = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE)
    assert projected_end_date(sessions) == date(2024, 1, 12)


def test_extra_sessions_are_additive_and_sorted():
    ledger = OverrideLedger()
    ledger.add_extra(datetime(2024, 1, 9, 9, 0), note="makeup")
    ledger.add_extra(datetime(2024, 1, 6, 10, 0))
    sessions = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE, class_id="C1")
    assert len(sessions) == 8
    extras = [s for s in sessions if s.is_extra]
    assert [s.index for s in extras] == [7, 8]
    assert [s.day for s in extras] == [date(2024, 1, 6), date(2024, 1, 9)]
    assert extras[1].note == "makeup"
    assert extras[0].canonical_date is None
    assert [s.date for s in sessions] == sorted(s.date for s in sessions)


def test_locking_uses_explicit_now():
    sessions = generate_class_sessions(_config(), now=datetime(2024, 1, 3, 12, 0))
    assert [s.is_locked for s in sessions] == [True, False, False, False, False, False]
    sessions = generate_class_sessions(_config(), now=datetime(2024, 1, 4))
    assert [s.is_locked for s in sessions] == [True, True, False, False, False, False]


def test_replay_is_idempotent():
    ledger = OverrideLedger()
    ledger.add_cancellation(date(2024, 1, 3))
    ledger.add_shift(4, 7, applied_at=BEFORE_COURSE)
    ledger.add_extra(datetime(2024, 1, 20, 9, 0))
    first = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE, class_id="C1")
    second = generate_class_sessions(_config(), ledger, now=BEFORE_COURSE, class_id="C1")
    assert first == second
    assert [s.id for s in first] == [s.id for s in second]


@pytest.mark.parametrize(
    "pattern,start,count",
    [
        ("T2 / T4 / T6 • 18:30", date(2024, 1, 1), 6),
        ("T3 / T5 • 19:30", date(2024, 2, 29), 13),
        ("T7 / CN", date(2024, 12, 25), 9),
        ("CN", date(2025, 3, 2), 1),
    ],
)
def test_projection_matches_fresh_materialization(pattern, start, count):
    sessions = generate_class_sessions(_config(count, pattern, start), now=BEFORE_COURSE)
    last = regular_sessions(sessions)[-1]
    assert last.index == count
    assert recalculate_schedule(start, count, pattern) == last.day.isoformat()


def test_invalid_config_surfaces_error():
    config = ClassScheduleConfig(weekdays=frozenset(), session_time=time(18, 0), start_date=date(2024, 1, 1), target_session_count=3)
    with pytest.raises(InvalidScheduleError):
        generate_class_sessions(config, now=BEFORE_COURSE)


def test_session_ids_and_tokens():
    sessions = generate_class_sessions(_config(), now=BEFORE_COURSE, class_id="C1")
    assert sessions[0].id == "C1-2024-01-01-1"
    assert sessions[0].class_id == "C1"
    assert [s.weekday_token for s in sessions[:3]] == ["T2", "T4", "T6"]


def test_month_window_pads_both_sides():
    assert month_window(2024, 1) == (date(2023, 12, 25), date(2024, 2, 7))
    assert month_window(2024, 2, padding_days=0) == (date(2024, 2, 1), date(2024, 2, 29))


def test_sessions_in_window_is_inclusive():
    sessions = generate_class_sessions(_config(24), now=BEFORE_COURSE)
    start, end = month_window(2024, 1)
    windowed = sessions_in_window(sessions, start, end)
    assert len(windowed) == 17
    assert windowed[-1].day == date(2024, 2, 7)
    assert sessions_in_window(sessions, date(2024, 1, 3), date(2024, 1, 5)) == sessions[1:3]
