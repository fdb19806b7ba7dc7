from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time, timedelta
from typing import Iterable, Optional

from core.errors import InvalidScheduleError

# Form tokens: T2 = Monday ... T7 = Saturday, CN = Sunday. Values are date.weekday().
TOKEN_TO_WEEKDAY = {"T2": 0, "T3": 1, "T4": 2, "T5": 3, "T6": 4, "T7": 5, "CN": 6}
WEEKDAY_TO_TOKEN = {v: k for k, v in TOKEN_TO_WEEKDAY.items()}
PATTERN_DAY_SEPARATOR = "/"
PATTERN_TIME_SEPARATOR = "•"
DEFAULT_SESSION_TIME = time(18, 0)


@dataclass(frozen=True)
class CanonicalSlot:
    index: int
    date: date


def _parse_time(text: str) -> time:
    parts = text.strip().split(":")
    if len(parts) != 2:
        raise InvalidScheduleError(f"Invalid session time {text!r}, expected HH:MM")
    try:
        hour, minute = int(parts[0]), int(parts[1])
        return time(hour, minute)
    except ValueError as exc:
        raise InvalidScheduleError(f"Invalid session time {text!r}: {exc}") from exc


def parse_weekday_tokens(days_part: str) -> frozenset[int]:
    weekdays: set[int] = set()
    for raw in (days_part or "").split(PATTERN_DAY_SEPARATOR):
        token = raw.strip().upper()
        if not token:
            continue
        weekday = TOKEN_TO_WEEKDAY.get(token)
        if weekday is None:
            raise InvalidScheduleError(f"Unknown weekday token {raw.strip()!r}")
        weekdays.add(weekday)
    if not weekdays:
        raise InvalidScheduleError("Schedule pattern has no weekdays")
    return frozenset(weekdays)


def parse_schedule_pattern(pattern: str, default_time: Optional[time] = None) -> tuple[frozenset[int], time]:
    """Parse a form pattern such as ``"T2 / T4 / T6 • 18:30"``.

    Returns the weekday set (``date.weekday()`` numbers) and the session time.
    A pattern without a time part uses ``default_time``.
    """
    if not pattern or not pattern.strip():
        raise InvalidScheduleError("Schedule pattern is empty")
    days_part, _, time_part = pattern.partition(PATTERN_TIME_SEPARATOR)
    weekdays = parse_weekday_tokens(days_part)
    if time_part.strip():
        session_time = _parse_time(time_part)
    else:
        session_time = default_time or DEFAULT_SESSION_TIME
    return weekdays, session_time


def format_schedule_pattern(weekdays: Iterable[int], session_time: time) -> str:
    tokens = [WEEKDAY_TO_TOKEN[d] for d in sorted(set(weekdays))]
    return f"{' / '.join(tokens)} {PATTERN_TIME_SEPARATOR} {session_time.strftime('%H:%M')}"


def weekday_token(day: date) -> str:
    return WEEKDAY_TO_TOKEN[day.weekday()]


def _coerce_date(value: date | str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise InvalidScheduleError(f"Invalid start date {value!r}") from exc


def generate_canonical_dates(
    weekdays: Iterable[int],
    start_date: date,
    count: int,
    skip_dates: Iterable[date] = (),
) -> list[CanonicalSlot]:
    """Walk forward from ``start_date`` (inclusive) and collect ``count`` matching dates.

    Dates in ``skip_dates`` are stepped over without consuming an index, so every
    skipped date pushes the tail of the sequence out by one occurrence.
    """
    targets = frozenset(weekdays)
    if not targets:
        raise InvalidScheduleError("weekdays must not be empty")
    if not targets <= set(WEEKDAY_TO_TOKEN):
        raise InvalidScheduleError(f"weekdays must be within 0..6, got {sorted(targets)}")
    if count <= 0:
        raise InvalidScheduleError(f"target session count must be positive, got {count}")

    skipped = frozenset(skip_dates)
    slots: list[CanonicalSlot] = []
    cursor = start_date
    while len(slots) < count:
        if cursor.weekday() in targets and cursor not in skipped:
            slots.append(CanonicalSlot(index=len(slots) + 1, date=cursor))
        cursor += timedelta(days=1)
    return slots


def recalculate_schedule(
    start_date: date | str,
    total_sessions: int,
    pattern: str,
    off_days: Iterable[date | str] = (),
) -> str:
    """Project the course end date (ISO) for a fresh class with no overrides."""
    weekdays, _ = parse_schedule_pattern(pattern)
    start = _coerce_date(start_date)
    skip = [_coerce_date(d) for d in off_days]
    slots = generate_canonical_dates(weekdays, start, total_sessions, skip_dates=skip)
    return slots[-1].date.isoformat()
