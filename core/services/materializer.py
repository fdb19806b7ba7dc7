from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from core.services.ledger import OverrideLedger
from core.services.recurrence import generate_canonical_dates, parse_schedule_pattern, weekday_token


@dataclass(frozen=True)
class ClassScheduleConfig:
    weekdays: frozenset[int]
    session_time: time
    start_date: date
    target_session_count: int

    @classmethod
    def from_pattern(
        cls,
        pattern: str,
        start_date: date,
        target_session_count: int,
        default_time: Optional[time] = None,
    ) -> "ClassScheduleConfig":
        weekdays, session_time = parse_schedule_pattern(pattern, default_time=default_time)
        return cls(
            weekdays=weekdays,
            session_time=session_time,
            start_date=start_date,
            target_session_count=target_session_count,
        )


@dataclass(frozen=True)
class Session:
    id: str
    index: int
    date: datetime
    canonical_date: Optional[date]
    is_locked: bool
    is_extra: bool
    note: str = ""
    class_id: Optional[str] = None

    @property
    def day(self) -> date:
        return self.date.date()

    @property
    def weekday_token(self) -> str:
        return weekday_token(self.day)


def _session_id(class_id: Optional[str], day: date, index: int) -> str:
    prefix = f"{class_id}-" if class_id else ""
    return f"{prefix}{day.isoformat()}-{index}"


def cumulative_offsets(ledger: OverrideLedger, count: int) -> list[int]:
    """Day offset per index (position 0 unused)."""
    deltas = [0] * (count + 2)
    for shift in ledger.ordered_shifts():
        if shift.from_index <= count:
            deltas[shift.from_index] += shift.delta_days
    offsets = [0] * (count + 1)
    running = 0
    for idx in range(1, count + 1):
        running += deltas[idx]
        offsets[idx] = running
    return offsets


def generate_class_sessions(
    config: ClassScheduleConfig,
    ledger: Optional[OverrideLedger] = None,
    now: Optional[datetime] = None,
    class_id: Optional[str] = None,
) -> list[Session]:
    """Materialize the full session list for a class.

    Cancelled canonical dates are skipped during the walk, shift overrides are
    replayed cumulatively, makeup sessions are merged in after the regular block
    (indices ``target + 1`` onward), and anything before ``now`` is locked.
    """
    ledger = ledger or OverrideLedger()
    now = now or datetime.now()
    count = config.target_session_count

    slots = generate_canonical_dates(
        config.weekdays, config.start_date, count, skip_dates=ledger.cancellations
    )
    offsets = cumulative_offsets(ledger, count)

    sessions: list[Session] = []
    for slot in slots:
        shifted = slot.date + timedelta(days=offsets[slot.index])
        starts_at = datetime.combine(shifted, config.session_time)
        sessions.append(
            Session(
                id=_session_id(class_id, shifted, slot.index),
                index=slot.index,
                date=starts_at,
                canonical_date=slot.date,
                is_locked=starts_at < now,
                is_extra=False,
                class_id=class_id,
            )
        )

    extras = sorted(ledger.extra_sessions, key=lambda e: e.starts_at)
    for offset, extra in enumerate(extras, start=1):
        index = count + offset
        sessions.append(
            Session(
                id=_session_id(class_id, extra.starts_at.date(), index),
                index=index,
                date=extra.starts_at,
                canonical_date=None,
                is_locked=extra.starts_at < now,
                is_extra=True,
                note=extra.note,
                class_id=class_id,
            )
        )

    sessions.sort(key=lambda s: (s.date, s.is_extra, s.index))
    return sessions


def regular_sessions(sessions: Iterable[Session]) -> list[Session]:
    return sorted((s for s in sessions if not s.is_extra), key=lambda s: s.index)


def find_session(sessions: Iterable[Session], index: int) -> Optional[Session]:
    return next((s for s in sessions if s.index == index), None)


def find_regular_session_on(sessions: Iterable[Session], day: date) -> Optional[Session]:
    return next((s for s in sessions if not s.is_extra and s.day == day), None)


def projected_end_date(sessions: Iterable[Session]) -> Optional[date]:
    regular = regular_sessions(sessions)
    return regular[-1].day if regular else None


def month_window(year: int, month: int, padding_days: int = 7) -> tuple[date, date]:
    """Calendar-month view bounds padded on both sides."""
    last_day = calendar.monthrange(year, month)[1]
    start = date(year, month, 1) - timedelta(days=padding_days)
    end = date(year, month, last_day) + timedelta(days=padding_days)
    return start, end


def sessions_in_window(sessions: Iterable[Session], start: date, end: date) -> list[Session]:
    return [s for s in sessions if start <= s.day <= end]
