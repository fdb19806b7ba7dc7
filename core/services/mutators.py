"""Validation and ledger-append rules for schedule changes.

Each ``apply_*`` function validates the requested change against the current
materialization, appends to a working copy of the ledger, re-checks the
resulting schedule and only then adopts the copy into the ledger it was given.
They raise ``SchedulerError`` subclasses on rejection, leaving the ledger
untouched; callers that need the ``{success, message}`` shape go through
``ClassScheduleService``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from core.errors import InvalidShiftError, LockedSessionError, NotFoundError
from core.services.ledger import OverrideLedger
from core.services.materializer import (
    ClassScheduleConfig,
    Session,
    cumulative_offsets,
    find_regular_session_on,
    find_session,
    generate_class_sessions,
    projected_end_date,
    regular_sessions,
)


@dataclass
class MutationOutcome:
    message: str
    affected_count: int


def _fmt(day: date) -> str:
    return day.strftime("%d/%m/%Y")


def _movable_session(sessions: list[Session], session_index: int) -> Session:
    target = find_session(sessions, session_index)
    if target is None or target.is_extra:
        raise NotFoundError(f"Session #{session_index} does not exist")
    if target.is_locked:
        raise LockedSessionError(
            f"Session #{session_index} on {_fmt(target.day)} is in the past and cannot be moved"
        )
    return target


def _check_not_past(new_datetime: datetime, now: datetime) -> None:
    if new_datetime < now:
        raise InvalidShiftError(f"Cannot move a session into the past ({_fmt(new_datetime.date())})")


def check_schedule_consistent(config: ClassScheduleConfig, ledger: OverrideLedger, now: datetime) -> list[Session]:
    """Materialize ``ledger`` and reject it if upcoming sessions are out of order or share a day.

    Pairs where both sessions are already locked are left alone; the past cannot
    be repaired by a new change.
    """
    sessions = generate_class_sessions(config, ledger, now=now)
    regular = regular_sessions(sessions)
    for earlier, later in zip(regular, regular[1:]):
        if later.day <= earlier.day and not later.is_locked:
            raise InvalidShiftError(
                f"Session #{later.index} would fall on {_fmt(later.day)}, "
                f"not after session #{earlier.index} on {_fmt(earlier.day)}"
            )
    by_day = {s.day: s for s in regular}
    for extra in (s for s in sessions if s.is_extra):
        clash = by_day.get(extra.day)
        if clash is not None and not (clash.is_locked and extra.is_locked):
            raise InvalidShiftError(
                f"Session #{clash.index} would fall on {_fmt(clash.day)}, "
                f"the same day as the makeup session #{extra.index}"
            )
    return sessions


def _commit(config: ClassScheduleConfig, ledger: OverrideLedger, candidate: OverrideLedger, now: datetime) -> list[Session]:
    sessions = check_schedule_consistent(config, candidate, now)
    ledger.adopt(candidate)
    return sessions


def apply_schedule_chain(
    config: ClassScheduleConfig,
    ledger: OverrideLedger,
    session_index: int,
    new_datetime: datetime,
    now: datetime,
) -> MutationOutcome:
    """Move session ``session_index`` to ``new_datetime`` and cascade to every later session.

    The moved session lands on the requested day. Later sessions move by the
    delta rounded up to whole weeks, so they keep their weekdays and stay after
    the moved one. Shifts are whole days; the time of day always comes from the
    class pattern.
    """
    sessions = generate_class_sessions(config, ledger, now=now)
    target = _movable_session(sessions, session_index)

    new_day = new_datetime.date()
    previous = find_session(sessions, session_index - 1) if session_index > 1 else None
    if previous is not None and new_day <= previous.day:
        raise InvalidShiftError(
            f"New date {_fmt(new_day)} must be after session #{previous.index} on {_fmt(previous.day)}"
        )
    _check_not_past(new_datetime, now)

    delta_days = (new_day - target.day).days
    if delta_days == 0:
        raise InvalidShiftError(f"Session #{session_index} is already on {_fmt(new_day)}")

    candidate = ledger.snapshot()
    tail_delta = chain_tail_delta(delta_days)
    candidate.add_shift(session_index, delta_days, applied_at=now)
    if session_index < config.target_session_count and tail_delta != delta_days:
        candidate.add_shift(session_index + 1, tail_delta - delta_days, applied_at=now)
    updated = _commit(config, ledger, candidate, now)

    shifted = [s for s in regular_sessions(updated) if s.index >= session_index]
    affected = len(shifted)
    return MutationOutcome(
        message=(
            f"Moved {affected} session(s): #{session_index} to {_fmt(shifted[0].day)}, "
            f"course now ends with #{shifted[-1].index} on {_fmt(shifted[-1].day)}"
        ),
        affected_count=affected,
    )


def chain_tail_delta(delta_days: int) -> int:
    """Whole-week shift applied after the moved session (ceil of delta / 7, in weeks)."""
    return -((-delta_days) // 7) * 7


def apply_cancellation(
    config: ClassScheduleConfig,
    ledger: OverrideLedger,
    day: date,
    now: datetime,
) -> MutationOutcome:
    """Cancel the session on ``day``; the course gains one occurrence at its tail.

    Sessions after the cancelled one move up one index. Shift records are keyed
    by index, so compensating shifts are appended to keep every renumbered
    session on the date it had before. The new last session carries the offset
    of the old last one.
    """
    sessions = generate_class_sessions(config, ledger, now=now)
    target = find_regular_session_on(sessions, day)
    if target is None:
        raise NotFoundError(f"No session scheduled on {_fmt(day)}")
    if target.is_locked:
        raise LockedSessionError(f"Session on {_fmt(day)} is in the past and cannot be cancelled")

    count = config.target_session_count
    offsets = cumulative_offsets(ledger, count)
    wanted = offsets[:target.index] + offsets[target.index + 1:] + [offsets[count]]

    candidate = ledger.snapshot()
    candidate.add_cancellation(target.canonical_date)
    applied = 0
    for idx in range(1, count + 1):
        correction = wanted[idx] - offsets[idx]
        if correction != applied:
            candidate.add_shift(idx, correction - applied, applied_at=now)
            applied = correction
    updated = _commit(config, ledger, candidate, now)

    return MutationOutcome(
        message=f"Cancelled session on {_fmt(day)}; the course now ends on {_fmt(projected_end_date(updated))}",
        affected_count=count - target.index + 1,
    )


def apply_single_move(
    config: ClassScheduleConfig,
    ledger: OverrideLedger,
    session_index: int,
    new_datetime: datetime,
    now: datetime,
) -> MutationOutcome:
    """Move one session without touching the ones after it."""
    sessions = generate_class_sessions(config, ledger, now=now)
    target = _movable_session(sessions, session_index)

    new_day = new_datetime.date()
    previous = find_session(sessions, session_index - 1) if session_index > 1 else None
    following = find_session(sessions, session_index + 1) if session_index < config.target_session_count else None
    if previous is not None and new_day <= previous.day:
        raise InvalidShiftError(
            f"New date {_fmt(new_day)} must be after session #{previous.index} on {_fmt(previous.day)}"
        )
    if following is not None and new_day >= following.day:
        raise InvalidShiftError(
            f"New date {_fmt(new_day)} must be before session #{following.index} on {_fmt(following.day)}"
        )
    _check_not_past(new_datetime, now)

    delta_days = (new_day - target.day).days
    if delta_days == 0:
        raise InvalidShiftError(f"Session #{session_index} is already on {_fmt(new_day)}")

    candidate = ledger.snapshot()
    candidate.add_shift(session_index, delta_days, applied_at=now)
    if following is not None:
        candidate.add_shift(session_index + 1, -delta_days, applied_at=now)
    _commit(config, ledger, candidate, now)
    return MutationOutcome(
        message=f"Moved session #{session_index} from {_fmt(target.day)} to {_fmt(new_day)}",
        affected_count=1,
    )


def apply_extra_session(
    config: ClassScheduleConfig,
    ledger: OverrideLedger,
    starts_at: datetime,
    now: datetime,
    note: Optional[str] = None,
) -> MutationOutcome:
    if starts_at < now:
        raise InvalidShiftError(f"Cannot add a makeup session in the past ({_fmt(starts_at.date())})")
    sessions = generate_class_sessions(config, ledger, now=now)
    clash = next((s for s in sessions if s.day == starts_at.date()), None)
    if clash is not None:
        raise InvalidShiftError(f"Session #{clash.index} is already scheduled on {_fmt(clash.day)}")

    candidate = ledger.snapshot()
    candidate.add_extra(starts_at, note=note or "", applied_at=now)
    _commit(config, ledger, candidate, now)
    return MutationOutcome(
        message=f"Added makeup session on {_fmt(starts_at.date())} at {starts_at.strftime('%H:%M')}",
        affected_count=1,
    )
