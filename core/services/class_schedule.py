"""Per-class write path for schedule mutations.

Every mutation runs under a per-class lock, re-materializes from the latest
persisted ledger, validates, and appends with an optimistic version check. A
version conflict means another writer got in first; the mutation is then
re-validated against the fresh state before retrying.
"""

from __future__ import annotations

import logging
import threading
import uuid
import weakref
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from core.config import Settings, get_settings
from core.errors import ConcurrentModificationError, InvalidShiftError, NotFoundError, SchedulerError
from core.repository import ClassRepository, ClassState, ledger_delta
from core.services.ledger import OverrideLedger
from core.services.materializer import (
    ClassScheduleConfig,
    Session,
    generate_class_sessions,
    sessions_in_window,
)
from core.services.mutators import (
    MutationOutcome,
    apply_cancellation,
    apply_extra_session,
    apply_schedule_chain,
    apply_single_move,
)
from core.services.recurrence import format_schedule_pattern, parse_schedule_pattern, recalculate_schedule

logger = logging.getLogger(__name__)

Mutation = Callable[[ClassScheduleConfig, OverrideLedger, datetime], MutationOutcome]


@dataclass
class ScheduleResult:
    success: bool
    message: str
    affected_count: int = 0
    error: Optional[str] = None


def _coerce_date(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise InvalidShiftError(f"Invalid date {value!r}") from exc


def _coerce_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidShiftError(f"Invalid date/time {value!r}") from exc
    return parsed.replace(tzinfo=None)


class ClassScheduleService:
    def __init__(
        self,
        repository: Optional[ClassRepository] = None,
        clock: Callable[[], datetime] = datetime.now,
        settings: Optional[Settings] = None,
    ):
        self.repository = repository or ClassRepository()
        self.clock = clock
        self.settings = settings or get_settings()
        # Entries drop out once no caller holds the lock.
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, class_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(class_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[class_id] = lock
            return lock

    # -- reads --

    def project_end_date(self, start_date: date | str, total_sessions: int, pattern: str, off_days=()) -> str:
        return recalculate_schedule(start_date, total_sessions, pattern, off_days=off_days)

    def create_class(
        self,
        name: str,
        schedule: str,
        start_date: date,
        total_sessions: Optional[int] = None,
        class_id: Optional[str] = None,
    ) -> ClassState:
        total = total_sessions or self.settings.default_total_sessions
        weekdays, session_time = parse_schedule_pattern(schedule, default_time=self.settings.default_session_time)
        pattern = format_schedule_pattern(weekdays, session_time)
        end_date = date.fromisoformat(recalculate_schedule(start_date, total, pattern))
        state = self.repository.create_class(
            class_id=class_id or uuid.uuid4().hex[:12],
            name=name,
            schedule=pattern,
            session_time=session_time,
            start_date=start_date,
            total_sessions=total,
            planned_end_date=end_date,
        )
        logger.info("class_created", extra={"ctx_class_id": state.class_id, "ctx_end_date": end_date})
        return state

    def get_class(self, class_id: str) -> ClassState:
        state = self.repository.load(class_id)
        if state is None:
            raise NotFoundError(f"Class {class_id} not found")
        return state

    def get_sessions(
        self,
        class_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Session]:
        state = self.get_class(class_id)
        sessions = generate_class_sessions(state.config, state.ledger, now=self.clock(), class_id=class_id)
        if start is None and end is None:
            return sessions
        return sessions_in_window(sessions, start or date.min, end or date.max)

    # -- writes --

    def update_schedule_chain(self, class_id: str, session_index: int, new_datetime: datetime | str) -> ScheduleResult:
        def mutation(config, ledger, now):
            return apply_schedule_chain(config, ledger, session_index, _coerce_datetime(new_datetime), now)

        return self._mutate(class_id, "schedule_chain", mutation)

    def cancel_class_session(self, class_id: str, day: date | str) -> ScheduleResult:
        def mutation(config, ledger, now):
            return apply_cancellation(config, ledger, _coerce_date(day), now)

        return self._mutate(class_id, "cancel_session", mutation)

    def move_class_session(self, class_id: str, session_index: int, new_datetime: datetime | str) -> ScheduleResult:
        def mutation(config, ledger, now):
            return apply_single_move(config, ledger, session_index, _coerce_datetime(new_datetime), now)

        return self._mutate(class_id, "move_session", mutation)

    def add_extra_session(self, class_id: str, starts_at: datetime | str, note: str = "") -> ScheduleResult:
        def mutation(config, ledger, now):
            return apply_extra_session(config, ledger, _coerce_datetime(starts_at), now, note=note)

        return self._mutate(class_id, "extra_session", mutation)

    def _mutate(self, class_id: str, action: str, mutation: Mutation) -> ScheduleResult:
        ctx = {"ctx_class_id": class_id, "ctx_action": action}
        lock = self._lock_for(class_id)
        with lock:
            for attempt in range(self.settings.ledger_commit_retries + 1):
                state = self.repository.load(class_id)
                if state is None:
                    return self._rejected(NotFoundError(f"Class {class_id} not found"), ctx)
                working = state.ledger.snapshot()
                now = self.clock()
                try:
                    outcome = mutation(state.config, working, now)
                except SchedulerError as exc:
                    return self._rejected(exc, ctx)

                pending = ledger_delta(state.ledger, working, now)
                if self.repository.append_overrides(class_id, state.ledger.version, pending):
                    logger.info(
                        "schedule_mutation_applied",
                        extra={**ctx, "ctx_records": len(pending), "ctx_affected": outcome.affected_count},
                    )
                    return ScheduleResult(success=True, message=outcome.message, affected_count=outcome.affected_count)
                logger.warning("ledger_version_conflict", extra={**ctx, "ctx_attempt": attempt + 1})

        return self._rejected(
            ConcurrentModificationError(f"Schedule for class {class_id} changed concurrently, please retry"), ctx
        )

    @staticmethod
    def _rejected(exc: SchedulerError, ctx: dict) -> ScheduleResult:
        logger.info("schedule_mutation_rejected", extra={**ctx, "ctx_error": exc.kind, "ctx_reason": str(exc)})
        return ScheduleResult(success=False, message=str(exc), error=exc.kind)
