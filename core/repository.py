"""SQLAlchemy persistence for class schedule state.

A class's schedule is fully determined by its ``ClassRecord`` row and its
ordered ``ScheduleOverride`` rows. Appends are guarded by an optimistic check on
``classes.ledger_version``.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from core.db import session_scope
from core.models import ClassRecord, ScheduleOverride
from core.services.ledger import ExtraSession, OverrideLedger, ShiftOverride
from core.services.materializer import ClassScheduleConfig
from core.services.recurrence import parse_weekday_tokens, PATTERN_TIME_SEPARATOR


@dataclass
class ClassState:
    class_id: str
    name: str
    schedule: str
    planned_end_date: dt.date
    config: ClassScheduleConfig
    ledger: OverrideLedger


def _config_from_record(record: ClassRecord) -> ClassScheduleConfig:
    days_part = record.schedule.partition(PATTERN_TIME_SEPARATOR)[0]
    return ClassScheduleConfig(
        weekdays=parse_weekday_tokens(days_part),
        session_time=record.session_time,
        start_date=record.start_date,
        target_session_count=record.total_sessions,
    )


def _ledger_from_rows(rows: list[ScheduleOverride], version: int) -> OverrideLedger:
    ledger = OverrideLedger()
    for row in rows:
        if row.kind == "cancel":
            ledger.cancellations.add(row.canonical_date)
        elif row.kind == "shift":
            ledger.shift_overrides.append(
                ShiftOverride(from_index=row.from_index, delta_days=row.delta_days, applied_at=row.applied_at)
            )
        elif row.kind == "extra":
            ledger.extra_sessions.append(ExtraSession(starts_at=row.starts_at, note=row.note or "", applied_at=row.applied_at))
    ledger.version = version
    return ledger


def ledger_delta(before: OverrideLedger, after: OverrideLedger, applied_at: dt.datetime) -> list[dict[str, Any]]:
    """Rows to append so that ``before`` becomes ``after``."""
    pending: list[dict[str, Any]] = []
    for day in sorted(after.cancellations - before.cancellations):
        pending.append({"kind": "cancel", "canonical_date": day, "applied_at": applied_at})
    for shift in after.shift_overrides[len(before.shift_overrides):]:
        pending.append(
            {"kind": "shift", "from_index": shift.from_index, "delta_days": shift.delta_days, "applied_at": shift.applied_at}
        )
    for extra in after.extra_sessions[len(before.extra_sessions):]:
        pending.append(
            {"kind": "extra", "starts_at": extra.starts_at, "note": extra.note, "applied_at": extra.applied_at or applied_at}
        )
    return pending


class ClassRepository:
    def __init__(self, session_factory: Optional[sessionmaker[Session]] = None):
        self._session_factory = session_factory

    def _scope(self):
        return session_scope(self._session_factory)

    def create_class(
        self,
        *,
        class_id: str,
        name: str,
        schedule: str,
        session_time: dt.time,
        start_date: dt.date,
        total_sessions: int,
        planned_end_date: dt.date,
    ) -> ClassState:
        with self._scope() as s:
            record = ClassRecord(
                id=class_id,
                name=name,
                schedule=schedule,
                session_time=session_time,
                start_date=start_date,
                total_sessions=total_sessions,
                planned_end_date=planned_end_date,
                ledger_version=0,
            )
            s.add(record)
            s.flush()
            return ClassState(
                class_id=class_id,
                name=name,
                schedule=schedule,
                planned_end_date=planned_end_date,
                config=_config_from_record(record),
                ledger=OverrideLedger(),
            )

    def load(self, class_id: str) -> Optional[ClassState]:
        with self._scope() as s:
            record = s.get(ClassRecord, class_id)
            if record is None:
                return None
            rows = s.execute(
                select(ScheduleOverride).where(ScheduleOverride.class_id == class_id).order_by(ScheduleOverride.sequence)
            ).scalars().all()
            return ClassState(
                class_id=record.id,
                name=record.name,
                schedule=record.schedule,
                planned_end_date=record.planned_end_date,
                config=_config_from_record(record),
                ledger=_ledger_from_rows(list(rows), record.ledger_version),
            )

    def append_overrides(self, class_id: str, expected_version: int, pending: list[dict[str, Any]]) -> bool:
        """Append ledger rows if nobody else has appended since ``expected_version``.

        Returns False on a version conflict; nothing is written in that case.
        """
        if not pending:
            return True
        with self._scope() as s:
            result = s.execute(
                update(ClassRecord)
                .where(ClassRecord.id == class_id, ClassRecord.ledger_version == expected_version)
                .values(ledger_version=expected_version + len(pending))
            )
            if result.rowcount != 1:
                return False
            for offset, values in enumerate(pending, start=1):
                s.add(ScheduleOverride(class_id=class_id, sequence=expected_version + offset, **values))
        return True

    def list_overrides(self, class_id: str) -> list[dict[str, Any]]:
        with self._scope() as s:
            rows = s.execute(
                select(ScheduleOverride).where(ScheduleOverride.class_id == class_id).order_by(ScheduleOverride.sequence)
            ).scalars().all()
            return [
                {
                    "sequence": row.sequence,
                    "kind": row.kind,
                    "canonical_date": row.canonical_date,
                    "from_index": row.from_index,
                    "delta_days": row.delta_days,
                    "starts_at": row.starts_at,
                    "note": row.note or "",
                    "applied_at": row.applied_at,
                }
                for row in rows
            ]
