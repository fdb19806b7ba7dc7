"""Per-class override ledger.

The ledger is the only mutable schedule state. It is append-only: cancellations,
chain-shift deltas and makeup sessions are recorded here and replayed on top of
the canonical recurrence on every read.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass(frozen=True)
class ShiftOverride:
    from_index: int
    delta_days: int
    applied_at: datetime


@dataclass(frozen=True)
class ExtraSession:
    starts_at: datetime
    note: str = ""
    applied_at: datetime | None = None


@dataclass
class OverrideLedger:
    cancellations: set[date] = field(default_factory=set)
    shift_overrides: list[ShiftOverride] = field(default_factory=list)
    extra_sessions: list[ExtraSession] = field(default_factory=list)
    version: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.cancellations or self.shift_overrides or self.extra_sessions)

    def add_cancellation(self, canonical_date: date) -> None:
        self.cancellations.add(canonical_date)
        self.version += 1

    def add_shift(self, from_index: int, delta_days: int, applied_at: datetime) -> ShiftOverride:
        if from_index < 1:
            raise ValueError(f"from_index must be >= 1, got {from_index}")
        record = ShiftOverride(from_index=from_index, delta_days=int(delta_days), applied_at=applied_at)
        self.shift_overrides.append(record)
        self.version += 1
        return record

    def add_extra(self, starts_at: datetime, note: str = "", applied_at: datetime | None = None) -> ExtraSession:
        record = ExtraSession(starts_at=starts_at, note=note, applied_at=applied_at)
        self.extra_sessions.append(record)
        self.version += 1
        return record

    def ordered_shifts(self) -> list[ShiftOverride]:
        # Stable sort keeps append order for records sharing a from_index.
        return sorted(self.shift_overrides, key=lambda s: s.from_index)

    def offset_for_index(self, index: int) -> int:
        """Total day offset for session ``index``.

        Each delta was measured against the already-shifted date at the time it was
        recorded, so offsets of every override at or before ``index`` accumulate.
        """
        return sum(s.delta_days for s in self.ordered_shifts() if s.from_index <= index)

    def snapshot(self) -> "OverrideLedger":
        return copy.deepcopy(self)

    def adopt(self, candidate: "OverrideLedger") -> None:
        """Take over the records of a validated working copy."""
        self.cancellations = set(candidate.cancellations)
        self.shift_overrides = list(candidate.shift_overrides)
        self.extra_sessions = list(candidate.extra_sessions)
        self.version = candidate.version
