from __future__ import annotations


class SchedulerError(ValueError):
    """Base class for schedule validation failures."""

    kind = "SchedulerError"


class InvalidScheduleError(SchedulerError):
    """Malformed recurrence input: empty weekday set, non-positive count, bad pattern."""

    kind = "InvalidScheduleError"


class NotFoundError(SchedulerError):
    kind = "NotFoundError"


class LockedSessionError(SchedulerError):
    """The targeted session is already in the past."""

    kind = "LockedSessionError"


class InvalidShiftError(SchedulerError):
    """The requested date would break session ordering."""

    kind = "InvalidShiftError"


class ConcurrentModificationError(SchedulerError):
    kind = "ConcurrentModificationError"
