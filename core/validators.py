"""Pydantic validation models for all user-facing data entry points."""

from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from core.errors import InvalidScheduleError
from core.services.recurrence import parse_schedule_pattern


def _validate_pattern(v: str) -> str:
    try:
        parse_schedule_pattern(v)
    except InvalidScheduleError as exc:
        raise ValueError(str(exc)) from exc
    return v


class ScheduleProjectionInput(BaseModel):
    schedule: str = Field(min_length=1, max_length=80, examples=["T2 / T4 / T6 • 18:30"])
    start_date: dt_date
    total_sessions: int = Field(gt=0, le=1000)
    off_days: list[dt_date] = Field(default_factory=list)

    @field_validator("schedule")
    @classmethod
    def valid_schedule(cls, v):
        return _validate_pattern(v)


class ClassCreateInput(BaseModel):
    name: str = Field(min_length=1, max_length=160)
    schedule: str = Field(min_length=1, max_length=80)
    start_date: dt_date
    total_sessions: Optional[int] = Field(default=None, gt=0, le=1000)

    @field_validator("schedule")
    @classmethod
    def valid_schedule(cls, v):
        return _validate_pattern(v)


class RescheduleInput(BaseModel):
    new_datetime: dt_datetime


class CancellationInput(BaseModel):
    date: dt_date


class ExtraSessionInput(BaseModel):
    starts_at: dt_datetime
    note: str = Field(default="", max_length=500)
