from __future__ import annotations

from datetime import date as dt_date
from datetime import datetime as dt_datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    status: str = "ok"
    app_env: str


class ProjectionResponse(BaseModel):
    end_date: dt_date


class ClassResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_id: str
    name: str
    schedule: str
    start_date: dt_date
    total_sessions: int
    planned_end_date: dt_date
    current_end_date: Optional[dt_date] = None
    ledger_version: int


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    index: int
    date: dt_datetime
    end: dt_datetime
    weekday_token: str
    canonical_date: Optional[dt_date] = None
    is_locked: bool
    is_extra: bool
    note: str = ""


class SessionListResponse(BaseModel):
    class_id: str
    window_start: Optional[dt_date] = None
    window_end: Optional[dt_date] = None
    items: list[SessionResponse]


class ScheduleResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    message: str
    affected_count: int = 0
    error: Optional[str] = None


class LedgerEntryResponse(BaseModel):
    sequence: int
    kind: str
    canonical_date: Optional[dt_date] = None
    from_index: Optional[int] = None
    delta_days: Optional[int] = None
    starts_at: Optional[dt_datetime] = None
    note: str = ""
    applied_at: dt_datetime


class LedgerResponse(BaseModel):
    class_id: str
    version: int
    entries: list[LedgerEntryResponse]
