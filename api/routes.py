from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from api.deps import get_schedule_service
from api.schemas import (
    ClassResponse,
    HealthResponse,
    LedgerEntryResponse,
    LedgerResponse,
    ProjectionResponse,
    ScheduleResultResponse,
    SessionListResponse,
    SessionResponse,
)
from core.config import get_settings
from core.errors import InvalidScheduleError, NotFoundError
from core.repository import ClassState
from core.services.class_schedule import ClassScheduleService, ScheduleResult
from core.services.materializer import Session, month_window, projected_end_date
from core.validators import (
    CancellationInput,
    ClassCreateInput,
    ExtraSessionInput,
    RescheduleInput,
    ScheduleProjectionInput,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1")

Service = Annotated[ClassScheduleService, Depends(get_schedule_service)]

_ERROR_STATUS = {
    "NotFoundError": status.HTTP_404_NOT_FOUND,
    "LockedSessionError": status.HTTP_409_CONFLICT,
    "ConcurrentModificationError": status.HTTP_409_CONFLICT,
    "InvalidShiftError": 422,
    "InvalidScheduleError": 422,
}


def _result_response(result: ScheduleResult) -> JSONResponse:
    code = status.HTTP_200_OK if result.success else _ERROR_STATUS.get(result.error or "", status.HTTP_400_BAD_REQUEST)
    body = ScheduleResultResponse.model_validate(result).model_dump()
    return JSONResponse(status_code=code, content=body)


def _session_out(session: Session) -> SessionResponse:
    duration = timedelta(minutes=get_settings().session_duration_minutes)
    return SessionResponse(
        id=session.id,
        index=session.index,
        date=session.date,
        end=session.date + duration,
        weekday_token=session.weekday_token,
        canonical_date=session.canonical_date,
        is_locked=session.is_locked,
        is_extra=session.is_extra,
        note=session.note,
    )


def _class_out(state: ClassState, service: ClassScheduleService) -> ClassResponse:
    sessions = service.get_sessions(state.class_id)
    return ClassResponse(
        class_id=state.class_id,
        name=state.name,
        schedule=state.schedule,
        start_date=state.config.start_date,
        total_sessions=state.config.target_session_count,
        planned_end_date=state.planned_end_date,
        current_end_date=projected_end_date(sessions),
        ledger_version=state.ledger.version,
    )


def _load_class(service: ClassScheduleService, class_id: str) -> ClassState:
    try:
        return service.get_class(class_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/health", response_model=HealthResponse, tags=["health"])
def health():
    return HealthResponse(app_env=get_settings().app_env)


@router.post("/schedule/projection", response_model=ProjectionResponse, tags=["schedule"])
def project_schedule(body: ScheduleProjectionInput, service: Service):
    try:
        end_date = service.project_end_date(body.start_date, body.total_sessions, body.schedule, off_days=body.off_days)
    except InvalidScheduleError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ProjectionResponse(end_date=date.fromisoformat(end_date))


@router.post("/classes", response_model=ClassResponse, status_code=201, tags=["classes"])
def create_class(body: ClassCreateInput, service: Service):
    try:
        state = service.create_class(body.name, body.schedule, body.start_date, body.total_sessions)
    except InvalidScheduleError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _class_out(state, service)


@router.get("/classes/{class_id}", response_model=ClassResponse, tags=["classes"])
def get_class(class_id: str, service: Service):
    return _class_out(_load_class(service, class_id), service)


@router.get("/classes/{class_id}/sessions", response_model=SessionListResponse, tags=["sessions"])
def list_sessions(
    class_id: str,
    service: Service,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    year: Optional[int] = Query(None, ge=1900, le=9999),
    month: Optional[int] = Query(None, ge=1, le=12),
):
    if year is not None and month is not None:
        start, end = month_window(year, month, get_settings().calendar_window_padding_days)
    elif (year is None) != (month is None):
        raise HTTPException(status_code=422, detail="year and month must be given together")
    if start and end and start > end:
        raise HTTPException(status_code=422, detail="start must be on or before end")
    _load_class(service, class_id)
    sessions = service.get_sessions(class_id, start=start, end=end)
    return SessionListResponse(
        class_id=class_id,
        window_start=start,
        window_end=end,
        items=[_session_out(s) for s in sessions],
    )


@router.post("/classes/{class_id}/sessions/{session_index}/reschedule", response_model=ScheduleResultResponse, tags=["sessions"])
def reschedule_chain(class_id: str, session_index: int, body: RescheduleInput, service: Service):
    return _result_response(service.update_schedule_chain(class_id, session_index, body.new_datetime))


@router.post("/classes/{class_id}/sessions/{session_index}/move", response_model=ScheduleResultResponse, tags=["sessions"])
def move_session(class_id: str, session_index: int, body: RescheduleInput, service: Service):
    return _result_response(service.move_class_session(class_id, session_index, body.new_datetime))


@router.post("/classes/{class_id}/cancellations", response_model=ScheduleResultResponse, tags=["sessions"])
def cancel_session(class_id: str, body: CancellationInput, service: Service):
    return _result_response(service.cancel_class_session(class_id, body.date))


@router.post("/classes/{class_id}/extra-sessions", response_model=ScheduleResultResponse, tags=["sessions"])
def add_extra_session(class_id: str, body: ExtraSessionInput, service: Service):
    return _result_response(service.add_extra_session(class_id, body.starts_at, note=body.note))


@router.get("/classes/{class_id}/ledger", response_model=LedgerResponse, tags=["classes"])
def get_ledger(class_id: str, service: Service):
    state = _load_class(service, class_id)
    entries = service.repository.list_overrides(class_id)
    return LedgerResponse(
        class_id=class_id,
        version=state.ledger.version,
        entries=[LedgerEntryResponse(**e) for e in entries],
    )
