from __future__ import annotations

from fastapi import Request

from core.services.class_schedule import ClassScheduleService


def get_schedule_service(request: Request) -> ClassScheduleService:
    return request.app.state.schedule_service
