"""Seed demo classes so the calendar has something to render.

Each class starts on the Monday of the current week; one class also gets a
cancelled session and a makeup session so the ledger replay is visible.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from core.db import create_schema
from core.logging_config import get_logger, setup_logging
from core.services.class_schedule import ClassScheduleService

logger = get_logger(__name__)

DEMO_CLASSES = [
    {"class_id": "C001", "name": "German A1", "schedule": "T2 / T4 / T6 • 18:00", "total_sessions": 24},
    {"class_id": "C002", "name": "German A2", "schedule": "T3 / T5 • 19:30", "total_sessions": 20},
    {"class_id": "C003", "name": "German B1", "schedule": "T2 / T4 / T6 • 18:00", "total_sessions": 30},
]


def seed_classes(service: ClassScheduleService, today: date | None = None) -> list[str]:
    today = today or date.today()
    week_start = today - timedelta(days=today.weekday())
    created: list[str] = []
    for spec in DEMO_CLASSES:
        if service.repository.load(spec["class_id"]) is not None:
            continue
        service.create_class(
            spec["name"],
            spec["schedule"],
            week_start,
            spec["total_sessions"],
            class_id=spec["class_id"],
        )
        created.append(spec["class_id"])

    if "C001" in created:
        upcoming = [s for s in service.get_sessions("C001") if not s.is_locked]
        if len(upcoming) >= 2:
            service.cancel_class_session("C001", upcoming[0].day)
            makeup = datetime.combine(upcoming[1].day + timedelta(days=1), upcoming[1].date.time())
            service.add_extra_session("C001", makeup, note="Makeup for cancelled session")
    return created


def main() -> None:
    setup_logging()
    create_schema()
    created = seed_classes(ClassScheduleService())
    logger.info("seed_complete", extra={"ctx_created": created})
    print(f"Seeding complete: {len(created)} class(es) created")


if __name__ == "__main__":
    main()
