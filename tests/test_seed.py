from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.orm import sessionmaker

from core.config import Settings
from core.db import build_engine, create_schema
from core.repository import ClassRepository
from core.services.class_schedule import ClassScheduleService
from core.services.materializer import regular_sessions
from db.seed import DEMO_CLASSES, seed_classes


def _service(tmp_path, now):
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'seed.db'}")
    create_schema(engine)
    return ClassScheduleService(
        ClassRepository(sessionmaker(bind=engine, expire_on_commit=False)),
        clock=lambda: now,
        settings=Settings(database_url="sqlite://"),
    )


def test_seed_creates_demo_classes_once(tmp_path):
    service = _service(tmp_path, datetime(2024, 1, 3, 12, 0))
    created = seed_classes(service, today=date(2024, 1, 3))
    assert created == [c["class_id"] for c in DEMO_CLASSES]
    assert seed_classes(service, today=date(2024, 1, 3)) == []

    a1 = service.get_class("C001")
    assert a1.config.start_date == date(2024, 1, 1)
    assert a1.ledger.cancellations == {date(2024, 1, 3)}
    assert len(a1.ledger.extra_sessions) == 1
    assert a1.ledger.extra_sessions[0].starts_at == datetime(2024, 1, 6, 18, 0)

    sessions = service.get_sessions("C001")
    assert len(regular_sessions(sessions)) == 24
    assert sum(1 for s in sessions if s.is_extra) == 1
