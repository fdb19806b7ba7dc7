from __future__ import annotations

import datetime as dt

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text, Time, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class ClassRecord(Base):
    __tablename__ = "classes"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(160))
    schedule: Mapped[str] = mapped_column(String(80))  # "T2 / T4 / T6 • 18:30"
    session_time: Mapped[dt.time] = mapped_column(Time)
    start_date: Mapped[dt.date] = mapped_column(Date)
    total_sessions: Mapped[int] = mapped_column(Integer)
    planned_end_date: Mapped[dt.date] = mapped_column(Date)
    ledger_version: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)

    overrides: Mapped[list["ScheduleOverride"]] = relationship(
        back_populates="class_record", order_by="ScheduleOverride.sequence"
    )


class ScheduleOverride(Base):
    """Append-only ledger row. Rows are never updated or deleted."""

    __tablename__ = "schedule_overrides"
    __table_args__ = (
        UniqueConstraint("class_id", "sequence", name="uq_schedule_override_sequence"),
        Index("ix_schedule_overrides_class_kind", "class_id", "kind"),
    )
    id: Mapped[int] = mapped_column(primary_key=True)
    class_id: Mapped[str] = mapped_column(ForeignKey("classes.id"), index=True)
    sequence: Mapped[int] = mapped_column(Integer)
    kind: Mapped[str] = mapped_column(String(16))  # cancel | shift | extra
    canonical_date: Mapped[dt.date | None] = mapped_column(Date)
    from_index: Mapped[int | None] = mapped_column(Integer)
    delta_days: Mapped[int | None] = mapped_column(Integer)
    starts_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    note: Mapped[str] = mapped_column(Text, default="")
    applied_at: Mapped[dt.datetime] = mapped_column(DateTime, default=dt.datetime.utcnow)

    class_record: Mapped[ClassRecord] = relationship(back_populates="overrides")
