"""
ORM models for the local records batch actions create.

Tasks, time entries, deadlines and activities are the revertible side
effects: the rollback manager deletes them again.  Calendar event
mirrors are the best-effort local copy written after the calendar
provider accepted an event; they are never rolled back.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from practice_kernel.db.base import TrackedBase


class TaskModel(TrackedBase):
    __tablename__ = "tasks"

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    case_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    mail_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    extracted_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)


class TimeEntryModel(TrackedBase):
    __tablename__ = "time_entries"

    case_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    hours: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)
    worked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    billed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class DeadlineModel(TrackedBase):
    __tablename__ = "deadlines"

    case_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    deadline_type: Mapped[str] = mapped_column(String(50), nullable=False, default="custom")
    description: Mapped[str] = mapped_column(Text, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    is_critical: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ActivityModel(TrackedBase):
    """Activity feed entry; alerts are activities with an ``alert_type``."""

    __tablename__ = "activities"

    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    case_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="active")
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)


class CalendarEventMirrorModel(TrackedBase):
    __tablename__ = "calendar_event_mirrors"

    external_event_id: Mapped[str] = mapped_column(String(300), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    case_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    client_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    html_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    meet_link: Mapped[str | None] = mapped_column(String(1000), nullable=True)
