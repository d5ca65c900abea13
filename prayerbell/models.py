"""
SQLAlchemy models: notification log (dedupe), user settings, prayer logs,
and the read-only agenda tables (events, tasks).
"""
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, String, UniqueConstraint

from prayerbell.db import Base

PRAYER_START = "prayer_start"
PRAYER_HALF = "prayer_half"
PRAYER_END = "prayer_end"
EVENT_REMINDER = "event_reminder"
TASK_DUE = "task_due"

NOTIFICATION_TYPES = frozenset({PRAYER_START, PRAYER_HALF, PRAYER_END, EVENT_REMINDER, TASK_DUE})


def _utc_now() -> datetime:
    """UTC now as naive datetime for DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class NotificationRecord(Base):
    """One sent notification. The unique key is what makes delivery at-most-once."""
    __tablename__ = "notification_log"
    __table_args__ = (
        UniqueConstraint("notification_type", "reference_date", "reference_id", name="uq_notification_log_key"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_type = Column(String(32), nullable=False)
    reference_date = Column(Date, nullable=False)
    reference_id = Column(String(255), nullable=False, default="")
    sent_at = Column(DateTime(timezone=False), default=_utc_now, nullable=False)


class UserSettings(Base):
    """Single row (id=1) holding the configured location."""
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True)
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    timezone = Column(String(64), nullable=True)
    city = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=False), default=_utc_now, onupdate=_utc_now, nullable=False)


class PrayerLog(Base):
    """Whether a prayer (lower-cased name) was completed on a prayer-day."""
    __tablename__ = "prayer_logs"
    __table_args__ = (UniqueConstraint("prayer_id", "log_date", name="uq_prayer_logs_day"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    prayer_id = Column(String(32), nullable=False, index=True)
    log_date = Column(Date, nullable=False, index=True)
    completed = Column(Boolean, default=False, nullable=False)


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    event_date = Column(Date, nullable=False, index=True)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    text = Column(String(1024), nullable=False)
    due_at = Column(DateTime(timezone=False), nullable=True, index=True)  # naive UTC
    completed = Column(Boolean, default=False, nullable=False)
