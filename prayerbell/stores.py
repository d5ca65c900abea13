"""
Read side of the prayer log and the agenda (events, tasks).
"""
import datetime
import logging
from dataclasses import dataclass

from sqlalchemy import String, cast, select
from sqlalchemy.exc import SQLAlchemyError

from prayerbell.db import Database
from prayerbell.models import TASK_DUE, Event, NotificationRecord, PrayerLog, Task

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """A backing table could not be read or written."""


def prayer_id(prayer_name: str) -> str:
    return prayer_name.strip().lower()


class CompletionStore:
    """Whether a prayer was logged complete for a prayer-day."""

    def __init__(self, database: Database):
        self.database = database

    def is_completed(self, prayer_name: str, day: datetime.date) -> bool:
        try:
            with self.database.session_scope() as session:
                completed = session.execute(
                    select(PrayerLog.completed).where(
                        PrayerLog.prayer_id == prayer_id(prayer_name),
                        PrayerLog.log_date == day,
                    )
                ).scalar()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read prayer log for {prayer_name} on {day}: {e}") from e
        return bool(completed)

    def set_completed(self, prayer_name: str, day: datetime.date, completed: bool = True) -> None:
        """Upsert the log entry for (prayer, day). Used by the CLI only."""
        try:
            with self.database.session_scope() as session:
                row = session.execute(
                    select(PrayerLog).where(
                        PrayerLog.prayer_id == prayer_id(prayer_name),
                        PrayerLog.log_date == day,
                    )
                ).scalars().first()
                if row is None:
                    session.add(PrayerLog(prayer_id=prayer_id(prayer_name), log_date=day, completed=completed))
                else:
                    row.completed = completed
        except SQLAlchemyError as e:
            raise StoreError(f"Could not write prayer log for {prayer_name} on {day}: {e}") from e


@dataclass(frozen=True)
class AgendaEvent:
    id: int
    title: str
    event_date: datetime.date


@dataclass(frozen=True)
class DueTask:
    id: int
    text: str
    due_at: datetime.datetime  # aware UTC


class AgendaStore:
    def __init__(self, database: Database):
        self.database = database

    def events_on(self, day: datetime.date) -> list:
        try:
            with self.database.session_scope() as session:
                rows = session.execute(
                    select(Event).where(Event.event_date == day).order_by(Event.id)
                ).scalars().all()
                return [AgendaEvent(id=r.id, title=r.title, event_date=r.event_date) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read events for {day}: {e}") from e

    def due_tasks(self, now: datetime.datetime) -> list:
        """Incomplete tasks due at or before now (aware) that have not been reminded yet."""
        cutoff = now.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        reminded = select(NotificationRecord.id).where(
            NotificationRecord.notification_type == TASK_DUE,
            NotificationRecord.reference_id == cast(Task.id, String),
        )
        try:
            with self.database.session_scope() as session:
                rows = session.execute(
                    select(Task).where(
                        Task.completed.is_(False),
                        Task.due_at.is_not(None),
                        Task.due_at <= cutoff,
                        ~reminded.exists(),
                    ).order_by(Task.due_at)
                ).scalars().all()
                return [
                    DueTask(id=r.id, text=r.text, due_at=r.due_at.replace(tzinfo=datetime.timezone.utc))
                    for r in rows
                ]
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read due tasks: {e}") from e
