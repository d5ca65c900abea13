"""
Notification dedupe gate: has this (type, date, reference) already gone out?

should_send() is only a pre-check. The unique key on notification_log is
what actually keeps a second record from being written.
"""
import datetime
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from prayerbell.db import Database
from prayerbell.models import NOTIFICATION_TYPES, NotificationRecord

logger = logging.getLogger(__name__)


def _check_type(notification_type: str) -> None:
    if notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {notification_type}")


class NotificationGate:
    def __init__(self, database: Database):
        self.database = database

    def should_send(self, notification_type: str, reference_date: datetime.date, reference_id: str = "") -> bool:
        """True iff nothing was recorded for the triple. False if the store is unreachable."""
        _check_type(notification_type)
        try:
            with self.database.session_scope() as session:
                existing = session.execute(
                    select(NotificationRecord.id).where(
                        NotificationRecord.notification_type == notification_type,
                        NotificationRecord.reference_date == reference_date,
                        NotificationRecord.reference_id == reference_id,
                    ).limit(1)
                ).first()
        except SQLAlchemyError as e:
            logger.warning(f"Dedupe lookup failed for {notification_type}/{reference_date}/{reference_id}: {e}")
            return False
        return existing is None

    def mark_sent(self, notification_type: str, reference_date: datetime.date, reference_id: str = "") -> None:
        """Record the triple as sent. A repeat call leaves the single existing record alone."""
        _check_type(notification_type)
        try:
            with self.database.session_scope() as session:
                session.add(NotificationRecord(
                    notification_type=notification_type,
                    reference_date=reference_date,
                    reference_id=reference_id,
                ))
        except IntegrityError:
            logger.warning(f"Notification already recorded: {notification_type}/{reference_date}/{reference_id}")
        except SQLAlchemyError as e:
            logger.warning(f"Could not record notification {notification_type}/{reference_date}/{reference_id}: {e}")
