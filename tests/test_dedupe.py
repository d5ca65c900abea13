"""Tests for the dedupe module."""

import datetime
import unittest
from unittest.mock import patch

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from prayerbell.db import Database
from prayerbell.dedupe import NotificationGate
from prayerbell.models import NotificationRecord

DAY = datetime.date(2024, 6, 1)


def _count_records(database):
    with database.session_scope() as session:
        return session.execute(select(func.count()).select_from(NotificationRecord)).scalar()


class TestNotificationGate(unittest.TestCase):
    def setUp(self):
        self.database = Database("sqlite://")
        self.database.create_all()
        self.gate = NotificationGate(self.database)

    def tearDown(self):
        self.database.dispose()

    def test_should_send_is_a_pure_query(self):
        self.assertTrue(self.gate.should_send("prayer_start", DAY, "Fajr"))
        self.assertTrue(self.gate.should_send("prayer_start", DAY, "Fajr"))
        self.assertEqual(_count_records(self.database), 0)

    def test_mark_sent_closes_the_gate(self):
        self.gate.mark_sent("prayer_start", DAY, "Fajr")
        self.assertFalse(self.gate.should_send("prayer_start", DAY, "Fajr"))

    def test_repeated_mark_sent_keeps_one_record(self):
        for _ in range(3):
            self.gate.mark_sent("prayer_start", DAY, "Fajr")
        self.assertFalse(self.gate.should_send("prayer_start", DAY, "Fajr"))
        self.assertEqual(_count_records(self.database), 1)

    def test_triples_are_independent(self):
        self.gate.mark_sent("prayer_start", DAY, "Fajr")
        self.assertTrue(self.gate.should_send("prayer_half", DAY, "Fajr"))
        self.assertTrue(self.gate.should_send("prayer_start", DAY, "Dhuhr"))
        self.assertTrue(self.gate.should_send("prayer_start", DAY + datetime.timedelta(days=1), "Fajr"))

    def test_uniqueness_enforced_by_database(self):
        with self.assertRaises(IntegrityError):
            with self.database.session_scope() as session:
                session.add(NotificationRecord(notification_type="task_due", reference_date=DAY, reference_id="7"))
                session.add(NotificationRecord(notification_type="task_due", reference_date=DAY, reference_id="7"))
        self.assertEqual(_count_records(self.database), 0)

    def test_unknown_type_rejected(self):
        with self.assertRaises(ValueError):
            self.gate.should_send("prayer_maybe", DAY, "Fajr")
        with self.assertRaises(ValueError):
            self.gate.mark_sent("prayer_maybe", DAY, "Fajr")

    def test_default_reference_id(self):
        self.gate.mark_sent("event_reminder", DAY)
        self.assertFalse(self.gate.should_send("event_reminder", DAY))
        self.assertTrue(self.gate.should_send("event_reminder", DAY, "daily"))


class TestNotificationGateStoreDown(unittest.TestCase):
    def setUp(self):
        self.database = Database("sqlite://")
        self.database.create_all()
        self.gate = NotificationGate(self.database)

    def tearDown(self):
        self.database.dispose()

    def test_should_send_fails_closed(self):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(self.database, "session_scope", side_effect=error):
            with self.assertLogs("prayerbell.dedupe", level="WARNING"):
                self.assertFalse(self.gate.should_send("prayer_start", DAY, "Fajr"))

    def test_mark_sent_is_noop_with_warning(self):
        error = OperationalError("INSERT", {}, Exception("disk I/O error"))
        with patch.object(self.database, "session_scope", side_effect=error):
            with self.assertLogs("prayerbell.dedupe", level="WARNING"):
                self.gate.mark_sent("prayer_start", DAY, "Fajr")
        self.assertEqual(_count_records(self.database), 0)

    def test_missing_table_fails_closed(self):
        NotificationRecord.__table__.drop(self.database.engine)
        self.assertFalse(self.gate.should_send("prayer_start", DAY, "Fajr"))


if __name__ == "__main__":
    unittest.main()
