"""
Reminder decision loops, one tick at a time.

A tick looks at "now", works out which reminders are due inside the
tolerance band, and sends each one at most once through the
NotificationGate. A notification is only recorded as sent after the
channel accepted it.
"""
import datetime
import logging
from dataclasses import dataclass

import pytz

from prayerbell import notifier
from prayerbell.models import EVENT_REMINDER, PRAYER_END, PRAYER_HALF, PRAYER_START, TASK_DUE
from prayerbell.prayer_api import PRAYER_NAMES, DEFAULT_METHOD, fetch_timings
from prayerbell.windows import (
    DEFAULT_PRAYER_DAY_POLICY,
    END_WARNING_LEAD,
    PRAYER_DAY_POLICIES,
    derive_windows,
    local_date,
    prayer_day,
)

DEFAULT_TOLERANCE = datetime.timedelta(minutes=2)


@dataclass(frozen=True)
class Delivery:
    notification_type: str
    reference_date: datetime.date
    reference_id: str


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(pytz.utc)


class _Reminder:
    """Shared send-once plumbing."""

    def __init__(self, gate, sender):
        self.gate = gate
        self.sender = sender
        self.logger = logging.getLogger(self.__class__.__name__)

    def _deliver(self, notification_type: str, reference_date, reference_id: str, subject: str, text: str):
        if not self.gate.should_send(notification_type, reference_date, reference_id):
            self.logger.debug(f"Already sent: {notification_type}/{reference_date}/{reference_id}")
            return None
        try:
            self.sender.send(subject, text)
        except notifier.NotificationError as e:
            self.logger.warning(f"Send failed for {notification_type}/{reference_date}/{reference_id}: {e}")
            return None
        self.gate.mark_sent(notification_type, reference_date, reference_id)
        self.logger.info(f"Sent {notification_type} for {reference_id} on {reference_date}")
        return Delivery(notification_type, reference_date, reference_id)

    def tick(self, now: datetime.datetime = None) -> list:
        """Send whatever is due at now; returns the deliveries made. Subclasses must override."""
        raise NotImplementedError

    def run_tick(self, now: datetime.datetime = None) -> list:
        """tick() that never raises; what the scheduler calls."""
        try:
            return self.tick(now)
        except Exception:
            self.logger.exception("Reminder tick failed")
            return []


class PrayerReminder(_Reminder):
    """Start, halfway and near-end reminders for the five daily prayers."""

    def __init__(
        self,
        location_store,
        completion_store,
        gate,
        sender,
        fetch=fetch_timings,
        tolerance: datetime.timedelta = DEFAULT_TOLERANCE,
        prayer_day_policy: str = DEFAULT_PRAYER_DAY_POLICY,
        method: int = DEFAULT_METHOD,
        fetch_options: dict = None,
    ):
        super().__init__(gate, sender)
        if prayer_day_policy not in PRAYER_DAY_POLICIES:
            raise ValueError(f"Unknown prayer day policy: {prayer_day_policy}")
        self.location_store = location_store
        self.completion_store = completion_store
        self.fetch = fetch
        self.tolerance = tolerance
        self.prayer_day_policy = prayer_day_policy
        self.method = method
        self.fetch_options = fetch_options or {}

    def tick(self, now: datetime.datetime = None) -> list:
        now = now or _utc_now()
        location = self.location_store.load()
        if location is None:
            self.logger.debug("No location configured; skipping prayer tick")
            return []

        try:
            today, timing_set = self._fetch_today(location, now)
        except ValueError as e:
            self.logger.warning(f"Skipping prayer tick, timings unavailable: {e}")
            return []

        tz_name = timing_set.timezone or "UTC"
        windows = derive_windows(timing_set, tz_name)
        deliveries = []
        for name in PRAYER_NAMES:
            window = windows.get(name)
            if window is None:
                continue
            try:
                deliveries.extend(self._check_prayer(window, timing_set.get(name), today, now, tz_name))
            except Exception:
                self.logger.exception(f"Prayer reminder for {name} failed")
        return deliveries

    def _fetch(self, location, day: datetime.date):
        return self.fetch(
            location.lat,
            location.lng,
            day,
            timezone=location.timezone,
            method=self.method,
            **self.fetch_options,
        )

    def _fetch_today(self, location, now: datetime.datetime) -> tuple:
        """
        Timings for the local date at now. Without a known timezone the
        provider's zone decides which date is "today", so a first guess in
        UTC is re-fetched when the provider's local date differs.
        """
        if location.timezone:
            today = local_date(now, location.timezone)
            return today, self._fetch(location, today)

        guess = local_date(now, "UTC")
        timing_set = self._fetch(location, guess)
        today = local_date(now, timing_set.timezone or "UTC")
        if today != guess:
            self.logger.debug(f"Provider zone {timing_set.timezone} puts today at {today}; re-fetching")
            timing_set = self._fetch(location, today)
        return today, timing_set

    def _within(self, now: datetime.datetime, instant: datetime.datetime) -> bool:
        return abs(now - instant) <= self.tolerance

    def _check_prayer(self, window, time_str: str, today, now, tz_name: str) -> list:
        deliveries = []
        name = window.name

        if self._within(now, window.start):
            subject, text = notifier.prayer_start_message(name, time_str)
            sent = self._deliver(PRAYER_START, today, name, subject, text)
            if sent:
                deliveries.append(sent)

        later = []
        if self._within(now, window.midpoint):
            later.append((PRAYER_HALF, notifier.prayer_half_message(name)))
        if self._within(now, window.end_warning):
            minutes_left = int(END_WARNING_LEAD.total_seconds() // 60)
            later.append((PRAYER_END, notifier.prayer_end_message(name, minutes_left)))
        if not later:
            return deliveries

        day = prayer_day(now, tz_name, self.prayer_day_policy)
        if self.completion_store.is_completed(name, day):
            self.logger.debug(f"{name} already completed for {day}; no further reminders")
            return deliveries
        for notification_type, (subject, text) in later:
            sent = self._deliver(notification_type, today, name, subject, text)
            if sent:
                deliveries.append(sent)
        return deliveries


class _AgendaReminder(_Reminder):
    """
    Reminders read in the location's timezone. The location is re-read on
    every tick so a location saved while running takes effect; timezone is
    the fallback when no location (or none with a zone) is stored.
    """

    def __init__(self, agenda_store, gate, sender, timezone: str = "UTC", location_store=None):
        super().__init__(gate, sender)
        self.agenda_store = agenda_store
        self.location_store = location_store
        self.timezone = timezone or "UTC"

    def current_timezone(self) -> str:
        if self.location_store is not None:
            location = self.location_store.load()
            if location is not None and location.timezone:
                return location.timezone
        return self.timezone


class EventReminder(_AgendaReminder):
    """One digest per day of tomorrow's events, sent from send_hour local time on."""

    def __init__(self, agenda_store, gate, sender, timezone: str = "UTC", send_hour: int = 8, location_store=None):
        super().__init__(agenda_store, gate, sender, timezone=timezone, location_store=location_store)
        self.send_hour = send_hour

    def tick(self, now: datetime.datetime = None) -> list:
        now = now or _utc_now()
        local = now.astimezone(pytz.timezone(self.current_timezone()))
        if local.hour < self.send_hour:
            return []
        tomorrow = local.date() + datetime.timedelta(days=1)
        events = self.agenda_store.events_on(tomorrow)
        if not events:
            return []
        subject, text = notifier.event_reminder_message(tomorrow, [e.title for e in events])
        sent = self._deliver(EVENT_REMINDER, tomorrow, "daily", subject, text)
        return [sent] if sent else []


class TaskReminder(_AgendaReminder):
    """One mail per overdue task."""

    def tick(self, now: datetime.datetime = None) -> list:
        now = now or _utc_now()
        tz = pytz.timezone(self.current_timezone())
        deliveries = []
        for task in self.agenda_store.due_tasks(now):
            due_local = task.due_at.astimezone(tz)
            subject, text = notifier.task_due_message(task.text, due_local.strftime("%Y-%m-%d %H:%M %Z"))
            sent = self._deliver(TASK_DUE, due_local.date(), str(task.id), subject, text)
            if sent:
                deliveries.append(sent)
        return deliveries
