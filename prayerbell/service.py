"""
Wires the stores, gate, channels and reminders together from config and
owns their lifecycle: build once at start-up, stop() at shutdown.
"""
import datetime
import logging
import threading

import pytz

from prayerbell.config import Config
from prayerbell.db import Database, resolve_db_url
from prayerbell.dedupe import NotificationGate
from prayerbell.location import Location, LocationStore
from prayerbell.notifier import build_sender
from prayerbell.prayer_api import ALADHAN_BASE, DEFAULT_METHOD
from prayerbell.reminders import EventReminder, PrayerReminder, TaskReminder
from prayerbell.scheduler import Scheduler
from prayerbell.stores import AgendaStore, CompletionStore

logger = logging.getLogger(__name__)


def _timezone_name(tz_name):
    if not tz_name:
        return None
    try:
        pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        raise ValueError(f"Unknown timezone in config: {tz_name}") from None
    return tz_name


class ReminderService:
    def __init__(self, config: Config, database: Database = None, sender=None):
        self.config = config
        reminders_cfg = config.section("reminders")
        timings_cfg = config.section("timings")

        self.database = database or Database(resolve_db_url(config.data))
        self.database.create_all()

        default_location = Location.from_mapping(config.section("location"))
        if default_location is not None:
            default_location = Location(
                lat=default_location.lat,
                lng=default_location.lng,
                timezone=_timezone_name(default_location.timezone),
                city=default_location.city,
            )
        self.location_store = LocationStore(self.database, default=default_location)
        self.completion_store = CompletionStore(self.database)
        self.agenda_store = AgendaStore(self.database)
        self.gate = NotificationGate(self.database)
        self.sender = sender if sender is not None else build_sender(config.section("notify"))

        self.fetch_options = {
            "base_url": timings_cfg.get("base_url") or ALADHAN_BASE,
            "timeout": int(timings_cfg.get("timeout") or 10),
        }
        self.method = int(timings_cfg.get("method") or DEFAULT_METHOD)
        self.prayer_reminder = PrayerReminder(
            self.location_store,
            self.completion_store,
            self.gate,
            self.sender,
            tolerance=datetime.timedelta(minutes=float(reminders_cfg.get("tolerance_minutes", 2))),
            prayer_day_policy=reminders_cfg.get("prayer_day_policy") or "calendar",
            method=self.method,
            fetch_options=self.fetch_options,
        )
        self.scheduler = Scheduler()
        self._stop_event = threading.Event()

    def schedule(self) -> bool:
        """Register the periodic ticks. False when no channel is configured."""
        if self.sender is None:
            logger.warning("No notification channel configured; reminders are not scheduled")
            return False
        reminders_cfg = self.config.section("reminders")
        self.scheduler.add(
            "prayers",
            self.prayer_reminder.run_tick,
            float(reminders_cfg.get("interval_seconds") or 300),
        )

        events_cfg = reminders_cfg.get("events") or {}
        if events_cfg.get("enable", True):
            events = EventReminder(
                self.agenda_store, self.gate, self.sender,
                send_hour=int(events_cfg.get("send_hour", 8)), location_store=self.location_store,
            )
            self.scheduler.add("events", events.run_tick, float(events_cfg.get("interval_seconds") or 300))
        tasks_cfg = reminders_cfg.get("tasks") or {}
        if tasks_cfg.get("enable", True):
            tasks = TaskReminder(self.agenda_store, self.gate, self.sender, location_store=self.location_store)
            self.scheduler.add("tasks", tasks.run_tick, float(tasks_cfg.get("interval_seconds") or 60))
        return True

    def start(self) -> bool:
        if not self.schedule():
            return False
        self.scheduler.start()
        logger.info(f"Reminder service started: {', '.join(self.scheduler.tasks)}")
        return True

    def run_forever(self) -> None:
        """Block until stop() is called or the process is interrupted. The caller still calls stop()."""
        if not self.start():
            return
        try:
            self._stop_event.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted")

    def request_stop(self) -> None:
        """Wake run_forever(); safe to call from a signal handler."""
        self._stop_event.set()

    def stop(self) -> None:
        self._stop_event.set()
        self.scheduler.stop()
        self.database.dispose()
        logger.info("Reminder service stopped")
