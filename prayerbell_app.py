#!/usr/bin/env python3
"""
Prayer Bell reminder daemon
Headless companion that mails (or pops up) reminders for:
  - the start of each daily prayer
  - the halfway point and the last 10 minutes of each prayer, unless logged complete
  - tomorrow's events, once a day
  - overdue tasks
"""

import argparse
import datetime
import logging
import signal
import sys

import pytz

from prayerbell.config import Config, setup_basic_logging, setup_logging
from prayerbell.location import Location, detect_location
from prayerbell.notifier import NotificationError
from prayerbell.prayer_api import PRAYER_NAMES, TimingsError, fetch_timings, format_timings_digest
from prayerbell.service import ReminderService
from prayerbell.stores import StoreError
from prayerbell.windows import derive_windows, local_date, prayer_day

logger = logging.getLogger("prayerbell")


def _fmt_countdown(seconds: int) -> str:
    """Format seconds into HH:MM:SS countdown string."""
    if seconds < 0:
        return "00:00:00"
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def _parse_date(value: str) -> datetime.date:
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected YYYY-MM-DD, got {value!r}") from None


def _load_timings(service: ReminderService, date: datetime.date = None):
    location = service.location_store.load()
    if location is None:
        raise SystemExit("Location not configured. Use set-location or detect-location.")
    now = datetime.datetime.now(pytz.utc)
    day = date or local_date(now, location.timezone or "UTC")
    timing_set = fetch_timings(
        location.lat, location.lng, day,
        timezone=location.timezone, method=service.method, **service.fetch_options,
    )
    return location, timing_set


# ──────────────────────────────────────────────────────────────────────────────
# Commands
# ──────────────────────────────────────────────────────────────────────────────
def cmd_run(service: ReminderService, args) -> int:
    signal.signal(signal.SIGTERM, lambda *_: service.request_stop())
    service.run_forever()
    return 0


def cmd_tick(service: ReminderService, args) -> int:
    """One pass of every reminder, for cron-style use."""
    if not service.schedule():
        return 1
    for task in service.scheduler.tasks.values():
        task.run_once()
    return 0


def cmd_timings(service: ReminderService, args) -> int:
    location, timing_set = _load_timings(service, args.date)
    tz_name = timing_set.timezone or "UTC"
    tz = pytz.timezone(tz_name)
    now = datetime.datetime.now(pytz.utc)
    windows = derive_windows(timing_set, tz_name)

    print(f"{location.city or f'{location.lat}, {location.lng}'}  {timing_set.date.isoformat()}  ({tz_name})")
    if timing_set.hijri:
        print(timing_set.hijri)
    def fmt(instant):
        return instant.astimezone(tz).strftime("%H:%M")

    next_name = None
    for name in PRAYER_NAMES:
        window = windows.get(name)
        if window is None:
            print(f"  {name:<8} --")
            continue
        print(f"  {name:<8} {fmt(window.start)}  half {fmt(window.midpoint)}  ends {fmt(window.end)}")
        if next_name is None and window.start > now:
            next_name = name
    if next_name:
        secs = int((windows[next_name].start - now).total_seconds())
        print(f"Next: {next_name} in {_fmt_countdown(secs)}")
    return 0


def cmd_email_timings(service: ReminderService, args) -> int:
    if service.sender is None:
        logger.error("No notification channel configured")
        return 1
    _, timing_set = _load_timings(service)
    service.sender.send("Today's prayer timings", format_timings_digest(timing_set))
    return 0


def cmd_set_location(service: ReminderService, args) -> int:
    if args.timezone:
        try:
            pytz.timezone(args.timezone)
        except pytz.UnknownTimeZoneError:
            logger.error(f"Unknown timezone: {args.timezone}")
            return 2
    service.location_store.save(Location(lat=args.lat, lng=args.lng, timezone=args.timezone, city=args.city))
    return 0


def cmd_detect_location(service: ReminderService, args) -> int:
    location = detect_location()
    if location is None:
        logger.error("Could not detect location")
        return 1
    service.location_store.save(location)
    print(f"{location.city}: {location.lat}, {location.lng} ({location.timezone})")
    return 0


def cmd_clear_location(service: ReminderService, args) -> int:
    service.location_store.clear()
    return 0


def cmd_complete(service: ReminderService, args) -> int:
    name = next((p for p in PRAYER_NAMES if p.lower() == args.prayer.lower()), None)
    if name is None:
        logger.error(f"Unknown prayer {args.prayer!r}; expected one of {', '.join(PRAYER_NAMES)}")
        return 2
    day = args.date
    if day is None:
        location = service.location_store.load()
        tz_name = (location.timezone if location else None) or "UTC"
        policy = service.config.section("reminders").get("prayer_day_policy") or "calendar"
        day = prayer_day(datetime.datetime.now(pytz.utc), tz_name, policy)
    service.completion_store.set_completed(name, day, completed=not args.undo)
    print(f"{name} on {day.isoformat()}: {'not completed' if args.undo else 'completed'}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prayer Bell reminder daemon")
    parser.add_argument("--config", help="Path to config file (default: ~/.prayerbell/config.yaml)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the reminder loop until interrupted").set_defaults(func=cmd_run)
    sub.add_parser("tick", help="Run every reminder once and exit").set_defaults(func=cmd_tick)

    p = sub.add_parser("timings", help="Show prayer windows for a day")
    p.add_argument("--date", type=_parse_date)
    p.set_defaults(func=cmd_timings)

    sub.add_parser("email-timings", help="Send today's timings").set_defaults(func=cmd_email_timings)

    p = sub.add_parser("set-location", help="Store a location")
    p.add_argument("lat", type=float)
    p.add_argument("lng", type=float)
    p.add_argument("--timezone")
    p.add_argument("--city")
    p.set_defaults(func=cmd_set_location)

    sub.add_parser("detect-location", help="Store the location of this host's public IP").set_defaults(
        func=cmd_detect_location)
    sub.add_parser("clear-location", help="Forget the stored location").set_defaults(func=cmd_clear_location)

    p = sub.add_parser("complete", help="Log a prayer as completed")
    p.add_argument("prayer")
    p.add_argument("--date", type=_parse_date)
    p.add_argument("--undo", action="store_true")
    p.set_defaults(func=cmd_complete)
    return parser


# ──────────────────────────────────────────────────────────────────────────────
# Entry point
# ──────────────────────────────────────────────────────────────────────────────
def main(argv=None) -> int:
    setup_basic_logging()
    args = build_parser().parse_args(argv)
    config = Config(config_path=args.config)
    setup_logging(config)
    service = ReminderService(config)
    try:
        return args.func(service, args)
    except (TimingsError, NotificationError, StoreError) as e:
        logger.error(str(e))
        return 1
    finally:
        service.stop()


if __name__ == "__main__":
    sys.exit(main())
