"""
Prayer windows: turn provider clock times into absolute instants.

Everything here works on timezone-aware UTC datetimes. The host's local
timezone is never consulted.
"""

import datetime
import logging
from dataclasses import dataclass

import pytz

from prayerbell.prayer_api import PRAYER_NAMES, TimingSet, clean_time

logger = logging.getLogger(__name__)

# The last prayer of the day has no successor in the five-prayer cycle.
LAST_PRAYER_DURATION = datetime.timedelta(minutes=90)
END_WARNING_LEAD = datetime.timedelta(minutes=10)


@dataclass(frozen=True)
class PrayerWindow:
    name: str
    start: datetime.datetime
    end: datetime.datetime

    @property
    def midpoint(self) -> datetime.datetime:
        return self.start + (self.end - self.start) / 2

    @property
    def end_warning(self) -> datetime.datetime:
        return self.end - END_WARNING_LEAD


def _get_timezone(tz_name: str):
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone: {tz_name}")
        return None


def resolve_clock_time(date_str, time_str: str, tz_name: str = "UTC") -> datetime.datetime | None:
    """
    Resolve "HH:MM" on date_str ("YYYY-MM-DD" or a date), read as a wall
    clock in tz_name, to an aware UTC datetime.

    The naive time is first treated as UTC, rendered in the target zone,
    and the drift between the two is subtracted. The drift is re-read at
    the corrected instant once, for guesses that fall on the other side
    of a DST change.

    Wall times that occur twice on a fall-back day resolve to the first
    occurrence. Wall times skipped by a spring-forward gap do not exist;
    they resolve with the pre-transition offset, which lands one gap
    length before the requested time (02:30 in New York on 2024-03-10
    gives 06:30Z, i.e. 01:30 EST).

    Returns None when any component does not parse or the zone is unknown.
    """
    if isinstance(date_str, datetime.date):
        date_str = date_str.isoformat()
    try:
        year, month, day = (int(part) for part in str(date_str).strip().split("-"))
        hour, minute = (int(part) for part in clean_time(time_str).split(":")[:2])
        naive = datetime.datetime(year, month, day, hour, minute)
    except (ValueError, TypeError):
        logger.debug(f"Unparseable clock time: date={date_str!r} time={time_str!r}")
        return None

    tz = _get_timezone(tz_name)
    if tz is None:
        return None

    guess = naive.replace(tzinfo=pytz.utc)
    instant = guess
    for _ in range(2):
        drift = instant.astimezone(tz).utcoffset()
        instant = guess - drift
    return instant


def derive_windows(timing_set: TimingSet, timezone: str = None) -> dict:
    """
    Build {prayer_name: PrayerWindow} for the prayers of timing_set.

    Prayers with a missing or unresolvable time get no window. A prayer's
    end is the next prayer's start; when there is none (or it cannot be
    resolved) the window lasts LAST_PRAYER_DURATION.
    """
    tz_name = timezone or timing_set.timezone or "UTC"
    starts = {}
    for name in PRAYER_NAMES:
        raw = timing_set.get(name)
        if not raw:
            continue
        start = resolve_clock_time(timing_set.date, raw, tz_name)
        if start is None:
            logger.warning(f"Skipping {name}: cannot resolve {raw!r} in {tz_name}")
            continue
        starts[name] = start

    windows = {}
    for index, name in enumerate(PRAYER_NAMES):
        start = starts.get(name)
        if start is None:
            continue
        next_start = None
        if index + 1 < len(PRAYER_NAMES):
            next_start = starts.get(PRAYER_NAMES[index + 1])
        end = next_start if next_start is not None else start + LAST_PRAYER_DURATION
        windows[name] = PrayerWindow(name=name, start=start, end=end)
    return windows


# -- prayer-day policies ------------------------------------------------------
# Which calendar day a prayer's completion is attributed to. The original
# deployment changed this rule between revisions; both are kept so the
# choice stays a config switch.

def calendar_prayer_day(local: datetime.datetime) -> datetime.date:
    return local.date()


def noon_rollover_prayer_day(local: datetime.datetime) -> datetime.date:
    """Before local noon the prayer belongs to the previous day."""
    if local.hour < 12:
        return local.date() - datetime.timedelta(days=1)
    return local.date()


PRAYER_DAY_POLICIES = {
    "calendar": calendar_prayer_day,
    "noon_rollover": noon_rollover_prayer_day,
}
DEFAULT_PRAYER_DAY_POLICY = "calendar"


def prayer_day(instant: datetime.datetime, tz_name: str = "UTC", policy: str = DEFAULT_PRAYER_DAY_POLICY) -> datetime.date:
    """Prayer-day of an aware instant, seen from tz_name."""
    try:
        rule = PRAYER_DAY_POLICIES[policy]
    except KeyError:
        raise ValueError(f"Unknown prayer day policy: {policy}") from None
    tz = _get_timezone(tz_name) or pytz.utc
    return rule(instant.astimezone(tz))


def local_date(instant: datetime.datetime, tz_name: str = "UTC") -> datetime.date:
    """Calendar date of an aware instant in tz_name (UTC if unknown)."""
    tz = _get_timezone(tz_name) or pytz.utc
    return instant.astimezone(tz).date()
