"""Fetch prayer timings from the Aladhan API."""

import datetime
import logging
from dataclasses import dataclass, field

import requests

logger = logging.getLogger(__name__)

ALADHAN_BASE = "https://api.aladhan.com/v1"

PRAYER_NAMES = ["Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"]

# Calculation method: 2 = ISNA
# 3 = MWL, 4 = Mecca, 5 = Karachi, 11 = Egypt, 15 = Dubai, 20 = Turkey
DEFAULT_METHOD = 2


class TimingsError(ValueError):
    """The timings provider could not produce a usable answer."""


@dataclass
class TimingSet:
    """Local clock times ("HH:MM") of the five daily prayers for one date."""

    date: datetime.date
    timings: dict = field(default_factory=dict)
    timezone: str | None = None
    hijri: str | None = None

    def get(self, prayer_name: str) -> str | None:
        return self.timings.get(prayer_name) or None


def clean_time(raw) -> str:
    """
    Trim a provider time such as "04:30 (PKT)" down to "04:30".
    Returns "" for anything that is not a string.
    """
    if not isinstance(raw, str):
        return ""
    return raw.strip().split(" ")[0].strip()


def fetch_timings(
    lat: float,
    lng: float,
    date: datetime.date = None,
    timezone: str = None,
    method: int = DEFAULT_METHOD,
    base_url: str = ALADHAN_BASE,
    timeout: int = 10,
) -> TimingSet:
    """
    Fetch the five prayer times for given coordinates and date.

    The timezone passed in (the stored location's) wins over the one the
    provider reports in data.meta.timezone.
    Raises TimingsError on any transport, HTTP or payload failure.
    """
    if date is None:
        date = datetime.date.today()
    params = {
        "latitude": lat,
        "longitude": lng,
        "method": method,
        "date": date.strftime("%d-%m-%Y"),
    }
    url = f"{base_url.rstrip('/')}/timings"
    logger.debug(f"Requesting timings from {url} with params {params}")
    try:
        resp = requests.get(url, params=params, timeout=timeout)
        resp.raise_for_status()
        body = resp.json()
    except requests.RequestException as exc:
        raise TimingsError(f"Failed to fetch prayer timings: {exc}") from exc
    except ValueError as exc:
        raise TimingsError(f"Timings response is not JSON: {exc}") from exc

    if not isinstance(body, dict) or body.get("code", 200) != 200:
        status = body.get("status") if isinstance(body, dict) else body
        raise TimingsError(f"Aladhan API error: {status}")

    data = body.get("data") or {}
    raw_timings = data.get("timings") or {}
    timings = {}
    for name in PRAYER_NAMES:
        value = clean_time(raw_timings.get(name))
        if value:
            timings[name] = value
        else:
            logger.warning(f"Provider returned no time for {name} on {date}")

    meta_tz = (data.get("meta") or {}).get("timezone")
    return TimingSet(
        date=date,
        timings=timings,
        timezone=timezone or meta_tz,
        hijri=_hijri_label(data),
    )


def _hijri_label(data: dict) -> str | None:
    hijri = (data.get("date") or {}).get("hijri")
    if not isinstance(hijri, dict):
        return None
    try:
        return f"{hijri['day']} {hijri['month']['en']} {hijri['year']} H"
    except (KeyError, TypeError):
        return None


def format_timings_digest(timing_set: TimingSet) -> str:
    """Plain-text listing of a day's timings, one prayer per line."""
    lines = [f"Prayer timings for {timing_set.date.isoformat()}:"]
    for name in PRAYER_NAMES:
        lines.append(f"{name}: {timing_set.get(name) or '--'}")
    if timing_set.hijri:
        lines.append("")
        lines.append(timing_set.hijri)
    return "\n".join(lines)
