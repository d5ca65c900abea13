"""Location setting: stored row, configured defaults, or IP geolocation."""

import logging
from dataclasses import dataclass

import requests
from sqlalchemy.exc import SQLAlchemyError

from prayerbell.db import Database
from prayerbell.models import UserSettings

logger = logging.getLogger(__name__)

IPAPI_URL = "http://ip-api.com/json/"

SETTINGS_ROW_ID = 1


@dataclass(frozen=True)
class Location:
    lat: float
    lng: float
    timezone: str | None = None
    city: str | None = None

    @classmethod
    def from_mapping(cls, data: dict | None) -> "Location | None":
        """Build from a {lat, lng, timezone, city} mapping; None if lat/lng are missing or not numbers."""
        if not data:
            return None
        lat, lng = data.get("lat"), data.get("lng")
        if lat is None or lng is None or lat == "" or lng == "":
            return None
        try:
            return cls(
                lat=float(lat),
                lng=float(lng),
                timezone=data.get("timezone") or None,
                city=data.get("city") or None,
            )
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed location: lat={lat!r} lng={lng!r}")
            return None


def detect_location(timeout: int = 5) -> Location | None:
    """
    Detect current location via IP geolocation.

    Returns None on failure; callers decide what to fall back to.
    """
    try:
        resp = requests.get(
            IPAPI_URL,
            params={"fields": "city,lat,lon,timezone,status,message"},
            timeout=timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"IP geolocation failed: {e}")
        return None
    if data.get("status") != "success":
        logger.warning(f"IP geolocation refused: {data.get('message')}")
        return None
    return Location.from_mapping({
        "lat": data.get("lat"),
        "lng": data.get("lon"),
        "timezone": data.get("timezone"),
        "city": data.get("city"),
    })


class LocationStore:
    """The user_settings row, falling back to the configured default location."""

    def __init__(self, database: Database, default: Location | None = None):
        self.database = database
        self.default = default

    def load(self) -> Location | None:
        stored = None
        try:
            with self.database.session_scope() as session:
                row = session.get(UserSettings, SETTINGS_ROW_ID)
                if row is not None:
                    stored = Location.from_mapping({
                        "lat": row.lat, "lng": row.lng, "timezone": row.timezone, "city": row.city,
                    })
        except SQLAlchemyError as e:
            logger.warning(f"Could not read stored location, using default: {e}")
        return stored or self.default

    def save(self, location: Location) -> None:
        """Create or replace the stored location."""
        with self.database.session_scope() as session:
            row = session.get(UserSettings, SETTINGS_ROW_ID)
            if row is None:
                row = UserSettings(id=SETTINGS_ROW_ID)
                session.add(row)
            row.lat = location.lat
            row.lng = location.lng
            row.timezone = location.timezone
            row.city = location.city
        logger.info(f"Location saved: {location.lat}, {location.lng} ({location.timezone or 'provider timezone'})")

    def clear(self) -> None:
        """Remove the stored location; load() then returns the default."""
        with self.database.session_scope() as session:
            row = session.get(UserSettings, SETTINGS_ROW_ID)
            if row is not None:
                session.delete(row)
