"""Tests for the location module."""

import unittest
from unittest.mock import MagicMock, patch

import requests
from sqlalchemy.exc import OperationalError

from prayerbell.db import Database
from prayerbell.location import Location, LocationStore, detect_location

DEFAULT = Location(lat=-6.2088, lng=106.8456, timezone="Asia/Jakarta", city="Jakarta")


class TestDetectLocation(unittest.TestCase):
    @patch("prayerbell.location.requests.get")
    def test_returns_location_on_success(self, mock_get):
        mock_resp = MagicMock()
        mock_resp.json.return_value = {
            "status": "success",
            "city": "Jakarta",
            "lat": -6.2,
            "lon": 106.8,
            "timezone": "Asia/Jakarta",
        }
        mock_resp.raise_for_status = MagicMock()
        mock_get.return_value = mock_resp

        loc = detect_location()
        self.assertEqual(loc.city, "Jakarta")
        self.assertAlmostEqual(loc.lat, -6.2)
        self.assertAlmostEqual(loc.lng, 106.8)
        self.assertEqual(loc.timezone, "Asia/Jakarta")

    @patch("prayerbell.location.requests.get")
    def test_none_on_network_failure(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("Network error")
        self.assertIsNone(detect_location())

    @patch("prayerbell.location.requests.get")
    def test_none_on_api_error_status(self, mock_get):
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"status": "fail", "message": "reserved range"}
        mock_resp.raise_for_status = MagicMock()
        mock_get.return_value = mock_resp

        self.assertIsNone(detect_location())


class TestLocationFromMapping(unittest.TestCase):
    def test_numbers_from_strings(self):
        loc = Location.from_mapping({"lat": "21.42", "lng": "39.83", "timezone": "Asia/Riyadh"})
        self.assertEqual(loc, Location(lat=21.42, lng=39.83, timezone="Asia/Riyadh"))

    def test_missing_coordinates(self):
        self.assertIsNone(Location.from_mapping({"lat": None, "lng": 39.83}))
        self.assertIsNone(Location.from_mapping({"lat": "", "lng": ""}))
        self.assertIsNone(Location.from_mapping(None))

    def test_malformed_coordinates(self):
        self.assertIsNone(Location.from_mapping({"lat": "north", "lng": 39.83}))

    def test_empty_timezone_is_none(self):
        self.assertIsNone(Location.from_mapping({"lat": 1, "lng": 2, "timezone": ""}).timezone)


class TestLocationStore(unittest.TestCase):
    def setUp(self):
        self.database = Database("sqlite://")
        self.database.create_all()

    def tearDown(self):
        self.database.dispose()

    def test_save_and_load(self):
        store = LocationStore(self.database)
        loc = Location(lat=-6.5567, lng=106.5614, timezone="Asia/Jakarta", city="Ciseeng")
        store.save(loc)
        self.assertEqual(store.load(), loc)

    def test_save_replaces(self):
        store = LocationStore(self.database)
        store.save(Location(lat=1.0, lng=2.0))
        store.save(Location(lat=3.0, lng=4.0, timezone="UTC"))
        self.assertEqual(store.load(), Location(lat=3.0, lng=4.0, timezone="UTC"))

    def test_load_returns_none_when_nothing_configured(self):
        self.assertIsNone(LocationStore(self.database).load())

    def test_load_falls_back_to_default(self):
        self.assertEqual(LocationStore(self.database, default=DEFAULT).load(), DEFAULT)

    def test_stored_location_beats_default(self):
        store = LocationStore(self.database, default=DEFAULT)
        stored = Location(lat=51.5, lng=-0.12, timezone="Europe/London")
        store.save(stored)
        self.assertEqual(store.load(), stored)

    def test_clear(self):
        store = LocationStore(self.database, default=DEFAULT)
        store.save(Location(lat=51.5, lng=-0.12))
        store.clear()
        self.assertEqual(store.load(), DEFAULT)

    def test_store_error_falls_back_to_default(self):
        store = LocationStore(self.database, default=DEFAULT)
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(self.database, "session_scope", side_effect=error):
            self.assertEqual(store.load(), DEFAULT)


if __name__ == "__main__":
    unittest.main()
