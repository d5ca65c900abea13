"""Tests for the prayer_api module."""

import copy
import datetime
import unittest
from unittest.mock import MagicMock, patch

import requests

from prayerbell.prayer_api import (
    PRAYER_NAMES,
    TimingSet,
    TimingsError,
    clean_time,
    fetch_timings,
    format_timings_digest,
)

MOCK_RESPONSE = {
    "code": 200,
    "status": "OK",
    "data": {
        "timings": {
            "Fajr": "04:30",
            "Sunrise": "05:55",
            "Dhuhr": "12:00",
            "Asr": "15:30",
            "Maghrib": "18:15",
            "Isha": "19:30",
            "Midnight": "00:00",
            "Imsak": "04:20",
        },
        "date": {
            "gregorian": {"date": "01-03-2025"},
            "hijri": {
                "day": "1",
                "month": {"en": "Ramadan", "ar": "رَمَضان"},
                "year": "1446",
            },
        },
        "meta": {"timezone": "Asia/Jakarta"},
    },
}


def _mock_response(body, status_error=None):
    mock_resp = MagicMock()
    mock_resp.json.return_value = body
    mock_resp.raise_for_status = MagicMock(side_effect=status_error)
    return mock_resp


class TestFetchTimings(unittest.TestCase):
    @patch("prayerbell.prayer_api.requests.get")
    def test_returns_five_prayers(self, mock_get):
        mock_get.return_value = _mock_response(MOCK_RESPONSE)

        result = fetch_timings(-6.2, 106.8, datetime.date(2025, 3, 1))

        self.assertEqual(sorted(result.timings), sorted(PRAYER_NAMES))
        self.assertEqual(result.timings["Fajr"], "04:30")
        self.assertEqual(result.timings["Maghrib"], "18:15")
        self.assertNotIn("Sunrise", result.timings)
        self.assertEqual(result.date, datetime.date(2025, 3, 1))

    @patch("prayerbell.prayer_api.requests.get")
    def test_sends_coordinates_method_and_date(self, mock_get):
        mock_get.return_value = _mock_response(MOCK_RESPONSE)

        fetch_timings(-6.2, 106.8, datetime.date(2025, 3, 1))

        url = mock_get.call_args[0][0]
        params = mock_get.call_args[1]["params"]
        self.assertTrue(url.endswith("/timings"))
        self.assertEqual(params["latitude"], -6.2)
        self.assertEqual(params["longitude"], 106.8)
        self.assertEqual(params["method"], 2)
        self.assertEqual(params["date"], "01-03-2025")

    @patch("prayerbell.prayer_api.requests.get")
    def test_provider_timezone_used_when_none_given(self, mock_get):
        mock_get.return_value = _mock_response(MOCK_RESPONSE)
        result = fetch_timings(-6.2, 106.8, datetime.date(2025, 3, 1))
        self.assertEqual(result.timezone, "Asia/Jakarta")

    @patch("prayerbell.prayer_api.requests.get")
    def test_given_timezone_wins(self, mock_get):
        mock_get.return_value = _mock_response(MOCK_RESPONSE)
        result = fetch_timings(-6.2, 106.8, datetime.date(2025, 3, 1), timezone="Asia/Makassar")
        self.assertEqual(result.timezone, "Asia/Makassar")

    @patch("prayerbell.prayer_api.requests.get")
    def test_strips_zone_qualifier(self, mock_get):
        response = copy.deepcopy(MOCK_RESPONSE)
        response["data"]["timings"]["Fajr"] = "04:30 (PKT)"
        mock_get.return_value = _mock_response(response)

        result = fetch_timings(-6.2, 106.8)
        self.assertEqual(result.timings["Fajr"], "04:30")

    @patch("prayerbell.prayer_api.requests.get")
    def test_missing_prayer_is_left_out(self, mock_get):
        response = copy.deepcopy(MOCK_RESPONSE)
        del response["data"]["timings"]["Asr"]
        response["data"]["timings"]["Isha"] = ""
        mock_get.return_value = _mock_response(response)

        result = fetch_timings(-6.2, 106.8)
        self.assertNotIn("Asr", result.timings)
        self.assertIsNone(result.get("Isha"))

    @patch("prayerbell.prayer_api.requests.get")
    def test_hijri_label(self, mock_get):
        mock_get.return_value = _mock_response(MOCK_RESPONSE)
        result = fetch_timings(-6.2, 106.8)
        self.assertEqual(result.hijri, "1 Ramadan 1446 H")

    @patch("prayerbell.prayer_api.requests.get")
    def test_raises_on_api_error(self, mock_get):
        mock_get.return_value = _mock_response({"code": 400, "status": "Bad Request"})
        with self.assertRaises(TimingsError):
            fetch_timings(-6.2, 106.8)

    @patch("prayerbell.prayer_api.requests.get")
    def test_raises_on_http_error(self, mock_get):
        mock_get.return_value = _mock_response(MOCK_RESPONSE, status_error=requests.HTTPError("503"))
        with self.assertRaises(TimingsError):
            fetch_timings(-6.2, 106.8)

    @patch("prayerbell.prayer_api.requests.get")
    def test_raises_on_network_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("Network error")
        with self.assertRaises(TimingsError):
            fetch_timings(-6.2, 106.8)

    def test_timings_error_is_value_error(self):
        self.assertTrue(issubclass(TimingsError, ValueError))


class TestCleanTime(unittest.TestCase):
    def test_plain(self):
        self.assertEqual(clean_time("05:00"), "05:00")

    def test_qualifier(self):
        self.assertEqual(clean_time(" 19:50 (UTC)"), "19:50")

    def test_not_a_string(self):
        self.assertEqual(clean_time(None), "")


class TestTimingsDigest(unittest.TestCase):
    def test_lists_every_prayer(self):
        timing_set = TimingSet(
            date=datetime.date(2024, 6, 1),
            timings={"Fajr": "05:00", "Dhuhr": "12:15", "Asr": "15:45", "Maghrib": "18:30"},
        )
        digest = format_timings_digest(timing_set)
        lines = digest.splitlines()
        self.assertEqual(lines[0], "Prayer timings for 2024-06-01:")
        self.assertIn("Fajr: 05:00", lines)
        self.assertIn("Isha: --", lines)


if __name__ == "__main__":
    unittest.main()
