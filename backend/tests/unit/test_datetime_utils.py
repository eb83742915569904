"""
Unit tests for datetime utilities.

Tests clinic-local date/time handling and the UTC helpers used for audit
timestamps and the Google API.
"""

import pytest
from datetime import date, datetime, time, timedelta, timezone

from utils.datetime_utils import (
    appointment_window, combine_local, ensure_utc, fits_in_day, format_rfc3339_utc, format_time_hhmm,
    get_timezone, interval_minutes, local_today, minutes_since_midnight, parse_date, parse_rfc3339, parse_time,
    utc_now
)

MEXICO_CITY = "America/Mexico_City"


class TestParsing:

    def test_parse_date(self):
        assert parse_date("2025-03-10") == date(2025, 3, 10)

    @pytest.mark.parametrize("value", ["2025-3-10", "10/03/2025", "2025-02-30", "", None, 20250310])
    def test_parse_date_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_date(value)

    def test_parse_time(self):
        assert parse_time("09:30") == time(9, 30)
        assert parse_time("23:59:59") == time(23, 59, 59)

    @pytest.mark.parametrize("value", ["9:30", "24:00", "09:60", "0930", None])
    def test_parse_time_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            parse_time(value)


class TestMinuteArithmetic:

    def test_minutes_since_midnight(self):
        assert minutes_since_midnight(time(9, 30)) == 570

    def test_interval_is_half_open(self):
        assert interval_minutes(time(9, 0), 30) == (540, 570)

    def test_fits_in_day(self):
        assert fits_in_day(time(23, 30), 30)
        assert not fits_in_day(time(23, 30), 31)


class TestTimezones:

    def test_combine_local_is_aware(self):
        starts_at = combine_local(date(2025, 3, 10), time(9, 0), MEXICO_CITY)
        assert starts_at.utcoffset() == timedelta(hours=-6)

    def test_appointment_window(self):
        start, end = appointment_window(date(2025, 3, 10), time(9, 0), 45, MEXICO_CITY)
        assert end - start == timedelta(minutes=45)
        assert start.astimezone(timezone.utc).hour == 15

    def test_local_today_matches_utc_conversion(self):
        assert local_today(MEXICO_CITY) == utc_now().astimezone(get_timezone(MEXICO_CITY)).date()

    def test_ensure_utc_with_naive_datetime(self):
        naive = datetime(2025, 3, 10, 15, 0)
        assert ensure_utc(naive) == datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_aware_datetime(self):
        local = combine_local(date(2025, 3, 10), time(9, 0), MEXICO_CITY)
        assert ensure_utc(local).tzinfo == timezone.utc
        assert ensure_utc(local).hour == 15

    def test_ensure_utc_with_none(self):
        assert ensure_utc(None) is None


class TestRfc3339:

    def test_format_uses_z_suffix(self):
        local = combine_local(date(2025, 3, 10), time(9, 0), MEXICO_CITY)
        assert format_rfc3339_utc(local) == "2025-03-10T15:00:00Z"

    def test_parse_accepts_z_and_offsets(self):
        assert parse_rfc3339("2025-03-10T15:00:00Z") == datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
        assert parse_rfc3339("2025-03-10T09:00:00-06:00") == datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)

    def test_format_time_hhmm(self):
        assert format_time_hhmm(time(7, 5)) == "07:05"
