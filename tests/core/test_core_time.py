"""
Tests for core.time — Clock protocol and temporal helpers.
"""

import pytest
from datetime import datetime, timezone, timedelta

import pytz

from core.time.clock import FixedClock, SystemClock
from core.time.temporal import ActiveWindow, localize, resolve_timezone, to_local


# ── Clock Tests ──────────────────────────────────────────────

class TestSystemClock:
    def test_returns_utc_datetime(self):
        clock = SystemClock()
        dt = clock.now_utc()
        assert dt.tzinfo is not None
        assert dt.tzinfo == timezone.utc

    def test_time_advances(self):
        clock = SystemClock()
        t1 = clock.now_utc()
        t2 = clock.now_utc()
        assert t2 >= t1


class TestFixedClock:
    def test_returns_fixed_time(self):
        fixed = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
        clock = FixedClock(fixed)
        assert clock.now_utc() == fixed
        assert clock.now_utc() == fixed

    def test_rejects_naive_datetime(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            FixedClock(datetime(2025, 1, 1))

    def test_advance(self):
        fixed = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)
        clock = FixedClock(fixed)
        clock.advance(60)
        assert clock.now_utc() == fixed + timedelta(seconds=60)


# ── ActiveWindow Tests ───────────────────────────────────────

class TestActiveWindow:
    def test_contains_is_inclusive(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        end = datetime(2025, 12, 31, tzinfo=timezone.utc)
        window = ActiveWindow(start=start, end=end)

        assert window.contains(datetime(2025, 6, 15, tzinfo=timezone.utc))
        assert window.contains(start)
        assert window.contains(end)
        assert not window.contains(datetime(2024, 12, 31, tzinfo=timezone.utc))
        assert not window.contains(end + timedelta(microseconds=1))

    def test_open_ended(self):
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        window = ActiveWindow(start=start)
        assert window.contains(datetime(2099, 1, 1, tzinfo=timezone.utc))
        assert not window.contains(start - timedelta(seconds=1))

    def test_unbounded(self):
        window = ActiveWindow()
        assert window.is_unbounded
        assert window.contains(datetime(1970, 1, 1, tzinfo=timezone.utc))

    def test_invalid_window(self):
        with pytest.raises(ValueError, match="must be <="):
            ActiveWindow(
                start=datetime(2025, 12, 31, tzinfo=timezone.utc),
                end=datetime(2025, 1, 1, tzinfo=timezone.utc),
            )

    def test_rejects_naive_bounds(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            ActiveWindow(start=datetime(2025, 1, 1))


# ── Timezone Helper Tests ────────────────────────────────────

class TestTimezones:
    def test_empty_name_is_utc(self):
        assert resolve_timezone("") is pytz.utc
        assert resolve_timezone(None) is pytz.utc

    def test_unknown_zone(self):
        with pytest.raises(pytz.UnknownTimeZoneError):
            resolve_timezone("Mars/Olympus_Mons")

    def test_to_local_crosses_date_line(self):
        instant = datetime(2025, 3, 9, 23, 30, tzinfo=timezone.utc)
        local = to_local(instant, "Asia/Tokyo")
        assert local.day == 10
        assert local.hour == 8

    def test_to_local_rejects_naive(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            to_local(datetime(2025, 1, 1), "UTC")

    def test_localize_applies_dst_offset(self):
        summer = localize(datetime(2025, 7, 1, 12, 0), "America/New_York")
        winter = localize(datetime(2025, 1, 1, 12, 0), "America/New_York")
        assert summer.utcoffset() == timedelta(hours=-4)
        assert winter.utcoffset() == timedelta(hours=-5)

    def test_localize_keeps_aware_values(self):
        aware = datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert localize(aware, "Asia/Tokyo") is aware
