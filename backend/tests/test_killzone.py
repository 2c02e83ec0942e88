"""Tests for kill zone detection in fixed EST hours."""

from datetime import datetime, timezone

import pytest

from signal_core.killzone import (
    KillZoneManager,
    active_zone,
    est_hours,
    format_time_remaining,
    next_zone,
    to_est,
)


def utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 1, 2, hour, minute, tzinfo=timezone.utc)


class TestConversion:
    def test_est_is_fixed_offset(self):
        assert to_est(utc(8)).hour == 3
        # Mid-summer still uses UTC-5
        assert to_est(datetime(2024, 7, 1, 12, tzinfo=timezone.utc)).hour == 7

    def test_naive_is_utc(self):
        assert to_est(datetime(2024, 1, 2, 8)).hour == 3

    def test_fractional_hours(self):
        assert est_hours(utc(12, 30)) == pytest.approx(7.5)


class TestZones:
    @pytest.mark.parametrize(
        "hour,zone",
        [
            (2.0, "london"),
            (4.99, "london"),
            (5.0, None),
            (7.0, "new_york"),
            (10.0, "london_close"),
            (11.5, "london_close"),
            (12.0, None),
            (19.0, "asian"),
            (23.5, "asian"),
            (1.0, "asian"),
        ],
    )
    def test_active_zone(self, hour, zone):
        assert active_zone(hour) == zone

    def test_next_zone_same_day(self):
        assert next_zone(3.0) == ("new_york", 4.0)

    def test_next_zone_wraps_midnight(self):
        zone, hours = next_zone(20.0)
        assert zone == "london"
        assert hours == pytest.approx(6.0)

    @pytest.mark.parametrize("hours,text", [(0.75, "45m"), (1.5, "1h 30m"), (4.0, "4h 0m")])
    def test_format(self, hours, text):
        assert format_time_remaining(hours) == text


class TestKillZoneManager:
    def test_london_open(self):
        status = KillZoneManager().current(utc(8))
        assert status.is_active
        assert status.current_zone == "london"
        assert status.current_hour == 3
        assert status.next_zone == "new_york"
        assert status.time_to_next_zone == "4h 0m"
        assert status.sessions["london"].active
        assert status.sessions["london"].kill_zone
        assert not status.sessions["asian"].active

    def test_outside_every_zone(self):
        manager = KillZoneManager()
        now = utc(20)  # 15:00 EST
        status = manager.current(now)
        assert not status.is_active
        assert status.current_zone is None
        assert status.next_zone == "asian"
        assert manager.penalty(now) == 15
        assert not manager.is_good_time_to_trade(now)
        assert manager.volatility_expectation(now).level == "low"

    def test_no_penalty_inside_zone(self):
        assert KillZoneManager().penalty(utc(13, 30)) == 0

    def test_custom_penalty(self):
        assert KillZoneManager(penalty=25).penalty(utc(20)) == 25

    def test_injected_clock(self):
        manager = KillZoneManager(clock=lambda: utc(13, 30))
        status = manager.current()
        assert status.current_zone == "new_york"
        assert status.time_to_next_zone == "1h 30m"

    def test_asian_session_is_not_a_good_time(self):
        manager = KillZoneManager()
        now = utc(1)  # 20:00 EST
        assert manager.current(now).current_zone == "asian"
        assert not manager.is_good_time_to_trade(now)
        assert "USDJPY" in manager.best_instruments_for_session(now)
        assert manager.volatility_expectation(now).level == "low-medium"

    def test_overlap_is_high_volatility(self):
        manager = KillZoneManager()
        now = utc(15, 15)  # 10:15 EST
        assert manager.current(now).current_zone == "london_close"
        assert manager.current(now).sessions["overlap"].active
        assert manager.volatility_expectation(now).level == "high"

    def test_off_hours_instruments_default_to_new_york(self):
        assert "US30" in KillZoneManager().best_instruments_for_session(utc(20))
