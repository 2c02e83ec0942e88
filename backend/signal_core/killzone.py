"""Kill zones: the high-liquidity session windows, in fixed EST hours."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from signal_core.constants import KILL_ZONE_PENALTY, KILL_ZONES

# Fixed UTC-5; daylight saving is not applied
EST = timezone(timedelta(hours=-5), "EST")

# Zone check order; london_close starts where new_york ends
ZONE_ORDER = ("london", "new_york", "london_close", "asian")

NEW_YORK_SESSION_END = 17

SESSION_INSTRUMENTS: dict[str, list[str]] = {
    "asian": ["USDJPY", "AUDUSD", "NZDUSD", "AUDJPY", "XAUUSD"],
    "london": ["EURUSD", "GBPUSD", "EURGBP", "EURJPY", "XAUUSD", "GER40"],
    "new_york": ["EURUSD", "GBPUSD", "USDJPY", "USDCAD", "US30", "US500", "XAUUSD"],
    "london_close": ["EURUSD", "GBPUSD", "XAUUSD"],
}


@dataclass(frozen=True)
class SessionStatus:
    name: str
    hours: str
    description: str
    active: bool
    kill_zone: bool = False


@dataclass(frozen=True)
class KillZoneStatus:
    is_active: bool
    current_zone: str | None
    next_zone: str
    time_to_next_zone: str
    hours_to_next_zone: float
    current_hour: int
    sessions: dict[str, SessionStatus] = field(default_factory=dict)


@dataclass(frozen=True)
class VolatilityExpectation:
    level: str
    description: str


def to_est(now: datetime) -> datetime:
    """Convert to EST. Naive datetimes are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(EST)


def est_hours(now: datetime) -> float:
    """Fractional EST hour of day, e.g. 7.5 for 07:30."""
    est = to_est(now)
    return est.hour + est.minute / 60


def in_zone(zone: str, hour: float) -> bool:
    start, end = KILL_ZONES[zone]
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def active_zone(hour: float) -> str | None:
    for zone in ZONE_ORDER:
        if in_zone(zone, hour):
            return zone
    return None


def next_zone(hour: float) -> tuple[str, float]:
    """Next zone to open after `hour` and the hours until it does."""
    starts = sorted((KILL_ZONES[z][0], z) for z in ZONE_ORDER)
    for start, zone in starts:
        if start > hour:
            return zone, start - hour
    first_start, first_zone = starts[0]
    return first_zone, 24 - hour + first_start


def format_time_remaining(hours: float) -> str:
    h, m = divmod(round(hours * 60), 60)
    if h == 0:
        return f"{m}m"
    return f"{h}h {m}m"


def session_status(hour: float) -> dict[str, SessionStatus]:
    london_start = KILL_ZONES["london"][0]
    london_close_end = KILL_ZONES["london_close"][1]
    ny_start = KILL_ZONES["new_york"][0]
    return {
        "asian": SessionStatus(
            "Asian Session",
            "19:00-02:00 EST",
            "Tokyo, Sydney, Hong Kong",
            active=in_zone("asian", hour),
        ),
        "london": SessionStatus(
            "London Session",
            "02:00-12:00 EST",
            "London, Frankfurt, Zurich",
            active=london_start <= hour < london_close_end,
            kill_zone=in_zone("london", hour),
        ),
        "new_york": SessionStatus(
            "New York Session",
            "07:00-17:00 EST",
            "New York, Chicago, Toronto",
            active=ny_start <= hour < NEW_YORK_SESSION_END,
            kill_zone=in_zone("new_york", hour),
        ),
        "overlap": SessionStatus(
            "London/NY Overlap",
            "07:00-12:00 EST",
            "Highest liquidity period",
            active=ny_start <= hour < london_close_end,
        ),
    }


class KillZoneManager:
    """Reports the active trading window and the penalty for trading outside one.

    Args:
        penalty: Confluence points deducted outside every kill zone.
        clock: Returns the current time; defaults to UTC wall clock.
    """

    def __init__(
        self,
        penalty: int = KILL_ZONE_PENALTY,
        clock: Callable[[], datetime] | None = None,
    ):
        self.penalty_points = penalty
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def current(self, now: datetime | None = None) -> KillZoneStatus:
        hour = est_hours(now or self._clock())
        zone = active_zone(hour)
        upcoming, remaining = next_zone(hour)
        return KillZoneStatus(
            is_active=zone is not None,
            current_zone=zone,
            next_zone=upcoming,
            time_to_next_zone=format_time_remaining(remaining),
            hours_to_next_zone=round(remaining, 4),
            current_hour=int(hour),
            sessions=session_status(hour),
        )

    def penalty(self, now: datetime | None = None) -> int:
        return 0 if self.current(now).is_active else self.penalty_points

    def is_good_time_to_trade(self, now: datetime | None = None) -> bool:
        """True inside the London, New York or London-close windows."""
        return self.current(now).current_zone in ("london", "new_york", "london_close")

    def best_instruments_for_session(self, now: datetime | None = None) -> list[str]:
        zone = self.current(now).current_zone
        return list(SESSION_INSTRUMENTS.get(zone or "", SESSION_INSTRUMENTS["new_york"]))

    def volatility_expectation(self, now: datetime | None = None) -> VolatilityExpectation:
        status = self.current(now)
        if status.sessions["overlap"].active:
            return VolatilityExpectation("high", "London/NY overlap - expect high volatility")
        if status.current_zone in ("london", "new_york"):
            return VolatilityExpectation("medium-high", "Major session - good volatility expected")
        if status.current_zone == "asian":
            return VolatilityExpectation("low-medium", "Asian session - typically lower volatility")
        return VolatilityExpectation("low", "Off-hours - low liquidity and volatility")
