"""
Time providers and the simulator's virtual clock

Real time, controllable test time, and a virtual clock that only moves when
the simulator steps it. All timestamps are timezone-aware UTC datetimes.

Fun fact: A simulated week per ten real minutes means two years of ERP
history replays in well under a second - the backfill never waits for a wall clock!
"""

from datetime import datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Protocol for time providers - allows deterministic testing"""

    def now(self) -> datetime:
        """Return current UTC datetime"""
        ...


class RealTimeProvider:
    """Production time provider using system clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class TestTimeProvider:
    """
    Controllable time provider for deterministic tests

    Stands in for the wall clock when the simulator decides how far the
    bootstrap has to run.
    """

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = initial_time or datetime(1970, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def set_time(self, dt: datetime) -> None:
        self._current_time = dt

    def advance_days(self, days: float) -> None:
        self._current_time += timedelta(days=days)


class VirtualClock:
    """
    The simulation's own notion of "now"

    Monotonic: it only moves forward, one step at a time, and is
    independent of wall-clock time.
    """

    def __init__(self, start: datetime) -> None:
        self._now = ensure_utc(start)

    def now(self) -> datetime:
        return self._now

    def reset(self, start: datetime) -> None:
        """Rewind to a new origin (only used before a bootstrap)"""
        self._now = ensure_utc(start)

    def advance_to(self, target: datetime) -> None:
        target = ensure_utc(target)
        if target < self._now:
            raise ValueError(
                f"Virtual clock cannot move backwards: {target.isoformat()} < {self._now.isoformat()}"
            )
        self._now = target


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def add_days(dt: datetime, days: float) -> datetime:
    return dt + timedelta(days=days)


def elapsed_days(start: datetime, end: datetime) -> float:
    """Simulated days between two instants, fractional and never negative"""
    return max(0.0, (end - start) / timedelta(days=1))


def start_of_month(dt: datetime) -> datetime:
    dt = ensure_utc(dt)
    return datetime(dt.year, dt.month, 1, tzinfo=timezone.utc)


def to_iso(dt: datetime) -> str:
    """
    Fixed-width UTC ISO-8601 string

    Fixed width keeps lexical order equal to chronological order, which the
    SQLite store relies on for range filters.
    """
    return ensure_utc(dt).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (accepts a trailing 'Z')"""
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))

