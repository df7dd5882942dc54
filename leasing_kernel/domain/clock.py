"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that lifecycle code never calls
    ``datetime.now()`` or ``date.today()`` directly.  "Today" drives the
    overlap-with-current-lease guard on units, the expiration sweep, and
    default deposit/installment dates.

Architecture position:
    Kernel > Domain -- pure, zero I/O (except SystemClock, which is the one
    sanctioned I/O boundary for time).

Failure modes:
    - SequentialClock raises RuntimeError if exhausted and no fallback time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Iterator


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns a timezone-aware ``datetime``.
        - ``today()`` is the calendar date of ``now()`` in UTC.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current UTC time."""
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        """Get the current calendar date (UTC)."""
        return self.now_utc().date()


class SystemClock(Clock):
    """
    Production clock that returns actual system time.

    Non-goals:
        Not suitable for deterministic tests.
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()``, ``advance_days()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._advance_seconds = 0

    @classmethod
    def on(cls, day: date, hour: int = 12) -> "DeterministicClock":
        """Clock pinned to ``hour``:00 UTC on ``day``."""
        return cls(datetime(day.year, day.month, day.day, hour, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._fixed_time + timedelta(seconds=self._advance_seconds)

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = time
        self._advance_seconds = 0

    def set_today(self, day: date) -> None:
        """Move the clock to noon UTC on ``day``."""
        self.set_time(datetime(day.year, day.month, day.day, 12, tzinfo=timezone.utc))

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds

    def advance_days(self, days: int = 1) -> None:
        self.advance(days * 86400)

    def tick(self) -> datetime:
        """Advance by 1 second and return new time."""
        self.advance(1)
        return self.now()


class SequentialClock(Clock):
    """
    Clock that returns sequential times from a predefined list.

    After exhaustion, repeats the last value.

    Raises:
        ValueError: If initialized with an empty list.
    """

    def __init__(self, times: list[datetime]):
        if not times:
            raise ValueError("SequentialClock requires at least one time")
        self._times: Iterator[datetime] = iter(times)
        self._last_time: datetime | None = None
        self._exhausted = False

    def now(self) -> datetime:
        if self._exhausted:
            if self._last_time is None:
                raise RuntimeError("SequentialClock has no times")
            return self._last_time

        try:
            self._last_time = next(self._times)
            return self._last_time
        except StopIteration:
            self._exhausted = True
            if self._last_time is None:
                raise RuntimeError("SequentialClock exhausted with no times")
            return self._last_time
