"""
Clock -- the only source of "now" for the treasury.

Services receive a Clock in their constructor and stamp submission times,
decision times (``approved_at`` on a step, for rejections too), history
rows and notification intents from it.  Nothing under treasury_kernel,
treasury_engines or treasury_services calls ``datetime.now()`` itself.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware, in UTC."""


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests; moves only when ``advance()`` is called."""

    DEFAULT_START = datetime(2024, 1, 7, 9, 0, tzinfo=timezone.utc)

    def __init__(self, start: datetime | None = None):
        self._current = start or self.DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
