"""Clock — the single source of "now" for all reminder window math.

Every instant handed out is timezone-aware and expressed in the configured
civil zone. Host-local time and bare UTC are never used for window checks.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo


class Clock:
    """Wall clock bound to a fixed civil timezone."""

    def __init__(self, tz_name: str) -> None:
        self._tz = ZoneInfo(tz_name)

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def now(self) -> datetime:
        return datetime.now(self._tz)


class FixedClock(Clock):
    """A clock frozen at a given instant, for simulations and tests.

    Naive instants are interpreted in the clock's zone.
    """

    def __init__(self, instant: datetime, tz_name: str = "Asia/Manila") -> None:
        super().__init__(tz_name)
        self._instant = self._localize(instant)

    def _localize(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self._tz)
        return instant.astimezone(self._tz)

    def now(self) -> datetime:
        return self._instant

    def set(self, instant: datetime) -> None:
        self._instant = self._localize(instant)

    def advance(self, **kwargs: float) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant
