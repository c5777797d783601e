"""
Clock abstraction for windowed queries.

Services never call utc_now() directly when computing a window boundary;
they ask the injected clock. Tests pin time with FrozenClock so a click that
is exactly N days old lands deterministically inside or outside the window.
"""

from datetime import datetime, timedelta

from utils.datetime_utils import utc_now, ensure_utc


class Clock:
    """Source of the current instant"""
    
    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Wall-clock time in UTC"""
    
    def now(self) -> datetime:
        return utc_now()


class FrozenClock(Clock):
    """A clock that only moves when told to"""
    
    def __init__(self, instant: datetime):
        self._instant = ensure_utc(instant)
    
    def now(self) -> datetime:
        return self._instant
    
    def advance(self, **kwargs) -> datetime:
        """Move the clock forward by a timedelta built from kwargs."""
        self._instant = self._instant + timedelta(**kwargs)
        return self._instant
    
    def set(self, instant: datetime) -> None:
        self._instant = ensure_utc(instant)
