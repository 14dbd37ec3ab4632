"""
Clock abstraction.

Architecture Decision: Injectable time source
The timer and Pomodoro state machines never call datetime.now() directly; every
instant comes from a Clock passed in by the caller.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Supplies the current instant as an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        raise NotImplementedError("Subclasses must implement now")


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
