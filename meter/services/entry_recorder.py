"""
Entry Recorder - turns a finished session into a persisted TimeEntry.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Protocol

from meter.domain.errors import InvalidDurationError
from meter.domain.models import TimeEntry, utcnow

logger = logging.getLogger(__name__)

# Matches the Numeric(10, 4) column of time_entries.duration_hours
HOURS_PRECISION = Decimal("0.0001")


class EntryStore(Protocol):
    """Persistence collaborator used by the recorder"""

    async def save_entry(self, entry: TimeEntry) -> TimeEntry:
        ...


def to_hours(elapsed: timedelta) -> Decimal:
    """Convert a duration to decimal hours at the stored precision"""
    seconds = Decimal(elapsed.total_seconds())
    return (seconds / Decimal(3600)).quantize(HOURS_PRECISION, rounding=ROUND_HALF_UP)


class EntryRecorder:
    """
    Converts elapsed durations to billable entries and hands them to the store.
    No retries, no caching.
    """

    def __init__(self, store: EntryStore):
        self.store = store

    async def record(self, project: str, description: str, elapsed: timedelta,
                     ended_at: Optional[datetime] = None) -> TimeEntry:
        """
        Persist a time entry for a finished session.

        Args:
            project: Project name
            description: What was worked on
            elapsed: Billable duration (paused time already excluded)
            ended_at: When the session ended (defaults to now)

        Raises:
            InvalidDurationError: if the duration is zero, negative, or rounds to zero hours
        """
        if elapsed <= timedelta(0):
            raise InvalidDurationError(f"Cannot record a session of {elapsed.total_seconds():.0f}s")

        hours = to_hours(elapsed)
        if hours <= 0:
            raise InvalidDurationError(f"Session of {elapsed.total_seconds():.2f}s is too short to record")

        ended_at = ended_at or utcnow()
        entry = TimeEntry(
            project=project,
            description=description,
            started_at=ended_at - elapsed,
            ended_at=ended_at,
            duration_hours=hours,
            billed=False,
        )
        saved = await self.store.save_entry(entry)
        logger.info(f"Recorded {hours} h for '{project}' (entry {saved.id})")
        return saved
