"""
Tests for converting finished sessions into time entries.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from meter.domain.errors import InvalidDurationError
from meter.services.entry_recorder import EntryRecorder, to_hours


class FakeStore:
    def __init__(self):
        self.saved = []

    async def save_entry(self, entry):
        entry = entry.model_copy(update={"id": len(self.saved) + 1})
        self.saved.append(entry)
        return entry


ENDED = datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)


def test_to_hours_rounds_half_up():
    assert to_hours(timedelta(minutes=90)) == Decimal("1.5000")
    assert to_hours(timedelta(minutes=20)) == Decimal("0.3333")
    # 0.2 s is about 0.000056 h
    assert to_hours(timedelta(seconds=0.2)) == Decimal("0.0001")


@pytest.mark.asyncio
async def test_record_builds_entry():
    store = FakeStore()
    recorder = EntryRecorder(store)

    entry = await recorder.record("Acme", "Homepage", timedelta(minutes=45), ended_at=ENDED)

    assert entry.id == 1
    assert entry.project == "Acme"
    assert entry.description == "Homepage"
    assert entry.duration_hours == Decimal("0.7500")
    assert entry.ended_at == ENDED
    assert entry.started_at == ENDED - timedelta(minutes=45)
    assert entry.billed is False
    assert len(store.saved) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("elapsed", [timedelta(0), timedelta(seconds=-30), timedelta(seconds=0.1)])
async def test_rejects_unmeasurable_durations(elapsed):
    store = FakeStore()
    recorder = EntryRecorder(store)

    with pytest.raises(InvalidDurationError):
        await recorder.record("Acme", "Work", elapsed, ended_at=ENDED)
    assert store.saved == []
