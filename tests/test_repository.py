"""
Tests for the repositories against an in-memory database.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from meter.domain.errors import NotFoundError
from meter.domain.models import (
    Client, InvoiceSettings, PomodoroConfig, PomodoroPhase, PomodoroState, TimeEntry,
    TimerCheckpoint, TimeSession,
)
from meter.infra.repository import SettingsRepository, month_bounds


def make_entry(project: str, ended_at: datetime, hours: str = "1.5", billed: bool = False) -> TimeEntry:
    duration = Decimal(hours)
    return TimeEntry(
        project=project,
        description="Work",
        started_at=ended_at - timedelta(hours=float(duration)),
        ended_at=ended_at,
        duration_hours=duration,
        billed=billed,
    )


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def test_month_bounds():
    assert month_bounds(2026, 12) == (utc(2026, 12, 1), utc(2027, 1, 1))
    with pytest.raises(ValueError):
        month_bounds(2026, 13)


@pytest.mark.asyncio
async def test_save_and_get_entry(repos):
    entries = repos["entries"]
    saved = await entries.save_entry(make_entry("Acme", utc(2026, 3, 2, 12)))

    assert saved.id is not None
    loaded = await entries.get_by_id(saved.id)
    assert loaded.project == "Acme"
    assert loaded.duration_hours == Decimal("1.5")
    assert loaded.ended_at == utc(2026, 3, 2, 12)
    assert loaded.ended_at.tzinfo is not None
    assert await entries.get_by_id(9999) is None


@pytest.mark.asyncio
async def test_list_filters_by_billed(repos):
    entries = repos["entries"]
    await entries.create(make_entry("Acme", utc(2026, 3, 2, 12)))
    await entries.create(make_entry("Acme", utc(2026, 3, 3, 12), billed=True))

    assert len(await entries.list()) == 2
    assert [e.billed for e in await entries.list(billed=True)] == [True]
    assert [e.billed for e in await entries.list(billed=False)] == [False]


@pytest.mark.asyncio
async def test_list_by_month_uses_end_time(repos):
    entries = repos["entries"]
    # Starts in February, ends in March: belongs to March
    await entries.create(make_entry("Acme", utc(2026, 3, 1, 0, 30), hours="2"))
    await entries.create(make_entry("Acme", utc(2026, 2, 28, 23, 0)))
    await entries.create(make_entry("Acme", utc(2026, 4, 1, 0, 0)))

    march = await entries.list_by_month(2026, 3)
    assert [e.ended_at for e in march] == [utc(2026, 3, 1, 0, 30)]


@pytest.mark.asyncio
async def test_billing_flags(repos):
    entries = repos["entries"]
    first = await entries.create(make_entry("Acme", utc(2026, 3, 2, 12)))
    second = await entries.create(make_entry("Acme", utc(2026, 3, 3, 12)))

    assert await entries.mark_billed(first.id) is True
    assert (await entries.get_by_id(first.id)).billed is True
    assert await entries.mark_billed(9999) is False

    assert await entries.mark_all_billed() == 1
    assert (await entries.get_by_id(second.id)).billed is True

    assert await entries.unmark_billed(first.id) is True
    assert await entries.unmark_all_billed() == 1
    assert await entries.list(billed=True) == []

    assert await entries.mark_billed_many([first.id, second.id]) == 2


@pytest.mark.asyncio
async def test_delete_entry(repos):
    entries = repos["entries"]
    saved = await entries.create(make_entry("Acme", utc(2026, 3, 2, 12)))

    assert await entries.delete(saved.id) is True
    assert await entries.delete(saved.id) is False


@pytest.mark.asyncio
async def test_recent_projects_ordered_by_last_use(repos):
    entries = repos["entries"]
    await entries.create(make_entry("Old", utc(2026, 3, 1, 12)))
    await entries.create(make_entry("New", utc(2026, 3, 5, 12)))
    await entries.create(make_entry("Old", utc(2026, 3, 3, 12)))

    assert await entries.recent_projects() == ["New", "Old"]
    assert await entries.recent_projects(limit=1) == ["New"]


@pytest.mark.asyncio
async def test_project_rates(repos):
    projects = repos["projects"]
    created = await projects.get_or_create("Acme")
    assert created.rate is None

    # Lookups ignore case
    assert (await projects.get_or_create("ACME")).id == created.id

    updated = await projects.set_rate("acme", Decimal("150"), "€")
    assert updated.formatted_rate() == "€150.00/hr"
    stored = await projects.get_by_name("Acme")
    assert stored.rate == Decimal("150")
    assert stored.currency == "€"


@pytest.mark.asyncio
async def test_sync_projects_from_entries(repos):
    await repos["entries"].create(make_entry("Acme", utc(2026, 3, 2, 12)))
    await repos["entries"].create(make_entry("Beta", utc(2026, 3, 2, 14)))
    await repos["projects"].get_or_create("Acme")

    assert await repos["projects"].sync_from_entries() == 1
    assert [p.name for p in await repos["projects"].get_all()] == ["Acme", "Beta"]
    assert await repos["projects"].sync_from_entries() == 0


@pytest.mark.asyncio
async def test_clients_and_assignment(repos):
    clients = repos["clients"]
    projects = repos["projects"]

    acme = await clients.create(Client(name="Acme Corp", address_city="Springfield",
                                       address_postal_code="12345"))
    assert (await clients.get_by_name("acme corp")).id == acme.id
    assert acme.formatted_address() == "12345 Springfield"

    await projects.get_or_create("Website")
    await projects.assign_client("Website", acme.id)
    assert [p.name for p in await projects.get_by_client(acme.id)] == ["Website"]

    with pytest.raises(NotFoundError):
        await projects.assign_client("Missing", acme.id)

    renamed = await clients.update(acme.model_copy(update={"email": "ap@acme.example"}))
    assert (await clients.get_by_id(acme.id)).email == renamed.email

    assert await clients.delete(acme.id) is True
    assert (await projects.get_by_name("Website")).client_id is None


@pytest.mark.asyncio
async def test_pomodoro_config_falls_back_to_seed(db_session):
    seed = PomodoroConfig(enabled=True, work_minutes=50)
    repo = SettingsRepository(session=db_session, seed_config=seed)

    assert await repo.load_config() == seed

    saved = PomodoroConfig(enabled=False, work_minutes=30)
    await repo.save_config(saved)
    assert await repo.load_config() == saved


@pytest.mark.asyncio
async def test_invoice_numbers_increment(repos):
    settings = repos["settings"]
    await settings.save_invoice_settings(InvoiceSettings(business_name="Me", next_invoice_number=7))

    assert await settings.next_invoice_number() == 7
    assert await settings.next_invoice_number() == 8
    loaded = await settings.load_invoice_settings()
    assert loaded.business_name == "Me"
    assert loaded.next_invoice_number == 9


@pytest.mark.asyncio
async def test_active_timer_checkpoint(repos):
    active = repos["active"]
    assert await active.load() is None

    checkpoint = TimerCheckpoint(
        session=TimeSession(project="Acme", description="Work", started_at=utc(2026, 3, 2, 9),
                            accumulated_pause=timedelta(minutes=5)),
        pomodoro=PomodoroState(phase=PomodoroPhase.WORKING, completed_work_cycles=2),
    )
    await active.save(checkpoint)

    loaded = await active.load()
    assert loaded.session.project == "Acme"
    assert loaded.session.accumulated_pause == timedelta(minutes=5)
    assert loaded.session.started_at == utc(2026, 3, 2, 9)
    assert loaded.pomodoro.phase == PomodoroPhase.WORKING
    assert loaded.pomodoro.completed_work_cycles == 2

    await active.clear()
    assert await active.load() is None


@pytest.mark.asyncio
async def test_unreadable_checkpoint_is_ignored(repos):
    await repos["settings"].set("active_timer", {"session": {"project": ""}})
    assert await repos["active"].load() is None
