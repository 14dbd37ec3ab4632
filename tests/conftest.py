"""
Pytest configuration and fixtures.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from meter.infra import config as config_module
from meter.infra.clock import Clock
from meter.infra.db import Base, DatabaseEngine
from meter.infra.repository import (
    ActiveTimerRepository, ClientRepository, ProjectRepository, SettingsRepository,
    TimeEntryRepository,
)


class ManualClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: datetime):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)

    def set(self, when: datetime):
        self.current = when


@pytest.fixture
def clock():
    return ManualClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def db_engine():
    """Create an in-memory SQLite database for testing"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Create a new session for a test"""
    async_session = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session


@pytest.fixture
def repos(db_session):
    """All repositories sharing the test session"""
    settings_repo = SettingsRepository(session=db_session)
    return {
        "entries": TimeEntryRepository(session=db_session),
        "projects": ProjectRepository(session=db_session),
        "clients": ClientRepository(session=db_session),
        "settings": settings_repo,
        "active": ActiveTimerRepository(settings_repo),
    }


@pytest.fixture
def meter_env(tmp_path, monkeypatch):
    """Point settings, database and invoices at a temporary directory"""
    monkeypatch.setenv("METER_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.setenv("METER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("METER_INVOICE_DIR", str(tmp_path / "invoices"))
    monkeypatch.setenv("METER_LOG_FILE", str(tmp_path / "meter.log"))
    monkeypatch.setattr(config_module, "_settings", None)
    DatabaseEngine.reset_instance()
    yield tmp_path
    DatabaseEngine.reset_instance()
    config_module._settings = None
