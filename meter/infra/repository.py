"""
Repository Pattern Implementation.

Architecture Decision: Why Repository Pattern?
Separates data access logic from business logic. Makes it easy to:
- Switch database implementations
- Mock data for testing
- Share one store between the CLI and the tray app
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional
import json
import logging

from pydantic import ValidationError
from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from meter.domain.errors import NotFoundError
from meter.domain.models import (
    Client, InvoiceSettings, PomodoroConfig, Project, TimeEntry, TimerCheckpoint,
)
from meter.infra.db import ClientModel, ProjectModel, SettingModel, TimeEntryModel, get_engine

logger = logging.getLogger(__name__)


def month_bounds(year: int, month: int) -> tuple:
    """First instant of the month and first instant of the next one (UTC)"""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


class _Repository:
    """Session handling shared by all repositories"""

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session

    async def _get_session(self) -> AsyncSession:
        """Get session - either injected or create new one"""
        if self.session:
            return self.session
        engine = get_engine()
        return engine.get_session()


class TimeEntryRepository(_Repository):
    """
    Handles all TimeEntry-related database operations.

    Converts between domain models (Pydantic) and ORM models (SQLAlchemy).
    """

    async def save_entry(self, entry: TimeEntry) -> TimeEntry:
        """Persist a new time entry and return it with its id"""
        session = await self._get_session()
        async with session:
            entry_model = TimeEntryModel(
                project=entry.project,
                description=entry.description,
                started_at=entry.started_at,
                ended_at=entry.ended_at,
                duration_hours=entry.duration_hours,
                billed=entry.billed,
                created_at=entry.created_at
            )
            session.add(entry_model)
            await session.commit()
            await session.refresh(entry_model)
            return TimeEntry.model_validate(entry_model)

    create = save_entry

    async def get_by_id(self, entry_id: int) -> Optional[TimeEntry]:
        """Get a specific entry by ID"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimeEntryModel).where(TimeEntryModel.id == entry_id)
            )
            entry_model = result.scalar_one_or_none()
            return TimeEntry.model_validate(entry_model) if entry_model else None

    async def list(self, billed: Optional[bool] = None) -> List[TimeEntry]:
        """Get all entries, newest first, optionally filtered by billed status"""
        session = await self._get_session()
        async with session:
            query = select(TimeEntryModel)
            if billed is not None:
                query = query.where(TimeEntryModel.billed == billed)

            result = await session.execute(query.order_by(TimeEntryModel.started_at.desc()))
            return [TimeEntry.model_validate(em) for em in result.scalars().all()]

    async def list_by_date_range(self, start: datetime, end: datetime,
                                 billed: Optional[bool] = None) -> List[TimeEntry]:
        """Entries that ended in [start, end), newest first"""
        session = await self._get_session()
        async with session:
            query = select(TimeEntryModel).where(
                TimeEntryModel.ended_at >= start,
                TimeEntryModel.ended_at < end
            )
            if billed is not None:
                query = query.where(TimeEntryModel.billed == billed)

            result = await session.execute(query.order_by(TimeEntryModel.started_at.desc()))
            return [TimeEntry.model_validate(em) for em in result.scalars().all()]

    async def list_by_month(self, year: int, month: int,
                            billed: Optional[bool] = None) -> List[TimeEntry]:
        """Entries that ended in the given UTC month"""
        start, end = month_bounds(year, month)
        return await self.list_by_date_range(start, end, billed=billed)

    async def delete(self, entry_id: int) -> bool:
        """Delete a time entry by ID. Returns False if it did not exist."""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                delete(TimeEntryModel).where(TimeEntryModel.id == entry_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def _set_billed(self, billed: bool, ids: Optional[Iterable[int]] = None) -> int:
        session = await self._get_session()
        async with session:
            stmt = update(TimeEntryModel).values(billed=billed)
            if ids is not None:
                stmt = stmt.where(TimeEntryModel.id.in_(list(ids)))
            else:
                stmt = stmt.where(TimeEntryModel.billed == (not billed))
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount

    async def mark_billed(self, entry_id: int) -> bool:
        """Mark an entry as billed"""
        return await self._set_billed(True, [entry_id]) > 0

    async def unmark_billed(self, entry_id: int) -> bool:
        """Mark an entry as unbilled"""
        return await self._set_billed(False, [entry_id]) > 0

    async def mark_billed_many(self, entry_ids: Iterable[int]) -> int:
        return await self._set_billed(True, entry_ids)

    async def mark_all_billed(self) -> int:
        """Mark every pending entry as billed. Returns count of updated rows."""
        return await self._set_billed(True)

    async def unmark_all_billed(self) -> int:
        """Mark every billed entry as pending. Returns count of updated rows."""
        return await self._set_billed(False)

    async def recent_projects(self, limit: int = 10) -> List[str]:
        """Project names ordered by most recent use"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(TimeEntryModel.project)
                .group_by(TimeEntryModel.project)
                .order_by(func.max(TimeEntryModel.ended_at).desc())
                .limit(limit)
            )
            return list(result.scalars().all())


class ProjectRepository(_Repository):
    """
    Handles Project-related database operations (rates, currency, client).
    """

    async def get_all(self) -> List[Project]:
        """Get all projects ordered by name"""
        session = await self._get_session()
        async with session:
            result = await session.execute(select(ProjectModel).order_by(ProjectModel.name))
            return [Project.model_validate(pm) for pm in result.scalars().all()]

    async def get_by_name(self, name: str) -> Optional[Project]:
        """Get a project by name (case-insensitive)"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ProjectModel).where(func.lower(ProjectModel.name) == name.lower())
            )
            project_model = result.scalar_one_or_none()
            return Project.model_validate(project_model) if project_model else None

    async def get_by_client(self, client_id: int) -> List[Project]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ProjectModel).where(ProjectModel.client_id == client_id)
            )
            return [Project.model_validate(pm) for pm in result.scalars().all()]

    async def get_or_create(self, name: str, currency: str = "$") -> Project:
        """Return the project called name, creating it without a rate if needed"""
        project = await self.get_by_name(name)
        if project:
            return project

        session = await self._get_session()
        async with session:
            project_model = ProjectModel(name=name, rate=None, currency=currency)
            session.add(project_model)
            await session.commit()
            await session.refresh(project_model)
            logger.info(f"Created project '{name}'")
            return Project.model_validate(project_model)

    async def set_rate(self, name: str, rate: Optional[Decimal], currency: str = "$") -> Project:
        """Set (or clear) the hourly rate of a project, creating it if needed"""
        project = await self.get_or_create(name, currency)
        session = await self._get_session()
        async with session:
            await session.execute(
                update(ProjectModel)
                .where(ProjectModel.id == project.id)
                .values(rate=rate, currency=currency)
            )
            await session.commit()
        return project.model_copy(update={"rate": rate, "currency": currency})

    async def assign_client(self, name: str, client_id: Optional[int]) -> Project:
        """Link a project to a client (or unlink with None)"""
        project = await self.get_by_name(name)
        if not project:
            raise NotFoundError(f"Project '{name}' not found")

        session = await self._get_session()
        async with session:
            await session.execute(
                update(ProjectModel)
                .where(ProjectModel.id == project.id)
                .values(client_id=client_id)
            )
            await session.commit()
        return project.model_copy(update={"client_id": client_id})

    async def sync_from_entries(self) -> int:
        """Create project rows for project names only known from entries"""
        session = await self._get_session()
        async with session:
            known = select(ProjectModel.name)
            result = await session.execute(
                select(TimeEntryModel.project)
                .where(TimeEntryModel.project.not_in(known))
                .distinct()
            )
            names = list(result.scalars().all())
            for name in names:
                session.add(ProjectModel(name=name, rate=None, currency="$"))
            await session.commit()

        if names:
            logger.info(f"Synced {len(names)} project(s) from entries")
        return len(names)

    async def delete(self, name: str) -> bool:
        """Delete a project. Existing entries keep their project name."""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                delete(ProjectModel).where(func.lower(ProjectModel.name) == name.lower())
            )
            await session.commit()
            return result.rowcount > 0


class ClientRepository(_Repository):
    """
    Handles Client-related database operations.
    """

    async def get_all(self) -> List[Client]:
        session = await self._get_session()
        async with session:
            result = await session.execute(select(ClientModel).order_by(ClientModel.name))
            return [Client.model_validate(cm) for cm in result.scalars().all()]

    async def get_by_id(self, client_id: int) -> Optional[Client]:
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ClientModel).where(ClientModel.id == client_id)
            )
            client_model = result.scalar_one_or_none()
            return Client.model_validate(client_model) if client_model else None

    async def get_by_name(self, name: str) -> Optional[Client]:
        """Get a client by name (case-insensitive)"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                select(ClientModel).where(func.lower(ClientModel.name) == name.lower())
            )
            client_model = result.scalar_one_or_none()
            return Client.model_validate(client_model) if client_model else None

    async def create(self, client: Client) -> Client:
        """Create a new client"""
        session = await self._get_session()
        async with session:
            client_model = ClientModel(**client.model_dump(exclude={"id"}))
            session.add(client_model)
            await session.commit()
            await session.refresh(client_model)
            return Client.model_validate(client_model)

    async def update(self, client: Client) -> Client:
        """Update an existing client"""
        session = await self._get_session()
        async with session:
            result = await session.execute(
                update(ClientModel)
                .where(ClientModel.id == client.id)
                .values(**client.model_dump(exclude={"id"}))
            )
            await session.commit()
            if result.rowcount == 0:
                raise NotFoundError(f"Client {client.id} not found")
            return client

    async def delete(self, client_id: int) -> bool:
        """Delete a client and unlink its projects"""
        session = await self._get_session()
        async with session:
            await session.execute(
                update(ProjectModel)
                .where(ProjectModel.client_id == client_id)
                .values(client_id=None)
            )
            result = await session.execute(
                delete(ClientModel).where(ClientModel.id == client_id)
            )
            await session.commit()
            return result.rowcount > 0


class SettingsRepository(_Repository):
    """
    Key-value store of JSON documents.

    Holds the Pomodoro configuration, the invoice settings and the active timer.
    """

    POMODORO_KEY = "pomodoro_config"
    INVOICE_KEY = "invoice_settings"

    def __init__(self, session: Optional[AsyncSession] = None,
                 seed_config: Optional[PomodoroConfig] = None):
        super().__init__(session)
        self.seed_config = seed_config or PomodoroConfig()

    async def get(self, key: str) -> Optional[dict]:
        session = await self._get_session()
        async with session:
            result = await session.execute(select(SettingModel).where(SettingModel.key == key))
            setting = result.scalar_one_or_none()
            if setting is None:
                return None
            return json.loads(setting.value)

    async def set(self, key: str, value: dict) -> None:
        session = await self._get_session()
        async with session:
            result = await session.execute(select(SettingModel).where(SettingModel.key == key))
            setting = result.scalar_one_or_none()
            payload = json.dumps(value)
            if setting is None:
                session.add(SettingModel(key=key, value=payload))
            else:
                setting.value = payload
            await session.commit()

    async def delete(self, key: str) -> None:
        session = await self._get_session()
        async with session:
            await session.execute(delete(SettingModel).where(SettingModel.key == key))
            await session.commit()

    async def load_config(self) -> PomodoroConfig:
        """Get the stored Pomodoro configuration, or the seed if none was saved"""
        data = await self.get(self.POMODORO_KEY)
        if data is None:
            return self.seed_config
        try:
            return PomodoroConfig(**data)
        except ValidationError as e:
            logger.warning(f"Stored Pomodoro config is invalid, using defaults: {e}")
            return self.seed_config

    async def save_config(self, config: PomodoroConfig) -> None:
        await self.set(self.POMODORO_KEY, config.model_dump(mode="json"))

    async def load_invoice_settings(self) -> InvoiceSettings:
        data = await self.get(self.INVOICE_KEY)
        if data is None:
            return InvoiceSettings()
        return InvoiceSettings(**data)

    async def save_invoice_settings(self, settings: InvoiceSettings) -> None:
        await self.set(self.INVOICE_KEY, settings.model_dump(mode="json"))

    async def next_invoice_number(self) -> int:
        """Return the next invoice number and advance the counter"""
        settings = await self.load_invoice_settings()
        number = settings.next_invoice_number
        settings.next_invoice_number = number + 1
        await self.save_invoice_settings(settings)
        return number


class ActiveTimerRepository:
    """
    Checkpoint of the running timer, shared by every process using the database.
    """

    KEY = "active_timer"

    def __init__(self, settings_repo: Optional[SettingsRepository] = None):
        self.settings_repo = settings_repo or SettingsRepository()

    async def load(self) -> Optional[TimerCheckpoint]:
        data = await self.settings_repo.get(self.KEY)
        if data is None:
            return None
        try:
            return TimerCheckpoint.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable timer checkpoint: {e}")
            return None

    async def save(self, checkpoint: TimerCheckpoint) -> None:
        await self.settings_repo.set(self.KEY, checkpoint.model_dump(mode="json"))

    async def clear(self) -> None:
        await self.settings_repo.delete(self.KEY)
