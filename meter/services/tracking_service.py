"""
Tracking Service - coordinates the timer, the Pomodoro cycle and persistence.

Architecture Decision: Stateless coordinator over a shared checkpoint
The CLI and the tray app are separate processes. Each operation loads the timer
checkpoint from the database, rebuilds the Timer/PomodoroController, applies one
command and writes the checkpoint back. Only stop() and add_manual() produce
TimeEntry rows; the checkpoint itself is never billing data.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Tuple, Union

from pydantic import BaseModel

from meter.domain.errors import NotRunningError, InvalidDurationError
from meter.domain.models import (
    Notification, PendingTransition, PomodoroConfig, PomodoroPhase, TimeEntry,
    TimerCheckpoint, TimerState, TimeSession,
)
from meter.infra.clock import Clock, SystemClock
from meter.infra.repository import (
    ActiveTimerRepository, ProjectRepository, SettingsRepository, TimeEntryRepository,
)
from meter.services.entry_recorder import EntryRecorder
from meter.services.notification_service import NotificationSink, LogNotifier
from meter.services.pomodoro_service import PomodoroController
from meter.services.timer_service import Timer

logger = logging.getLogger(__name__)


class TrackingStatus(BaseModel):
    """Snapshot for display (CLI status, tray tooltip)"""
    state: TimerState
    project: Optional[str] = None
    description: Optional[str] = None
    elapsed: timedelta = timedelta(0)
    pomodoro_enabled: bool = False
    phase: PomodoroPhase = PomodoroPhase.IDLE
    pending: Optional[PendingTransition] = None
    remaining: Optional[timedelta] = None
    completed_work_cycles: int = 0
    cycles_before_long_break: int = 0
    long_break_next: bool = False


class TrackingService:
    """
    The time tracking engine used by every interface layer.
    Manages state but knows nothing about the UI.
    """

    def __init__(self, clock: Optional[Clock] = None,
                 notifier: Optional[NotificationSink] = None,
                 entry_repo: Optional[TimeEntryRepository] = None,
                 project_repo: Optional[ProjectRepository] = None,
                 settings_repo: Optional[SettingsRepository] = None,
                 active_repo: Optional[ActiveTimerRepository] = None,
                 default_description: str = "Work session",
                 default_currency: str = "$"):
        self.clock = clock or SystemClock()
        self.notifier = notifier or LogNotifier()

        # Repositories
        self.entry_repo = entry_repo or TimeEntryRepository()
        self.project_repo = project_repo or ProjectRepository()
        self.settings_repo = settings_repo or SettingsRepository()
        self.active_repo = active_repo or ActiveTimerRepository(self.settings_repo)

        self.recorder = EntryRecorder(self.entry_repo)
        self.default_description = default_description
        self.default_currency = default_currency

    async def _load(self) -> Tuple[PomodoroController, dict]:
        """Rebuild the state machine from the stored checkpoint"""
        checkpoint = await self.active_repo.load() or TimerCheckpoint()
        config = await self.settings_repo.load_config()
        timer = Timer(self.clock, session=checkpoint.session)
        controller = PomodoroController(
            timer, config, clock=self.clock, notifier=self.notifier,
            state=checkpoint.pomodoro
        )
        return controller, self._snapshot(controller)

    @staticmethod
    def _snapshot(controller: PomodoroController) -> dict:
        session = controller.timer.session
        return {
            "session": session.model_dump(mode="json") if session else None,
            "pomodoro": controller.state.model_dump(mode="json"),
        }

    async def _save(self, controller: PomodoroController, loaded: Optional[dict] = None):
        """Write the checkpoint back, or clear it once nothing is in progress"""
        if loaded is not None and self._snapshot(controller) == loaded:
            return

        if controller.timer.is_idle and controller.current_phase() == PomodoroPhase.IDLE:
            await self.active_repo.clear()
            return

        await self.active_repo.save(TimerCheckpoint(
            session=controller.timer.session,
            pomodoro=controller.state,
            saved_at=self.clock.now(),
        ))

    async def start(self, project: str, description: Optional[str] = None) -> TimeSession:
        """
        Start tracking time for a project.

        Raises:
            AlreadyRunningError: if a timer is already running
        """
        project = project.strip()
        if not project:
            raise ValueError("Project name must not be empty")
        description = description if description is not None else self.default_description

        controller, _ = await self._load()
        session = controller.start(project, description)
        await self.project_repo.get_or_create(project, self.default_currency)
        await self._save(controller)
        return session

    async def stop(self) -> TimeEntry:
        """
        Stop the running timer and record its entry.

        Raises:
            NotRunningError: if no timer is running
            NegativeDurationError: if the clock went backwards (session discarded)
            InvalidDurationError: if the session accrued no measurable time (session discarded)
        """
        controller, _ = await self._load()
        session = controller.timer.session
        if session is None:
            raise NotRunningError()

        ended_at = self.clock.now()
        try:
            elapsed = controller.stop()
        finally:
            await self._save(controller)

        return await self.recorder.record(session.project, session.description, elapsed,
                                          ended_at=ended_at)

    async def discard(self) -> Optional[TimeSession]:
        """Throw away the running session without recording anything"""
        controller, _ = await self._load()
        session = controller.timer.session
        await self.active_repo.clear()
        if session:
            logger.info(f"Discarded session for '{session.project}'")
        return session

    async def pause(self) -> bool:
        controller, loaded = await self._load()
        changed = controller.pause()
        await self._save(controller, loaded)
        return changed

    async def resume(self) -> bool:
        controller, loaded = await self._load()
        changed = controller.resume()
        await self._save(controller, loaded)
        return changed

    async def tick(self) -> Optional[Notification]:
        """Poll the Pomodoro cycle for phase expiry"""
        controller, loaded = await self._load()
        notification = controller.tick()
        await self._save(controller, loaded)
        return notification

    async def acknowledge(self) -> bool:
        controller, loaded = await self._load()
        changed = controller.acknowledge()
        await self._save(controller, loaded)
        return changed

    async def update_pomodoro_config(self, config: PomodoroConfig) -> PomodoroConfig:
        """Persist a new Pomodoro configuration and apply it to the running timer"""
        controller, loaded = await self._load()
        controller.set_config(config)
        await self.settings_repo.save_config(config)
        await self._save(controller, loaded)
        return config

    async def set_pomodoro_enabled(self, enabled: bool) -> PomodoroConfig:
        config = await self.settings_repo.load_config()
        return await self.update_pomodoro_config(config.model_copy(update={"enabled": enabled}))

    async def status(self) -> TrackingStatus:
        controller, _ = await self._load()
        session = controller.timer.session
        return TrackingStatus(
            state=controller.timer.state,
            project=session.project if session else None,
            description=session.description if session else None,
            elapsed=controller.timer.elapsed_so_far(),
            pomodoro_enabled=controller.enabled,
            phase=controller.current_phase(),
            pending=controller.state.pending,
            remaining=controller.remaining(),
            completed_work_cycles=controller.state.completed_work_cycles,
            cycles_before_long_break=controller.config.cycles_before_long_break,
            long_break_next=controller.is_long_break_next(),
        )

    async def add_manual(self, project: str, description: str,
                         hours: Union[Decimal, float]) -> TimeEntry:
        """
        Record a manual entry of the given length, ending now.

        Raises:
            InvalidDurationError: if hours is not positive
        """
        if hours <= 0:
            raise InvalidDurationError(f"Duration must be positive, got {hours} hours")
        elapsed = timedelta(hours=float(hours))
        await self.project_repo.get_or_create(project, self.default_currency)
        return await self.recorder.record(project, description, elapsed, ended_at=self.clock.now())
