"""
Timer - Core time tracking logic.

Architecture Decision: Explicit state machine
The timer is a plain object over IDLE -> RUNNING <-> PAUSED -> IDLE. It knows
nothing about storage or UI: callers feed the duration returned by stop() to the
EntryRecorder. All instants come from an injected Clock.
"""

import logging
from datetime import timedelta
from typing import Optional

from meter.domain.errors import AlreadyRunningError, NegativeDurationError, NotRunningError
from meter.domain.models import TimerState, TimeSession
from meter.infra.clock import Clock, SystemClock

logger = logging.getLogger(__name__)


class Timer:
    """
    Tracks a single (project, description) session, excluding paused time.
    """

    def __init__(self, clock: Optional[Clock] = None, session: Optional[TimeSession] = None):
        """
        Args:
            clock: Time source (defaults to the system clock)
            session: A previously checkpointed session to continue
        """
        self.clock = clock or SystemClock()
        self._session = session

    @property
    def session(self) -> Optional[TimeSession]:
        """The current session, or None when idle"""
        return self._session

    @property
    def state(self) -> TimerState:
        if self._session is None:
            return TimerState.IDLE
        return self._session.state

    @property
    def is_idle(self) -> bool:
        return self.state == TimerState.IDLE

    @property
    def is_running(self) -> bool:
        return self.state == TimerState.RUNNING

    @property
    def is_paused(self) -> bool:
        return self.state == TimerState.PAUSED

    def start(self, project: str, description: str) -> TimeSession:
        """
        Start tracking a new session.

        Raises:
            AlreadyRunningError: if a session is running or paused
        """
        if self._session is not None:
            raise AlreadyRunningError(self._session.project)

        self._session = TimeSession(
            project=project,
            description=description,
            started_at=self.clock.now(),
            accumulated_pause=timedelta(0),
            state=TimerState.RUNNING,
        )
        logger.info(f"Timer started for '{project}'")
        return self._session

    def pause(self) -> bool:
        """
        Pause the running session.

        Returns False (no-op) if already paused.

        Raises:
            NotRunningError: if the timer is idle
        """
        if self._session is None:
            raise NotRunningError("Cannot pause: no timer is running")
        if self._session.state != TimerState.RUNNING:
            return False

        self._session.paused_at = self.clock.now()
        self._session.state = TimerState.PAUSED
        logger.info(f"Timer paused for '{self._session.project}'")
        return True

    def resume(self) -> bool:
        """
        Resume a paused session. Returns False (no-op) unless paused.
        """
        if self._session is None or self._session.state != TimerState.PAUSED:
            return False

        self._end_pause()
        self._session.state = TimerState.RUNNING
        logger.info(f"Timer resumed for '{self._session.project}'")
        return True

    def stop(self) -> timedelta:
        """
        Stop the session and return its elapsed time (paused time excluded).

        The timer is idle afterwards, even when an error is raised.

        Raises:
            NotRunningError: if the timer is idle
            NegativeDurationError: if the clock went backwards during the session
        """
        if self._session is None:
            raise NotRunningError("Cannot stop: no timer is running")

        if self._session.state == TimerState.PAUSED:
            self._end_pause()

        session = self._session
        elapsed = self.clock.now() - session.started_at - session.accumulated_pause
        self._session = None

        if elapsed < timedelta(0):
            logger.warning(f"Discarding session for '{session.project}': negative duration {elapsed}")
            raise NegativeDurationError(elapsed.total_seconds())

        logger.info(f"Timer stopped for '{session.project}' after {elapsed}")
        return elapsed

    def elapsed_so_far(self) -> timedelta:
        """
        Elapsed time of the current session without changing state.

        Frozen at the pause instant while paused; zero when idle.
        """
        session = self._session
        if session is None:
            return timedelta(0)

        if session.state == TimerState.PAUSED and session.paused_at is not None:
            until = session.paused_at
        else:
            until = self.clock.now()
        return until - session.started_at - session.accumulated_pause

    def _end_pause(self):
        """Fold the current pause into accumulated_pause"""
        session = self._session
        if session.paused_at is not None:
            paused_for = self.clock.now() - session.paused_at
            # accumulated_pause never shrinks, even if the clock jumped back
            if paused_for > timedelta(0):
                session.accumulated_pause += paused_for
        session.paused_at = None
