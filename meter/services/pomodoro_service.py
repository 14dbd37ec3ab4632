"""
Pomodoro Controller - work/break cycles on top of the Timer.

Architecture Decision: Polling instead of scheduling
Phase expiry is checked whenever tick() is called by the surrounding event loop
(the tray's QTimer, or a CLI status call). There are no background threads or OS
timers in the core; every transition is a fast synchronous call.

Phases:
    IDLE          -> no session, or Pomodoro mode is off (pass-through)
    WORKING       -> Timer running, work period counting down
    AWAITING_ACK  -> waiting for the user to start a break or resume work
    SHORT_BREAK / LONG_BREAK -> Timer paused, break counting down
"""

import logging
from datetime import timedelta
from typing import Optional

from meter.domain.models import (
    Notification, NotificationKind, PendingTransition, PomodoroConfig, PomodoroPhase,
    PomodoroState, TimeSession,
)
from meter.infra.clock import Clock
from meter.services.notification_service import NotificationSink, NullNotifier
from meter.services.timer_service import Timer

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Meter - Pomodoro"
WORK_COMPLETE_MESSAGE = "Work period complete! Time for a break."
BREAK_COMPLETE_MESSAGE = "Break complete! Ready to resume work?"

BREAK_PHASES = (PomodoroPhase.SHORT_BREAK, PomodoroPhase.LONG_BREAK)


class PomodoroController:
    """
    Wraps a Timer with the Pomodoro cycle. When the mode is disabled every call
    is delegated straight to the Timer.
    """

    def __init__(self, timer: Timer, config: PomodoroConfig,
                 clock: Optional[Clock] = None,
                 notifier: Optional[NotificationSink] = None,
                 state: Optional[PomodoroState] = None):
        """
        Args:
            timer: The timer whose accrual is gated during breaks
            config: Work/break durations and whether the mode is on
            clock: Time source (defaults to the timer's clock)
            notifier: Receives phase-expiry notifications
            state: Previously checkpointed bookkeeping to continue
        """
        self.timer = timer
        self.config = config
        self.clock = clock or timer.clock
        self.notifier = notifier or NullNotifier()
        self.state = state or PomodoroState()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def current_phase(self) -> PomodoroPhase:
        return self.state.phase

    # Timer delegation

    def start(self, project: str, description: str) -> TimeSession:
        session = self.timer.start(project, description)
        self.state.last_project = project
        self.state.last_description = description
        if self.enabled:
            self.state.completed_work_cycles = 0
            self._enter_working()
        return session

    def pause(self) -> bool:
        return self.timer.pause()

    def resume(self) -> bool:
        """
        Resume the timer.

        Ignored during a break. With a resume pending it acknowledges it; with a
        break pending the break is skipped and a new work period starts.
        """
        phase = self.state.phase
        if phase in BREAK_PHASES:
            logger.info("Ignoring resume during a break")
            return False
        if phase == PomodoroPhase.AWAITING_ACK:
            if self.state.pending == PendingTransition.RESUME:
                return self.acknowledge()
            resumed = self.timer.resume()
            self._enter_working()
            logger.info("Break skipped, back to work")
            return resumed
        return self.timer.resume()

    def stop(self) -> timedelta:
        """Stop the timer and reset the cycle bookkeeping"""
        session = self.timer.session
        if session is not None:
            self.state.last_project = session.project
            self.state.last_description = session.description
        try:
            return self.timer.stop()
        finally:
            self._reset()

    # Cycle

    def tick(self) -> Optional[Notification]:
        """
        Check whether the current phase has expired.

        Returns the notification that was sent, or None when nothing changed.
        """
        if not self.enabled:
            return None

        self._sync_with_timer()
        phase = self.state.phase

        if phase == PomodoroPhase.WORKING:
            if self._work_elapsed() >= self.config.work_duration:
                if self.timer.is_running:
                    self.timer.pause()
                self._await(PendingTransition.BREAK)
                logger.info("Work period complete, waiting for acknowledgment")
                return self._notify(NotificationKind.WORK_COMPLETE, WORK_COMPLETE_MESSAGE)

        elif phase in BREAK_PHASES:
            if self.clock.now() - self.state.phase_started_at >= self._break_length(phase):
                self._await(PendingTransition.RESUME)
                logger.info("Break complete, waiting for acknowledgment")
                return self._notify(NotificationKind.BREAK_COMPLETE, BREAK_COMPLETE_MESSAGE)

        return None

    def acknowledge(self) -> bool:
        """
        Confirm the pending transition (start the break, or resume work).

        Returns False when nothing is pending; repeated key presses are harmless.
        """
        if self.state.phase != PomodoroPhase.AWAITING_ACK:
            return False

        if self.state.pending == PendingTransition.BREAK:
            self._start_break()
            return True

        if self.state.pending == PendingTransition.RESUME:
            if self.timer.is_idle:
                if not self.state.last_project:
                    logger.warning("Cannot resume work: no previous project to restart")
                    return False
                self.timer.start(self.state.last_project, self.state.last_description or "")
            else:
                self.timer.resume()
            self._enter_working()
            logger.info("Resumed work after break")
            return True

        return False

    def set_config(self, config: PomodoroConfig):
        """
        Replace the configuration. Switching the mode on or off only resets the
        phase bookkeeping; the timer session is never touched.
        """
        was_enabled = self.enabled
        self.config = config

        if config.enabled and not was_enabled:
            logger.info("Pomodoro mode enabled")
            if not self.timer.is_idle:
                self._enter_working()
        elif was_enabled and not config.enabled:
            logger.info("Pomodoro mode disabled")
            self._reset()

    def set_enabled(self, enabled: bool):
        self.set_config(self.config.model_copy(update={"enabled": enabled}))

    def is_long_break_next(self) -> bool:
        return self.state.completed_work_cycles + 1 >= self.config.cycles_before_long_break

    def next_break_duration(self) -> timedelta:
        return self.config.long_break if self.is_long_break_next() else self.config.short_break

    def remaining(self) -> Optional[timedelta]:
        """Time left in the current work or break phase"""
        phase = self.state.phase
        if phase == PomodoroPhase.WORKING:
            left = self.config.work_duration - self._work_elapsed()
        elif phase in BREAK_PHASES and self.state.phase_started_at is not None:
            left = self._break_length(phase) - (self.clock.now() - self.state.phase_started_at)
        else:
            return None
        return max(left, timedelta(0))

    # Internals

    def _work_elapsed(self) -> timedelta:
        return self.timer.elapsed_so_far() - self.state.work_baseline

    def _break_length(self, phase: PomodoroPhase) -> timedelta:
        if phase == PomodoroPhase.LONG_BREAK:
            return self.config.long_break
        return self.config.short_break

    def _enter_working(self):
        self.state.phase = PomodoroPhase.WORKING
        self.state.pending = None
        self.state.phase_started_at = self.clock.now()
        self.state.work_baseline = self.timer.elapsed_so_far()

    def _await(self, pending: PendingTransition):
        self.state.phase = PomodoroPhase.AWAITING_ACK
        self.state.pending = pending
        self.state.phase_started_at = self.clock.now()

    def _start_break(self):
        # Break time must never accrue on the timer
        if self.timer.is_running:
            self.timer.pause()

        if self.is_long_break_next():
            self.state.phase = PomodoroPhase.LONG_BREAK
            self.state.completed_work_cycles = 0
        else:
            self.state.phase = PomodoroPhase.SHORT_BREAK
            self.state.completed_work_cycles += 1

        self.state.pending = None
        self.state.phase_started_at = self.clock.now()
        logger.info(f"Starting {self.state.phase.value} "
                    f"({self._break_length(self.state.phase)})")

    def _reset(self):
        self.state.phase = PomodoroPhase.IDLE
        self.state.pending = None
        self.state.phase_started_at = None
        self.state.work_baseline = timedelta(0)
        self.state.completed_work_cycles = 0

    def _sync_with_timer(self):
        """Align the phase with a timer that was started or stopped elsewhere"""
        phase = self.state.phase
        if phase == PomodoroPhase.IDLE and not self.timer.is_idle:
            self._enter_working()
        elif phase == PomodoroPhase.WORKING and self.timer.is_idle:
            self._reset()

    def _notify(self, kind: NotificationKind, message: str) -> Notification:
        notification = Notification(kind=kind, title=NOTIFICATION_TITLE, message=message)
        self.notifier.notify(notification.title, notification.message)
        return notification
