"""
Tests for the Pomodoro controller.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from meter.domain.models import (
    NotificationKind, PendingTransition, PomodoroConfig, PomodoroPhase, TimerState,
)
from meter.services.notification_service import RecordingNotifier
from meter.services.pomodoro_service import (
    NOTIFICATION_TITLE, WORK_COMPLETE_MESSAGE, BREAK_COMPLETE_MESSAGE, PomodoroController,
)
from meter.services.timer_service import Timer


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def controller(clock, notifier):
    config = PomodoroConfig(enabled=True, work_minutes=25, short_break_minutes=5,
                            long_break_minutes=15, cycles_before_long_break=4)
    return PomodoroController(Timer(clock), config, clock=clock, notifier=notifier)


def finish_work(controller, clock):
    clock.advance(minutes=controller.config.work_minutes)
    return controller.tick()


def finish_break(controller, clock):
    clock.advance(minutes=controller.config.long_break_minutes)
    return controller.tick()


def test_start_enters_working(controller):
    controller.start("Acme", "Work")
    assert controller.current_phase() == PomodoroPhase.WORKING
    assert controller.remaining() == timedelta(minutes=25)


def test_work_expiry_pauses_timer_and_notifies(controller, clock, notifier):
    controller.start("Acme", "Work")

    clock.advance(minutes=24)
    assert controller.tick() is None
    assert controller.timer.is_running

    clock.advance(minutes=1)
    notification = controller.tick()

    assert notification.kind == NotificationKind.WORK_COMPLETE
    assert controller.current_phase() == PomodoroPhase.AWAITING_ACK
    assert controller.state.pending == PendingTransition.BREAK
    assert controller.timer.state == TimerState.PAUSED
    assert notifier.sent == [(NOTIFICATION_TITLE, WORK_COMPLETE_MESSAGE)]

    # Nothing more until acknowledged
    clock.advance(minutes=30)
    assert controller.tick() is None
    assert len(notifier.sent) == 1


def test_full_cycle_excludes_break_time(controller, clock, notifier):
    controller.start("Acme", "Work")
    finish_work(controller, clock)

    assert controller.acknowledge() is True
    assert controller.current_phase() == PomodoroPhase.SHORT_BREAK
    assert controller.state.completed_work_cycles == 1
    assert controller.timer.is_paused

    clock.advance(minutes=4)
    assert controller.tick() is None
    clock.advance(minutes=1)
    notification = controller.tick()
    assert notification.kind == NotificationKind.BREAK_COMPLETE
    assert controller.state.pending == PendingTransition.RESUME
    assert notifier.sent[-1] == (NOTIFICATION_TITLE, BREAK_COMPLETE_MESSAGE)

    assert controller.acknowledge() is True
    assert controller.current_phase() == PomodoroPhase.WORKING
    assert controller.timer.is_running

    clock.advance(minutes=10)
    assert controller.stop() == timedelta(minutes=35)
    assert controller.current_phase() == PomodoroPhase.IDLE
    assert controller.state.completed_work_cycles == 0


def test_fourth_cycle_takes_long_break(controller, clock):
    controller.start("Acme", "Work")

    for expected_cycles in (1, 2, 3):
        finish_work(controller, clock)
        controller.acknowledge()
        assert controller.current_phase() == PomodoroPhase.SHORT_BREAK
        assert controller.state.completed_work_cycles == expected_cycles
        finish_break(controller, clock)
        controller.acknowledge()

    assert controller.is_long_break_next()
    finish_work(controller, clock)
    controller.acknowledge()

    assert controller.current_phase() == PomodoroPhase.LONG_BREAK
    assert controller.state.completed_work_cycles == 0
    assert controller.remaining() == timedelta(minutes=15)


def test_manual_pause_does_not_count_towards_work(controller, clock):
    controller.start("Acme", "Work")
    clock.advance(minutes=10)
    controller.pause()
    clock.advance(minutes=30)
    controller.resume()

    clock.advance(minutes=14)
    assert controller.tick() is None
    clock.advance(minutes=1)
    assert controller.tick().kind == NotificationKind.WORK_COMPLETE


def test_resume_is_ignored_during_break(controller, clock):
    controller.start("Acme", "Work")
    finish_work(controller, clock)
    controller.acknowledge()

    assert controller.resume() is False
    assert controller.timer.is_paused
    assert controller.current_phase() == PomodoroPhase.SHORT_BREAK


def test_resume_acknowledges_pending_resume(controller, clock):
    controller.start("Acme", "Work")
    finish_work(controller, clock)
    controller.acknowledge()
    finish_break(controller, clock)

    assert controller.resume() is True
    assert controller.current_phase() == PomodoroPhase.WORKING
    assert controller.timer.is_running


def test_resume_with_break_pending_skips_break(controller, clock):
    controller.start("Acme", "Work")
    finish_work(controller, clock)

    assert controller.resume() is True
    assert controller.current_phase() == PomodoroPhase.WORKING
    assert controller.state.completed_work_cycles == 0
    assert controller.remaining() == timedelta(minutes=25)


def test_acknowledge_without_pending_is_noop(controller):
    assert controller.acknowledge() is False
    controller.start("Acme", "Work")
    assert controller.acknowledge() is False
    assert controller.current_phase() == PomodoroPhase.WORKING


def test_disable_mid_break_leaves_timer_paused(controller, clock):
    controller.start("Acme", "Work")
    finish_work(controller, clock)
    controller.acknowledge()

    controller.set_enabled(False)

    assert controller.current_phase() == PomodoroPhase.IDLE
    assert controller.state.completed_work_cycles == 0
    assert controller.timer.is_paused

    assert controller.resume() is True
    assert controller.timer.is_running


@pytest.mark.parametrize("pending", [PendingTransition.BREAK, PendingTransition.RESUME])
def test_disable_while_awaiting_ack_leaves_timer_paused(controller, clock, pending):
    controller.start("Acme", "Work")
    finish_work(controller, clock)
    if pending == PendingTransition.RESUME:
        controller.acknowledge()
        finish_break(controller, clock)
    assert controller.current_phase() == PomodoroPhase.AWAITING_ACK
    assert controller.state.pending == pending

    controller.set_enabled(False)

    assert controller.current_phase() == PomodoroPhase.IDLE
    assert controller.state.pending is None
    assert controller.timer.is_paused
    assert controller.acknowledge() is False

    # Nothing restarts on its own; explicit resume and stop still work
    clock.advance(minutes=10)
    assert controller.tick() is None
    assert controller.timer.is_paused

    assert controller.resume() is True
    clock.advance(minutes=5)
    assert controller.stop() == timedelta(minutes=30)


def test_enable_with_running_timer_starts_work_period(clock):
    controller = PomodoroController(Timer(clock), PomodoroConfig(), clock=clock)
    controller.start("Acme", "Work")
    assert controller.current_phase() == PomodoroPhase.IDLE

    clock.advance(minutes=40)
    controller.set_enabled(True)

    assert controller.current_phase() == PomodoroPhase.WORKING
    assert controller.remaining() == timedelta(minutes=25)


def test_disabled_controller_passes_through(clock):
    controller = PomodoroController(Timer(clock), PomodoroConfig(enabled=False), clock=clock)
    controller.start("Acme", "Work")

    clock.advance(hours=3)
    assert controller.tick() is None
    assert controller.current_phase() == PomodoroPhase.IDLE
    assert controller.remaining() is None
    assert controller.stop() == timedelta(hours=3)


def test_restarts_last_project_when_timer_was_stopped(controller, clock):
    controller.start("Acme", "Homepage")
    finish_work(controller, clock)
    controller.acknowledge()

    # Stopped underneath the controller during the break
    controller.timer.stop()
    finish_break(controller, clock)

    assert controller.acknowledge() is True
    assert controller.timer.is_running
    assert controller.timer.session.project == "Acme"
    assert controller.timer.session.description == "Homepage"


def test_enabled_config_requires_positive_durations():
    with pytest.raises(ValidationError):
        PomodoroConfig(enabled=True, work_minutes=0)

    # Zero is fine while disabled
    assert PomodoroConfig(enabled=False, work_minutes=0).work_minutes == 0
