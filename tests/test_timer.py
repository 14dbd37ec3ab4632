"""
Tests for the Timer state machine.
"""

from datetime import timedelta

import pytest

from meter.domain.errors import AlreadyRunningError, NegativeDurationError, NotRunningError
from meter.domain.models import TimerState
from meter.services.timer_service import Timer


def test_start_stop_measures_wall_time(clock):
    timer = Timer(clock)
    session = timer.start("Acme", "Homepage")

    assert session.project == "Acme"
    assert session.started_at == clock.now()
    assert timer.state == TimerState.RUNNING

    clock.advance(minutes=90)
    assert timer.stop() == timedelta(minutes=90)
    assert timer.is_idle
    assert timer.session is None


def test_paused_time_is_excluded(clock):
    """Run 10 minutes, pause 40, run 10 more: 20 minutes billable"""
    timer = Timer(clock)
    timer.start("Acme", "Work")

    clock.advance(minutes=10)
    assert timer.pause() is True
    assert timer.is_paused

    clock.advance(minutes=40)
    assert timer.resume() is True

    clock.advance(minutes=10)
    assert timer.stop() == timedelta(minutes=20)


def test_elapsed_so_far_matches_stop(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")
    clock.advance(minutes=5)
    timer.pause()
    clock.advance(minutes=3)
    timer.resume()
    clock.advance(minutes=7)

    peek = timer.elapsed_so_far()
    assert timer.state == TimerState.RUNNING
    assert peek == timer.stop()


def test_elapsed_frozen_while_paused(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")
    clock.advance(minutes=15)
    timer.pause()

    clock.advance(hours=2)
    assert timer.elapsed_so_far() == timedelta(minutes=15)


def test_elapsed_zero_when_idle(clock):
    assert Timer(clock).elapsed_so_far() == timedelta(0)


def test_stop_while_paused_resumes_implicitly(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")
    clock.advance(minutes=30)
    timer.pause()
    clock.advance(minutes=30)

    assert timer.stop() == timedelta(minutes=30)


def test_start_twice_raises(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")

    with pytest.raises(AlreadyRunningError) as exc:
        timer.start("Other", "Work")
    assert exc.value.project == "Acme"

    # Paused sessions also block a new start
    timer.pause()
    with pytest.raises(AlreadyRunningError):
        timer.start("Other", "Work")


def test_idle_operations(clock):
    timer = Timer(clock)

    with pytest.raises(NotRunningError):
        timer.stop()
    with pytest.raises(NotRunningError):
        timer.pause()
    assert timer.resume() is False


def test_pause_and_resume_are_idempotent(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")

    assert timer.resume() is False
    assert timer.pause() is True
    paused_at = timer.session.paused_at

    clock.advance(minutes=5)
    assert timer.pause() is False
    assert timer.session.paused_at == paused_at


def test_negative_duration_discards_session(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")
    clock.advance(hours=-1)

    with pytest.raises(NegativeDurationError):
        timer.stop()
    assert timer.is_idle


def test_backwards_clock_during_pause_never_shrinks_pause_total(clock):
    timer = Timer(clock)
    timer.start("Acme", "Work")
    clock.advance(minutes=20)
    timer.pause()
    clock.advance(minutes=-5)
    timer.resume()

    assert timer.session.accumulated_pause == timedelta(0)


def test_restores_checkpointed_session(clock):
    first = Timer(clock)
    session = first.start("Acme", "Work")
    clock.advance(minutes=12)

    second = Timer(clock, session=session.model_copy(deep=True))
    assert second.is_running
    assert second.elapsed_so_far() == timedelta(minutes=12)
