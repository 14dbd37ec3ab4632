"""Exceptions raised by the tracking core and the services around it."""


class MeterError(Exception):
    """Base exception for all Meter errors. Always recoverable by the caller."""


class TimerError(MeterError):
    """Base exception for invalid timer operations."""


class AlreadyRunningError(TimerError):
    """Raised when starting a timer that is already running or paused."""

    def __init__(self, project: str):
        super().__init__(f"A timer is already running for project '{project}'")
        self.project = project


class NotRunningError(TimerError):
    """Raised when pausing or stopping a timer that is idle."""

    def __init__(self, message: str = "No timer is running"):
        super().__init__(message)


class NegativeDurationError(TimerError):
    """
    Raised when the clock went backwards during a session.

    The session is discarded rather than clamped, so no corrupt billing data is written.
    """

    def __init__(self, elapsed_seconds: float):
        super().__init__(
            f"Session produced a negative duration ({elapsed_seconds:.0f}s); "
            "the system clock changed while tracking and the session was discarded"
        )
        self.elapsed_seconds = elapsed_seconds


class InvalidDurationError(MeterError, ValueError):
    """Raised when a session or manual entry has no measurable duration."""


class NotFoundError(MeterError, LookupError):
    """Raised when a project, client or entry does not exist."""


class InvoiceError(MeterError):
    """Raised when an invoice cannot be produced."""
