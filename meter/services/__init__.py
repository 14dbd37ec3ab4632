"""Services layer - Business logic and use cases"""

from .timer_service import Timer
from .pomodoro_service import PomodoroController
from .entry_recorder import EntryRecorder
from .notification_service import NotificationSink, NullNotifier, LogNotifier, RecordingNotifier
from .tracking_service import TrackingService, TrackingStatus
from .invoice_service import InvoiceService

__all__ = [
    "Timer", "PomodoroController", "EntryRecorder",
    "NotificationSink", "NullNotifier", "LogNotifier", "RecordingNotifier",
    "TrackingService", "TrackingStatus", "InvoiceService",
]
