"""Domain layer - Pure business entities and logic"""

from .models import (
    Client, InvoiceSettings, Notification, NotificationKind, PendingTransition,
    PomodoroConfig, PomodoroPhase, PomodoroState, Project, TimeEntry, TimerCheckpoint,
    TimerState, TimeSession, UserPreferences,
)

__all__ = [
    "Client", "InvoiceSettings", "Notification", "NotificationKind", "PendingTransition",
    "PomodoroConfig", "PomodoroPhase", "PomodoroState", "Project", "TimeEntry",
    "TimerCheckpoint", "TimerState", "TimeSession", "UserPreferences",
]
