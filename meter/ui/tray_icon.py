"""
System Tray Application - Main UI entry point.

Architecture Decision: Presentation Layer
This layer only handles UI logic. Business logic is delegated to the
TrackingService, so the tray and the CLI drive the same timer.
"""

import sys
import asyncio
import logging
from typing import List, Optional
from PySide6.QtWidgets import QApplication, QSystemTrayIcon, QMenu, QMessageBox
from PySide6.QtGui import QIcon, QPixmap, QColor, QAction
from PySide6.QtCore import QTimer

from meter.domain.errors import MeterError
from meter.domain.models import PendingTransition, PomodoroPhase, TimerState
from meter.infra.config import get_settings
from meter.infra.db import dispose_engine, init_db
from meter.infra.logging_config import configure_logging
from meter.infra.repository import SettingsRepository, TimeEntryRepository
from meter.services.notification_service import NotificationSink
from meter.services.tracking_service import TrackingService, TrackingStatus
from meter.utils import format_elapsed
from .dialogs import StartTimerDialog
from .settings_dialog import SettingsDialog

logger = logging.getLogger(__name__)

RECENT_PROJECT_LIMIT = 8

PHASE_LABELS = {
    PomodoroPhase.WORKING: "Work",
    PomodoroPhase.SHORT_BREAK: "Short break",
    PomodoroPhase.LONG_BREAK: "Long break",
}


class TrayNotifier(NotificationSink):
    """Shows Pomodoro notifications as tray balloons"""

    def __init__(self, tray_icon: QSystemTrayIcon):
        self.tray_icon = tray_icon

    def notify(self, title: str, message: str) -> None:
        self.tray_icon.showMessage(title, message, QSystemTrayIcon.Information, 10000)


class SystemTrayApp:
    """
    Main application class managing the system tray icon and coordination.

    A QTimer polls the tracking service; every menu action is one service call.
    """

    def __init__(self):
        self.app = QApplication(sys.argv)
        self.app.setQuitOnLastWindowClosed(False)  # Keep running when dialogs close

        app_icon = self._create_icon()
        self.app.setWindowIcon(app_icon)

        # Settings
        self.settings = get_settings()
        configure_logging(self.settings)
        self.prefs = self.settings.preferences

        # Event loop for async operations
        self.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self.loop)

        # Setup UI
        self.tray_icon = QSystemTrayIcon(app_icon, self.app)
        self.tray_icon.setToolTip("Meter")

        # Services
        self.entry_repo = TimeEntryRepository()
        self.tracking = TrackingService(
            notifier=TrayNotifier(self.tray_icon),
            entry_repo=self.entry_repo,
            settings_repo=SettingsRepository(seed_config=self.prefs.pomodoro),
            default_description=self.prefs.default_description,
            default_currency=self.prefs.default_currency,
        )

        self.status: Optional[TrackingStatus] = None
        self.recent_projects: List[str] = []
        self._menu_key = None
        self.status_action: Optional[QAction] = None
        self.settings_window: Optional[SettingsDialog] = None

        self.tray_icon.activated.connect(self._on_tray_icon_activated)
        self.tray_icon.show()

        # Poll timer
        self.poll_timer = QTimer()
        self.poll_timer.setInterval(self.prefs.tick_interval_ms)
        self.poll_timer.timeout.connect(self._on_tick)

        # Initialize on startup
        QTimer.singleShot(0, self._async_init)

    def _create_icon(self):
        """Plain green square icon"""
        pixmap = QPixmap(16, 16)
        pixmap.fill(QColor("green"))
        return QIcon(pixmap)

    def _async_init(self):
        """Async initialization tasks"""
        try:
            self.loop.run_until_complete(init_db())
            self._refresh_recent_projects()
            self._on_tick()
            self.poll_timer.start()
        except Exception as e:
            logger.exception("Initialization failed")
            QMessageBox.critical(None, "Initialization Error",
                                 f"Failed to initialize application:\n{e}")

    def _refresh_recent_projects(self):
        self.recent_projects = self.loop.run_until_complete(
            self.entry_repo.recent_projects(RECENT_PROJECT_LIMIT)
        )
        self._menu_key = None

    def _on_tick(self):
        """Poll for Pomodoro phase expiry and refresh the tray"""
        try:
            self.loop.run_until_complete(self.tracking.tick())
            self.status = self.loop.run_until_complete(self.tracking.status())
        except MeterError as e:
            logger.warning(f"Tick failed: {e}")
            return

        self.update_tooltip()
        key = (self.status.state, self.status.phase, self.status.pending,
               self.status.pomodoro_enabled, tuple(self.recent_projects))
        if key != self._menu_key:
            self._menu_key = key
            self.setup_menu()

    def _status_text(self) -> str:
        status = self.status
        if status is None or (status.state == TimerState.IDLE and status.phase == PomodoroPhase.IDLE):
            return "No timer running"

        parts = []
        if status.state != TimerState.IDLE:
            elapsed = format_elapsed(status.elapsed, self.prefs.show_seconds_in_tray)
            prefix = "Paused: " if status.state == TimerState.PAUSED else ""
            parts.append(f"{prefix}{status.project} {elapsed}")

        if status.phase in PHASE_LABELS and status.remaining is not None:
            remaining = format_elapsed(status.remaining, self.prefs.show_seconds_in_tray)
            parts.append(f"{PHASE_LABELS[status.phase]} {remaining} left")
        elif status.phase == PomodoroPhase.AWAITING_ACK:
            if status.pending == PendingTransition.BREAK:
                parts.append("Break time!")
            else:
                parts.append("Break over")
        return " | ".join(parts)

    def update_tooltip(self):
        """Update the tray icon tooltip and the menu status line with current time"""
        text = self._status_text()
        self.tray_icon.setToolTip(f"Meter - {text}")
        if self.status_action is not None:
            self.status_action.setText(text)

    def setup_menu(self):
        """Setup the system tray context menu"""
        menu = QMenu()
        status = self.status

        status_action = QAction(self._status_text(), self.app)
        status_action.setEnabled(False)
        menu.addAction(status_action)
        self.status_action = status_action

        menu.addSeparator()

        is_idle = status is None or status.state == TimerState.IDLE

        if is_idle:
            start_action = QAction("Start...", self.app)
            start_action.triggered.connect(self._show_start_dialog)
            menu.addAction(start_action)

            if self.recent_projects:
                recent_menu = menu.addMenu("Recent Projects")
                for project in self.recent_projects:
                    action = QAction(project, self.app)
                    action.triggered.connect(lambda checked=False, p=project: self._start_sync(p))
                    recent_menu.addAction(action)
        else:
            if status.state == TimerState.RUNNING:
                pause_action = QAction("Pause", self.app)
                pause_action.triggered.connect(self._pause_sync)
                menu.addAction(pause_action)
            else:
                resume_action = QAction("Resume", self.app)
                resume_action.triggered.connect(self._resume_sync)
                menu.addAction(resume_action)

            stop_action = QAction("Stop", self.app)
            stop_action.triggered.connect(self._stop_sync)
            menu.addAction(stop_action)

        menu.addSeparator()

        # Pomodoro
        enabled = status is not None and status.pomodoro_enabled
        pomodoro_action = QAction("Pomodoro Mode", self.app)
        pomodoro_action.setCheckable(True)
        pomodoro_action.setChecked(enabled)
        pomodoro_action.triggered.connect(self._toggle_pomodoro)
        menu.addAction(pomodoro_action)

        if status is not None and status.phase == PomodoroPhase.AWAITING_ACK:
            label = "Start Break" if status.pending == PendingTransition.BREAK else "Resume Work"
            ack_action = QAction(label, self.app)
            ack_action.triggered.connect(self._acknowledge_sync)
            menu.addAction(ack_action)

        menu.addSeparator()

        settings_action = QAction("Settings...", self.app)
        settings_action.triggered.connect(self._show_settings)
        menu.addAction(settings_action)

        menu.addSeparator()

        # Quit Action
        quit_action = QAction("Quit", self.app)
        quit_action.triggered.connect(self._quit_application)
        menu.addAction(quit_action)

        # Keep a reference; the tray does not own the menu
        self.menu = menu
        self.tray_icon.setContextMenu(menu)

    def _call(self, coro, error_title: str):
        """Run a service call and refresh; domain errors become a warning box"""
        try:
            return self.loop.run_until_complete(coro)
        except (MeterError, ValueError) as e:
            QMessageBox.warning(None, error_title, str(e))
            return None
        finally:
            self._on_tick()

    def _show_start_dialog(self):
        dialog = StartTimerDialog(
            self.recent_projects,
            default_description=self.prefs.default_description,
            last_project=self.recent_projects[0] if self.recent_projects else None,
        )
        if dialog.exec():
            self._start_sync(dialog.project, dialog.description)

    def _start_sync(self, project: str, description: Optional[str] = None):
        """Synchronous wrapper for starting a timer"""
        self._call(self.tracking.start(project, description), "Failed to start timer")

    def _pause_sync(self):
        self._call(self.tracking.pause(), "Failed to pause timer")

    def _resume_sync(self):
        self._call(self.tracking.resume(), "Failed to resume timer")

    def _stop_sync(self):
        """Synchronous wrapper for stopping a timer"""
        entry = self._call(self.tracking.stop(), "Failed to stop timer")
        if entry:
            self._refresh_recent_projects()
            self.tray_icon.showMessage(
                "Timer Stopped",
                f"Recorded {entry.duration_hours:.2f} hrs for {entry.project}",
                QSystemTrayIcon.Information,
                3000
            )

    def _acknowledge_sync(self):
        self._call(self.tracking.acknowledge(), "Pomodoro")

    def _toggle_pomodoro(self, checked: bool):
        self._call(self.tracking.set_pomodoro_enabled(checked), "Pomodoro")

    def _show_settings(self):
        """Show settings dialog"""
        if not self.settings_window:
            self.settings_window = SettingsDialog(self.tracking, self.loop)
            self.settings_window.pomodoro_changed.connect(lambda enabled: self._on_tick())
        self.settings_window.show()
        self.settings_window.activateWindow()

    def _on_tray_icon_activated(self, reason):
        """Handle tray icon click"""
        if reason == QSystemTrayIcon.DoubleClick:
            status = self.status
            if status is None or status.state == TimerState.IDLE:
                self._show_start_dialog()
            elif status.state == TimerState.RUNNING:
                self._pause_sync()
            else:
                self._resume_sync()

    def _quit_application(self):
        """Quit the application. A running timer keeps its checkpoint for the next start."""
        self.poll_timer.stop()
        self.loop.run_until_complete(dispose_engine())
        self.loop.close()
        self.app.quit()

    def run(self) -> int:
        """Run the application"""
        return self.app.exec()
