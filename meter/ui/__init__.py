"""UI layer - PySide6 GUI components"""

from .tray_icon import SystemTrayApp
from .dialogs import StartTimerDialog
from .settings_dialog import SettingsDialog

__all__ = ["SystemTrayApp", "StartTimerDialog", "SettingsDialog"]
