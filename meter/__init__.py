"""Meter - time tracking with Pomodoro cycles and invoicing."""

__version__ = "0.1.0"
