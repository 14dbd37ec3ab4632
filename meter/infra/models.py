"""
SQLAlchemy ORM models.
Separated from db.py for cleaner imports.
"""

from .db import Base, ClientModel, ProjectModel, SettingModel, TimeEntryModel

__all__ = ["Base", "ClientModel", "ProjectModel", "SettingModel", "TimeEntryModel"]
