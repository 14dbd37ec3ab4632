"""Infrastructure layer - Database, configuration and persistence"""

from .db import DatabaseEngine, dispose_engine, get_engine, init_db
from .models import ClientModel, ProjectModel, SettingModel, TimeEntryModel

__all__ = [
    "DatabaseEngine", "dispose_engine", "get_engine", "init_db",
    "ClientModel", "ProjectModel", "SettingModel", "TimeEntryModel",
]
