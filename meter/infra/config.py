"""
Configuration management using Pydantic Settings.

Architecture Decision: Why pydantic-settings?
- Type-safe configuration with validation
- Supports multiple sources (YAML, env vars, defaults)
- Easy to test with different configurations
"""

from pathlib import Path
from typing import Optional
import yaml

from pydantic_settings import BaseSettings, SettingsConfigDict
from meter.domain.models import UserPreferences


class Settings(BaseSettings):
    """
    Application settings with multiple sources:
    1. Default values (hardcoded)
    2. YAML config file
    3. Environment variables (highest priority)
    """
    model_config = SettingsConfigDict(
        env_prefix='METER_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # Application paths
    app_name: str = "Meter"
    config_dir: Optional[Path] = None
    data_dir: Optional[Path] = None
    invoice_dir: Optional[Path] = None

    # Database
    database_url: Optional[str] = None

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    # User preferences
    preferences: UserPreferences = UserPreferences()

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._init_paths()
        self._load_yaml_config()

    def _init_paths(self):
        """Initialize default paths (XDG style on every platform)"""
        if self.config_dir is None:
            self.config_dir = Path.home() / '.config' / self.app_name.lower()

        if self.data_dir is None:
            self.data_dir = Path.home() / '.local' / 'share' / self.app_name.lower()

        if self.invoice_dir is None:
            self.invoice_dir = Path.home() / self.app_name.lower() / 'invoices'

        if self.log_file is None:
            self.log_file = self.data_dir / 'meter.log'

        # Create directories if they don't exist
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config_file(self) -> Path:
        return self.config_dir / "settings.yaml"

    def _load_yaml_config(self):
        """Load preferences from the YAML file in the config directory"""
        if self.config_file.exists():
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
                if config_data:
                    # Update preferences with YAML data
                    self.preferences = UserPreferences(**config_data)

    def save_preferences(self):
        """Save current preferences to YAML file"""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.preferences.model_dump(mode='json'), f, default_flow_style=False)

    def get_db_url(self) -> str:
        """Get database URL, creating default if not set"""
        if self.database_url:
            return self.database_url

        db_path = self.data_dir / 'meter.db'
        return f"sqlite+aiosqlite:///{db_path}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from file"""
    global _settings
    _settings = Settings()
    return _settings
