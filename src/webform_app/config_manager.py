"""Configuration Manager for the webform record controller."""
import os
from pydantic import Field
from pydantic_settings import BaseSettings
from appdirs import user_data_dir


def default_db_path():
    """Default record store location in the user's data directory."""
    return os.path.join(user_data_dir('webform-records', 'webform'), 'records.db')


class ConfigManager(BaseSettings):
    """Manages application configuration settings using Pydantic BaseSettings."""

    # Storage settings
    db_path: str = Field(default_factory=default_db_path)
    export_dir: str = ''

    # Form settings
    enketo_id: str = ''
    offline: bool = True
    draft_enabled: bool = True

    # Submission settings
    api_base_url: str = 'http://localhost:8005'
    submission_endpoint: str = '/submission'
    login_url: str = '/login'
    api_timeout: float = 30.0
    api_max_retries: int = 3
    api_retry_delay: float = 1.0
    return_url: str = ''
    redirect_delay: float = 1.5  # seconds
    support_email: str = 'support@example.org'

    # Auto-save settings
    auto_save_delay: float = 2.0  # seconds

    # Upload queue settings
    upload_delay: float = 5.0  # seconds between final save and queue flush
    upload_max_retries: int = 5
    upload_base_backoff_seconds: float = 60.0

    # Feedback duration hints (seconds)
    feedback_duration_short: float = 2.0
    feedback_duration_medium: float = 3.0
    feedback_duration_long: float = 7.0

    class Config:
        env_prefix = 'WEBFORM_'
        case_sensitive = False

    def get(self, key, default=None):
        """Get a configuration value."""
        return getattr(self, key, default)

    def set(self, key, value):
        """Set a configuration value."""
        setattr(self, key, value)

    def get_all(self):
        """Get all configuration values as dictionary."""
        return self.model_dump()

    @property
    def submission_url(self):
        return f"{self.api_base_url.rstrip('/')}{self.submission_endpoint}"
