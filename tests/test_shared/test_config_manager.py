"""Tests for configuration manager."""
import pytest
from pydantic import ValidationError
from src.webform_app.config_manager import ConfigManager, default_db_path


class TestConfigManager:
    """Test configuration manager."""

    def test_default_values(self):
        """Test that default values are set correctly."""
        config = ConfigManager()
        assert config.get('offline') is True
        assert config.get('auto_save_delay') == 2.0
        assert config.get('upload_delay') == 5.0
        assert config.get('db_path') == default_db_path()

    def test_environment_override(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv('WEBFORM_API_TIMEOUT', '10.0')
        monkeypatch.setenv('WEBFORM_OFFLINE', 'false')
        monkeypatch.setenv('webform_enketo_id', 'abc123')

        config = ConfigManager()
        assert config.get('api_timeout') == 10.0
        assert config.get('offline') is False
        assert config.get('enketo_id') == 'abc123'

    def test_invalid_env_values(self, monkeypatch):
        """Test that invalid environment values are rejected."""
        monkeypatch.setenv('WEBFORM_API_TIMEOUT', 'invalid')

        with pytest.raises(ValidationError):
            ConfigManager()

    def test_get_with_default(self):
        """Test get method with default values."""
        config = ConfigManager()
        assert config.get('nonexistent_key', 'default') == 'default'
        assert config.get('api_timeout', 'ignored') == 30.0

    def test_set_value(self):
        """Test setting configuration values."""
        config = ConfigManager()
        config.set('return_url', 'https://example.org/done')
        assert config.get('return_url') == 'https://example.org/done'

    def test_submission_url(self):
        config = ConfigManager(api_base_url='https://forms.example.org/', submission_endpoint='/submission')
        assert config.submission_url == 'https://forms.example.org/submission'

    def test_get_all(self):
        """Test getting all configuration values."""
        config = ConfigManager()
        all_config = config.get_all()
        assert isinstance(all_config, dict)
        assert 'db_path' in all_config
        assert 'upload_max_retries' in all_config
