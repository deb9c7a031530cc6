"""Unit tests for modular Pydantic Settings v2."""
from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from pathtree.core.settings import (
    LoggingSettings,
    TreeSettings,
    clear_settings_cache,
    get_logging_settings,
    get_tree_settings,
)


@pytest.mark.unit
class TestTreeSettings:
    """Test suite for TreeSettings."""

    def test_tree_settings_defaults(self, monkeypatch):
        """Test TreeSettings default values."""
        for name in ("TREE_SIGN_LENGTH", "TREE_AUTOCOMMIT", "TREE_SOFT_DELETE"):
            monkeypatch.delenv(name, raising=False)

        settings = TreeSettings(_env_file=None)

        assert settings.sign_length == 4
        assert settings.name_separator == "\\"
        assert settings.autocommit is True
        assert settings.soft_delete is True

    def test_tree_settings_env_prefix(self, monkeypatch):
        """Test TREE_ environment variables are picked up."""
        monkeypatch.setenv("TREE_SIGN_LENGTH", "3")
        monkeypatch.setenv("TREE_NAME_SEPARATOR", "/")
        monkeypatch.setenv("TREE_SOFT_DELETE", "false")

        settings = TreeSettings()

        assert settings.sign_length == 3
        assert settings.name_separator == "/"
        assert settings.soft_delete is False

    def test_tree_settings_frozen(self):
        """Test that TreeSettings instances are frozen (immutable)."""
        settings = TreeSettings()

        with pytest.raises(ValidationError):
            settings.sign_length = 2

    @pytest.mark.parametrize("sign_length", [0, 17])
    def test_sign_length_bounds(self, sign_length):
        """Test sign_length must stay within 1..16."""
        with pytest.raises(ValidationError):
            TreeSettings(sign_length=sign_length)

    def test_numeric_separator_rejected(self):
        """Test a separator made of digits is refused."""
        with pytest.raises(ValidationError, match="must not be numeric"):
            TreeSettings(name_separator="0")

    def test_empty_separator_rejected(self):
        with pytest.raises(ValidationError):
            TreeSettings(name_separator="")


@pytest.mark.unit
class TestLoggingSettings:
    """Test suite for LoggingSettings."""

    def test_logging_settings_defaults(self, monkeypatch):
        """Test LoggingSettings default values."""
        monkeypatch.delenv("LOG_LEVEL", raising=False)

        settings = LoggingSettings(_env_file=None)

        assert settings.level == "INFO"
        assert settings.json_logs is True
        assert settings.console_enabled is True
        assert settings.tree_level is None
        assert settings.level_int == logging.INFO

    def test_level_normalized(self):
        """Test log levels are accepted in any case."""
        settings = LoggingSettings(level="debug", tree_level="warning")

        assert settings.level == "DEBUG"
        assert settings.tree_level == "WARNING"
        assert settings.level_int == logging.DEBUG

    def test_invalid_level_rejected(self):
        with pytest.raises(ValidationError):
            LoggingSettings(level="VERBOSE")

    def test_json_alias_and_field_name(self):
        """Test json_logs can be set by its alias or its name."""
        assert LoggingSettings(json=False).json_logs is False
        assert LoggingSettings(json_logs=False).json_logs is False

    def test_to_logging_kwargs(self):
        settings = LoggingSettings(level="ERROR", json_logs=False, tree_level="DEBUG")

        assert settings.to_logging_kwargs() == {
            "log_level": "ERROR",
            "json_logs": False,
            "console_enabled": True,
            "tree_level": "DEBUG",
        }


@pytest.mark.unit
class TestSettingsLoader:
    """Test suite for the cached settings loaders."""

    def test_settings_are_cached(self):
        """Test loaders return the same instance until the cache is cleared."""
        assert get_tree_settings() is get_tree_settings()
        assert get_logging_settings() is get_logging_settings()

    def test_clear_settings_cache_reloads(self, monkeypatch):
        """Test clearing the cache picks up new environment values."""
        first = get_tree_settings()
        monkeypatch.setenv("TREE_SIGN_LENGTH", "6")

        assert get_tree_settings() is first

        clear_settings_cache()
        reloaded = get_tree_settings()

        assert reloaded is not first
        assert reloaded.sign_length == 6
