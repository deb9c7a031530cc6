"""Pydantic Settings v2 configuration.

Settings come from environment variables (and an optional .env file) and are
exposed through cached loaders:

    from pathtree.core.settings import get_tree_settings

    settings = get_tree_settings()
    print(settings.sign_length)

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .loader import clear_settings_cache, get_logging_settings, get_tree_settings
from .logs import LoggingSettings, LogLevel
from .tree import TreeSettings

__all__ = [
    "LogLevel",
    "LoggingSettings",
    "TreeSettings",
    "clear_settings_cache",
    "get_logging_settings",
    "get_tree_settings",
]
