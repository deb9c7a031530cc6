"""Logging configuration setup.

Builds a dictConfig with a single console handler on the root logger; library
loggers ("tree.*", "pathtree.*") propagate to it. Applications that already
configure logging never need to call anything here.
"""

from __future__ import annotations

import logging
import logging.config
from typing import TYPE_CHECKING, Any

logger = logging.getLogger(__name__)
_LOGGING_INITIALIZED = False

if TYPE_CHECKING:
    from pathtree.core.settings.logs import LoggingSettings


def setup_logging(
    log_settings: LoggingSettings | None = None,
    *,
    force: bool = False,
    **configure_kwargs: Any,
) -> None:
    """Ensure logging is configured once.

    Args:
        log_settings: Optional logging settings instance. If omitted, settings
            are loaded via get_logging_settings().
        force: Reconfigure logging even if it was already initialized.
        **configure_kwargs: Explicit overrides for configure_logging().
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED and not force:
        return

    settings_obj = log_settings
    if settings_obj is None:
        from pathtree.core.settings import get_logging_settings

        settings_obj = get_logging_settings()

    log_config = settings_obj.to_logging_kwargs()
    if configure_kwargs:
        log_config = {**log_config, **configure_kwargs}

    configure_logging(**log_config)
    _LOGGING_INITIALIZED = True


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    console_enabled: bool = True,
    tree_level: str | None = None,
    capture_warnings: bool = True,
    **kwargs: Any,
) -> None:
    """Configure logging with dictConfig.

    Args:
        log_level: Root logger level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_logs: Enable JSONL structured logging on the console handler.
        console_enabled: Enable console/stderr logging.
        tree_level: Level for the "tree" logger hierarchy. If None, uses log_level.
        capture_warnings: Forward Python warnings to logging system.
        **kwargs: Ignored extra settings.

    Example:
        from pathtree.core.settings import get_logging_settings

        configure_logging(**get_logging_settings().to_logging_kwargs())
    """
    if capture_warnings:
        logging.captureWarnings(True)

    config = build_logging_config(
        log_level=log_level,
        json_logs=json_logs,
        console_enabled=console_enabled,
        tree_level=tree_level,
    )
    logging.config.dictConfig(config)

    if kwargs:
        logger.debug("Unused logging kwargs supplied: %s", ", ".join(sorted(kwargs)))


def build_logging_config(
    log_level: str,
    json_logs: bool,
    console_enabled: bool,
    tree_level: str | None = None,
) -> dict[str, Any]:
    """Build the dictConfig mapping used by configure_logging()."""
    formatters: dict[str, Any] = {
        "json": {"()": "pathtree.infra.logging.formatters.JSONFormatter"},
        "plain": {"format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s"},
    }

    handlers: dict[str, Any] = {}
    if console_enabled:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "json" if json_logs else "plain",
            "stream": "ext://sys.stderr",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": {
            "tree": {"level": tree_level or log_level, "propagate": True},
        },
        "root": {"level": log_level, "handlers": list(handlers)},
    }


__all__ = ["build_logging_config", "configure_logging", "setup_logging"]
