"""Logging infrastructure.

Basic usage:
    import logging

    from pathtree.infra.logging import get_lazy_logger, setup_logging

    setup_logging()  # LOG_LEVEL / LOG_TREE_LEVEL environment variables

    logger = logging.getLogger(__name__)
    lazy_logger = get_lazy_logger(__name__)
    lazy_logger.debug(lambda: f"Expensive: {dump(rows)}")  # Only runs if DEBUG enabled
"""

from pathtree.infra.logging.config import (
    build_logging_config,
    configure_logging,
    setup_logging,
)
from pathtree.infra.logging.formatters import JSONFormatter
from pathtree.infra.logging.lazy import LazyLoggerAdapter, get_lazy_logger

__all__ = [
    "JSONFormatter",
    "LazyLoggerAdapter",
    "build_logging_config",
    "configure_logging",
    "get_lazy_logger",
    "setup_logging",
]
