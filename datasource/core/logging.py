"""
Logging Configuration

Structured logging for repositories, the resolver and cache stores.

Log Output:
===========
Development:
    2024-01-15 10:30:00 [info     ] Model resolved by convention   component=resolver repository=PostsRepository model=Post

Production (JSON):
    {"timestamp": "2024-01-15T10:30:00", "level": "info", "component": "resolver", "event": "Model resolved by convention", ...}

Every event carries a "component" field taken from the emitting module
(datasource.repositories.cache_gate → cache_gate), so cache and
resolution logs can be filtered without parsing logger names.

Levels:
=======
Only the "datasource" logger tree is leveled from DATASOURCE_LOG_LEVEL;
the host application's own loggers are left alone.

Usage:
======
    from datasource.core.logging import get_logger

    logger = get_logger(__name__)
    logger.debug("Cache hit", key=key)
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.typing import EventDict, Processor

from datasource.config.settings import settings

ROOT_LOGGER_NAME = "datasource"


def add_component(_: Any, __: str, event_dict: EventDict) -> EventDict:
    """Add the last segment of a datasource logger name as "component"."""
    name = event_dict.get("logger")
    if isinstance(name, str) and name.startswith(f"{ROOT_LOGGER_NAME}."):
        event_dict.setdefault("component", name.rsplit(".", 1)[-1])
    return event_dict


def build_processors(json_logs: bool) -> list[Processor]:
    """
    Processor chain for structlog.

    Args:
        json_logs: Render JSON lines instead of colored console output

    Returns:
        Processors ending in the chosen renderer
    """
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_component,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        return processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return processors + [structlog.dev.ConsoleRenderer(colors=True)]


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> None:
    """
    Configure structured logging.

    Args:
        level: Level for the datasource logger tree, defaults to LOG_LEVEL
        json_logs: JSON output, defaults to on outside development

    Called automatically when this module is imported.
    """
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger(ROOT_LOGGER_NAME).setLevel((level or settings.LOG_LEVEL).upper())

    if json_logs is None:
        json_logs = not settings.is_development

    structlog.configure(
        processors=build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, usually the module's __name__

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name or ROOT_LOGGER_NAME)


setup_logging()

logger = get_logger(ROOT_LOGGER_NAME)
