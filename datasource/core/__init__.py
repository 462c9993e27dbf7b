"""
Core Module

Provides functionality shared across the package:
- Structured logging
- Custom exceptions

Usage:
======
    from datasource.core.logging import logger, get_logger
    from datasource.core.exceptions import EntityNotFoundError

    logger.info("Repository ready", repository="PostRepository")
"""

from datasource.core.logging import (
    logger,
    get_logger,
    setup_logging,
)
from datasource.core.exceptions import (
    DataSourceException,
    EntityNotResolvableError,
    EntityNotFoundError,
    UnsupportedOperationError,
    QueryError,
)

__all__ = [
    # Logging
    "logger",
    "get_logger",
    "setup_logging",
    # Exceptions
    "DataSourceException",
    "EntityNotResolvableError",
    "EntityNotFoundError",
    "UnsupportedOperationError",
    "QueryError",
]
