"""
Datasource

Repository layer over SQLAlchemy with model auto-resolution and
tag-invalidated result caching.

    from datasource import BaseRepository, session_scope
"""

from datasource.core.exceptions import (
    DataSourceException,
    EntityNotFoundError,
    EntityNotResolvableError,
    QueryError,
    UnsupportedOperationError,
)
from datasource.db.session import session_scope
from datasource.repositories.base import BaseRepository
from datasource.schemas.common import Page

__version__ = "1.0.0"

__all__ = [
    "BaseRepository",
    "Page",
    "session_scope",
    "DataSourceException",
    "EntityNotFoundError",
    "EntityNotResolvableError",
    "QueryError",
    "UnsupportedOperationError",
]
