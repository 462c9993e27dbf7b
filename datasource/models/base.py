"""
Base Model Classes

Declarative base and mixins for models managed by datasource repositories.

Repositories work with ANY SQLAlchemy mapped class; these classes are a
convenience. The one exception is SoftDeleteMixin: it is the capability
trait repositories check to decide how delete(), force_delete() and
restore() behave.

Model Hierarchy:
================
    Base                    ← SQLAlchemy declarative base
       │
       └── SoftDeleteMixin  ← Soft delete with deleted_at

Usage:
======
    from datasource.models.base import Base, SoftDeleteMixin

    class Article(Base, SoftDeleteMixin):
        __tablename__ = "articles"
        id: Mapped[int] = mapped_column(primary_key=True)
        title: Mapped[str] = mapped_column(String(255))
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, inspect
from sqlalchemy.orm import DeclarativeBase, Mapped, Mapper, mapped_column


class Base(DeclarativeBase):
    """
    Base class for datasource models.

    Example:
        class Post(Base):
            __tablename__ = "posts"
            id: Mapped[int] = mapped_column(primary_key=True)
    """


class SoftDeleteMixin:
    """
    Mixin that adds soft delete capability to models.

    Instead of permanently deleting records, soft delete marks them
    as deleted by setting a timestamp.

    Repository behavior for models using this mixin:
    ================================================
    - Queries exclude rows with deleted_at set (unless with_trashed()
      or only_trashed() is applied to the chain)
    - delete() sets deleted_at
    - force_delete() removes the row
    - restore() clears deleted_at

    Without this mixin, force_delete() is a plain delete and restore()
    returns False.
    """

    # NULL means the record is active; a timestamp means it's deleted
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    @property
    def is_deleted(self) -> bool:
        """True if deleted_at is set."""
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Mark the record as deleted now."""
        self.deleted_at = datetime.now(timezone.utc)

    def restore(self) -> None:
        """Clear the deleted marker."""
        self.deleted_at = None


def is_entity_type(candidate: Any) -> bool:
    """
    Check whether candidate is a mapped SQLAlchemy class.

    Args:
        candidate: Any object (usually something found by name)

    Returns:
        True only for classes with a Mapper
    """
    if not isinstance(candidate, type):
        return False
    mapper = inspect(candidate, raiseerr=False)
    return isinstance(mapper, Mapper)


def supports_soft_deletes(model: type) -> bool:
    """Check whether model carries the soft-delete capability."""
    return issubclass(model, SoftDeleteMixin)
