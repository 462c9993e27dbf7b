"""
Model Base Classes

Usage:
======
    from datasource.models import Base, SoftDeleteMixin

    class Article(Base, SoftDeleteMixin):
        ...
"""

from datasource.models.base import (
    Base,
    SoftDeleteMixin,
    is_entity_type,
    supports_soft_deletes,
)

__all__ = [
    "Base",
    "SoftDeleteMixin",
    "is_entity_type",
    "supports_soft_deletes",
]
