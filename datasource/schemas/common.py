"""
Common Schemas

Pagination schemas returned by BaseRepository.paginate().

Schema Types:
=============
- PaginationParams: Validated page / per_page input
- PaginationMeta: Page metadata (total, total_pages, ...)
- Page[T]: Items of one page plus its metadata

Usage:
======
    page = repo.order_by("id").paginate(per_page=20, page=2)
    page.items                   # list of models
    page.pagination.total_pages  # computed from total and per_page
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field


DataT = TypeVar("DataT")


# ═══════════════════════════════════════════════════════════════════════════════
# PAGINATION
# ═══════════════════════════════════════════════════════════════════════════════


class PaginationParams(BaseModel):
    """
    Pagination parameters.

    Example:
        params = PaginationParams(page=2, per_page=15)
        stmt = stmt.offset(params.offset).limit(params.limit)
    """

    page: int = Field(default=1, ge=1, description="Page number (1-indexed)")
    per_page: int = Field(default=15, ge=1, description="Items per page")

    @property
    def offset(self) -> int:
        """Calculate offset for database query."""
        return (self.page - 1) * self.per_page

    @property
    def limit(self) -> int:
        """Get limit for database query."""
        return self.per_page


class PaginationMeta(BaseModel):
    """Pagination metadata for a page of results."""

    page: int = Field(description="Current page number")
    per_page: int = Field(description="Items per page")
    total: int = Field(description="Total number of items")
    total_pages: int = Field(description="Total number of pages")

    @classmethod
    def create(cls, page: int, per_page: int, total: int) -> "PaginationMeta":
        """
        Create pagination meta from parameters.

        Automatically calculates total_pages.
        """
        total_pages = (total + per_page - 1) // per_page if per_page > 0 else 0
        return cls(
            page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
        )

    @property
    def has_more_pages(self) -> bool:
        return self.page < self.total_pages


class Page(BaseModel, Generic[DataT]):
    """
    One page of repository results.

    Items are ORM instances, so arbitrary types are allowed.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[DataT]
    pagination: PaginationMeta
