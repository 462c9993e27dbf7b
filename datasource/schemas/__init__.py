from datasource.schemas.common import Page, PaginationMeta, PaginationParams

__all__ = ["Page", "PaginationMeta", "PaginationParams"]
