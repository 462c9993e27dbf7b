"""
Custom Exceptions

Repository-layer exceptions with machine-readable error codes.

Exception Hierarchy:
====================
    DataSourceException (base)
       │
       ├── EntityNotResolvableError   ← Repository has no resolvable model
       ├── EntityNotFoundError        ← find_or_fail / write by id found nothing
       ├── UnsupportedOperationError  ← Operation not available on the query
       └── QueryError                 ← Unknown column, relation or operator

None of these are retried. They surface immediately to the caller.

Usage:
======
    from datasource.core.exceptions import EntityNotFoundError

    raise EntityNotFoundError("Post", post_id)
    # Message: "Post with id '42' not found"
"""

from typing import Any, Optional, Sequence


class DataSourceException(Exception):
    """
    Base exception for all datasource errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or "DATASOURCE_ERROR"
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to a dictionary, e.g. for an API error payload.

        Returns:
            Dictionary with error code, message and details
        """
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


# ═══════════════════════════════════════════════════════════════════════════════
# MODEL RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════════


class EntityNotResolvableError(DataSourceException):
    """
    Raised at repository construction when no model could be determined.

    The message enumerates every remedy and, through the hint, exactly
    which names and imports were tried. Meant for a human fixing a
    misconfigured repository, not for programmatic recovery.

    Example:
        [WidgetRepository] could not resolve a SQLAlchemy model class. ...
        Hint: Tried names: Widget; Checked imports: Post, select
    """

    def __init__(
        self,
        repository: str,
        hint: str = "",
        candidates: Sequence[str] = (),
        imports: Sequence[str] = (),
        model_namespace: str = "app.models",
    ) -> None:
        message = (
            f"[{repository}] could not resolve a SQLAlchemy model class. "
            "Either import the model at module level, name the repository like "
            f"{{Model}}Repository, place the model in {model_namespace}, "
            "or declare `model` on the repository."
        )
        if hint:
            message += f" Hint: {hint}"
        super().__init__(
            message=message,
            error_code="ENTITY_NOT_RESOLVABLE",
            details={
                "repository": repository,
                "candidates": list(candidates),
                "imports": list(imports),
            },
        )
        self.repository = repository
        self.candidates = list(candidates)
        self.imports = list(imports)


# ═══════════════════════════════════════════════════════════════════════════════
# LOOKUP ERRORS
# ═══════════════════════════════════════════════════════════════════════════════


class EntityNotFoundError(DataSourceException):
    """
    Raised when a single-entity lookup finds no row.

    Example:
        raise EntityNotFoundError("Post", 42)
        # Message: "Post with id '42' not found"
    """

    def __init__(self, entity: str, entity_id: Any = None) -> None:
        message = f"{entity} not found"
        if entity_id is not None:
            message = f"{entity} with id '{entity_id}' not found"
        super().__init__(
            message=message,
            error_code="ENTITY_NOT_FOUND",
            details={"entity": entity, "entity_id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


# ═══════════════════════════════════════════════════════════════════════════════
# QUERY ERRORS
# ═══════════════════════════════════════════════════════════════════════════════


class UnsupportedOperationError(DataSourceException):
    """Raised when an operation does not exist on the underlying query."""

    def __init__(self, repository: str, operation: str) -> None:
        super().__init__(
            message=f"{repository}.{operation} does not exist.",
            error_code="UNSUPPORTED_OPERATION",
            details={"repository": repository, "operation": operation},
        )
        self.repository = repository
        self.operation = operation


class QueryError(DataSourceException):
    """Raised for unknown columns, relations, operators or sort directions."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            error_code="INVALID_QUERY",
            details=details,
        )
