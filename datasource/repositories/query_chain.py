"""
Query Chain

Mutable, chainable query-building state around a SQLAlchemy Select.

SQLAlchemy statements are immutable: every .where() returns a NEW Select.
QueryChain holds the current one inside a QueryChainState and swaps the
whole state on every call, so the chain itself can be used fluently:

    chain = QueryChain(Post)
    chain.where({"status": "published"}).order_by("created_at", "desc")
    chain.statement   # SELECT ... WHERE status = :status ORDER BY created_at DESC

State Machine:
==============
    FRESH ──(where / with_ / order_by / search / when / ...)──▶ COMPOSING
      ▲                                                            │
      └──────────────────────────── reset() ◀──────────────────────┘

Curated Surface:
================
- with_(relations)          → eager load (selectinload), dotted paths allowed
- order_by(column, dir)     → ORDER BY column ASC|DESC
- where(conditions)         → {"col": value} or {"k": ("col", "op", value)}
- search(columns, keyword)  → (col1 LIKE %kw% OR col2 LIKE %kw% ...)
- when(condition, callback) → callback(chain, statement) if condition
- limit / offset / filter   → plain Select equivalents
- with_trashed / only_trashed → soft-delete scopes
- cache_for(seconds)        → per-chain cache TTL
- passthrough(name, ...)    → raw escape hatch to any Select method
"""

import hashlib
import json
import operator
import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import Select, inspect, or_, select
from sqlalchemy.orm import selectinload

from datasource.core.exceptions import QueryError, UnsupportedOperationError
from datasource.models.base import supports_soft_deletes

LIKE_ESCAPE = "\\"

TRASHED_EXCLUDE = "exclude"
TRASHED_INCLUDE = "include"
TRASHED_ONLY = "only"

_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "=": operator.eq,
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "like": lambda column, value: column.like(value),
    "not like": lambda column, value: column.not_like(value),
    "ilike": lambda column, value: column.ilike(value),
    "in": lambda column, value: column.in_(value),
    "not in": lambda column, value: column.not_in(value),
    "is": lambda column, value: column.is_(value),
    "is not": lambda column, value: column.is_not(value),
}


def escape_like(value: str) -> str:
    """
    Escape LIKE metacharacters so user input matches literally.

    Example:
        escape_like("50% off")  # "50\\% off"
    """
    return re.sub(r"([\\%_])", r"\\\1", value)


def _tagged(value: Any) -> Any:
    """JSON stand-in for values json cannot encode, tagged with their type."""
    if isinstance(value, datetime):
        return {"__datetime__": value.isoformat()}
    if isinstance(value, date):
        return {"__date__": value.isoformat()}
    if isinstance(value, time):
        return {"__time__": value.isoformat()}
    if isinstance(value, UUID):
        return {"__uuid__": str(value)}
    if isinstance(value, Decimal):
        return {"__decimal__": str(value)}
    if isinstance(value, Enum):
        return {"__enum__": f"{type(value).__qualname__}.{value.name}"}
    if isinstance(value, (set, frozenset)):
        return {"__set__": sorted((canonical_json(item) for item in value))}
    if isinstance(value, bytes):
        return {"__bytes__": value.hex()}
    return {"__repr__": f"{type(value).__qualname__}:{value!r}"}


def canonical_json(value: Any, sort_keys: bool = False) -> str:
    """
    Deterministic JSON for hashing.

    Values json cannot encode keep their type, so a datetime and its
    ISO string never encode the same.
    """
    return json.dumps(value, default=_tagged, sort_keys=sort_keys, separators=(",", ":"))


def scoped_statement(model: type, statement: Select, trashed: str = TRASHED_EXCLUDE) -> Select:
    """Apply the soft-delete scope of model to statement."""
    if not supports_soft_deletes(model) or trashed == TRASHED_INCLUDE:
        return statement
    if trashed == TRASHED_ONLY:
        return statement.where(model.deleted_at.is_not(None))
    return statement.where(model.deleted_at.is_(None))


@dataclass(frozen=True, eq=False)
class QueryChainState:
    """
    Snapshot of a chain.

    Attributes:
        statement: Select without the soft-delete scope applied
        cache_ttl: Per-chain cache TTL override (None = not set)
        eager: Relationship paths requested through with_()
        trashed: Soft-delete scope (exclude, include, only)
        composed: False until a chain-building call is applied
    """

    statement: Select
    cache_ttl: Optional[int] = None
    eager: tuple[str, ...] = ()
    trashed: str = TRASHED_EXCLUDE
    composed: bool = False


class QueryChain:
    """
    Chainable query state for one model.

    Owned by exactly one repository. Not safe for concurrent use.
    """

    def __init__(self, model: type, repository_name: Optional[str] = None) -> None:
        self.model = model
        self.repository_name = repository_name or f"{model.__name__}Repository"
        self._state = self._fresh_state()

    def _fresh_state(self) -> QueryChainState:
        return QueryChainState(statement=select(self.model))

    def _replace(self, **changes: Any) -> "QueryChain":
        self._state = replace(self._state, composed=True, **changes)
        return self

    # ═══════════════════════════════════════════════════════════════════════════
    # STATE
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def state(self) -> QueryChainState:
        return self._state

    @property
    def statement(self) -> Select:
        """The statement to execute, soft-delete scope included."""
        return scoped_statement(self.model, self._state.statement, self._state.trashed)

    @property
    def cache_ttl(self) -> Optional[int]:
        return self._state.cache_ttl

    @property
    def is_fresh(self) -> bool:
        return not self._state.composed

    def reset(self) -> "QueryChain":
        """Discard the statement and per-chain TTL, starting over from the model."""
        self._state = self._fresh_state()
        return self

    def to_sql(self) -> str:
        return str(self.statement.compile())

    def bindings(self) -> dict[str, Any]:
        return dict(self.statement.compile().params)

    def fingerprint(self, statement: Optional[Select] = None) -> str:
        """
        Content hash of a statement's text, its bound values and eager loads.

        Args:
            statement: Statement to hash, defaults to the chain's statement.
                Terminal reads pass the exact statement they execute.

        Two statements that would run different SQL never share a fingerprint.
        """
        compiled = (self.statement if statement is None else statement).compile()
        payload = "|".join(
            [
                str(compiled),
                canonical_json(compiled.params, sort_keys=True),
                json.dumps(self._state.eager),
            ]
        )
        return hashlib.md5(payload.encode(), usedforsecurity=False).hexdigest()

    # ═══════════════════════════════════════════════════════════════════════════
    # COLUMN HELPERS
    # ═══════════════════════════════════════════════════════════════════════════

    def column(self, name: Any) -> Any:
        """
        Mapped column attribute for name.

        Non-string arguments are assumed to be SQLAlchemy expressions
        already and are returned unchanged.

        Raises:
            QueryError: name is not a mapped column of the model
        """
        if not isinstance(name, str):
            return name
        if name not in inspect(self.model).column_attrs:
            raise QueryError(
                f"{self.model.__name__} has no column '{name}'",
                details={"model": self.model.__name__, "column": name},
            )
        return getattr(self.model, name)

    def compare(self, column: Any, op: str, value: Any) -> Any:
        """Build `column <op> value`."""
        build = _OPERATORS.get(str(op).lower())
        if build is None:
            raise QueryError(
                f"Unsupported operator '{op}'",
                details={"operator": op, "supported": sorted(_OPERATORS)},
            )
        return build(self.column(column), value)

    def apply_conditions(self, statement: Select, conditions: Mapping[str, Any]) -> Select:
        """Apply where() conditions to statement without touching the chain."""
        for key, value in conditions.items():
            if isinstance(value, (list, tuple)) and len(value) == 3:
                column, op, operand = value
                statement = statement.where(self.compare(column, op, operand))
            else:
                statement = statement.where(self.column(key) == value)
        return statement

    def _loader(self, path: str) -> Any:
        entity = self.model
        option: Any = None
        for part in path.split("."):
            relationship = inspect(entity).relationships.get(part)
            if relationship is None:
                raise QueryError(
                    f"{entity.__name__} has no relation '{part}'",
                    details={"model": entity.__name__, "relation": path},
                )
            attribute = getattr(entity, part)
            option = selectinload(attribute) if option is None else option.selectinload(attribute)
            entity = relationship.mapper.class_
        return option

    # ═══════════════════════════════════════════════════════════════════════════
    # CHAIN BUILDING
    # ═══════════════════════════════════════════════════════════════════════════

    def with_(self, relations: Union[str, Sequence[str]]) -> "QueryChain":
        """
        Eager load relationships.

        Example:
            chain.with_(["comments", "comments.author"])
        """
        paths = [relations] if isinstance(relations, str) else list(relations)
        statement = self._state.statement
        for path in paths:
            statement = statement.options(self._loader(path))
        return self._replace(statement=statement, eager=self._state.eager + tuple(paths))

    def order_by(self, column: str, direction: str = "asc") -> "QueryChain":
        direction = direction.lower()
        if direction not in ("asc", "desc"):
            raise QueryError(
                f"Order direction must be 'asc' or 'desc', got '{direction}'",
                details={"direction": direction},
            )
        attribute = self.column(column)
        clause = attribute.asc() if direction == "asc" else attribute.desc()
        return self._replace(statement=self._state.statement.order_by(clause))

    def where(self, conditions: Mapping[str, Any]) -> "QueryChain":
        """
        Add conjunctive filters.

        Example:
            chain.where({
                "status": "published",              # status = 'published'
                "views": ("views", ">=", 100),      # views >= 100
            })
        """
        return self._replace(statement=self.apply_conditions(self._state.statement, conditions))

    def search(self, columns: Sequence[str], keyword: str) -> "QueryChain":
        """
        Match keyword as a literal substring of any of columns.

        SQL Generated:
            WHERE (title LIKE '%kw%' ESCAPE '\\' OR body LIKE '%kw%' ESCAPE '\\')
        """
        if not columns:
            return self

        pattern = f"%{escape_like(keyword)}%"
        clause = or_(*(self.column(name).like(pattern, escape=LIKE_ESCAPE) for name in columns))
        return self._replace(statement=self._state.statement.where(clause))

    def when(self, condition: Any, callback: Callable[["QueryChain", Select], Any]) -> "QueryChain":
        """
        Call callback(chain, statement) when condition is truthy.

        A Select returned by the callback replaces the chain's statement.
        """
        if condition:
            result = callback(self, self._state.statement)
            if isinstance(result, Select):
                self._replace(statement=result)
        return self

    def limit(self, count: int) -> "QueryChain":
        return self._replace(statement=self._state.statement.limit(count))

    def offset(self, count: int) -> "QueryChain":
        return self._replace(statement=self._state.statement.offset(count))

    def filter(self, *criteria: Any) -> "QueryChain":
        """Add raw SQLAlchemy criteria, e.g. filter(Post.views > 10)."""
        return self._replace(statement=self._state.statement.where(*criteria))

    def with_trashed(self) -> "QueryChain":
        self._require_soft_deletes("with_trashed")
        return self._replace(trashed=TRASHED_INCLUDE)

    def only_trashed(self) -> "QueryChain":
        self._require_soft_deletes("only_trashed")
        return self._replace(trashed=TRASHED_ONLY)

    def cache_for(self, seconds: int) -> "QueryChain":
        """Cache this chain's terminal read for seconds, whatever the global settings."""
        return self._replace(cache_ttl=seconds)

    def passthrough(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """
        Call a Select method that is not part of the curated surface.

        Returns:
            The chain when the method returns a Select, otherwise its result

        Raises:
            UnsupportedOperationError: Select has no such public method

        Example:
            chain.passthrough("distinct")
            chain.passthrough("group_by", Post.status)
        """
        method = getattr(self._state.statement, operation, None)
        if operation.startswith("_") or not callable(method):
            raise UnsupportedOperationError(self.repository_name, operation)

        result = method(*args, **kwargs)
        if isinstance(result, Select):
            return self._replace(statement=result)
        return result

    def _require_soft_deletes(self, operation: str) -> None:
        if not supports_soft_deletes(self.model):
            raise UnsupportedOperationError(self.repository_name, operation)
