"""
Base Repository

Generic repository over a SQLAlchemy model. All application repositories
inherit from this class.

What This Provides:
===================
- Model resolution   → which model this repository manages (once, at construction)
- Query chain        → where / with_ / order_by / search / when / ...
- Terminal reads     → all(), paginate(), first_where()  (cached, reset the chain)
- Direct lookups     → find(), find_or_fail()            (fresh query, no chain)
- Writes             → create(), update(), update_or_create(), upsert(),
                       delete(), force_delete(), restore() (flush the cache)
- Transactions       → transaction(callback)

Declaring The Model:
====================
    class PostRepository(BaseRepository[Post]):      # generic parameter
        pass

    class PostRepository(BaseRepository):
        model = Post                                 # class attribute

    class PostsRepository(BaseRepository):           # naming convention:
        pass                                         # Posts → Post

Query Chain Lifecycle:
======================
┌─────────────────────────────────────────────────────────────────────────────┐
│                                                                             │
│   repo = PostRepository(session)          chain: FRESH                      │
│   repo.where({"status": "draft"})         chain: COMPOSING                  │
│       .order_by("id", "desc")             chain: COMPOSING                  │
│       .all()                              run (cached?) → chain: FRESH      │
│   repo.all()                              unfiltered again                  │
│                                                                             │
└─────────────────────────────────────────────────────────────────────────────┘

flush() vs commit():
====================
Writes call session.flush(), never commit(). Committing is the caller's
job (session_scope(), transaction(), or the request lifecycle).
"""

from typing import Any, Callable, Generic, Mapping, Optional, Sequence, TypeVar, Union, get_args, get_origin

from pydantic import ValidationError
from sqlalchemy import Select, and_, func, inspect, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import Session, load_only

from datasource.adapters import CacheStore, get_cache_store
from datasource.config.settings import Settings, get_settings
from datasource.core.exceptions import EntityNotFoundError, QueryError, UnsupportedOperationError
from datasource.core.logging import get_logger
from datasource.db.session import run_in_transaction
from datasource.models.base import supports_soft_deletes
from datasource.repositories.cache_gate import CacheGate
from datasource.repositories.query_chain import (
    TRASHED_EXCLUDE,
    TRASHED_INCLUDE,
    QueryChain,
    scoped_statement,
)
from datasource.repositories.resolver import EntityResolver, RepositoryDescriptor, get_entity_resolver
from datasource.schemas.common import Page, PaginationMeta, PaginationParams

logger = get_logger(__name__)

ModelType = TypeVar("ModelType")
ResultT = TypeVar("ResultT")

ALL_COLUMNS = ("*",)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository composed of a QueryChain, a CacheGate and the
    model found by the EntityResolver.

    Attributes:
        session: SQLAlchemy session used for every statement
        model: The resolved model class
        resolved_by: Resolution strategy (declared, import, namespace)
        chain: The live query chain
        cache: Cache policy for terminal reads
        default_per_page: Page size used when paginate() gets none

    Example:
        class PostRepository(BaseRepository[Post]):
            def published(self) -> list[Post]:
                return self.where({"status": "published"}).all()

        repo = PostRepository(session)
        page = repo.search(["title", "body"], "sqlalchemy").paginate(per_page=10)
    """

    # Explicit model declaration; takes precedence over naming conventions
    model: Any = None

    def __init__(
        self,
        session: Session,
        *,
        settings: Optional[Settings] = None,
        cache: Optional[CacheStore] = None,
        resolver: Optional[EntityResolver] = None,
    ) -> None:
        """
        Initialize the repository.

        Settings are read here, once. Later settings changes do not affect
        this instance.

        Args:
            session: Database session
            settings: Settings to read, defaults to the global settings
            cache: Cache store, defaults to the store selected by CACHE_STORE
            resolver: Model resolver, defaults to the process-wide resolver

        Raises:
            EntityNotResolvableError: No model could be determined
        """
        settings = settings or get_settings()
        resolver = resolver or get_entity_resolver()

        self.session = session
        self.default_per_page = settings.DEFAULT_PER_PAGE

        resolution = resolver.resolve(
            self.describe(),
            auto_resolve=settings.AUTO_RESOLVE_MODELS,
            model_namespace=settings.MODEL_NAMESPACE,
        )
        self.model: type[ModelType] = resolution.model
        self.resolved_by = resolution.strategy

        self.chain = QueryChain(self.model, type(self).__name__)
        self.cache = CacheGate(
            cache if cache is not None else get_cache_store(settings),
            self.chain,
            self.model.__name__,
            enabled=settings.CACHE_RESULTS,
            duration=settings.CACHE_DURATION,
            prefix=settings.CACHE_PREFIX,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # MODEL DECLARATION
    # ═══════════════════════════════════════════════════════════════════════════

    @classmethod
    def declared_model(cls) -> Optional[type]:
        """
        The model this repository declares, if any.

        Override to compute the declaration; by default the `model` class
        attribute wins over the generic parameter.
        """
        if isinstance(cls.model, type):
            return cls.model

        for klass in cls.__mro__:
            for base in getattr(klass, "__orig_bases__", ()):
                origin = get_origin(base)
                if isinstance(origin, type) and issubclass(origin, BaseRepository):
                    args = get_args(base)
                    if args and isinstance(args[0], type):
                        return args[0]
        return None

    @classmethod
    def describe(cls) -> RepositoryDescriptor:
        return RepositoryDescriptor(
            repository_type_name=cls.__name__,
            declared_entity=cls.declared_model(),
            module_name=cls.__module__,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # QUERY CHAIN
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def is_fresh(self) -> bool:
        """True when no chain-building call was applied since the last reset."""
        return self.chain.is_fresh

    def query(self) -> Select:
        """The statement the next terminal read would run."""
        return self.chain.statement

    def reset(self) -> "BaseRepository[ModelType]":
        self.chain.reset()
        return self

    def with_(self, relations: Union[str, Sequence[str]]) -> "BaseRepository[ModelType]":
        self.chain.with_(relations)
        return self

    def order_by(self, column: str, direction: str = "asc") -> "BaseRepository[ModelType]":
        self.chain.order_by(column, direction)
        return self

    def where(self, conditions: Mapping[str, Any]) -> "BaseRepository[ModelType]":
        self.chain.where(conditions)
        return self

    def search(self, columns: Sequence[str], keyword: str) -> "BaseRepository[ModelType]":
        self.chain.search(columns, keyword)
        return self

    def when(
        self,
        condition: Any,
        callback: Callable[["BaseRepository[ModelType]", Select], Any],
    ) -> "BaseRepository[ModelType]":
        """
        Apply callback(repository, statement) only when condition is truthy.

        Example:
            repo.when(status, lambda r, _: r.where({"status": status})).all()
        """
        self.chain.when(condition, lambda _chain, statement: callback(self, statement))
        return self

    def limit(self, count: int) -> "BaseRepository[ModelType]":
        self.chain.limit(count)
        return self

    def offset(self, count: int) -> "BaseRepository[ModelType]":
        self.chain.offset(count)
        return self

    def filter(self, *criteria: Any) -> "BaseRepository[ModelType]":
        self.chain.filter(*criteria)
        return self

    def with_trashed(self) -> "BaseRepository[ModelType]":
        self.chain.with_trashed()
        return self

    def only_trashed(self) -> "BaseRepository[ModelType]":
        self.chain.only_trashed()
        return self

    def passthrough(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """Raw escape hatch to a Select method, see QueryChain.passthrough()."""
        result = self.chain.passthrough(operation, *args, **kwargs)
        return self if result is self.chain else result

    # ═══════════════════════════════════════════════════════════════════════════
    # CACHE CONTROLS
    # ═══════════════════════════════════════════════════════════════════════════

    def cache_results(self, enabled: bool) -> "BaseRepository[ModelType]":
        """Switch result caching on or off for this repository."""
        self.cache.enabled = enabled
        return self

    def cache_duration(self, seconds: int) -> "BaseRepository[ModelType]":
        """Set the TTL used when caching is switched on."""
        self.cache.duration = seconds
        return self

    def cache_for(self, seconds: int) -> "BaseRepository[ModelType]":
        """Cache the current chain's terminal read for seconds."""
        self.chain.cache_for(seconds)
        return self

    def flush_cache(self) -> None:
        self.cache.flush()

    def _invalidate(self) -> None:
        if self.cache.enabled:
            self.flush_cache()

    # ═══════════════════════════════════════════════════════════════════════════
    # READ OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def all(self, columns: Sequence[str] = ALL_COLUMNS) -> list[ModelType]:
        """
        Run the current chain and return every row.

        The chain is reset afterwards, cache hit or not.

        SQL Generated:
            SELECT * FROM posts WHERE ... ORDER BY ...
        """
        try:
            statement = self._select_columns(self.chain.statement, columns)
            return self.cache.remember(
                "all",
                [list(columns)],
                lambda: list(self.session.scalars(statement).all()),
                statement,
            )
        finally:
            self.reset()

    def paginate(
        self,
        per_page: Optional[int] = None,
        page: int = 1,
        columns: Sequence[str] = ALL_COLUMNS,
    ) -> Page[ModelType]:
        """
        Run the current chain for one page.

        Args:
            per_page: Items per page; falsy values use default_per_page
            page: Page number, 1-indexed
            columns: Attributes to load ("*" for all)

        Returns:
            Page with items and pagination metadata

        Raises:
            QueryError: page or per_page below 1

        SQL Generated:
            SELECT count(*) FROM (SELECT ... FROM posts WHERE ...)
            SELECT ... FROM posts WHERE ... LIMIT :per_page OFFSET :offset
        """
        try:
            try:
                params = PaginationParams(page=page, per_page=per_page or self.default_per_page)
            except ValidationError as e:
                raise QueryError(
                    f"Invalid pagination: page={page!r}, per_page={per_page!r}",
                    details={"page": page, "per_page": per_page},
                ) from e
            statement = self._select_columns(self.chain.statement, columns)

            def produce() -> Page[ModelType]:
                counted = select(func.count()).select_from(statement.order_by(None).subquery())
                total = self.session.scalar(counted) or 0
                items = self.session.scalars(statement.limit(params.limit).offset(params.offset)).all()
                return Page(
                    items=list(items),
                    pagination=PaginationMeta.create(params.page, params.per_page, total),
                )

            return self.cache.remember(
                "paginate",
                [params.per_page, params.page, list(columns)],
                produce,
                statement,
            )
        finally:
            self.reset()

    def first_where(
        self,
        conditions: Mapping[str, Any],
        columns: Sequence[str] = ALL_COLUMNS,
    ) -> Optional[ModelType]:
        """
        First row of the current chain that also matches conditions.

        Conditions use where() semantics but do not modify the chain
        before it is reset.
        """
        try:
            statement = self.chain.apply_conditions(self.chain.statement, conditions)
            statement = self._select_columns(statement, columns).limit(1)
            return self.cache.remember(
                "first_where",
                [dict(conditions), list(columns)],
                lambda: self.session.scalars(statement).first(),
                statement,
            )
        finally:
            self.reset()

    def find(self, record_id: Any, columns: Sequence[str] = ALL_COLUMNS) -> Optional[ModelType]:
        """
        Get a single record by primary key, ignoring the chain.

        Soft-deleted records are not returned.

        SQL Generated:
            SELECT * FROM posts WHERE posts.id = :id
        """
        statement = self._select_columns(self._by_id(record_id), columns)
        return self.session.scalars(statement).first()

    def find_or_fail(self, record_id: Any, columns: Sequence[str] = ALL_COLUMNS) -> ModelType:
        """
        Like find() but raise when nothing matches.

        Raises:
            EntityNotFoundError: No record with that primary key
        """
        instance = self.find(record_id, columns)
        if instance is None:
            raise EntityNotFoundError(self.model.__name__, record_id)
        return instance

    def _locate(self, record_id: Any, trashed: str) -> ModelType:
        instance = self.session.scalars(self._by_id(record_id, trashed)).first()
        if instance is None:
            raise EntityNotFoundError(self.model.__name__, record_id)
        return instance

    def _by_id(self, record_id: Any, trashed: str = TRASHED_EXCLUDE) -> Select:
        primary_key = inspect(self.model).primary_key
        if len(primary_key) == 1:
            criteria = primary_key[0] == record_id
        else:
            criteria = and_(*(column == value for column, value in zip(primary_key, record_id)))
        return scoped_statement(self.model, select(self.model).where(criteria), trashed)

    def _select_columns(self, statement: Select, columns: Sequence[str]) -> Select:
        if not columns or "*" in columns:
            return statement
        return statement.options(load_only(*(self.chain.column(name) for name in columns)))

    # ═══════════════════════════════════════════════════════════════════════════
    # CREATE / UPDATE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def create(self, data: Mapping[str, Any]) -> ModelType:
        """
        Create a new record.

        Example:
            post = repo.create({"title": "Hello", "body": "..."})
            post.id  # generated by the database

        SQL Generated:
            INSERT INTO posts (title, body) VALUES (...)
        """
        instance = self.model(**data)
        self.session.add(instance)
        self.session.flush()
        self.session.refresh(instance)

        logger.debug("Record created", model=self.model.__name__)
        self._invalidate()
        return instance

    def update(self, record_id: Any, data: Mapping[str, Any]) -> bool:
        """
        Update a record by primary key.

        Raises:
            EntityNotFoundError: No record with that primary key
            QueryError: data names an attribute the model does not have
        """
        instance = self.find_or_fail(record_id)
        self._fill(instance, data)
        self.session.flush()
        self.session.refresh(instance)

        logger.debug("Record updated", model=self.model.__name__, record_id=str(record_id))
        self._invalidate()
        return True

    def update_or_create(self, attributes: Mapping[str, Any], values: Mapping[str, Any]) -> ModelType:
        """
        Update the first record matching attributes, or create it.

        Example:
            repo.update_or_create({"slug": "hello"}, {"title": "Hello again"})
        """
        statement = self.chain.apply_conditions(
            scoped_statement(self.model, select(self.model)),
            attributes,
        ).limit(1)
        instance = self.session.scalars(statement).first()

        if instance is None:
            instance = self.model(**{**attributes, **values})
            self.session.add(instance)
        else:
            self._fill(instance, values)

        self.session.flush()
        self.session.refresh(instance)
        self._invalidate()
        return instance

    def upsert(
        self,
        rows: Sequence[Mapping[str, Any]],
        unique_by: Union[str, Sequence[str]],
        update: Optional[Sequence[str]] = None,
    ) -> int:
        """
        Insert rows, updating those that collide on unique_by.

        Args:
            rows: Column → value mappings
            unique_by: Column(s) of the unique constraint to resolve on
            update: Columns to overwrite on conflict; defaults to every
                column of the first row that is not in unique_by

        Returns:
            Number of affected rows as reported by the driver

        SQL Generated (PostgreSQL / SQLite):
            INSERT INTO posts (...) VALUES (...), (...)
            ON CONFLICT (slug) DO UPDATE SET title = excluded.title
        """
        rows = [dict(row) for row in rows]
        if not rows:
            return 0

        unique_by = [unique_by] if isinstance(unique_by, str) else list(unique_by)
        columns = list(update) if update is not None else [c for c in rows[0] if c not in unique_by]
        table = inspect(self.model).local_table
        dialect = self.session.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
            statement = insert(table).values(rows)
            if columns:
                statement = statement.on_conflict_do_update(
                    index_elements=unique_by,
                    set_={column: statement.excluded[column] for column in columns},
                )
            else:
                statement = statement.on_conflict_do_nothing(index_elements=unique_by)
        elif dialect in ("mysql", "mariadb"):
            statement = mysql.insert(table).values(rows)
            statement = statement.on_duplicate_key_update(
                {column: statement.inserted[column] for column in columns or unique_by}
            )
        else:
            raise UnsupportedOperationError(type(self).__name__, "upsert")

        # Pending changes go out first; loaded rows are then expired so
        # reads observe the upserted values
        self.session.flush()
        result = self.session.execute(statement)
        self.session.expire_all()

        logger.debug("Records upserted", model=self.model.__name__, rows=len(rows))
        self._invalidate()
        return result.rowcount

    def _fill(self, instance: ModelType, data: Mapping[str, Any]) -> None:
        attributes = inspect(self.model).attrs
        for field, value in data.items():
            if field not in attributes:
                raise QueryError(
                    f"{self.model.__name__} has no attribute '{field}'",
                    details={"model": self.model.__name__, "attribute": field},
                )
            setattr(instance, field, value)

    # ═══════════════════════════════════════════════════════════════════════════
    # DELETE OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def delete(self, record_id: Any) -> bool:
        """
        Delete a record by primary key.

        Models with SoftDeleteMixin are soft deleted (deleted_at is set).

        Raises:
            EntityNotFoundError: No record with that primary key
        """
        instance = self.find_or_fail(record_id)
        if supports_soft_deletes(self.model):
            instance.soft_delete()
        else:
            self.session.delete(instance)
        self.session.flush()

        logger.debug("Record deleted", model=self.model.__name__, record_id=str(record_id))
        self._invalidate()
        return True

    def force_delete(self, record_id: Any) -> bool:
        """
        Permanently delete a record, soft-deleted or not.

        For models without soft deletes this is the same as delete().

        Raises:
            EntityNotFoundError: No record with that primary key
        """
        trashed = TRASHED_INCLUDE if supports_soft_deletes(self.model) else TRASHED_EXCLUDE
        instance = self._locate(record_id, trashed)
        self.session.delete(instance)
        self.session.flush()

        logger.debug("Record force deleted", model=self.model.__name__, record_id=str(record_id))
        self._invalidate()
        return True

    def restore(self, record_id: Any) -> bool:
        """
        Restore a soft-deleted record.

        Returns:
            True once restored; False for models without soft deletes

        Raises:
            EntityNotFoundError: No record with that primary key
        """
        if not supports_soft_deletes(self.model):
            return False

        instance = self._locate(record_id, TRASHED_INCLUDE)
        instance.restore()
        self.session.flush()

        logger.debug("Record restored", model=self.model.__name__, record_id=str(record_id))
        self._invalidate()
        return True

    # ═══════════════════════════════════════════════════════════════════════════
    # TRANSACTIONS
    # ═══════════════════════════════════════════════════════════════════════════

    def transaction(self, callback: Callable[["BaseRepository[ModelType]"], ResultT]) -> ResultT:
        """
        Run callback(self) in a database transaction and commit its work.

        Inside a transaction the caller began explicitly, a SAVEPOINT is
        used and committing is left to the caller. See run_in_transaction().

        Example:
            repo.transaction(lambda r: r.create({"title": "a"}))
        """
        return run_in_transaction(self.session, lambda: callback(self))
