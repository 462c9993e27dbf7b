"""
Database Session Management

This module configures the SQLAlchemy engine and session factory and
provides the transactional execution that repositories delegate to.

Key Concepts:
=============

1. ENGINE: The database connection manager
   - Maintains a pool of database connections
   - Configured once per process from DATABASE_URL

2. SESSION: A unit of work with the database
   - One session per request (typically), passed to repositories
   - Sessions are NOT thread-safe

3. TRANSACTION: run_in_transaction(session, callback)
   - Commits when the callback returns, rolls back when it raises
   - Uses a SAVEPOINT when the session is already inside a transaction,
     and still commits a transaction the session began on its own

Request Lifecycle:
==================
    with session_scope() as session:
        repo = PostRepository(session)
        repo.create({"title": "Hello"})
    # committed here, or rolled back if an exception escaped

Configuration:
==============
    DATASOURCE_DATABASE_URL: sqlite:///./datasource.db
    DATASOURCE_DATABASE_ECHO: Log all SQL statements
"""

from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, SessionTransactionOrigin, sessionmaker

from datasource.config.settings import settings
from datasource.core.logging import get_logger

logger = get_logger(__name__)

ResultT = TypeVar("ResultT")


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE & SESSION FACTORY
# ═══════════════════════════════════════════════════════════════════════════════


def create_session_factory(url: str, echo: bool = False, **engine_options: Any) -> sessionmaker[Session]:
    """
    Build a session factory bound to a new engine.

    Args:
        url: SQLAlchemy connection URL
        echo: Log SQL statements
        **engine_options: Extra create_engine() keyword arguments

    Returns:
        sessionmaker producing Session instances

    Example:
        factory = create_session_factory("sqlite:///:memory:")
        with session_scope(factory) as session:
            ...
    """
    engine = create_engine(url, echo=echo, pool_pre_ping=True, **engine_options)
    return sessionmaker(
        bind=engine,
        class_=Session,
        # Objects remain usable after commit
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker[Session]:
    """Get or create the process-wide session factory from settings."""
    return create_session_factory(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)


@contextmanager
def session_scope(
    factory: Optional[sessionmaker[Session]] = None,
) -> Generator[Session, None, None]:
    """
    Provide a session that commits on success and rolls back on error.

    Args:
        factory: Session factory, defaults to get_session_factory()

    Yields:
        Session: Database session for the unit of work
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSACTIONS
# ═══════════════════════════════════════════════════════════════════════════════


def run_in_transaction(session: Session, callback: Callable[[], ResultT]) -> ResultT:
    """
    Run callback inside a transaction on session and commit its work.

    How It Commits:
    ===============
    - No transaction in progress:
        BEGIN → callback → COMMIT
    - Transaction started implicitly (autobegin, e.g. after a read):
        SAVEPOINT → callback → RELEASE → COMMIT
    - Transaction the caller began explicitly, or already nested:
        SAVEPOINT → callback → RELEASE, the caller commits

    When callback raises, only its own work is rolled back and the
    exception propagates. Work flushed before the call stays pending.

    Args:
        session: Session to run the transaction on
        callback: Zero-argument callable doing the work

    Returns:
        Whatever callback returns
    """
    if not session.in_transaction():
        with session.begin():
            return callback()

    try:
        with session.begin_nested():
            result = callback()
    except Exception:
        logger.debug("Transaction rolled back to savepoint")
        raise

    root = session.get_transaction()
    autobegun = root is not None and root.origin is SessionTransactionOrigin.AUTOBEGIN
    if autobegun and not session.in_nested_transaction():
        session.commit()
    return result
