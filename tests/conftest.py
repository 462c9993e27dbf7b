"""
Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database, cache store and
resolver, so no state leaks between tests.
"""

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from datasource.adapters import MemoryAdapter
from datasource.config.settings import Settings
from datasource.models.base import Base
from datasource.repositories import EntityResolver
from tests.app.models import Article, Comment, Post

# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def engine():
    """
    In-memory SQLite engine with all test tables.

    pysqlite's own transaction handling breaks SAVEPOINT, so BEGIN is
    emitted by SQLAlchemy instead.
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False, autoflush=False) as session:
        yield session


# =============================================================================
# Repository Fixtures
# =============================================================================


@pytest.fixture
def settings():
    return Settings(MODEL_NAMESPACE="tests.app.models", _env_file=None)


@pytest.fixture
def cached_settings():
    return Settings(
        MODEL_NAMESPACE="tests.app.models",
        CACHE_RESULTS=True,
        CACHE_DURATION=60,
        _env_file=None,
    )


@pytest.fixture
def store():
    return MemoryAdapter()


@pytest.fixture
def resolver():
    return EntityResolver()


@pytest.fixture
def make_repository(session, settings, store, resolver):
    """
    Build a repository wired to the test session, store and resolver.

    Usage:
        repo = make_repository(PostsRepository)
        repo = make_repository(PostsRepository, settings=cached_settings)
    """

    def make(repository_class, settings=settings, cache=store):
        return repository_class(session, settings=settings, cache=cache, resolver=resolver)

    return make


# =============================================================================
# Data Fixtures
# =============================================================================


@pytest.fixture
def posts(session):
    """Five posts, the first two with comments."""
    rows = [
        Post(title="Intro to SQLAlchemy", body="Sessions and engines", status="published", views=120),
        Post(title="50% off everything", body="Sale", status="published", views=40),
        Post(title="500 ways to kick off", body="A list", status="draft", views=5),
        Post(title="Draft notes", body="50 percent done", status="draft", views=0),
        Post(title="Archived", body="Old news", status="archived", views=300),
    ]
    rows[0].comments = [Comment(body="Great"), Comment(body="Thanks")]
    rows[1].comments = [Comment(body="Is this real?")]
    session.add_all(rows)
    session.flush()
    return rows


@pytest.fixture
def articles(session):
    """Three articles, the last one soft deleted."""
    rows = [
        Article(slug="first", title="First"),
        Article(slug="second", title="Second"),
        Article(slug="gone", title="Gone"),
    ]
    rows[2].soft_delete()
    session.add_all(rows)
    session.flush()
    return rows
