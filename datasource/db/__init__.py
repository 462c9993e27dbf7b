"""
Database Module

Engine, session factory and transactional helpers.

Usage:
======
    from datasource.db import session_scope
    from app.repositories import PostRepository

    with session_scope() as session:
        posts = PostRepository(session).where({"status": "published"}).all()
"""

from datasource.db.session import (
    create_session_factory,
    get_session_factory,
    session_scope,
    run_in_transaction,
)

__all__ = [
    "create_session_factory",
    "get_session_factory",
    "session_scope",
    "run_in_transaction",
]
