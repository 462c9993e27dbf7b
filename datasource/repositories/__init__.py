"""
Repository Pattern Implementation

Repository Composition:
=======================
    BaseRepository[ModelType]
         │
         ├── EntityResolver  ← which model (declared or by convention)
         ├── QueryChain      ← mutable query state, reset after terminal reads
         └── CacheGate       ← remember terminal reads, flush on writes

Usage Example:
==============
    from datasource.repositories import BaseRepository
    from app.models import Post

    class PostRepository(BaseRepository[Post]):
        pass

    with session_scope() as session:
        repo = PostRepository(session)
        drafts = repo.where({"status": "draft"}).order_by("id", "desc").all()
"""

from datasource.repositories.base import BaseRepository
from datasource.repositories.cache_gate import CacheGate
from datasource.repositories.query_chain import QueryChain, QueryChainState, escape_like
from datasource.repositories.resolver import (
    EntityResolver,
    RepositoryDescriptor,
    Resolution,
    candidate_names,
    get_entity_resolver,
    parse_import_index,
)

__all__ = [
    "BaseRepository",
    "CacheGate",
    "QueryChain",
    "QueryChainState",
    "escape_like",
    "EntityResolver",
    "RepositoryDescriptor",
    "Resolution",
    "candidate_names",
    "get_entity_resolver",
    "parse_import_index",
]
