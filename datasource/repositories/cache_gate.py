"""
Cache Gate

Wraps terminal reads with remember/flush semantics.

TTL Precedence:
===============
    1. chain.cache_for(seconds)         → per-chain override (even when disabled)
    2. CACHE_DURATION                   → only if CACHE_RESULTS is on
    3. 0                                → no caching, producer runs directly

Cache Keys:
===========
    {prefix}:{Model}:{method}:{md5(arguments)}:{statement fingerprint}

    repo:Post:all:0f3c...:9a1b...

The fingerprint covers the text, bound values and eager loads of the exact
statement the read executes, so reads that would run different SQL never
share a key. Arguments are hashed with their types kept: a datetime and
its ISO string hash differently.

Invalidation:
=============
Every key is recorded under the tag "{prefix}:{Model}". flush() evicts the
whole tag. Stores without tag support cannot be flushed; their entries
expire through TTL only.
"""

import hashlib
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import Select

from datasource.adapters.base import CacheStore
from datasource.core.logging import get_logger
from datasource.repositories.query_chain import QueryChain, canonical_json

logger = get_logger(__name__)

ResultT = TypeVar("ResultT")


def hash_arguments(arguments: Any) -> str:
    """
    Order-sensitive, type-preserving content hash of call arguments.

    Structurally equal arguments always hash the same; mappings keep their
    insertion order because where() applies conditions in that order.
    """
    return hashlib.md5(canonical_json(arguments).encode(), usedforsecurity=False).hexdigest()


class CacheGate:
    """
    Remember/flush policy for one repository.

    Attributes:
        store: Cache backend
        chain: The repository's query chain (read for TTL override and key)
        entity_name: Model short name used in keys and the tag
        enabled: Global caching switch (CACHE_RESULTS)
        duration: Global TTL in seconds (CACHE_DURATION)
    """

    def __init__(
        self,
        store: CacheStore,
        chain: QueryChain,
        entity_name: str,
        *,
        enabled: bool = False,
        duration: int = 3600,
        prefix: str = "repo",
    ) -> None:
        self.store = store
        self.chain = chain
        self.entity_name = entity_name
        self.enabled = enabled
        self.duration = duration
        self.prefix = prefix

    @property
    def tag(self) -> str:
        return f"{self.prefix}:{self.entity_name}"

    def effective_ttl(self) -> int:
        override: Optional[int] = self.chain.cache_ttl
        if override is not None:
            return override
        return self.duration if self.enabled else 0

    def key_for(self, method: str, arguments: Any, statement: Optional[Select] = None) -> str:
        return ":".join(
            [
                self.prefix,
                self.entity_name,
                method,
                hash_arguments(arguments),
                self.chain.fingerprint(statement),
            ]
        )

    def remember(
        self,
        method: str,
        arguments: Any,
        producer: Callable[[], ResultT],
        statement: Optional[Select] = None,
    ) -> ResultT:
        """
        Return the cached result for (method, arguments, statement), or
        run producer and cache what it returns.

        Args:
            method: Terminal read name
            arguments: The read's arguments
            producer: Runs the read
            statement: Statement the producer executes, defaults to the
                chain's current statement

        With an effective TTL <= 0 producer runs directly and the store
        is never touched.
        """
        ttl = self.effective_ttl()
        if ttl <= 0:
            return producer()

        key = self.key_for(method, arguments, statement)
        value, found = self.store.get(key)
        if found:
            logger.debug("Cache hit", key=key)
            return value

        logger.debug("Cache miss", key=key, ttl=ttl)
        value = producer()
        tags = (self.tag,) if self.store.supports_tags else ()
        self.store.set(key, value, ttl, tags=tags)
        return value

    def flush(self) -> None:
        """Evict every entry cached for this model."""
        if not self.enabled:
            return

        if not self.store.supports_tags:
            logger.warning(
                "Cache store has no tag support; cached results expire by TTL only",
                tag=self.tag,
            )
            return

        evicted = self.store.flush_tag(self.tag)
        logger.debug("Cache flushed", tag=self.tag, evicted=evicted)
