"""
In-process cache store.

Default backend when DATASOURCE_CACHE_STORE=memory. Entries live in a
cachetools TLRUCache, so every entry carries its own TTL and the store is
bounded by maxsize. Tag membership is pruned against the live keys on
every write, so expired or evicted keys never pile up under a tag.

Tag support can be switched off to emulate a backend without tag eviction.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterable

from cachetools import TLRUCache

from datasource.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MAXSIZE = 10_000


def _expires_at(key: str, entry: tuple[Any, int], now: float) -> float:
    return now + entry[1]


class MemoryAdapter:
    """
    TLRUCache-backed cache store.

    Handles:
    - Values with a per-entry TTL
    - LRU eviction beyond maxsize
    - Tag membership and tag flushing

    Args:
        supports_tags: Whether flush_tag() can evict by tag
        maxsize: Maximum number of live entries
        timer: Clock used for expiry, time.monotonic by default
    """

    def __init__(
        self,
        supports_tags: bool = True,
        maxsize: int = DEFAULT_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.supports_tags = supports_tags
        self._entries: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)
        self._tags: dict[str, set[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[Any, bool]:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None, False
        return entry[0], True

    def set(self, key: str, value: Any, ttl: int, tags: Iterable[str] = ()) -> bool:
        if ttl <= 0:
            return False

        with self._lock:
            self._entries[key] = (value, ttl)
            if self.supports_tags:
                for tag in tags:
                    self._tags.setdefault(tag, set()).add(key)
            self._prune_tags()
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def exists(self, key: str) -> bool:
        return self.get(key)[1]

    def flush_tag(self, tag: str) -> int:
        if not self.supports_tags:
            logger.warning("Memory cache created without tag support; nothing flushed", tag=tag)
            return 0

        with self._lock:
            keys = self._tags.pop(tag, set())
            evicted = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    evicted += 1

        logger.debug("Memory cache tag flushed", tag=tag, evicted=evicted)
        return evicted

    def tag_members(self, tag: str) -> set[str]:
        """Keys currently recorded under tag."""
        with self._lock:
            return set(self._tags.get(tag, ()))

    def clear(self) -> None:
        """Drop every entry and tag."""
        with self._lock:
            self._entries.clear()
            self._tags.clear()

    def _prune_tags(self) -> None:
        # Caller holds the lock
        self._entries.expire()
        live = set(self._entries.keys())
        for tag in list(self._tags):
            members = self._tags[tag]
            members &= live
            if not members:
                del self._tags[tag]

    def __len__(self) -> int:
        with self._lock:
            self._entries.expire()
            return len(self._entries)
