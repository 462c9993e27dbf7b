"""
Cache store contract.

Repositories only need a small key-value surface from a cache backend:
get/set with TTL, and - when the backend advertises it through
``supports_tags`` - bulk eviction of every key stored under a tag.
"""

from typing import Any, Iterable, Protocol, runtime_checkable


@runtime_checkable
class CacheStore(Protocol):
    """Key-value store used by CacheGate."""

    supports_tags: bool

    def get(self, key: str) -> tuple[Any, bool]:
        """Return (value, found). A cached None is (None, True)."""
        ...

    def set(self, key: str, value: Any, ttl: int, tags: Iterable[str] = ()) -> bool:
        """Store value for ttl seconds, recording it under tags."""
        ...

    def delete(self, key: str) -> bool:
        """Remove a single key."""
        ...

    def flush_tag(self, tag: str) -> int:
        """Evict every key stored under tag. Returns the number evicted."""
        ...
