"""
Redis adapter - Tag-aware result cache.

Provides:
- Key-value caching with TTL (pickled values, ORM rows included)
- Tag membership tracked in Redis sorted sets
- Tag flushing for write invalidation

Tag Sets:
=========
    tag:{tag}  →  ZSET of cache keys scored by their expiry (unix time)

Every write drops members whose score has passed and extends the tag
key's own expiry to cover the new entry (EXPIRE NX + EXPIRE GT, Redis 7+).
An idle tag therefore disappears once its last entry has expired.

Redis failures never break a repository call: they are logged and
degrade to a cache miss (reads) or a no-op (writes).
"""

import functools
import pickle
import time
from typing import Any, Iterable, Optional

import redis
from redis.exceptions import RedisError

from datasource.config.settings import settings
from datasource.core.logging import get_logger

logger = get_logger(__name__)

TAG_KEY_PREFIX = "tag:"


class RedisAdapter:
    """
    Adapter for Redis cache operations.

    Handles:
    - Caching with TTL
    - Tag sets (tag:{tag} -> member keys scored by expiry)
    - Tag flushing
    """

    supports_tags = True

    def __init__(self, url: Optional[str] = None, client: Optional[redis.Redis] = None):
        """
        Initialize Redis adapter.

        Args:
            url: Redis URL (redis://host:port/db)
            client: Pre-built client, mainly for tests
        """
        self.url = url or settings.REDIS_URL
        self._client: Optional[redis.Redis] = client

    @property
    def client(self) -> redis.Redis:
        """Lazy-loaded Redis client."""
        if self._client is None:
            self._client = redis.from_url(self.url)
        return self._client

    @staticmethod
    def tag_key(tag: str) -> str:
        return f"{TAG_KEY_PREFIX}{tag}"

    def get(self, key: str) -> tuple[Any, bool]:
        """
        Get a value from cache.

        Args:
            key: Cache key

        Returns:
            (value, found)
        """
        try:
            raw = self.client.get(key)
        except RedisError as e:
            logger.warning("Redis get failed", key=key, error=str(e))
            return None, False

        if raw is None:
            return None, False

        try:
            return pickle.loads(raw), True
        except (pickle.UnpicklingError, AttributeError, EOFError, ImportError) as e:
            logger.warning("Discarding undecodable cache entry", key=key, error=str(e))
            return None, False

    def set(self, key: str, value: Any, ttl: int, tags: Iterable[str] = ()) -> bool:
        """
        Set a value in cache.

        Args:
            key: Cache key
            value: Value to cache (must be picklable)
            ttl: Time-to-live in seconds
            tags: Tags the key is recorded under

        Returns:
            True if successful
        """
        if ttl <= 0:
            return False

        try:
            payload = pickle.dumps(value)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            logger.warning("Value not cacheable", key=key, error=str(e))
            return False

        try:
            now = time.time()
            pipe = self.client.pipeline()
            pipe.setex(key, ttl, payload)
            for tag in tags:
                tag_key = self.tag_key(tag)
                pipe.zadd(tag_key, {key: now + ttl})
                pipe.zremrangebyscore(tag_key, "-inf", now)
                # The tag key lives at least as long as its longest entry
                pipe.expire(tag_key, ttl, nx=True)
                pipe.expire(tag_key, ttl, gt=True)
            pipe.execute()
            return True
        except RedisError as e:
            logger.warning("Redis set failed", key=key, error=str(e))
            return False

    def delete(self, key: str) -> bool:
        """
        Delete a key from cache.

        Args:
            key: Cache key

        Returns:
            True if key was deleted
        """
        try:
            return bool(self.client.delete(key))
        except RedisError as e:
            logger.warning("Redis delete failed", key=key, error=str(e))
            return False

    def exists(self, key: str) -> bool:
        """Check if a key exists."""
        try:
            return bool(self.client.exists(key))
        except RedisError as e:
            logger.warning("Redis exists failed", key=key, error=str(e))
            return False

    def flush_tag(self, tag: str) -> int:
        """
        Evict every key recorded under tag, then the tag set itself.

        Args:
            tag: Tag name

        Returns:
            Number of cache keys evicted
        """
        tag_key = self.tag_key(tag)
        try:
            members = self.client.zrange(tag_key, 0, -1)
            evicted = self.client.delete(*members) if members else 0
            self.client.delete(tag_key)
        except RedisError as e:
            logger.warning("Redis tag flush failed", tag=tag, error=str(e))
            return 0

        logger.debug("Redis cache tag flushed", tag=tag, evicted=evicted)
        return int(evicted)

    def ping(self) -> bool:
        """
        Check Redis connectivity.

        Returns:
            True if connected
        """
        try:
            return bool(self.client.ping())
        except RedisError:
            return False


@functools.lru_cache(maxsize=1)
def get_redis_adapter() -> RedisAdapter:
    """Get or create Redis adapter singleton."""
    return RedisAdapter()
