"""
Chat cache layer.

Redis holds disposable JSON projections of the store:

    {prefix}:thread:{thread_id}:messages:{before_id|latest}:{limit}   message pages
    {prefix}:user:{role}:{user_id}:threads                            thread summaries
    {prefix}:user:{role}:{user_id}:unread                             unread counter

Reads go through `cached_fetch`; writes hit the store first and then call
`invalidate_quietly`. Redis faults become CacheError and never fail a read or
an already-committed write.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

import pydantic
from pydantic import TypeAdapter
from redis.exceptions import RedisError

from app.chat.entity.chat import SenderRole
from app.core.exceptions import CacheError
from app.core.logger import get_logger
from pkg.redis.client import RedisClient

T = TypeVar("T")


class ChatCache:
    def __init__(self, redis_client: RedisClient, prefix: str = "chat", logger: Optional[logging.Logger] = None):
        self.redis_client = redis_client
        self.prefix = prefix
        self.logger = logger or get_logger(__name__)

    # Helper Key Builders

    def messages_key(self, thread_id: int, limit: int, before_id: Optional[int] = None) -> str:
        marker = before_id if before_id is not None else "latest"
        return f"{self.prefix}:thread:{thread_id}:messages:{marker}:{limit}"

    def messages_pattern(self, thread_id: int) -> str:
        return f"{self.prefix}:thread:{thread_id}:messages:*"

    def threads_key(self, user_id: int, role: SenderRole) -> str:
        return f"{self.prefix}:user:{role.value}:{user_id}:threads"

    def unread_key(self, user_id: int, role: SenderRole) -> str:
        return f"{self.prefix}:user:{role.value}:{user_id}:unread"

    # ----------------------------
    # Primitive operations
    # ----------------------------

    async def get(self, key: str) -> Any:
        """Cached snapshot or None on a miss."""
        try:
            return await self.redis_client.async_get_value(key)
        except RedisError as e:
            raise CacheError(f"Cache read failed for {key}", {"key": key}) from e

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await self.redis_client.async_set_value(key, value, expiry=ttl)
        except RedisError as e:
            raise CacheError(f"Cache write failed for {key}", {"key": key}) from e

    async def invalidate(self, *targets: str) -> int:
        """Delete keys; a target containing '*' is treated as a glob pattern."""
        keys = [t for t in targets if "*" not in t]
        patterns = [t for t in targets if "*" in t]
        try:
            deleted = await self.redis_client.async_delete(*keys)
            for pattern in patterns:
                deleted += await self.redis_client.async_delete_pattern(pattern)
            return deleted
        except RedisError as e:
            raise CacheError("Cache invalidation failed", {"targets": list(targets)}) from e

    async def flush_all(self) -> None:
        """Administrative reset of every cached projection. Not for hot paths."""
        try:
            await self.redis_client.async_flush_db()
        except RedisError as e:
            raise CacheError("Cache flush failed") from e
        self.logger.warning("Chat cache flushed")

    # ----------------------------
    # Read-through / write-path helpers
    # ----------------------------

    async def cached_fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl: int,
        adapter: TypeAdapter,
    ) -> T:
        """
        Serve `key` from Redis, else run `loader`, store the result and return it.

        A cache read fault bypasses the cache for this call. A snapshot that no
        longer validates is treated as a miss. Store errors from `loader`
        propagate untouched.
        """
        try:
            cached = await self.get(key)
        except CacheError as e:
            self.logger.warning(f"{e.message}; serving from store: {e.__cause__}")
            return await loader()

        if cached is not None:
            try:
                value = adapter.validate_python(cached)
                self.logger.debug(f"Cache HIT for {key}")
                return value
            except pydantic.ValidationError:
                self.logger.warning(f"Discarding unreadable cache entry {key}")

        self.logger.debug(f"Cache MISS for {key}")
        value = await loader()

        try:
            await self.set(key, adapter.dump_python(value, mode="json"), ttl)
        except CacheError as e:
            self.logger.warning(f"{e.message}: {e.__cause__}")
        return value

    async def invalidate_quietly(self, *targets: str) -> None:
        """Invalidate after a committed write; failures are only reported."""
        try:
            await self.invalidate(*targets)
        except CacheError as e:
            self.logger.warning(f"{e.message} for {', '.join(targets)}: {e.__cause__}")
