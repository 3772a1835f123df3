from typing import Optional, Any, List, Union
from redis.exceptions import RedisError
import json
import logging
from datetime import timedelta
import redis.asyncio as aioredis


class RedisClient:
    """
    Async Redis client with connection pooling and JSON (de)serialization.
    """

    def __init__(
        self,
        logger: logging.Logger,
        host: str = "localhost",
        port: int = 6379,
        password: Optional[str] = None,
        db: int = 0,
        ssl: bool = False,
        url: Optional[str] = None,
        max_connections: int = 20,
        client: Optional[aioredis.Redis] = None,
    ):
        self.logger = logger
        self.host = host
        self.port = port
        self.password = password
        self.db = db
        self.ssl = ssl
        self.url = url
        self.max_connections = max_connections

        # A pre-built client (e.g. from tests) bypasses pool creation
        self._async_redis: Optional[aioredis.Redis] = client

    async def _get_async_redis(self) -> aioredis.Redis:
        """Get or create async Redis client"""
        if self._async_redis is None:
            if self.url:
                self._async_redis = aioredis.from_url(
                    self.url,
                    decode_responses=True,
                    max_connections=self.max_connections,
                    socket_timeout=5.0,
                    socket_connect_timeout=5.0,
                )
            else:
                self._async_redis = aioredis.Redis(
                    host=self.host,
                    port=self.port,
                    password=self.password,
                    db=self.db,
                    ssl=self.ssl,
                    decode_responses=True,  # Auto-decode responses for convenience
                    max_connections=self.max_connections,
                    socket_timeout=5.0,  # Socket timeout in seconds
                    socket_connect_timeout=5.0,  # Connection timeout
                    retry_on_timeout=True,  # Auto-retry on timeout
                )
        return self._async_redis

    async def ping(self) -> bool:
        """Test the connection"""
        try:
            redis = await self._get_async_redis()
            result = await redis.ping()
            self.logger.info(f"Successfully connected to Redis at {self.url or f'{self.host}:{self.port}'}")
            return bool(result)
        except RedisError as e:
            self.logger.error(f"Failed to connect to Redis: {str(e)}")
            raise

    async def async_close(self) -> None:
        """Close async Redis connection pool"""
        if self._async_redis is not None:
            await self._async_redis.aclose()
            self._async_redis = None
            self.logger.info("Async Redis connection pool closed")

    async def async_get_value(self, key: str, default: Any = None) -> Any:
        """
        Async get value for a key from Redis.

        Args:
            key: Key to retrieve
            default: Default value if key doesn't exist

        Returns:
            The value if found, deserialized from JSON if possible,
            otherwise the default value
        """
        try:
            redis = await self._get_async_redis()
            value: Optional[str] = await redis.get(key)
            if value is None:
                return default

            # Try to deserialize JSON
            try:
                if isinstance(value, str) and (value.startswith('{') or value.startswith('[')):
                    return json.loads(value)
                return value
            except (TypeError, json.JSONDecodeError):
                return value
        except RedisError as e:
            self.logger.error(f"Error async getting key {key}: {str(e)}")
            raise

    async def async_set_value(self, key: str, value: Any, expiry: Optional[Union[int, timedelta]] = None) -> bool:
        """
        Async set a key-value pair, optionally with expiry.

        Args:
            key: Key to set
            value: Value to set (will be JSON serialized if not string)
            expiry: Expiry time in seconds or timedelta

        Returns:
            True if successful
        """
        try:
            redis = await self._get_async_redis()
            if not isinstance(value, (str, int, float, bool)):
                value = json.dumps(value)
            if isinstance(expiry, timedelta):
                expiry = int(expiry.total_seconds())

            if expiry:
                return await redis.setex(key, expiry, value)
            else:
                return await redis.set(key, value)
        except RedisError as e:
            self.logger.error(f"Error async setting key {key}: {str(e)}")
            raise

    async def async_delete(self, *keys: str) -> int:
        """
        Async delete one or more keys.

        Returns:
            Number of keys deleted
        """
        if not keys:
            return 0
        try:
            redis = await self._get_async_redis()
            return await redis.delete(*keys)
        except RedisError as e:
            self.logger.error(f"Error async deleting keys: {str(e)}")
            raise

    async def async_scan_keys(self, pattern: str, count: int = 500) -> List[str]:
        """Collect keys matching a glob pattern with SCAN (non-blocking, unlike KEYS)."""
        try:
            redis = await self._get_async_redis()
            return [key async for key in redis.scan_iter(match=pattern, count=count)]
        except RedisError as e:
            self.logger.error(f"Error scanning keys with pattern {pattern}: {str(e)}")
            raise

    async def async_delete_pattern(self, pattern: str, batch_size: int = 500) -> int:
        """
        Delete every key matching a glob pattern.

        Returns:
            Number of keys deleted
        """
        keys = await self.async_scan_keys(pattern, count=batch_size)
        deleted = 0
        for start in range(0, len(keys), batch_size):
            deleted += await self.async_delete(*keys[start:start + batch_size])
        return deleted

    async def async_flush_db(self) -> bool:
        """Remove every key of the selected Redis database"""
        try:
            redis = await self._get_async_redis()
            result = await redis.flushdb()
            self.logger.warning(f"Redis database {self.db} flushed")
            return bool(result)
        except RedisError as e:
            self.logger.error(f"Error flushing Redis database: {str(e)}")
            raise
