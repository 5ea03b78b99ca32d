"""
Key-value cache used for sent-email records and scheduled sends.

Values are JSON documents. The Redis-backed implementation degrades to
misses/False/0 when Redis is unreachable rather than raising.
"""

import json
from datetime import date, datetime
from typing import Any, Protocol

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from email_delivery.config import settings
from email_delivery.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SENT_KEY_PREFIX = "email:sent"
SCHEDULED_KEY_PREFIX = "email:scheduled"


def sent_key(message_id: str) -> str:
    return f"{SENT_KEY_PREFIX}:{message_id}"


def scheduled_key(schedule_id: str) -> str:
    return f"{SCHEDULED_KEY_PREFIX}:{schedule_id}"


class EmailCache(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_s: int | None = None) -> bool: ...

    async def delete(self, key: str) -> int: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class RedisEmailCache:
    """
    JSON cache over a pooled async Redis connection.

    The pool is opened by connect() during application startup. A client may
    be passed in instead, in which case no pool is managed here.
    """

    def __init__(
        self,
        redis_url: str | None = None,
        max_connections: int = 20,
        client: redis.Redis | None = None,
    ):
        self.redis_url = redis_url or settings.REDIS_URL
        self.max_connections = max_connections
        self.pool: ConnectionPool | None = None
        self.client = client

    @property
    def connected(self) -> bool:
        return self.client is not None

    async def connect(self) -> None:
        """Open the connection pool and verify it with a PING."""
        if self.connected:
            return

        pool = ConnectionPool.from_url(
            self.redis_url,
            max_connections=self.max_connections,
            retry_on_timeout=True,
            socket_connect_timeout=10,
            socket_timeout=10,
            health_check_interval=30,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)

        try:
            await client.ping()
        except (redis.RedisError, OSError) as e:
            await pool.disconnect()
            logger.error("Redis connection failed", error=str(e))
            raise RuntimeError("Redis initialization failed") from e

        self.pool = pool
        self.client = client
        logger.info("Redis email cache connected", max_connections=self.max_connections)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
        if self.pool is not None:
            await self.pool.disconnect()
        self.client = None
        self.pool = None
        logger.info("Redis email cache closed")

    async def _redis(self) -> redis.Redis:
        if not self.connected:
            logger.warning("Redis not connected, attempting to connect")
            await self.connect()
        return self.client

    async def ping(self) -> bool:
        try:
            return bool(await (await self._redis()).ping())
        except (redis.RedisError, OSError, RuntimeError) as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> Any | None:
        try:
            raw = await (await self._redis()).get(key)
        except (redis.RedisError, OSError, RuntimeError) as e:
            logger.error("Redis GET failed", key=key, error=str(e))
            return None

        if raw is None:
            logger.debug("Cache MISS", key=key)
            return None

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Cache value is not valid JSON", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_s: int | None = None) -> bool:
        try:
            serialized = json.dumps(value, default=_json_default)
        except TypeError as e:
            logger.error("Cache value could not be serialized", key=key, error=str(e))
            return False

        try:
            stored = await (await self._redis()).set(key, serialized, ex=ttl_s or None)
        except (redis.RedisError, OSError, RuntimeError) as e:
            logger.error("Redis SET failed", key=key, error=str(e))
            return False

        logger.debug("Cache SET", key=key, ttl_s=ttl_s)
        return bool(stored)

    async def delete(self, key: str) -> int:
        """Delete a key and return the number of keys removed."""
        try:
            return int(await (await self._redis()).delete(key))
        except (redis.RedisError, OSError, RuntimeError) as e:
            logger.error("Redis DELETE failed", key=key, error=str(e))
            return 0
