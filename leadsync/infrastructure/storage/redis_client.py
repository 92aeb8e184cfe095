"""
Durable key/value store backed by Redis.

Every component that persists state (local cache, mutation queue, session,
notification settings and delivery log) goes through this client. Writes
raise StoreError instead of returning False: once a write coroutine returns,
callers may assume the value survives a process restart.
"""

import json
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from leadsync.config import Settings, settings
from leadsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class StoreError(Exception):
    """Raised when the durable store cannot complete an operation."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class RedisStore:
    """Namespaced Redis client with connection pooling."""

    def __init__(self, config: Settings = settings):
        self.config = config
        self.namespace = config.STORE_NAMESPACE
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self):
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            self.pool = ConnectionPool.from_url(
                self.config.REDIS_URL,
                max_connections=self.config.REDIS_MAX_CONNECTIONS,
                retry_on_timeout=True,
                socket_connect_timeout=self.config.REDIS_SOCKET_TIMEOUT,
                socket_timeout=self.config.REDIS_SOCKET_TIMEOUT,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            result = await self.client.ping()
            logger.info("Redis ping successful", result=result)

            self._initialized = True
            logger.info(
                "Durable store initialized",
                namespace=self.namespace,
                max_connections=self.config.REDIS_MAX_CONNECTIONS,
            )

        except Exception as e:
            logger.error("Failed to initialize durable store", error=str(e))
            self._initialized = False
            raise StoreError("Redis initialization failed", operation="initialize") from e

    async def close(self):
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Durable store closed")
        except Exception as e:
            logger.error("Error closing durable store", error=str(e))

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def _ensure_initialized(self):
        if not self._initialized:
            logger.warning("Durable store not initialized, attempting to initialize")
            await self.initialize()

    async def ping(self) -> bool:
        """Test Redis connection"""
        try:
            await self._ensure_initialized()
            return bool(await self.client.ping())
        except Exception as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_initialized()
            result = await self.client.get(self._key(key))
            return result if result else None
        except StoreError:
            raise
        except Exception as e:
            logger.error("Redis GET failed", key=key[:40], error=str(e))
            raise StoreError(f"GET {key} failed: {e}", operation="get") from e

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> None:
        try:
            await self._ensure_initialized()
            if ttl_s:
                await self.client.setex(self._key(key), ttl_s, value)
            else:
                await self.client.set(self._key(key), value)
        except StoreError:
            raise
        except Exception as e:
            logger.error("Redis SET failed", key=key[:40], error=str(e))
            raise StoreError(f"SET {key} failed: {e}", operation="set") from e

    async def delete(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            return await self.client.delete(self._key(key)) > 0
        except StoreError:
            raise
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:40], error=str(e))
            raise StoreError(f"DELETE {key} failed: {e}", operation="delete") from e

    async def push_to_list(self, key: str, value: str) -> int:
        """Append a value to the tail of a list; returns the new length."""
        try:
            await self._ensure_initialized()
            return int(await self.client.rpush(self._key(key), value))
        except StoreError:
            raise
        except Exception as e:
            logger.error(
                "Redis LIST push failed", key=key[:40], value_preview=value[:30], error=str(e)
            )
            raise StoreError(f"RPUSH {key} failed: {e}", operation="push_to_list") from e

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        """Return a range of values from a list, head first."""
        try:
            await self._ensure_initialized()
            result = await self.client.lrange(self._key(key), start, end)
            return [str(item) for item in result] if result else []
        except StoreError:
            raise
        except Exception as e:
            logger.error("Redis LRANGE failed", key=key[:40], error=str(e))
            raise StoreError(f"LRANGE {key} failed: {e}", operation="list_range") from e

    async def remove_from_list(self, key: str, value: str) -> bool:
        """Remove every occurrence of an exact value from a list."""
        try:
            await self._ensure_initialized()
            return await self.client.lrem(self._key(key), 0, value) > 0
        except StoreError:
            raise
        except Exception as e:
            logger.error("Redis LREM failed", key=key[:40], error=str(e))
            raise StoreError(f"LREM {key} failed: {e}", operation="remove_from_list") from e

    async def replace_in_list(self, key: str, old_value: str, new_value: str) -> bool:
        """Swap one list element in place, keeping its position."""
        try:
            await self._ensure_initialized()
            values = await self.client.lrange(self._key(key), 0, -1)
            for index, current in enumerate(values):
                if current == old_value:
                    await self.client.lset(self._key(key), index, new_value)
                    return True
            return False
        except StoreError:
            raise
        except Exception as e:
            logger.error("Redis LSET failed", key=key[:40], error=str(e))
            raise StoreError(f"LSET {key} failed: {e}", operation="replace_in_list") from e


async def get_json(store, key: str, default: Any = None) -> Any:
    """Read and decode a JSON value, returning default when absent."""
    raw = await store.get(key)
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding undecodable stored value", key=key[:40])
        return default


async def set_json(store, key: str, value: Any, ttl_s: int | None = None) -> None:
    """Encode and write a JSON value."""
    await store.set_with_ttl(key, json.dumps(value, default=str), ttl_s)
