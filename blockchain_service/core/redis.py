"""
Redis connection used as the job queue broker.
"""

import asyncio
from typing import Optional, Any, Dict

import redis.asyncio as redis
from redis.asyncio import Redis

from .config import settings
from .logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Owns the broker connection pool; tests pass a ready ``client`` instead."""

    def __init__(self, url: Optional[str] = None, client: Optional[Redis] = None):
        self.url = url or settings.redis_url
        self._client: Optional[Redis] = client
        self._pool: Optional[redis.ConnectionPool] = None

    async def connect(self) -> None:
        if self._client is None:
            # Blocking BLMOVE claims hold a connection each
            self._pool = redis.ConnectionPool.from_url(
                self.url,
                decode_responses=True,
                max_connections=settings.worker_concurrency + 10,
                retry_on_timeout=True,
                socket_keepalive=True,
            )
            self._client = Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except redis.RedisError as e:
            logger.error("Queue broker unreachable", error=str(e))
            raise
        logger.info("Queue broker connected")

    async def disconnect(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except redis.RedisError as e:
            logger.warning("Error closing queue broker connection", error=str(e))
        self._client = None
        logger.info("Queue broker connection closed")

    @property
    def client(self) -> Redis:
        if self._client is None:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self._client

    async def health_check(self) -> Dict[str, Any]:
        """Ping the broker and report round-trip time in milliseconds."""
        if self._client is None:
            return {"status": "disconnected", "error": "No connection"}

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        try:
            result = await self._client.ping()
        except (redis.RedisError, OSError) as e:
            return {"status": "error", "error": str(e)}

        return {
            "status": "healthy" if result else "unhealthy",
            "ping_ms": round((loop.time() - start_time) * 1000, 2),
        }
