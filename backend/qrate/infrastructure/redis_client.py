"""
Redis client for the key-value fallback store.
Separated from business logic for clean architecture.

The client connects lazily: building it never touches the network, so an
unreachable Redis only shows up as BackendUnavailableError on first use.
"""

from typing import Optional

import redis.asyncio as redis

from qrate.core.config import get_settings
from qrate.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """Singleton async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> Optional[redis.Redis]:
        """Get or create the client. Returns None if Redis is disabled."""
        settings = get_settings()
        if not settings.REDIS_ENABLED:
            return None

        if cls._instance is None:
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
            logger.info("redis_client_created", url=settings.REDIS_URL)
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        """Close Redis connection on shutdown."""
        if cls._instance:
            await cls._instance.aclose()
            cls._instance = None


# Convenience function
def get_redis() -> Optional[redis.Redis]:
    """Get Redis client instance."""
    return RedisClient.get_client()
