"""
Persistence gateway factory.
Wires the primary and fallback stores into one FallbackStore.
"""

from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qrate.core.logging import get_logger
from qrate.infrastructure.redis_client import get_redis
from qrate.infrastructure.redis_store import RedisStore
from qrate.infrastructure.sql_store import SqlStore
from qrate.services.fallback_store import FallbackStore

logger = get_logger(__name__)


def build_gateway(
    session_factory: async_sessionmaker[AsyncSession],
    redis_client: Optional[redis.Redis] = None,
) -> FallbackStore:
    """
    Compose the gateway.

    Without a Redis client (REDIS_ENABLED=false) the gateway runs primary-only:
    no mirror, and a primary failure surfaces as StorageUnavailableError.
    """
    client = redis_client if redis_client is not None else get_redis()
    fallback = RedisStore(client) if client is not None else None
    if fallback is None:
        logger.warning("fallback_store_disabled", message="Running without key-value fallback")
    return FallbackStore(SqlStore(session_factory), fallback)
