"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, RedisClient
from .redis_store import RedisStore
from .sql_store import SqlStore

__all__ = ['get_redis', 'RedisClient', 'RedisStore', 'SqlStore']
