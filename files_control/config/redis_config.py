"""
Redis Configuration

Process-wide connection pool for the ledger. init_redis() is called once by
the app factory; repositories are then handed out with the configured key
prefix so several deployments can share one Redis database.
"""

import os
from typing import Optional

from ..infrastructure.redis_repository import RedisConnectionManager, RedisRepository


class RedisConfig:
    """Connection settings; REDIS_URL, when set, overrides host/port/db/password."""

    def __init__(self):
        self.url = os.getenv("REDIS_URL")
        self.host = os.getenv("REDIS_HOST", "localhost")
        self.port = int(os.getenv("REDIS_PORT", 6379))
        self.db = int(os.getenv("REDIS_DB", 0))
        self.password = os.getenv("REDIS_PASSWORD")
        self.max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", 20))
        self.key_prefix = os.getenv("REDIS_KEY_PREFIX", "files_control")


_redis_manager: Optional[RedisConnectionManager] = None
_key_prefix: str = ""


def init_redis(config: Optional[RedisConfig] = None) -> RedisConnectionManager:
    """Create the shared connection pool, replacing any previous one."""
    global _redis_manager, _key_prefix

    config = config or RedisConfig()
    if _redis_manager is not None:
        _redis_manager.close()

    _redis_manager = RedisConnectionManager(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        max_connections=config.max_connections,
        url=config.url,
    )
    _key_prefix = config.key_prefix
    return _redis_manager


def get_redis_client():
    if _redis_manager is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_manager.client


def get_redis_repository(key_prefix: Optional[str] = None) -> RedisRepository:
    """
    Repository over the shared client.

    Args:
        key_prefix: Overrides REDIS_KEY_PREFIX, e.g. for an isolated test namespace
    """
    prefix = _key_prefix if key_prefix is None else key_prefix
    return RedisRepository(get_redis_client(), prefix)


def redis_health_check() -> bool:
    """True when the pool is initialized and Redis answers PING."""
    return _redis_manager is not None and _redis_manager.health_check()
