"""
Redis Access Helpers

Provides JSON document helpers and optimistic transactions for Redis-backed
repositories, plus a pooled connection manager.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError

logger = logging.getLogger(__name__)


def decode(value: Any) -> Any:
    """Decode a Redis reply to str when the client returns bytes."""
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisRepository:
    """Base Redis repository with JSON documents and WATCH/MULTI/EXEC transactions."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = ""):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        """Namespace a key with the deployment prefix."""
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    def get_json(self, key: str, client=None) -> Optional[Dict[str, Any]]:
        """
        Read and decode a JSON document.

        Args:
            key: Unprefixed key
            client: Client or watching pipeline to read through (defaults to self.redis)

        Returns:
            The decoded document, or None when missing or corrupt
        """
        reader = client if client is not None else self.redis
        data = reader.get(self._make_key(key))
        if data is None:
            return None
        try:
            return json.loads(decode(data))
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt JSON document at {key}: {e}")
            return None

    def transaction(self, func: Callable[[Any], Any], *keys: str) -> Any:
        """
        Run func inside an optimistic WATCH/MULTI/EXEC transaction.

        func receives a pipeline that is already watching the given keys.
        Reads made through it execute immediately; func must call
        pipe.multi() before queueing writes. The whole function is retried
        when a watched key changes before EXEC. Exceptions raised by func
        abort the transaction and propagate.

        Args:
            func: Transaction body
            keys: Unprefixed keys to watch (None entries are skipped)

        Returns:
            Whatever func returns
        """
        watched = [self._make_key(k) for k in keys if k]
        return self.redis.transaction(func, *watched, value_from_callable=True)


class RedisConnectionManager:
    """Owns the process-wide Redis connection pool."""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 max_connections: int = 20, decode_responses: bool = False,
                 password: Optional[str] = None, url: Optional[str] = None):
        if url:
            self.connection_pool = redis.ConnectionPool.from_url(
                url,
                max_connections=max_connections,
                decode_responses=decode_responses,
                retry_on_timeout=True,
                socket_keepalive=True,
            )
        else:
            self.connection_pool = redis.ConnectionPool(
                host=host,
                port=port,
                db=db,
                password=password,
                max_connections=max_connections,
                decode_responses=decode_responses,
                retry_on_timeout=True,
                socket_keepalive=True,
            )
        self._client = None

    @property
    def client(self) -> redis.Redis:
        """Client bound to the shared pool, created on first use."""
        if self._client is None:
            self._client = redis.Redis(connection_pool=self.connection_pool)
        return self._client

    def health_check(self) -> bool:
        """PING Redis; False when the server is unreachable."""
        try:
            return bool(self.client.ping())
        except RedisConnectionError:
            return False

    def close(self):
        """Disconnect every pooled connection."""
        if self.connection_pool:
            self.connection_pool.disconnect()
