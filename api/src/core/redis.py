"""Redis connection management.

The connection is an explicitly constructed object owned by the
application lifespan: ``connect()`` on startup, ``close()`` on shutdown.
Adapters receive it by injection instead of reaching for a global client.
"""

import redis.asyncio as redis

from src.config.settings import Settings
from src.core.logging import get_logger


logger = get_logger(__name__)


class RedisConnection:
    """Owns the async Redis client and its connection pool."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis | None:
        """The pooled client, or None before connect() and after close()."""
        return self._client

    @property
    def is_connected(self) -> bool:
        """True once a client exists; use ping() for server health."""
        return self._client is not None

    async def connect(self) -> redis.Redis:
        """Create the connection pool and verify it with a PING.

        The client is kept even when the PING fails: the pool dials again
        on the next command, so a server that comes up later is used
        without a restart.

        Raises:
            redis.RedisError: If the server cannot be reached right now.
        """
        if self._client is not None:
            return self._client

        client = redis.from_url(
            self.settings.redis_url,
            max_connections=self.settings.redis_max_connections,
            socket_timeout=self.settings.redis_socket_timeout,
            socket_connect_timeout=self.settings.redis_socket_connect_timeout,
            retry_on_timeout=self.settings.redis_retry_on_timeout,
            health_check_interval=self.settings.redis_health_check_interval,
            decode_responses=True,
        )

        self._client = client
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.warning("redis_connection_failed", error=str(e))
            raise

        logger.info("redis_connected", url=self.settings.redis_url)
        return client

    async def ping(self) -> bool:
        """Check the server answers; False when down or not connected."""
        if self._client is None:
            return False
        try:
            return bool(await self._client.ping())
        except redis.RedisError:
            return False

    async def close(self) -> None:
        """Close the client and release the pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("redis_disconnected")
