"""Redis-backed like counters, liked sets and pinned pointers.

Key layout (shared with existing deployments, do not rename):
- ``review_likes``: hash, review_id -> like count
- ``pinned_reviews``: hash, str(product_id) -> pinned review_id
- ``user:{user_id}:likes``: set of review ids liked by the user
"""

from collections.abc import Iterable

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.core.redis import RedisConnection

from .exceptions import StoreUnavailableError


logger = structlog.get_logger(__name__)

REVIEW_LIKES_KEY = "review_likes"
PINNED_REVIEWS_KEY = "pinned_reviews"


def user_likes_key(user_id: int) -> str:
    """Get the liked-reviews set name for a user."""
    return f"user:{user_id}:likes"


class ReviewCounterStore:
    """Thin async adapter over the Redis hash and set commands we use.

    Every Redis failure surfaces as StoreUnavailableError; deciding whether
    a read may degrade is left to the caller.
    """

    def __init__(self, connection: RedisConnection):
        self.connection = connection

    def _client(self) -> Redis:
        client = self.connection.client
        if client is None:
            raise StoreUnavailableError("Redis is not connected")
        return client

    def _unavailable(self, op: str, key: str, error: RedisError) -> StoreUnavailableError:
        logger.error("counter_store_failed", op=op, key=key, error=str(error))
        return StoreUnavailableError(f"Redis {op} failed on {key}")

    async def increment_hash_field(self, key: str, field: str, delta: int) -> int:
        """HINCRBY; returns the new value."""
        try:
            return int(await self._client().hincrby(key, field, delta))
        except RedisError as e:
            raise self._unavailable("HINCRBY", key, e) from e

    async def set_add(self, key: str, member: str) -> None:
        try:
            await self._client().sadd(key, member)
        except RedisError as e:
            raise self._unavailable("SADD", key, e) from e

    async def multi_get_hash_fields(
        self, key: str, fields: Iterable[str]
    ) -> dict[str, int]:
        """HMGET as counts; missing or non-integer fields resolve to 0."""
        fields = list(fields)
        if not fields:
            return {}

        try:
            values = await self._client().hmget(key, fields)
        except RedisError as e:
            raise self._unavailable("HMGET", key, e) from e

        counts: dict[str, int] = {}
        for field, value in zip(fields, values, strict=True):
            if value is None:
                counts[field] = 0
                continue
            try:
                counts[field] = int(value)
            except (TypeError, ValueError):
                logger.warning(
                    "counter_value_unparsable", key=key, field=field, value=value
                )
                counts[field] = 0
        return counts

    async def set_members(self, key: str) -> set[str]:
        """SMEMBERS; an absent key is an empty set."""
        try:
            return set(await self._client().smembers(key))
        except RedisError as e:
            raise self._unavailable("SMEMBERS", key, e) from e

    async def get_hash_field(self, key: str, field: str) -> str:
        """HGET; an absent field is the empty string."""
        try:
            value = await self._client().hget(key, field)
        except RedisError as e:
            raise self._unavailable("HGET", key, e) from e
        return value or ""

    async def set_hash_field(self, key: str, field: str, value: str) -> None:
        try:
            await self._client().hset(key, field, value)
        except RedisError as e:
            raise self._unavailable("HSET", key, e) from e

    async def delete_hash_field(self, key: str, field: str) -> None:
        try:
            await self._client().hdel(key, field)
        except RedisError as e:
            raise self._unavailable("HDEL", key, e) from e
