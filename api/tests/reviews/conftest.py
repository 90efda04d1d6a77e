"""In-memory stand-ins for the review store and the counter store.

They implement the same coroutine interface as ReviewRepository and
ReviewCounterStore, record every call, and can be told to fail so the
cross-store failure modes of ReviewService can be exercised.
"""

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.reviews.exceptions import (
    InvalidArgumentError,
    ReviewNotFoundError,
    StoreUnavailableError,
)
from src.reviews.models import Review, ReviewFilter, parse_review_id
from src.reviews.service import ReviewService


class InMemoryReviewRepository:
    """Review store double keyed by canonical UUID strings."""

    def __init__(self) -> None:
        self.rows: dict[str, Review] = {}
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.fail_pin_for: set[str] = set()

    def _record(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if op in self.fail_on:
            raise StoreUnavailableError(f"{op} failed")

    def _lookup(self, review_id: str) -> str:
        key = str(parse_review_id(review_id))
        if key not in self.rows:
            raise ReviewNotFoundError
        return key

    async def insert(self, review: Review) -> str:
        self._record("insert")
        review.review_id = str(uuid4())
        self.rows[review.review_id] = replace(review, pic_info=list(review.pic_info))
        return review.review_id

    async def get(self, review_id: str) -> Review:
        self._record("get", review_id)
        return replace(self.rows[self._lookup(review_id)])

    async def delete(self, review_id: str) -> None:
        self._record("delete", review_id)
        del self.rows[self._lookup(review_id)]

    async def update_pin_flag(self, review_id: str, is_pinned: bool) -> None:
        self._record("update_pin_flag", review_id, is_pinned)
        if review_id in self.fail_pin_for:
            raise StoreUnavailableError("pin update failed")
        self.rows[self._lookup(review_id)].is_pinned = is_pinned

    async def find(self, review_filter: ReviewFilter) -> list[Review]:
        self._record("find", review_filter)
        if review_filter.product_id is None and review_filter.user_id is None:
            raise InvalidArgumentError
        matches = [
            replace(r)
            for r in self.rows.values()
            if (review_filter.product_id in (None, r.product_id))
            and (review_filter.user_id in (None, r.user_id))
            and (review_filter.stars in (None, r.stars))
        ]
        matches.sort(key=lambda r: r.created_at, reverse=review_filter.newest_first)
        return matches


class InMemoryCounterStore:
    """Counter/set store double with Redis string semantics for hashes."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = defaultdict(dict)
        self.sets: dict[str, set[str]] = defaultdict(set)
        self.calls: list[tuple] = []
        self.fail_on: set[str] = set()
        self.down = False

    def _record(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if self.down or op in self.fail_on:
            raise StoreUnavailableError(f"{op} failed")

    def ops(self, op: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == op]

    async def increment_hash_field(self, key: str, field: str, delta: int) -> int:
        self._record("increment_hash_field", key, field, delta)
        value = int(self.hashes[key].get(field, "0")) + delta
        self.hashes[key][field] = str(value)
        return value

    async def set_add(self, key: str, member: str) -> None:
        self._record("set_add", key, member)
        self.sets[key].add(member)

    async def multi_get_hash_fields(
        self, key: str, fields: Iterable[str]
    ) -> dict[str, int]:
        fields = list(fields)
        if not fields:
            return {}
        self._record("multi_get_hash_fields", key, tuple(fields))
        return {f: int(self.hashes[key].get(f, "0")) for f in fields}

    async def set_members(self, key: str) -> set[str]:
        self._record("set_members", key)
        return set(self.sets.get(key, set()))

    async def get_hash_field(self, key: str, field: str) -> str:
        self._record("get_hash_field", key, field)
        return self.hashes.get(key, {}).get(field, "")

    async def set_hash_field(self, key: str, field: str, value: str) -> None:
        self._record("set_hash_field", key, field, value)
        self.hashes[key][field] = value

    async def delete_hash_field(self, key: str, field: str) -> None:
        self._record("delete_hash_field", key, field)
        self.hashes.get(key, {}).pop(field, None)


@pytest.fixture
def repository() -> InMemoryReviewRepository:
    return InMemoryReviewRepository()


@pytest.fixture
def counters() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def review_service(repository, counters) -> ReviewService:
    """ReviewService wired to the in-memory stores."""
    return ReviewService(repository=repository, counters=counters)


@pytest.fixture
def seed_review(repository):
    """Insert a review directly, with an explicit creation time."""

    def _seed(
        product_id: int = 42,
        user_id: int = 123,
        stars: int = 5,
        minutes_ago: int = 0,
        content: str = "great",
    ) -> str:
        review = Review(
            content=content,
            user_id=user_id,
            product_id=product_id,
            stars=stars,
            created_at=datetime.now(UTC) - timedelta(minutes=minutes_ago),
            review_id=str(uuid4()),
        )
        repository.rows[review.review_id] = review
        return review.review_id

    return _seed
