"""Tests for ReviewService.

Covers the cross-store rules:
- create / like / list joins
- pin ordering and abort behaviour
- delete cleanup of counters and pointers
- degraded reads while the counter store is down
"""

from datetime import UTC, datetime, timedelta

import pytest

from src.reviews.cache import PINNED_REVIEWS_KEY, REVIEW_LIKES_KEY, user_likes_key
from src.reviews.exceptions import (
    InvalidArgumentError,
    ReviewNotFoundError,
    StoreUnavailableError,
)
from src.reviews.service import ReviewService


PRODUCT_ID = 42
AUTHOR_ID = 123
LIKER_ID = 77


async def _create(service: ReviewService, **overrides) -> str:
    fields = {
        "content": "Works as advertised",
        "product_id": PRODUCT_ID,
        "parent_id": None,
        "stars": 5,
        "pic_info": [],
        "is_anonymous": False,
        "user_id": AUTHOR_ID,
    }
    fields.update(overrides)
    return await service.create_review(**fields)


class TestCreateReview:
    """Tests for create_review."""

    @pytest.mark.asyncio
    async def test_create_then_get_returns_same_fields(self, review_service, counters):
        """Should persist every caller field and assign an id."""
        before = datetime.now(UTC)

        review_id = await _create(
            review_service,
            content="Nice",
            stars=4,
            pic_info=["a.png", "b.png"],
            is_anonymous=True,
            parent_id="0",
        )

        info = await review_service.get_review(review_id)
        assert info.review_id == review_id
        assert info.review.content == "Nice"
        assert info.review.stars == 4
        assert info.review.pic_info == ["a.png", "b.png"]
        assert info.review.is_anonymous is True
        assert info.review.user_id == AUTHOR_ID
        assert info.review.product_id == PRODUCT_ID
        assert info.review.created_at >= before
        assert info.review.created_at.tzinfo is not None
        assert info.likes == 0
        assert info.is_pinned is False

    @pytest.mark.asyncio
    async def test_create_does_not_touch_counter_store(self, review_service, counters):
        """Likes and pins start empty, so no Redis call is made."""
        await _create(review_service)

        assert counters.calls == []

    @pytest.mark.asyncio
    async def test_create_ids_are_unique(self, review_service):
        first = await _create(review_service)
        second = await _create(review_service)

        assert first != second

    @pytest.mark.asyncio
    async def test_create_store_failure_persists_nothing(
        self, review_service, repository
    ):
        repository.fail_on.add("insert")

        with pytest.raises(StoreUnavailableError):
            await _create(review_service)

        assert repository.rows == {}


class TestLike:
    """Tests for like."""

    @pytest.mark.asyncio
    async def test_never_liked_review_counts_zero(self, review_service, seed_review):
        review_id = seed_review()

        info = await review_service.get_review(review_id, user_id=LIKER_ID)

        assert info.likes == 0
        assert info.current_user_liked is False

    @pytest.mark.asyncio
    async def test_like_increments_counter_and_records_user(
        self, review_service, counters, seed_review
    ):
        review_id = seed_review()

        await review_service.like(review_id, LIKER_ID)

        assert counters.hashes[REVIEW_LIKES_KEY][review_id] == "1"
        assert review_id in counters.sets[user_likes_key(LIKER_ID)]

    @pytest.mark.asyncio
    async def test_like_increments_before_recording_user(
        self, review_service, counters, seed_review
    ):
        review_id = seed_review()

        await review_service.like(review_id, LIKER_ID)

        assert [call[0] for call in counters.calls] == [
            "increment_hash_field",
            "set_add",
        ]

    @pytest.mark.asyncio
    async def test_like_shows_in_product_listing(
        self, review_service, seed_review
    ):
        review_id = seed_review()

        await review_service.like(review_id, LIKER_ID)
        listing = await review_service.get_list_by_product_id(PRODUCT_ID, LIKER_ID)

        assert listing.reviews[0].likes == 1
        assert listing.reviews[0].current_user_liked is True

    @pytest.mark.asyncio
    async def test_liked_flag_is_per_user(self, review_service, seed_review):
        review_id = seed_review()

        await review_service.like(review_id, LIKER_ID)
        listing = await review_service.get_list_by_product_id(PRODUCT_ID, 999)

        assert listing.reviews[0].likes == 1
        assert listing.reviews[0].current_user_liked is False

    @pytest.mark.asyncio
    async def test_repeated_like_inflates_counter(
        self, review_service, counters, seed_review
    ):
        """KNOWN BEHAVIOUR: a second like by the same user counts again.

        The counter is not gated on membership of the user's liked set, so
        the count drifts above the number of distinct likers.
        """
        review_id = seed_review()

        await review_service.like(review_id, LIKER_ID)
        await review_service.like(review_id, LIKER_ID)

        info = await review_service.get_review(review_id, LIKER_ID)
        assert info.likes == 2
        assert counters.sets[user_likes_key(LIKER_ID)] == {review_id}
        assert info.current_user_liked is True

    @pytest.mark.asyncio
    async def test_like_increment_failure_skips_set_add(
        self, review_service, counters, seed_review
    ):
        review_id = seed_review()
        counters.fail_on.add("increment_hash_field")

        with pytest.raises(StoreUnavailableError):
            await review_service.like(review_id, LIKER_ID)

        assert counters.ops("set_add") == []

    @pytest.mark.asyncio
    async def test_like_set_add_failure_keeps_increment(
        self, review_service, counters, seed_review
    ):
        """The increment is not rolled back when the set update fails."""
        review_id = seed_review()
        counters.fail_on.add("set_add")

        with pytest.raises(StoreUnavailableError):
            await review_service.like(review_id, LIKER_ID)

        assert counters.hashes[REVIEW_LIKES_KEY][review_id] == "1"
        assert review_id not in counters.sets[user_likes_key(LIKER_ID)]

    @pytest.mark.asyncio
    async def test_like_invalid_id_raises_without_store_calls(
        self, review_service, counters
    ):
        with pytest.raises(InvalidArgumentError):
            await review_service.like("not-a-uuid", LIKER_ID)

        assert counters.calls == []

    @pytest.mark.asyncio
    async def test_like_canonicalizes_review_id(
        self, review_service, counters, seed_review
    ):
        review_id = seed_review()

        await review_service.like(review_id.upper(), LIKER_ID)

        assert counters.hashes[REVIEW_LIKES_KEY] == {review_id: "1"}


class TestListing:
    """Tests for the list operations."""

    @pytest.mark.asyncio
    async def test_list_by_user_returns_only_that_users_reviews(
        self, review_service, seed_review
    ):
        own = seed_review(user_id=AUTHOR_ID)
        other_product = seed_review(user_id=AUTHOR_ID, product_id=7)
        seed_review(user_id=555)

        infos = await review_service.get_list_by_user_id(AUTHOR_ID)

        assert {info.review_id for info in infos} == {own, other_product}

    @pytest.mark.asyncio
    async def test_list_by_user_marks_own_likes(self, review_service, seed_review):
        review_id = seed_review(user_id=AUTHOR_ID)

        await review_service.like(review_id, AUTHOR_ID)
        infos = await review_service.get_list_by_user_id(AUTHOR_ID)

        assert infos[0].current_user_liked is True

    @pytest.mark.asyncio
    async def test_list_uses_one_batch_per_store(
        self, review_service, counters, seed_review
    ):
        """Counts and liked flags are fetched in one call each."""
        for minutes in range(5):
            seed_review(minutes_ago=minutes)

        await review_service.get_list_by_query(PRODUCT_ID, 0, LIKER_ID)

        assert len(counters.ops("multi_get_hash_fields")) == 1
        assert len(counters.ops("set_members")) == 1

    @pytest.mark.asyncio
    async def test_anonymous_listing_skips_liked_set(
        self, review_service, counters, seed_review
    ):
        seed_review()

        infos = await review_service.get_list_by_query(PRODUCT_ID)

        assert counters.ops("set_members") == []
        assert infos[0].current_user_liked is False

    @pytest.mark.asyncio
    async def test_query_stars_zero_returns_all_newest_first(
        self, review_service, seed_review
    ):
        oldest = seed_review(stars=5, minutes_ago=30)
        newest = seed_review(stars=3, minutes_ago=1)
        middle = seed_review(stars=4, minutes_ago=10)
        seed_review(product_id=7)

        infos = await review_service.get_list_by_query(PRODUCT_ID, 0)

        assert [info.review_id for info in infos] == [newest, middle, oldest]

    @pytest.mark.asyncio
    async def test_query_filters_by_stars(self, review_service, seed_review):
        older_four = seed_review(stars=4, minutes_ago=20)
        newer_four = seed_review(stars=4, minutes_ago=5)
        seed_review(stars=5, minutes_ago=1)

        infos = await review_service.get_list_by_query(PRODUCT_ID, 4)

        assert [info.review_id for info in infos] == [newer_four, older_four]
        assert all(info.review.stars == 4 for info in infos)

    @pytest.mark.asyncio
    async def test_query_with_no_matches_is_empty(self, review_service, counters):
        infos = await review_service.get_list_by_query(PRODUCT_ID, 5)

        assert infos == []
        assert counters.ops("multi_get_hash_fields") == []

    @pytest.mark.asyncio
    async def test_product_listing_includes_pinned_review(
        self, review_service, seed_review
    ):
        review_id = seed_review()
        seed_review(minutes_ago=3)

        await review_service.pin_review(review_id)
        listing = await review_service.get_list_by_product_id(PRODUCT_ID)

        assert listing.pinned_review is not None
        assert listing.pinned_review.review_id == review_id
        assert listing.pinned_review.is_pinned is True
        assert len(listing.reviews) == 2

    @pytest.mark.asyncio
    async def test_product_listing_without_pin(self, review_service, seed_review):
        seed_review()

        listing = await review_service.get_list_by_product_id(PRODUCT_ID)

        assert listing.pinned_review is None

    @pytest.mark.asyncio
    async def test_dangling_pointer_reads_as_no_pin(
        self, review_service, counters, seed_review
    ):
        seed_review()
        counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] = (
            "00000000-0000-0000-0000-000000000000"
        )

        listing = await review_service.get_list_by_product_id(PRODUCT_ID)

        assert listing.pinned_review is None
        assert len(listing.reviews) == 1

    @pytest.mark.asyncio
    async def test_degraded_listing_when_counter_store_down(
        self, review_service, counters, seed_review
    ):
        """Reviews still list; counts are 0, flags false, no pin."""
        review_id = seed_review()
        await review_service.like(review_id, LIKER_ID)
        await review_service.pin_review(review_id)
        counters.down = True

        listing = await review_service.get_list_by_product_id(PRODUCT_ID, LIKER_ID)

        assert [info.review_id for info in listing.reviews] == [review_id]
        assert listing.reviews[0].likes == 0
        assert listing.reviews[0].current_user_liked is False
        assert listing.pinned_review is None

    @pytest.mark.asyncio
    async def test_review_store_failure_fails_listing(
        self, review_service, repository
    ):
        repository.fail_on.add("find")

        with pytest.raises(StoreUnavailableError):
            await review_service.get_list_by_query(PRODUCT_ID)

    @pytest.mark.asyncio
    async def test_get_review_unknown_id_not_found(self, review_service):
        with pytest.raises(ReviewNotFoundError):
            await review_service.get_review("00000000-0000-0000-0000-000000000001")


class TestPinReview:
    """Tests for pin_review."""

    @pytest.mark.asyncio
    async def test_pin_sets_flag_and_pointer(
        self, review_service, repository, counters, seed_review
    ):
        review_id = seed_review()

        await review_service.pin_review(review_id)

        assert repository.rows[review_id].is_pinned is True
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == review_id

    @pytest.mark.asyncio
    async def test_repin_moves_single_pin(
        self, review_service, repository, counters, seed_review
    ):
        first = seed_review(minutes_ago=5)
        second = seed_review()

        await review_service.pin_review(first)
        await review_service.pin_review(second)

        assert repository.rows[first].is_pinned is False
        assert repository.rows[second].is_pinned is True
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == second
        pinned = [r for r in repository.rows.values() if r.is_pinned]
        assert len(pinned) == 1

    @pytest.mark.asyncio
    async def test_pin_order_unpin_old_pin_new_move_pointer(
        self, review_service, repository, counters, seed_review
    ):
        first = seed_review(minutes_ago=5)
        second = seed_review()
        await review_service.pin_review(first)
        repository.calls.clear()
        counters.calls.clear()

        await review_service.pin_review(second)

        pin_updates = [c for c in repository.calls if c[0] == "update_pin_flag"]
        assert pin_updates == [
            ("update_pin_flag", first, False),
            ("update_pin_flag", second, True),
        ]
        assert [c[0] for c in counters.calls] == ["get_hash_field", "set_hash_field"]

    @pytest.mark.asyncio
    async def test_pin_aborts_when_unpin_fails(
        self, review_service, repository, counters, seed_review
    ):
        first = seed_review(minutes_ago=5)
        second = seed_review()
        await review_service.pin_review(first)
        repository.fail_pin_for.add(first)

        with pytest.raises(StoreUnavailableError):
            await review_service.pin_review(second)

        assert repository.rows[second].is_pinned is False
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == first

    @pytest.mark.asyncio
    async def test_pin_pointer_write_failure_leaves_no_double_pin(
        self, review_service, repository, counters, seed_review
    ):
        first = seed_review(minutes_ago=5)
        second = seed_review()
        await review_service.pin_review(first)
        counters.fail_on.add("set_hash_field")

        with pytest.raises(StoreUnavailableError):
            await review_service.pin_review(second)

        pinned = [r for r in repository.rows.values() if r.is_pinned]
        assert [r.review_id for r in pinned] == [second]
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == first

    @pytest.mark.asyncio
    async def test_pin_same_review_twice_is_idempotent(
        self, review_service, repository, counters, seed_review
    ):
        review_id = seed_review()

        await review_service.pin_review(review_id)
        await review_service.pin_review(review_id)

        assert repository.rows[review_id].is_pinned is True
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == review_id

    @pytest.mark.asyncio
    async def test_pin_skips_dangling_previous_pointer(
        self, review_service, repository, counters, seed_review
    ):
        review_id = seed_review()
        counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] = (
            "00000000-0000-0000-0000-000000000000"
        )

        await review_service.pin_review(review_id)

        assert repository.rows[review_id].is_pinned is True
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == review_id

    @pytest.mark.asyncio
    async def test_pin_unknown_review_not_found(self, review_service, counters):
        with pytest.raises(ReviewNotFoundError):
            await review_service.pin_review("00000000-0000-0000-0000-000000000001")

        assert counters.calls == []

    @pytest.mark.asyncio
    async def test_pin_invalid_id(self, review_service):
        with pytest.raises(InvalidArgumentError):
            await review_service.pin_review("garbage")

    @pytest.mark.asyncio
    async def test_pin_with_counter_store_down_changes_nothing(
        self, review_service, repository, counters, seed_review
    ):
        review_id = seed_review()
        counters.down = True

        with pytest.raises(StoreUnavailableError):
            await review_service.pin_review(review_id)

        assert repository.rows[review_id].is_pinned is False

    @pytest.mark.asyncio
    async def test_pins_are_per_product(
        self, review_service, counters, seed_review
    ):
        on_42 = seed_review(product_id=42)
        on_7 = seed_review(product_id=7)

        await review_service.pin_review(on_42)
        await review_service.pin_review(on_7)

        assert counters.hashes[PINNED_REVIEWS_KEY] == {"42": on_42, "7": on_7}


class TestDeleteReview:
    """Tests for delete_review."""

    @pytest.mark.asyncio
    async def test_delete_removes_document_and_like_counter(
        self, review_service, repository, counters, seed_review
    ):
        review_id = seed_review()
        await review_service.like(review_id, LIKER_ID)

        await review_service.delete_review(review_id)

        assert review_id not in repository.rows
        assert review_id not in counters.hashes[REVIEW_LIKES_KEY]
        with pytest.raises(ReviewNotFoundError):
            await review_service.get_review(review_id)

    @pytest.mark.asyncio
    async def test_delete_pinned_review_clears_pointer(
        self, review_service, counters, seed_review
    ):
        review_id = seed_review()
        await review_service.pin_review(review_id)

        await review_service.delete_review(review_id)

        assert str(PRODUCT_ID) not in counters.hashes[PINNED_REVIEWS_KEY]
        listing = await review_service.get_list_by_product_id(PRODUCT_ID)
        assert listing.pinned_review is None

    @pytest.mark.asyncio
    async def test_delete_unpinned_review_keeps_pointer(
        self, review_service, counters, seed_review
    ):
        pinned = seed_review(minutes_ago=5)
        other = seed_review()
        await review_service.pin_review(pinned)

        await review_service.delete_review(other)

        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == pinned

    @pytest.mark.asyncio
    async def test_delete_unknown_review_not_found(self, review_service, counters):
        with pytest.raises(ReviewNotFoundError):
            await review_service.delete_review("00000000-0000-0000-0000-000000000001")

        assert counters.calls == []

    @pytest.mark.asyncio
    async def test_delete_with_counter_store_down_keeps_document(
        self, review_service, repository, counters, seed_review
    ):
        """A retry after Redis comes back still finds the review."""
        review_id = seed_review()
        await review_service.like(review_id, LIKER_ID)
        counters.down = True

        with pytest.raises(StoreUnavailableError):
            await review_service.delete_review(review_id)

        assert review_id in repository.rows
        assert not [call for call in repository.calls if call[0] == "delete"]

        counters.down = False
        await review_service.delete_review(review_id)

        assert review_id not in repository.rows
        assert review_id not in counters.hashes[REVIEW_LIKES_KEY]

    @pytest.mark.asyncio
    async def test_delete_counter_failure_after_document_delete_leaves_leftovers(
        self, review_service, repository, counters, seed_review
    ):
        """The document is gone; the stale counter is harmless to readers."""
        review_id = seed_review()
        await review_service.like(review_id, LIKER_ID)
        counters.fail_on.add("delete_hash_field")

        with pytest.raises(StoreUnavailableError):
            await review_service.delete_review(review_id)

        assert review_id not in repository.rows
        assert counters.hashes[REVIEW_LIKES_KEY][review_id] == "1"


class TestScenario:
    """A full review lifecycle across both stores."""

    @pytest.mark.asyncio
    async def test_create_like_list_pin_delete(self, review_service, counters):
        review_id = await _create(review_service, stars=5)

        await review_service.like(review_id, LIKER_ID)
        assert counters.hashes[REVIEW_LIKES_KEY][review_id] == "1"
        assert review_id in counters.sets[user_likes_key(LIKER_ID)]

        listing = await review_service.get_list_by_product_id(PRODUCT_ID, LIKER_ID)
        assert [info.review_id for info in listing.reviews] == [review_id]
        assert listing.reviews[0].likes == 1
        assert listing.reviews[0].current_user_liked is True

        await review_service.pin_review(review_id)
        assert counters.hashes[PINNED_REVIEWS_KEY][str(PRODUCT_ID)] == review_id
        listing = await review_service.get_list_by_product_id(PRODUCT_ID, LIKER_ID)
        assert listing.pinned_review.review_id == review_id

        await review_service.delete_review(review_id)
        with pytest.raises(ReviewNotFoundError):
            await review_service.get_review(review_id)
        assert str(PRODUCT_ID) not in counters.hashes[PINNED_REVIEWS_KEY]
        counts = await counters.multi_get_hash_fields(REVIEW_LIKES_KEY, [review_id])
        assert counts == {review_id: 0}

    @pytest.mark.asyncio
    async def test_reviews_sorted_by_creation_time(self, review_service, repository):
        first = await _create(review_service, content="first")
        second = await _create(review_service, content="second")
        base = datetime.now(UTC)
        repository.rows[first].created_at = base - timedelta(minutes=2)
        repository.rows[second].created_at = base - timedelta(minutes=1)

        infos = await review_service.get_list_by_query(PRODUCT_ID)

        assert [info.review_id for info in infos] == [second, first]
