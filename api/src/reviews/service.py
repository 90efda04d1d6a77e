"""Review service layer.

Joins durable review documents (Cassandra) with the live like counters,
liked sets and pinned pointers kept in Redis, and owns the rules that
span the two stores:

- Like increments the counter before recording the user's like.
- Pinning unpins the previous review, pins the new one, then moves the
  product's pointer, in that order.
- Deleting a review drops its like counter and, if it was pinned, the
  product's pointer.

None of these sequences is transactional. A failure part-way leaves the
earlier steps applied, and readers tolerate the leftovers (a pointer to a
deleted review reads as "no pin").
"""

import asyncio
from collections.abc import Sequence

import structlog

from .cache import (
    PINNED_REVIEWS_KEY,
    REVIEW_LIKES_KEY,
    ReviewCounterStore,
    user_likes_key,
)
from .exceptions import InvalidArgumentError, ReviewNotFoundError, StoreUnavailableError
from .models import (
    Review,
    ReviewFilter,
    ReviewInfo,
    ReviewList,
    create_review,
    parse_review_id,
)
from .repository import ReviewRepository


logger = structlog.get_logger(__name__)


class ReviewService:
    """Service for review creation, likes, listing and moderation."""

    def __init__(self, repository: ReviewRepository, counters: ReviewCounterStore):
        self.repository = repository
        self.counters = counters

    # ==========================================================================
    # Creation and likes
    # ==========================================================================

    async def create_review(
        self,
        content: str,
        product_id: int,
        parent_id: str | None,
        stars: int,
        pic_info: list[str] | None,
        is_anonymous: bool,
        user_id: int,
    ) -> str:
        """Persist a new review and return its id.

        The creation timestamp is assigned here. Likes and pins start
        empty, so Redis is not touched.
        """
        review = create_review(
            content=content,
            user_id=user_id,
            product_id=product_id,
            stars=stars,
            parent_id=parent_id,
            is_anonymous=is_anonymous,
            pic_info=pic_info,
        )
        review_id = await self.repository.insert(review)
        logger.info(
            "review_created",
            review_id=review_id,
            product_id=product_id,
            is_reply=review.is_reply,
        )
        return review_id

    async def like(self, review_id: str, user_id: int) -> None:
        """Count a like and remember that the user liked the review.

        The increment is not gated on set membership, so liking twice
        counts twice. If recording the like in the user's set fails, the
        increment is kept.
        """
        review_key = str(parse_review_id(review_id))

        try:
            likes = await self.counters.increment_hash_field(
                REVIEW_LIKES_KEY, review_key, 1
            )
        except StoreUnavailableError:
            logger.error("like_increment_failed", review_id=review_key)
            raise

        try:
            await self.counters.set_add(user_likes_key(user_id), review_key)
        except StoreUnavailableError:
            logger.error(
                "like_set_add_failed",
                review_id=review_key,
                liked_by=user_id,
                likes=likes,
            )
            raise

        logger.info("review_liked", review_id=review_key, liked_by=user_id, likes=likes)

    # ==========================================================================
    # Listing
    # ==========================================================================

    async def get_list_by_user_id(self, user_id: int) -> list[ReviewInfo]:
        """Reviews written by a user, as seen by that same user."""
        reviews = await self.repository.find(ReviewFilter(user_id=user_id))
        return await self._build_review_infos(reviews, user_id)

    async def get_list_by_product_id(
        self, product_id: int, user_id: int | None = None
    ) -> ReviewList:
        """All reviews of a product plus the product's pinned review."""
        reviews = await self.repository.find(ReviewFilter(product_id=product_id))
        infos = await self._build_review_infos(reviews, user_id)

        pinned_review = None
        pinned_id = await self._read_pinned_review_id(product_id)
        if pinned_id:
            pinned_review = await self._get_pinned_review_info(
                pinned_id, product_id, user_id
            )

        return ReviewList(reviews=infos, pinned_review=pinned_review)

    async def get_list_by_query(
        self, product_id: int, stars: int = 0, user_id: int | None = None
    ) -> list[ReviewInfo]:
        """Reviews of a product, newest first, optionally of one rating.

        ``stars`` of 0 (or less) matches every rating.
        """
        reviews = await self.repository.find(
            ReviewFilter(
                product_id=product_id,
                stars=stars if stars > 0 else None,
                newest_first=True,
            )
        )
        reviews.sort(key=lambda review: review.created_at, reverse=True)
        return await self._build_review_infos(reviews, user_id)

    async def get_review(self, review_id: str, user_id: int | None = None) -> ReviewInfo:
        """A single review with its live counters."""
        review = await self.repository.get(review_id)
        infos = await self._build_review_infos([review], user_id)
        return infos[0]

    # ==========================================================================
    # Moderation
    # ==========================================================================

    async def pin_review(self, review_id: str) -> None:
        """Make a review the single pinned review of its product.

        Order is unpin-old, pin-new, move-pointer: a crash in between can
        leave no pin recorded, never two pinned reviews. Any failure
        aborts the remaining steps. A previous pointer whose review no
        longer exists is skipped.
        """
        review = await self.repository.get(review_id)
        new_id = review.review_id or ""
        product_key = str(review.product_id)

        old_id = await self.counters.get_hash_field(PINNED_REVIEWS_KEY, product_key)
        if old_id and old_id != new_id:
            try:
                await self.repository.update_pin_flag(old_id, False)
            except (ReviewNotFoundError, InvalidArgumentError):
                logger.warning(
                    "stale_pinned_pointer_skipped",
                    product_id=review.product_id,
                    pinned_review_id=old_id,
                )

        await self.repository.update_pin_flag(new_id, True)
        await self.counters.set_hash_field(PINNED_REVIEWS_KEY, product_key, new_id)

        logger.info(
            "review_pinned",
            review_id=new_id,
            product_id=review.product_id,
            unpinned_review_id=old_id or None,
        )

    async def delete_review(self, review_id: str) -> None:
        """Delete a review and clean up its Redis state.

        Liked sets of individual users are not scanned; a deleted id left
        in them never matches a listed review.

        Raises:
            StoreUnavailableError: If Redis is down. Checked before the
                document is removed, so a retry still finds the review.
        """
        review = await self.repository.get(review_id)
        deleted_id = review.review_id or ""
        product_key = str(review.product_id)

        # Fail fast while the document still exists
        await self.counters.get_hash_field(PINNED_REVIEWS_KEY, product_key)

        await self.repository.delete(deleted_id)
        await self.counters.delete_hash_field(REVIEW_LIKES_KEY, deleted_id)

        pinned_id = await self.counters.get_hash_field(PINNED_REVIEWS_KEY, product_key)
        if pinned_id == deleted_id:
            await self.counters.delete_hash_field(PINNED_REVIEWS_KEY, product_key)

        logger.info(
            "review_deleted",
            review_id=deleted_id,
            product_id=review.product_id,
            was_pinned=pinned_id == deleted_id,
        )

    # ==========================================================================
    # Join helpers
    # ==========================================================================

    async def _build_review_infos(
        self, reviews: Sequence[Review], user_id: int | None
    ) -> list[ReviewInfo]:
        """Attach like counts and liked flags to a batch of reviews.

        One HMGET for all counts and one SMEMBERS for the user, run
        concurrently, whatever the number of reviews.
        """
        review_ids = [review.review_id or "" for review in reviews]
        likes, liked_ids = await self._read_like_state(review_ids, user_id)

        return [
            ReviewInfo(
                review=review,
                likes=likes.get(review_id, 0),
                current_user_liked=review_id in liked_ids,
            )
            for review, review_id in zip(reviews, review_ids, strict=True)
        ]

    async def _read_like_state(
        self, review_ids: list[str], user_id: int | None
    ) -> tuple[dict[str, int], set[str]]:
        """Fetch counts and the user's liked set, degrading on Redis failure.

        A counter store outage must not break browsing: counts fall back
        to 0 and liked flags to False.
        """

        async def no_likes() -> set[str]:
            return set()

        counts_result, liked_result = await asyncio.gather(
            self.counters.multi_get_hash_fields(REVIEW_LIKES_KEY, review_ids),
            self.counters.set_members(user_likes_key(user_id))
            if user_id is not None
            else no_likes(),
            return_exceptions=True,
        )

        if isinstance(counts_result, StoreUnavailableError):
            logger.warning("counter_store_degraded", part="like_counts")
            counts_result = {}
        elif isinstance(counts_result, BaseException):
            raise counts_result

        if isinstance(liked_result, StoreUnavailableError):
            logger.warning("counter_store_degraded", part="liked_set")
            liked_result = set()
        elif isinstance(liked_result, BaseException):
            raise liked_result

        return counts_result, liked_result

    async def _read_pinned_review_id(self, product_id: int) -> str:
        try:
            return await self.counters.get_hash_field(
                PINNED_REVIEWS_KEY, str(product_id)
            )
        except StoreUnavailableError:
            logger.warning("counter_store_degraded", part="pinned_pointer")
            return ""

    async def _get_pinned_review_info(
        self, pinned_id: str, product_id: int, user_id: int | None
    ) -> ReviewInfo | None:
        """Resolve the pinned pointer; a dangling pointer means no pin."""
        try:
            return await self.get_review(pinned_id, user_id)
        except (ReviewNotFoundError, InvalidArgumentError):
            logger.warning(
                "dangling_pinned_pointer",
                product_id=product_id,
                pinned_review_id=pinned_id,
            )
            return None
