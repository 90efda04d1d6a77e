"""Durable review store on Cassandra.

Each review is denormalized into reviews_by_id, reviews_by_product and
reviews_by_user. Every mutation writes the three copies in one logged
batch, so a single-review operation is atomic across its copies; there
are no multi-review transactions.
"""

from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable
from cassandra.query import BatchStatement, BatchType

from .exceptions import InvalidArgumentError, ReviewNotFoundError, StoreUnavailableError
from .models import Review, ReviewFilter, parse_review_id


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

# Failures of the cluster or the transport, as opposed to malformed queries
CASSANDRA_UNAVAILABLE_ERRORS = (
    NoHostAvailable,
    DriverException,
    RequestExecutionException,
)

_REVIEW_COLUMNS = (
    "review_id, product_id, user_id, parent_id, content, stars, "
    "is_anonymous, pic_info, is_pinned, created_at"
)


class ReviewRepository:
    """Insert, lookup, delete and list reviews."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with a connected Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_by_id = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.reviews_by_id ({_REVIEW_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_by_product = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.reviews_by_product ({_REVIEW_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_by_user = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.reviews_by_user ({_REVIEW_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_by_id = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.reviews_by_id
            WHERE review_id = ?
        """)

        # Clustering order already gives created_at DESC
        self._get_by_product = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.reviews_by_product
            WHERE product_id = ?
        """)
        self._get_by_product_and_stars = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.reviews_by_product
            WHERE product_id = ? AND stars = ?
            ALLOW FILTERING
        """)
        self._get_by_user = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.reviews_by_user
            WHERE user_id = ?
        """)

        self._update_pin_by_id = self.session.prepare(f"""
            UPDATE {self.keyspace}.reviews_by_id
            SET is_pinned = ?
            WHERE review_id = ?
        """)
        self._update_pin_by_product = self.session.prepare(f"""
            UPDATE {self.keyspace}.reviews_by_product
            SET is_pinned = ?
            WHERE product_id = ? AND created_at = ? AND review_id = ?
        """)
        self._update_pin_by_user = self.session.prepare(f"""
            UPDATE {self.keyspace}.reviews_by_user
            SET is_pinned = ?
            WHERE user_id = ? AND created_at = ? AND review_id = ?
        """)

        self._delete_by_id = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.reviews_by_id
            WHERE review_id = ?
        """)
        self._delete_by_product = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.reviews_by_product
            WHERE product_id = ? AND created_at = ? AND review_id = ?
        """)
        self._delete_by_user = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.reviews_by_user
            WHERE user_id = ? AND created_at = ? AND review_id = ?
        """)

    async def _execute(self, statement: Any, params: list[Any] | None = None) -> Any:
        """Run a statement, mapping cluster failures to StoreUnavailableError."""
        try:
            return await self.session.aexecute(statement, params)
        except CASSANDRA_UNAVAILABLE_ERRORS as e:
            logger.error(
                "review_store_request_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreUnavailableError from e

    async def _get_row(self, review_uuid: UUID) -> Any:
        result = await self._execute(self._get_by_id, [review_uuid])
        row = result.one() if result is not None else None
        if row is None:
            raise ReviewNotFoundError(f"Review {review_uuid} not found")
        if not Review.is_complete_row(row):
            logger.warning(
                "incomplete_review_row_skipped", review_id=str(review_uuid)
            )
            raise ReviewNotFoundError(f"Review {review_uuid} not found")
        return row

    # ==========================================================================
    # Single-review operations
    # ==========================================================================

    async def insert(self, review: Review) -> str:
        """Insert a new review and return its generated id.

        The id is assigned here; ``review.review_id`` is updated in place.
        """
        review_uuid = uuid4()
        values = [
            review_uuid,
            review.product_id,
            review.user_id,
            review.parent_id,
            review.content,
            review.stars,
            review.is_anonymous,
            review.pic_info,
            review.is_pinned,
            review.created_at,
        ]

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        batch.add(self._insert_by_id, values)
        batch.add(self._insert_by_product, values)
        batch.add(self._insert_by_user, values)
        await self._execute(batch)

        review.review_id = str(review_uuid)
        logger.info(
            "review_saved",
            review_id=review.review_id,
            product_id=review.product_id,
        )
        return review.review_id

    async def get(self, review_id: str) -> Review:
        """Fetch a review by id.

        Raises:
            InvalidArgumentError: id is not a UUID.
            ReviewNotFoundError: no such review.
        """
        row = await self._get_row(parse_review_id(review_id))
        return Review.from_row(row)

    async def delete(self, review_id: str) -> None:
        """Delete a review from all three tables."""
        review_uuid = parse_review_id(review_id)
        row = await self._get_row(review_uuid)

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        batch.add(self._delete_by_id, [review_uuid])
        batch.add(
            self._delete_by_product, [row.product_id, row.created_at, review_uuid]
        )
        batch.add(self._delete_by_user, [row.user_id, row.created_at, review_uuid])
        await self._execute(batch)

        logger.info("review_row_deleted", review_id=review_id)

    async def update_pin_flag(self, review_id: str, is_pinned: bool) -> None:
        """Set the pinned mirror flag on all copies of a review."""
        review_uuid = parse_review_id(review_id)
        row = await self._get_row(review_uuid)

        batch = BatchStatement(batch_type=BatchType.LOGGED)
        batch.add(self._update_pin_by_id, [is_pinned, review_uuid])
        batch.add(
            self._update_pin_by_product,
            [is_pinned, row.product_id, row.created_at, review_uuid],
        )
        batch.add(
            self._update_pin_by_user,
            [is_pinned, row.user_id, row.created_at, review_uuid],
        )
        await self._execute(batch)

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def find(self, review_filter: ReviewFilter) -> list[Review]:
        """List reviews matching an equality filter.

        Reads a single partition: the product's when product_id is set,
        otherwise the author's. Remaining criteria are applied to that
        partition.
        """
        if review_filter.product_id is not None:
            if review_filter.stars is not None:
                rows = await self._execute(
                    self._get_by_product_and_stars,
                    [review_filter.product_id, review_filter.stars],
                )
            else:
                rows = await self._execute(
                    self._get_by_product, [review_filter.product_id]
                )
        elif review_filter.user_id is not None:
            rows = await self._execute(self._get_by_user, [review_filter.user_id])
        else:
            msg = "A product_id or user_id is required to list reviews"
            raise InvalidArgumentError(msg)

        reviews = []
        for row in rows:
            if not Review.is_complete_row(row):
                logger.warning(
                    "incomplete_review_row_skipped", review_id=str(row.review_id)
                )
                continue
            review = Review.from_row(row)
            if (
                review_filter.user_id is not None
                and review.user_id != review_filter.user_id
            ):
                continue
            if review_filter.stars is not None and review.stars != review_filter.stars:
                continue
            reviews.append(review)

        if not review_filter.newest_first:
            reviews.reverse()
        return reviews
