"""Database models for product reviews.

Cassandra table definitions for:
- reviews_by_id: point lookups by review id
- reviews_by_product: per-product listing, newest first
- reviews_by_user: per-author listing, newest first

The three tables hold the same columns and are written together in a
logged batch. Like counts and the pinned pointer live in Redis (see
``src.reviews.cache``); ``is_pinned`` here only mirrors the pointer for
query convenience.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from .exceptions import InvalidArgumentError


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

REVIEWS_BY_ID_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.reviews_by_id (
    review_id UUID PRIMARY KEY,
    product_id INT,
    user_id INT,
    parent_id TEXT,
    content TEXT,
    stars INT,
    is_anonymous BOOLEAN,
    pic_info LIST<TEXT>,
    is_pinned BOOLEAN,
    created_at TIMESTAMP
)
"""

# Partition by product, clustering by created_at for newest-first listing
REVIEWS_BY_PRODUCT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.reviews_by_product (
    product_id INT,
    created_at TIMESTAMP,
    review_id UUID,
    user_id INT,
    parent_id TEXT,
    content TEXT,
    stars INT,
    is_anonymous BOOLEAN,
    pic_info LIST<TEXT>,
    is_pinned BOOLEAN,
    PRIMARY KEY ((product_id), created_at, review_id)
) WITH CLUSTERING ORDER BY (created_at DESC, review_id ASC)
"""

REVIEWS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.reviews_by_user (
    user_id INT,
    created_at TIMESTAMP,
    review_id UUID,
    product_id INT,
    parent_id TEXT,
    content TEXT,
    stars INT,
    is_anonymous BOOLEAN,
    pic_info LIST<TEXT>,
    is_pinned BOOLEAN,
    PRIMARY KEY ((user_id), created_at, review_id)
) WITH CLUSTERING ORDER BY (created_at DESC, review_id ASC)
"""

REVIEWS_TABLES_CQL = [
    REVIEWS_BY_ID_TABLE_CQL,
    REVIEWS_BY_PRODUCT_TABLE_CQL,
    REVIEWS_BY_USER_TABLE_CQL,
]


# Parent ids that mark a top-level review
TOP_LEVEL_PARENT_IDS = (None, "", "0")


# ==============================================================================
# Entities
# ==============================================================================


@dataclass
class Review:
    """Durable review document."""

    content: str
    user_id: int
    product_id: int
    stars: int
    created_at: datetime
    parent_id: str | None = None
    is_anonymous: bool = False
    pic_info: list[str] = field(default_factory=list)
    is_pinned: bool = False
    review_id: str | None = None

    @property
    def is_reply(self) -> bool:
        return self.parent_id not in TOP_LEVEL_PARENT_IDS

    @staticmethod
    def is_complete_row(row: Any) -> bool:
        """False for key-only rows.

        A pin-flag UPDATE that lands after a concurrent DELETE recreates
        the row with nothing but its keys and ``is_pinned``.
        """
        return (
            row.user_id is not None
            and row.product_id is not None
            and row.created_at is not None
        )

    @classmethod
    def from_row(cls, row: Any) -> "Review":
        """Create Review from a row of any of the review tables."""
        created_at = row.created_at
        # The driver returns naive UTC datetimes
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return cls(
            review_id=str(row.review_id),
            content=row.content or "",
            user_id=row.user_id,
            product_id=row.product_id,
            parent_id=row.parent_id,
            stars=row.stars or 0,
            is_anonymous=row.is_anonymous or False,
            pic_info=list(row.pic_info or []),
            is_pinned=row.is_pinned or False,
            created_at=created_at,
        )


@dataclass
class ReviewInfo:
    """A review joined with its live like count and per-user flags.

    Never persisted; built per request by ``ReviewService``.
    """

    review: Review
    likes: int = 0
    current_user_liked: bool = False

    @property
    def review_id(self) -> str:
        return self.review.review_id or ""

    @property
    def is_pinned(self) -> bool:
        return self.review.is_pinned


@dataclass
class ReviewList:
    """Product listing with the product's pinned review, if any."""

    reviews: list[ReviewInfo]
    pinned_review: ReviewInfo | None = None


@dataclass
class ReviewFilter:
    """Equality filter for review list queries.

    At least one of product_id or user_id selects the partition to read;
    stars of None matches any rating.
    """

    product_id: int | None = None
    user_id: int | None = None
    stars: int | None = None
    newest_first: bool = True


def create_review(
    content: str,
    user_id: int,
    product_id: int,
    stars: int,
    parent_id: str | None = None,
    is_anonymous: bool = False,
    pic_info: list[str] | None = None,
) -> Review:
    """Create a new, unsaved review stamped with the server time."""
    return Review(
        content=content,
        user_id=user_id,
        product_id=product_id,
        stars=stars,
        parent_id=parent_id,
        is_anonymous=is_anonymous,
        pic_info=list(pic_info or []),
        is_pinned=False,
        created_at=datetime.now(UTC),
    )


def parse_review_id(review_id: str) -> UUID:
    """Parse a review id, raising InvalidArgumentError when malformed."""
    try:
        return UUID(str(review_id))
    except ValueError as e:
        raise InvalidArgumentError(f"Invalid review id: {review_id!r}") from e
