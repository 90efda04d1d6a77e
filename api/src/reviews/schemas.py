"""Pydantic schemas for the review API.

Request validation happens here, before the service is called; the
service trusts ids and integers it receives.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from .models import ReviewInfo, ReviewList


# ==============================================================================
# Constants
# ==============================================================================
MIN_STARS = 1
MAX_STARS = 5
MAX_PICTURES = 9
MAX_CONTENT_LENGTH = 5000

# ==============================================================================
# Request Schemas
# ==============================================================================


class CreateReviewRequest(BaseModel):
    """Request to create a review or a reply."""

    product_id: int = Field(..., gt=0)
    content: str = Field(..., min_length=1, max_length=MAX_CONTENT_LENGTH)
    parent_id: str | None = Field(
        None, max_length=64, description="Parent review id; empty or '0' for top level"
    )
    stars: int = Field(..., ge=MIN_STARS, le=MAX_STARS)
    pic_info: list[str] = Field(default_factory=list, max_length=MAX_PICTURES)
    is_anonymous: bool = False

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Strip whitespace and validate content."""
        v = v.strip()
        if not v:
            msg = "Content cannot be empty"
            raise ValueError(msg)
        return v


class LikeRequest(BaseModel):
    review_id: str = Field(..., min_length=1, max_length=64)


class PinReviewRequest(BaseModel):
    review_id: str = Field(..., min_length=1, max_length=64)


class ListReviewRequest(BaseModel):
    """Product listing filtered by rating."""

    product_id: int = Field(..., gt=0)
    stars: int = Field(0, ge=0, le=MAX_STARS, description="0 means any rating")


# ==============================================================================
# Response Schemas
# ==============================================================================


class ReviewInfoResponse(BaseModel):
    """A review with its like count and the caller's liked flag."""

    id: str
    content: str
    user_id: int
    product_id: int
    parent_id: str | None = None
    stars: int
    is_anonymous: bool = False
    pic_info: list[str] = Field(default_factory=list)
    created_at: datetime
    likes: int = 0
    current_user_liked: bool = False
    is_pinned: bool = False

    @classmethod
    def from_info(cls, info: ReviewInfo) -> "ReviewInfoResponse":
        review = info.review
        return cls(
            id=info.review_id,
            content=review.content,
            user_id=review.user_id,
            product_id=review.product_id,
            parent_id=review.parent_id,
            stars=review.stars,
            is_anonymous=review.is_anonymous,
            pic_info=review.pic_info,
            created_at=review.created_at,
            likes=info.likes,
            current_user_liked=info.current_user_liked,
            is_pinned=info.is_pinned,
        )


class ListReviewResponse(BaseModel):
    """Product reviews plus the pinned one."""

    review_list: list[ReviewInfoResponse]
    pinned_review: ReviewInfoResponse | None = None

    @classmethod
    def from_list(cls, review_list: ReviewList) -> "ListReviewResponse":
        return cls(
            review_list=[ReviewInfoResponse.from_info(i) for i in review_list.reviews],
            pinned_review=ReviewInfoResponse.from_info(review_list.pinned_review)
            if review_list.pinned_review
            else None,
        )


class CreateReviewResponse(BaseModel):
    id: str


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
