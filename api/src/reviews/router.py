"""Review API endpoints.

Customer routes:
- Create reviews and replies
- Like reviews
- List reviews by author, by product, by product and rating

Merchant routes:
- Pin a review on its product page
- Delete a review

Caller identity comes from the gateway header (see dependencies).
"""

import structlog
from fastapi import APIRouter, status

from .dependencies import (
    CurrentUserId,
    OptionalUserId,
    ReviewServiceDep,
    handle_review_error,
)
from .exceptions import ReviewError
from .schemas import (
    CreateReviewRequest,
    CreateReviewResponse,
    LikeRequest,
    ListReviewRequest,
    ListReviewResponse,
    MessageResponse,
    PinReviewRequest,
    ReviewInfoResponse,
)


logger = structlog.get_logger(__name__)


router = APIRouter(prefix="/comment-ms/v1", tags=["reviews"])


# ==============================================================================
# Customer
# ==============================================================================


@router.post(
    "/customer/create",
    response_model=CreateReviewResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create review",
)
async def create_review(
    data: CreateReviewRequest,
    review_service: ReviewServiceDep,
    user_id: CurrentUserId,
) -> CreateReviewResponse:
    """Create a review, or a reply when parent_id is set."""
    try:
        review_id = await review_service.create_review(
            content=data.content,
            product_id=data.product_id,
            parent_id=data.parent_id,
            stars=data.stars,
            pic_info=data.pic_info,
            is_anonymous=data.is_anonymous,
            user_id=user_id,
        )
    except ReviewError as e:
        raise handle_review_error(e) from e
    return CreateReviewResponse(id=review_id)


@router.post(
    "/customer/like",
    response_model=MessageResponse,
    summary="Like review",
)
async def like_review(
    data: LikeRequest,
    review_service: ReviewServiceDep,
    user_id: CurrentUserId,
) -> MessageResponse:
    try:
        await review_service.like(data.review_id, user_id)
    except ReviewError as e:
        raise handle_review_error(e) from e
    return MessageResponse(message="like success")


@router.get(
    "/customer/list/user",
    response_model=list[ReviewInfoResponse],
    summary="List my reviews",
)
async def list_user_reviews(
    review_service: ReviewServiceDep,
    user_id: CurrentUserId,
) -> list[ReviewInfoResponse]:
    """Reviews written by the caller."""
    try:
        infos = await review_service.get_list_by_user_id(user_id)
    except ReviewError as e:
        raise handle_review_error(e) from e
    return [ReviewInfoResponse.from_info(info) for info in infos]


@router.get(
    "/customer/list/product/{product_id}",
    response_model=ListReviewResponse,
    summary="List product reviews",
)
async def list_product_reviews(
    product_id: int,
    review_service: ReviewServiceDep,
    user_id: OptionalUserId,
) -> ListReviewResponse:
    """Reviews of a product and its pinned review. Anonymous callers allowed."""
    try:
        review_list = await review_service.get_list_by_product_id(product_id, user_id)
    except ReviewError as e:
        raise handle_review_error(e) from e
    return ListReviewResponse.from_list(review_list)


@router.post(
    "/customer/list/query",
    response_model=list[ReviewInfoResponse],
    summary="Query product reviews",
)
async def query_reviews(
    data: ListReviewRequest,
    review_service: ReviewServiceDep,
    user_id: OptionalUserId,
) -> list[ReviewInfoResponse]:
    """Reviews of a product, newest first; stars=0 matches any rating."""
    try:
        infos = await review_service.get_list_by_query(
            product_id=data.product_id,
            stars=data.stars,
            user_id=user_id,
        )
    except ReviewError as e:
        raise handle_review_error(e) from e
    return [ReviewInfoResponse.from_info(info) for info in infos]


@router.get(
    "/customer/review/{review_id}",
    response_model=ReviewInfoResponse,
    summary="Get review",
)
async def get_review(
    review_id: str,
    review_service: ReviewServiceDep,
    user_id: OptionalUserId,
) -> ReviewInfoResponse:
    try:
        info = await review_service.get_review(review_id, user_id)
    except ReviewError as e:
        raise handle_review_error(e) from e
    return ReviewInfoResponse.from_info(info)


# ==============================================================================
# Merchant
# ==============================================================================


@router.post(
    "/merchant/pin",
    response_model=MessageResponse,
    summary="Pin review",
)
async def pin_review(
    data: PinReviewRequest,
    review_service: ReviewServiceDep,
    user_id: CurrentUserId,
) -> MessageResponse:
    """Pin a review, replacing the product's previously pinned one."""
    try:
        await review_service.pin_review(data.review_id)
    except ReviewError as e:
        raise handle_review_error(e) from e
    logger.info("pin_requested", review_id=data.review_id, merchant_id=user_id)
    return MessageResponse(message="pin success")


@router.delete(
    "/merchant/review/{review_id}",
    response_model=MessageResponse,
    summary="Delete review",
)
async def delete_review(
    review_id: str,
    review_service: ReviewServiceDep,
    user_id: CurrentUserId,
) -> MessageResponse:
    try:
        await review_service.delete_review(review_id)
    except ReviewError as e:
        raise handle_review_error(e) from e
    logger.info("delete_requested", review_id=review_id, merchant_id=user_id)
    return MessageResponse(message="delete success")
