"""FastAPI dependencies for the review API.

Provides dependency injection for:
- Review service
- Caller identity from the gateway header
- Error conversion
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from src.config import get_settings
from src.core.context import set_user_id

from .exceptions import ReviewError
from .service import ReviewService


async def get_review_service(request: Request) -> ReviewService:
    """Get review service from app state."""
    service = getattr(request.app.state, "review_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Review service not available",
        )
    return service


def _parse_user_id(raw: str | None) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        user_id = int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user id header",
        ) from None
    set_user_id(user_id)
    return user_id


async def get_optional_user_id(request: Request) -> int | None:
    """User id set by the gateway, or None for anonymous callers."""
    return _parse_user_id(request.headers.get(get_settings().user_id_header))


async def get_current_user_id(
    user_id: Annotated[int | None, Depends(get_optional_user_id)],
) -> int:
    """User id set by the gateway; 401 when missing."""
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id


# Type aliases for dependency injection
ReviewServiceDep = Annotated[ReviewService, Depends(get_review_service)]
CurrentUserId = Annotated[int, Depends(get_current_user_id)]
OptionalUserId = Annotated[int | None, Depends(get_optional_user_id)]


def handle_review_error(error: ReviewError) -> HTTPException:
    """Convert review errors to HTTP exceptions."""
    status_map = {
        "review_not_found": status.HTTP_404_NOT_FOUND,
        "invalid_argument": status.HTTP_400_BAD_REQUEST,
        "store_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
