"""Health check endpoints."""

from fastapi import APIRouter, Request, Response, status

from src.config import get_settings


router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness check - the process is up and serving."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request, response: Response) -> dict[str, str | bool]:
    """Readiness check - the review store must be up.

    Redis is reported but not required: listings degrade without it.
    """
    settings = get_settings()
    cassandra = getattr(request.app.state, "cassandra", None)
    redis_connection = getattr(request.app.state, "redis", None)

    cassandra_ok = cassandra is not None and cassandra.is_connected()
    redis_ok = redis_connection is not None and await redis_connection.ping()

    if not cassandra_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return {
        "status": "ready" if cassandra_ok else "unavailable",
        "cassandra": cassandra_ok,
        "redis": redis_ok,
        "environment": settings.environment,
    }


@router.get("")
async def health() -> dict[str, str]:
    """General health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }
