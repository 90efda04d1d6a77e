"""Product Reviews API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from redis.exceptions import RedisError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import AsyncCassandraConnection
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import RedisConnection
from src.health import router as health_router
from src.reviews.cache import ReviewCounterStore
from src.reviews.dependencies import handle_review_error
from src.reviews.exceptions import ReviewError
from src.reviews.repository import ReviewRepository
from src.reviews.router import router as reviews_router
from src.reviews.service import ReviewService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(
    settings, log_dir=None if settings.is_testing else Path(settings.log_dir)
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open both stores, wire the review service, close on shutdown."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis is non-critical: listings degrade, like/pin/delete answer 503
    redis_connection = RedisConnection(settings)
    try:
        await redis_connection.connect()
    except RedisError as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Redis unreachable at startup - the pool reconnects on demand",
        )
    app.state.redis = redis_connection

    cassandra = AsyncCassandraConnection(settings)
    app.state.cassandra = cassandra
    try:
        cassandra.connect()
        await cassandra.init_schema()

        app.state.review_service = ReviewService(
            repository=ReviewRepository(
                session=cassandra.session,
                keyspace=settings.cassandra_keyspace,
            ),
            counters=ReviewCounterStore(redis_connection),
        )
        logger.info(
            "review_service_initialized",
            redis_reachable=await redis_connection.ping(),
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    logger.info("shutting_down_application")
    await redis_connection.close()
    cassandra.disconnect()


def _error_response(
    request: Request, status_code: int, message: str, **extra: Any
) -> ORJSONResponse:
    # The catch-all handler runs after the middleware cleared the context
    request_id = getattr(request.state, "request_id", None) or get_request_id()
    return ORJSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "request_id": request_id,
            **extra,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Uniform JSON error bodies; internals are logged, never returned."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
        )
        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return _error_response(request, exc.status_code, message)

    @app.exception_handler(ReviewError)
    async def review_error_handler(
        request: Request, exc: ReviewError
    ) -> ORJSONResponse:
        """Review errors that escaped a route's own conversion."""
        http_exc = handle_review_error(exc)
        logger.warning(
            "review_error_unhandled_in_route",
            code=exc.code,
            status_code=http_exc.status_code,
            path=request.url.path,
        )
        return _error_response(request, http_exc.status_code, http_exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        logger.warning(
            "validation_error", errors=exc.errors(), path=request.url.path
        )
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in exc.errors()
            ],
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Product reviews, likes and pinned reviews",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    app.add_middleware(
        RequestContextMiddleware,
        user_id_header=settings.user_id_header,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(reviews_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Product Reviews API",
            "version": settings.app_version,
        }

    return app


app = create_app()
