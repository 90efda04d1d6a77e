"""Request middleware: context binding and access logging."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.context import clear_context, set_request_id, set_trace_id, set_user_id


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TRACE_ID_HEADER = "X-Trace-ID"
TRACEPARENT_HEADER = "traceparent"


def trace_id_from_traceparent(traceparent: str | None) -> str | None:
    """Trace id of a W3C ``traceparent`` (version-traceid-parentid-flags)."""
    if not traceparent:
        return None
    parts = traceparent.split("-")
    return parts[1] if len(parts) == 4 and parts[1] else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request_id, trace_id and the gateway user to the log context.

    The request id is echoed back in ``X-Request-ID``. Requests under an
    excluded path prefix are served without access log lines.
    """

    def __init__(
        self,
        app: ASGIApp,
        user_id_header: str = "X-User-ID",
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.user_id_header = user_id_header
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ("/health",))

    def _bind_context(self, request: Request) -> str:
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        trace_id = request.headers.get(TRACE_ID_HEADER) or trace_id_from_traceparent(
            request.headers.get(TRACEPARENT_HEADER)
        )
        if trace_id:
            set_trace_id(trace_id)

        # Malformed ids are rejected by the route dependencies, not here
        user_id = request.headers.get(self.user_id_header, "")
        if user_id.isdigit():
            set_user_id(user_id)

        return request_id

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start_time = time.perf_counter()
        request_id = self._bind_context(request)
        path = request.url.path
        should_log = self.log_requests and not path.startswith(self.exclude_paths)

        if should_log:
            logger.info("request_started", method=request.method, path=path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise
        finally:
            clear_context()

        if should_log:
            log = logger.warning if response.status_code >= 400 else logger.info
            log(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                request_id=request_id,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
