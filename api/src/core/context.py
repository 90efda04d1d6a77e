"""Request-scoped logging context.

A thin layer over ``structlog.contextvars``: values bound here are merged
into every event by ``merge_contextvars`` until ``clear_context()`` runs at
the end of the request.
"""

from typing import Any
from uuid import uuid4

import structlog


CONTEXT_KEYS = ("request_id", "user_id", "trace_id")


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def _get(key: str) -> Any:
    return structlog.contextvars.get_contextvars().get(key)


def _set(key: str, value: Any) -> None:
    if value is None:
        structlog.contextvars.unbind_contextvars(key)
    else:
        structlog.contextvars.bind_contextvars(**{key: value})


def set_request_id(request_id: str | None = None) -> str:
    """Bind the request id, generating one when the caller sent none."""
    rid = request_id or generate_request_id()
    _set("request_id", rid)
    return rid


def get_request_id() -> str:
    return _get("request_id") or ""


def set_user_id(user_id: str | int | None) -> None:
    """Bind the acting user (gateway-resolved, numeric)."""
    _set("user_id", str(user_id) if user_id is not None else None)


def set_trace_id(trace_id: str | None) -> None:
    _set("trace_id", trace_id)


def get_context() -> dict[str, Any]:
    """The request fields currently bound, skipping empty ones."""
    bound = structlog.contextvars.get_contextvars()
    return {key: bound[key] for key in CONTEXT_KEYS if bound.get(key)}


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
