"""Correlation ID middleware — per-request tracing identity.

Every request gets:
- correlation_id: taken from X-Correlation-ID if the caller sent one
  (so a trace can span services), otherwise a fresh UUID
- request_id: always a fresh UUID, never taken from the caller
- client_ip: resolved the same way the rate limiter does it

All three are bound to structlog's contextvars so they appear in every
log entry for the request, and both IDs are echoed as response headers.
The bindings are removed when the request finishes, success or not, so
nothing leaks into the next request served by the same worker.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ecovale_hr.middleware.client_ip import get_client_ip

CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Keys this middleware owns in the logging context
CONTEXT_KEYS = ("correlation_id", "request_id", "client_ip", "user_id")

logger = structlog.get_logger()


@dataclass(frozen=True)
class CorrelationRecord:
    correlation_id: str
    request_id: str
    client_ip: str


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind correlation/request IDs for the lifetime of one request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        record = CorrelationRecord(
            correlation_id=_inbound_correlation_id(request) or str(uuid.uuid4()),
            request_id=str(uuid.uuid4()),
            client_ip=get_client_ip(request),
        )
        request.state.correlation = record

        structlog.contextvars.bind_contextvars(
            correlation_id=record.correlation_id,
            request_id=record.request_id,
            client_ip=record.client_ip,
        )
        try:
            logger.debug(
                "request.started", method=request.method, path=request.url.path
            )
            response: Response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = record.correlation_id
            response.headers[REQUEST_ID_HEADER] = record.request_id
            return response
        finally:
            structlog.contextvars.unbind_contextvars(*CONTEXT_KEYS)


def _inbound_correlation_id(request: Request) -> Optional[str]:
    value = request.headers.get(CORRELATION_ID_HEADER)
    if value is None or not value.strip():
        return None
    return value.strip()


def bind_user_id(user_id: Optional[str]) -> None:
    """Attach the authenticated user to the current logging context."""
    if user_id:
        structlog.contextvars.bind_contextvars(user_id=user_id)


def bind_authenticated_user(request: Request) -> None:
    """Bind user_id from the request's SecurityContext, if it has one.

    Each BaseHTTPMiddleware runs the rest of the stack in a child task, so
    a binding made by the authentication middleware is invisible to the
    middleware wrapped around it. request.state is shared across the
    stack, so outer middleware re-bind from there before logging.
    """
    context = getattr(request.state, "security_context", None)
    if context is not None:
        bind_user_id(context.subject)


def current_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("correlation_id")


def current_request_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get("request_id")
