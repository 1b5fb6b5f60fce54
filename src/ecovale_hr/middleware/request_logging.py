"""Request logging middleware.

One log entry per request with method, path, status and duration, plus
a debug entry with headers. Credentials never reach the logs:
Authorization, cookies and API keys are redacted, and so are query
parameters named like secrets. Health checks and docs are not logged.
"""

import time
from typing import Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ecovale_hr.middleware.correlation import bind_authenticated_user

logger = structlog.get_logger()

SENSITIVE_HEADERS = frozenset({"authorization", "cookie", "set-cookie", "x-api-key"})
SENSITIVE_PARAMS = frozenset({"password", "token", "secret", "apikey", "api_key"})
EXCLUDED_PATHS = ("/api/v1/health", "/docs", "/openapi.json")

REDACTED = "[REDACTED]"


def redact_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    return {
        name: REDACTED if name.lower() in SENSITIVE_HEADERS else value
        for name, value in headers
    }


def redact_query(params: Iterable[tuple[str, str]]) -> dict[str, str]:
    return {
        name: REDACTED if name.lower() in SENSITIVE_PARAMS else value
        for name, value in params
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request/response pair with secrets redacted."""

    def __init__(self, app, excluded_paths: Iterable[str] = EXCLUDED_PATHS):
        super().__init__(app)
        self.excluded_paths = tuple(excluded_paths)

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path.startswith(self.excluded_paths):
            return await call_next(request)

        logger.debug(
            "http.request",
            method=request.method,
            path=path,
            query=redact_query(request.query_params.multi_items()),
            headers=redact_headers(request.headers.items()),
            user_agent=request.headers.get("User-Agent"),
        )

        start = time.perf_counter()
        status = 500
        try:
            response: Response = await call_next(request)
            status = response.status_code
            return response
        finally:
            # Authentication ran in a child task; pick its result up from request.state
            bind_authenticated_user(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            log = logger.warning if status >= 500 else logger.info
            log(
                "http.response",
                method=request.method,
                path=path,
                status=status,
                duration_ms=duration_ms,
            )
