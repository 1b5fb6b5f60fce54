"""Authentication entry point — every 401 goes through here.

Turns an authentication failure into the one JSON shape the SPA knows:
{timestamp, status, error, message, path}. The message depends on what
the authentication middleware recorded on request.state:

    expired flag > invalid flag > missing Authorization header > exception text
"""

from datetime import datetime, timezone
from typing import Optional

from starlette.requests import Request
from starlette.responses import JSONResponse

EXPIRED_MESSAGE = "JWT token has expired. Please login again."
INVALID_MESSAGE = "Invalid JWT token. Please login again."
MISSING_MESSAGE = "Authentication required. Please provide a valid JWT token."


def determine_error_message(request: Request, exc: Optional[BaseException] = None) -> str:
    if getattr(request.state, "auth_expired", False):
        return EXPIRED_MESSAGE
    if getattr(request.state, "auth_invalid", False):
        return INVALID_MESSAGE
    if request.headers.get("Authorization") is None:
        return MISSING_MESSAGE
    detail = str(exc) if exc is not None else ""
    return f"Authentication failed: {detail or 'unknown error'}"


def unauthorized_body(request: Request, exc: Optional[BaseException] = None) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": 401,
        "error": "Unauthorized",
        "message": determine_error_message(request, exc),
        "path": request.url.path,
    }


def unauthorized_response(
    request: Request, exc: Optional[BaseException] = None
) -> JSONResponse:
    """Build the 401 response. Never raises."""
    return JSONResponse(
        status_code=401,
        content=unauthorized_body(request, exc),
        headers={"WWW-Authenticate": "Bearer"},
    )
