"""Authentication middleware — bearer token gate for protected routes.

Per request: UNAUTHENTICATED -> AUTHENTICATED, or REJECTED.

- Public paths (login, register, health, docs) skip the gate entirely
- No bearer token -> 401 via the entry point
- Token verifies -> SecurityContext on request.state, user_id bound to the
  logging context, request continues
- Expired -> request.state.auth_expired, 401
- Tampered, malformed, wrong type or revoked -> request.state.auth_invalid, 401

Token errors never escape this middleware; every failure leaves as the
entry point's JSON body.
"""

from typing import Iterable, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ecovale_hr.auth.dependencies import SecurityContext
from ecovale_hr.auth.entry_point import unauthorized_response
from ecovale_hr.auth.jwt import TokenCodec
from ecovale_hr.auth.revocation import TokenDenylist
from ecovale_hr.errors import (
    AuthenticationError,
    TokenExpiredError,
    TokenMalformedError,
)
from ecovale_hr.middleware.correlation import bind_user_id

logger = structlog.get_logger()


def extract_bearer_token(request: Request) -> Optional[str]:
    """Token from `Authorization: Bearer <token>`, or None."""
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Validate the bearer token on every non-public request."""

    def __init__(
        self,
        app,
        codec: TokenCodec,
        public_paths: Iterable[str] = (),
        denylist: Optional[TokenDenylist] = None,
    ):
        super().__init__(app)
        self.codec = codec
        self.public_paths = tuple(p.rstrip("/") or "/" for p in public_paths)
        self.denylist = denylist

    def is_public(self, path: str) -> bool:
        for prefix in self.public_paths:
            if path == prefix:
                return True
            if prefix != "/" and path.startswith(prefix + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS" or self.is_public(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request)
        if token is None:
            logger.info("auth.missing_token", path=request.url.path)
            return unauthorized_response(
                request,
                AuthenticationError("Full authentication is required to access this resource"),
            )

        try:
            claims = self.codec.verify(token)
            if self.denylist is not None and self.denylist.is_revoked(claims.token_id):
                raise TokenMalformedError("Token has been revoked")
        except TokenExpiredError as e:
            request.state.auth_expired = True
            logger.info("auth.token_expired", path=request.url.path)
            return unauthorized_response(request, e)
        except TokenMalformedError as e:
            request.state.auth_invalid = True
            logger.warning("auth.token_invalid", path=request.url.path, error=str(e))
            return unauthorized_response(request, e)

        request.state.security_context = SecurityContext(
            subject=claims.subject,
            roles=claims.roles,
            token_id=claims.token_id,
            expires_at=claims.expires_at,
        )
        bind_user_id(claims.subject)
        logger.debug("auth.authenticated", roles=sorted(claims.roles))
        return await call_next(request)
