"""Error taxonomy for the auth and rate limiting pipeline.

ConfigError is fatal and stops startup. The authentication errors are
request-scoped and always end up as a 401 from the entry point; the
expired/malformed split drives the user-facing message. RateLimitExceeded
becomes a 429.
"""

from typing import Optional


class ConfigError(Exception):
    """Raised when the service is misconfigured (e.g. weak signing secret)."""


class AuthenticationError(Exception):
    """Base class for request-scoped authentication failures."""


class TokenError(AuthenticationError):
    """Raised when token verification fails."""


class TokenExpiredError(TokenError):
    """Signature is valid but the expiration has passed."""


class TokenMalformedError(TokenError):
    """Signature invalid, payload unparsable, or required claims missing."""


class RateLimitExceeded(Exception):
    """Raised when a client has exhausted its bucket for a limit class."""

    def __init__(self, message: str, retry_after: int, limit_class: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after
        self.limit_class = limit_class
