"""JWT token creation and verification.

- Access token: 24h by default, sent as Authorization: Bearer on every call
- Refresh token: N x the access TTL (7 by default), only ever exchanged
  for a new access token at /auth/refresh

verify() checks the signature first and the expiration second, so a
token with a good signature and a past `exp` is always TokenExpiredError
and anything tampered with is always TokenMalformedError.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

import jwt
from fastapi import Request

from ecovale_hr.config import Settings, settings
from ecovale_hr.errors import ConfigError, TokenExpiredError, TokenMalformedError

MIN_SECRET_BYTES = 32

ACCESS = "access"
REFRESH = "refresh"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenClaims:
    """Decoded, verified token contents."""

    subject: str
    roles: frozenset[str]
    token_id: str
    issued_at: datetime
    expires_at: datetime
    token_type: str = ACCESS


class TokenCodec:
    """Issues and verifies HMAC-signed bearer tokens.

    Built once at startup. Construction fails with ConfigError when the
    secret is missing or shorter than 32 bytes, so a misconfigured
    process never gets as far as issuing weakly signed tokens.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(hours=24),
        refresh_ttl_multiplier: int = 7,
        leeway: timedelta = timedelta(0),
        clock: Callable[[], datetime] = utcnow,
    ):
        if not secret or len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigError(
                f"JWT signing secret must be at least {MIN_SECRET_BYTES} bytes"
            )
        if not algorithm.upper().startswith("HS"):
            raise ConfigError(f"Unsupported JWT algorithm {algorithm!r}; use HS256/384/512")
        if access_ttl <= timedelta(0):
            raise ConfigError("Access token TTL must be positive")
        if refresh_ttl_multiplier < 1:
            raise ConfigError("Refresh token TTL multiplier must be >= 1")

        self._secret = secret
        self._algorithm = algorithm.upper()
        self.access_ttl = access_ttl
        self.refresh_ttl = access_ttl * refresh_ttl_multiplier
        self._leeway = leeway
        self._clock = clock

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "TokenCodec":
        config = config or settings
        return cls(
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            access_ttl=timedelta(minutes=config.access_token_expire_minutes),
            refresh_ttl_multiplier=config.refresh_token_ttl_multiplier,
            leeway=timedelta(seconds=config.token_leeway_seconds),
        )

    # ── Issue ──────────────────────────────────────────────

    def issue(
        self,
        subject: str,
        roles: Iterable[str] = (),
        ttl: Optional[timedelta] = None,
        token_type: str = ACCESS,
    ) -> str:
        """Create a signed token for `subject` carrying `roles`."""
        if not subject:
            raise ValueError("Token subject must not be empty")
        ttl = ttl if ttl is not None else self.access_ttl
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive")

        now = self._clock()
        payload = {
            "sub": subject,
            "roles": sorted(set(roles)),
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def issue_refresh(self, subject: str, roles: Iterable[str] = ()) -> str:
        """Create a long-lived refresh token. Never valid for resource access."""
        return self.issue(subject, roles, ttl=self.refresh_ttl, token_type=REFRESH)

    # ── Verify ─────────────────────────────────────────────

    def verify(self, token: str, expected_type: Optional[str] = ACCESS) -> TokenClaims:
        """Verify signature, then expiration, then token type.

        Raises TokenMalformedError or TokenExpiredError.
        """
        claims = self._claims(self._decode(token))
        if self._clock() >= claims.expires_at + self._leeway:
            raise TokenExpiredError("Token has expired")
        if expected_type is not None and claims.token_type != expected_type:
            raise TokenMalformedError(
                f"Expected a {expected_type} token, got {claims.token_type!r}"
            )
        return claims

    def time_until_expiration(self, token: str) -> timedelta:
        """Time left before `token` expires; zero once it has."""
        claims = self._claims(self._decode(token))
        return max(claims.expires_at - self._clock(), timedelta(0))

    def will_expire_soon(self, token: str, window: timedelta) -> bool:
        return self.time_until_expiration(token) < window

    # ── Internals ──────────────────────────────────────────

    def _decode(self, token: str) -> dict:
        if not token or not isinstance(token, str):
            raise TokenMalformedError("Token is empty")
        try:
            # Expiry is checked against our own clock in verify()
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "require": ["sub", "exp", "iat"],
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidTokenError as e:
            raise TokenMalformedError(f"Invalid token: {e}") from e

    @staticmethod
    def _claims(payload: dict) -> TokenClaims:
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise TokenMalformedError("Invalid token: missing subject")

        roles = payload.get("roles", [])
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise TokenMalformedError("Invalid token: roles claim must be a list of strings")

        try:
            issued_at = datetime.fromtimestamp(float(payload["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(float(payload["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError, OSError) as e:
            raise TokenMalformedError(f"Invalid token: bad timestamp ({e})") from e

        return TokenClaims(
            subject=subject,
            roles=frozenset(roles),
            token_id=str(payload.get("jti") or ""),
            issued_at=issued_at,
            expires_at=expires_at,
            token_type=str(payload.get("type") or ACCESS),
        )


def get_token_codec(request: Request) -> TokenCodec:
    """FastAPI dependency — the codec built by the app factory."""
    return request.app.state.token_codec
