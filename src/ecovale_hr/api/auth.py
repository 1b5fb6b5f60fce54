"""Auth API — registration, login, refresh, current user, logout.

Learn: Routes for the account lifecycle:
- POST /auth/register → create a ROLE_USER account
- POST /auth/login → username/password → access + refresh JWTs
- POST /auth/refresh → refresh token → new token pair (old one revoked)
- GET /auth/me → current user info (protected)
- POST /auth/logout → revoke the presented tokens (protected)

login/register/refresh are on the public allow-list, so they never see
the authentication middleware, but they do sit behind the rate limiter.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ecovale_hr.auth.dependencies import SecurityContext, get_security_context
from ecovale_hr.auth.jwt import REFRESH, TokenCodec, get_token_codec
from ecovale_hr.auth.password import hash_password, verify_password
from ecovale_hr.auth.revocation import TokenDenylist
from ecovale_hr.db.engine import get_db
from ecovale_hr.db.models import DEFAULT_ROLE, User
from ecovale_hr.errors import TokenError

logger = structlog.get_logger()

router = APIRouter(prefix="/auth")

INVALID_CREDENTIALS = "Invalid username or password"


# ─── Schemas ─────────────────────────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8)
    full_name: Optional[str] = Field(None, max_length=100)


class LoginRequest(BaseModel):
    username: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class LogoutRequest(BaseModel):
    refresh_token: Optional[str] = None


class UserRead(BaseModel):
    id: uuid.UUID
    username: str
    email: str
    full_name: Optional[str] = None
    roles: list[str]

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: Optional[UserRead] = None


class ApiResponse(BaseModel):
    success: bool
    message: str
    data: Optional[dict] = None


def get_denylist(request: Request) -> TokenDenylist:
    return request.app.state.token_denylist


def _issue_pair(codec: TokenCodec, user: User) -> TokenResponse:
    return TokenResponse(
        access_token=codec.issue(user.username, user.roles),
        refresh_token=codec.issue_refresh(user.username, user.roles),
        expires_in=int(codec.access_ttl.total_seconds()),
        user=UserRead.model_validate(user),
    )


async def _find_user(db: AsyncSession, username: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalars().first()


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=ApiResponse, status_code=201)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create a new account. Self-registration always gets ROLE_USER."""
    q = select(User).where(or_(User.username == body.username, User.email == body.email))
    existing = (await db.execute(q)).scalars().first()
    if existing is not None:
        if existing.username == body.username:
            raise HTTPException(status_code=400, detail="Username is already taken")
        raise HTTPException(status_code=400, detail="Email is already in use")

    user = User(
        username=body.username,
        email=body.email,
        full_name=body.full_name,
        password_hash=hash_password(body.password),
        roles=[DEFAULT_ROLE],
    )
    db.add(user)
    await db.commit()
    logger.info("auth.registered", username=user.username)
    return ApiResponse(success=True, message="User registered successfully")


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
):
    """Login with username and password → JWT tokens."""
    user = await _find_user(db, body.username)
    if user is None or not user.enabled or not verify_password(
        body.password, user.password_hash
    ):
        logger.info("auth.login_failed", username=body.username)
        raise HTTPException(status_code=401, detail=INVALID_CREDENTIALS)

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    logger.info("auth.login_succeeded", username=user.username)
    return _issue_pair(codec, user)


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    denylist: TokenDenylist = Depends(get_denylist),
):
    """Exchange a refresh token for a new pair. The old refresh token is revoked."""
    try:
        claims = codec.verify(body.refresh_token, expected_type=REFRESH)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))

    if denylist.is_revoked(claims.token_id):
        raise HTTPException(status_code=401, detail="Refresh token has been revoked")

    # Roles come from the database, not the old token
    user = await _find_user(db, claims.subject)
    if user is None or not user.enabled:
        raise HTTPException(status_code=401, detail="User not found or disabled")

    denylist.revoke(claims.token_id, claims.expires_at.timestamp())
    return _issue_pair(codec, user)


# ─── Current user ───────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    context: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
):
    """Get the current authenticated user's info."""
    user = await _find_user(db, context.subject)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


# ─── Logout ─────────────────────────────────────────────


@router.post("/logout", response_model=ApiResponse)
async def logout(
    body: Optional[LogoutRequest] = None,
    context: SecurityContext = Depends(get_security_context),
    codec: TokenCodec = Depends(get_token_codec),
    denylist: TokenDenylist = Depends(get_denylist),
):
    """Revoke the access token used for this call, and the refresh token if given."""
    denylist.revoke(context.token_id, context.expires_at.timestamp())

    if body is not None and body.refresh_token:
        try:
            claims = codec.verify(body.refresh_token, expected_type=REFRESH)
        except TokenError as e:
            logger.info("auth.logout_refresh_ignored", error=str(e))
            claims = None
        if claims is not None and claims.subject == context.subject:
            denylist.revoke(claims.token_id, claims.expires_at.timestamp())

    logger.info("auth.logged_out", username=context.subject)
    return ApiResponse(success=True, message="Logged out successfully")
