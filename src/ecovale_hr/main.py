"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The token codec, rate limiter and revocation list are built
here (not at import time in their modules) so tests can inject their
own, and so a bad signing secret stops the process before it serves
anything.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ecovale_hr import __version__
from ecovale_hr.api import api_router
from ecovale_hr.auth.entry_point import unauthorized_response
from ecovale_hr.auth.jwt import TokenCodec
from ecovale_hr.auth.revocation import TokenDenylist
from ecovale_hr.config import Settings, settings
from ecovale_hr.db.engine import engine_for, init_db, session_factory_for
from ecovale_hr.errors import AuthenticationError, RateLimitExceeded
from ecovale_hr.log import configure_logging
from ecovale_hr.middleware.authentication import AuthenticationMiddleware
from ecovale_hr.middleware.correlation import (
    CORRELATION_ID_HEADER,
    REQUEST_ID_HEADER,
    CorrelationIdMiddleware,
)
from ecovale_hr.middleware.rate_limit import (
    RateLimiter,
    RateLimitMiddleware,
    too_many_requests_response,
)
from ecovale_hr.middleware.request_logging import RequestLoggingMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    config: Settings = app.state.settings
    logger.info(
        "ecovale.starting",
        version=__version__,
        environment=config.environment,
        port=config.port,
    )

    engine = app.state.db_engine
    await init_db(engine)
    logger.info(
        "ecovale.database_ready",
        database=engine.url.render_as_string(hide_password=True),
    )

    yield

    logger.info("ecovale.shutdown")
    await engine.dispose()


def _register_exception_handlers(app: FastAPI) -> None:
    """401/429 keep their own shape; everything else is {success, error}."""

    @app.exception_handler(AuthenticationError)
    async def authentication_error_handler(request: Request, exc: AuthenticationError):
        return unauthorized_response(request, exc)

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return too_many_requests_response(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "error": "Validation failed",
                "details": jsonable_encoder(exc.errors()),
            },
        )


def create_app(
    config: Optional[Settings] = None,
    codec: Optional[TokenCodec] = None,
    rate_limiter: Optional[RateLimiter] = None,
    denylist: Optional[TokenDenylist] = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    Raises ConfigError if the JWT secret is unusable.
    """
    config = config or settings
    configure_logging(config.log_level, config.log_format)

    codec = codec if codec is not None else TokenCodec.from_settings(config)
    # An empty TokenDenylist is falsy (it defines __len__)
    denylist = denylist if denylist is not None else TokenDenylist()

    app = FastAPI(
        title="Ecovale HR",
        description="Ecovale HR Management System — authentication gateway",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.token_codec = codec
    app.state.token_denylist = denylist
    app.state.db_engine = engine_for(config)
    app.state.session_factory = session_factory_for(app.state.db_engine)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → Correlation → RequestLogging → RateLimit → Authentication → handler

    app.add_middleware(
        AuthenticationMiddleware,
        codec=codec,
        public_paths=config.public_paths,
        denylist=denylist,
    )
    if config.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=(
                rate_limiter
                if rate_limiter is not None
                else RateLimiter.from_settings(config)
            ),
        )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=[
            CORRELATION_ID_HEADER,
            REQUEST_ID_HEADER,
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
        ],
    )

    _register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: ecovale_hr.main:app)
app = create_app()
