"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with ECOVALE_ prefix.
Rate limit classes, token lifetimes and the public path allow-list all
live here so they can be tuned per deployment without code changes.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings

DEV_JWT_SECRET = "ecovale-hr-secret-key-change-in-production-minimum-32-characters"


class Settings(BaseSettings):
    """All app configuration. Set via ECOVALE_* env vars."""

    # Database
    database_url: str = "sqlite+aiosqlite:///./ecovale_hr.db"

    # Auth
    jwt_secret: str = DEV_JWT_SECRET
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours
    refresh_token_ttl_multiplier: int = 7
    token_leeway_seconds: int = 0
    bcrypt_rounds: int = 12

    # Paths that bypass the authentication filter (prefix match)
    public_paths: list[str] = [
        "/api/v1/health",
        "/api/v1/auth/login",
        "/api/v1/auth/register",
        "/api/v1/auth/refresh",
        "/docs",
        "/openapi.json",
    ]

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"

    # Rate limiting (token bucket per client IP)
    rate_limit_enabled: bool = True
    rate_limit_path_prefix: str = "/api/v1/auth"
    rate_limit_login_capacity: int = 5
    rate_limit_login_refill_seconds: int = 60
    rate_limit_register_capacity: int = 3
    rate_limit_register_refill_seconds: int = 300
    rate_limit_general_capacity: int = 20
    rate_limit_general_refill_seconds: int = 60
    rate_limit_max_clients: int = 10_000
    rate_limit_idle_seconds: int = 900

    model_config = {"env_prefix": "ECOVALE_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure the development signing secret is never used outside development."""
        if self.environment != "development" and self.jwt_secret == DEV_JWT_SECRET:
            raise ValueError(
                "ECOVALE_JWT_SECRET must be set to a secure value in "
                "non-development environments. Generate one with: "
                "ecovale-hr generate-secret"
            )
        return self

    @model_validator(mode="after")
    def validate_rate_limit_idle_window(self):
        """An idle bucket may only be dropped once it would have refilled anyway."""
        longest_refill = max(
            self.rate_limit_login_refill_seconds,
            self.rate_limit_register_refill_seconds,
            self.rate_limit_general_refill_seconds,
        )
        if self.rate_limit_idle_seconds < longest_refill:
            raise ValueError(
                "ECOVALE_RATE_LIMIT_IDLE_SECONDS must be at least the longest "
                f"refill interval ({longest_refill}s)"
            )
        return self


# Singleton — import this everywhere
settings = Settings()


def get_settings() -> Settings:
    """FastAPI dependency returning the process-wide settings."""
    return settings
