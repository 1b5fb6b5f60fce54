"""Ecovale HR CLI — run the server and manage tokens and accounts.

Usage:
    ecovale-hr serve --port 8080                   # Run the API under uvicorn
    ecovale-hr generate-secret                     # Print a new JWT signing secret
    ecovale-hr issue-token alice -r ROLE_ADMIN     # Mint an access token (ops/testing)
    ecovale-hr inspect-token <token>               # Show claims and time left
    ecovale-hr create-user admin a@x.io -r ROLE_ADMIN  # Create an account directly in the DB
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import secrets
import sys
from datetime import timedelta
from typing import Optional

import click

from ecovale_hr import __version__
from ecovale_hr.config import settings
from ecovale_hr.errors import ConfigError, TokenError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _codec():
    from ecovale_hr.auth.jwt import TokenCodec

    try:
        return TokenCodec.from_settings(settings)
    except ConfigError as e:
        click.secho(f"Error: {e}", fg="red", err=True)
        sys.exit(1)


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="ecovale-hr")
def main():
    """Ecovale HR — authentication gateway for the HR backend."""


# ---------------------------------------------------------------------------
# ecovale-hr serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: ECOVALE_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: ECOVALE_PORT)")
@click.option("--workers", type=int, default=1, help="Worker processes")
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host: Optional[str], port: Optional[int], workers: int, reload: bool):
    """Run the API server."""
    import uvicorn

    # Fail fast on a bad secret before uvicorn forks workers
    _codec()
    uvicorn.run(
        "ecovale_hr.main:app",
        host=host or settings.host,
        port=port or settings.port,
        workers=workers,
        reload=reload,
        log_config=None,
    )


# ---------------------------------------------------------------------------
# ecovale-hr generate-secret
# ---------------------------------------------------------------------------


@main.command("generate-secret")
@click.option("--bytes", "nbytes", type=int, default=48, help="Random bytes (min 32)")
def generate_secret(nbytes: int):
    """Print a random value suitable for ECOVALE_JWT_SECRET."""
    if nbytes < 32:
        raise click.BadParameter("must be at least 32", param_hint="--bytes")
    click.echo(secrets.token_urlsafe(nbytes))


# ---------------------------------------------------------------------------
# ecovale-hr issue-token / inspect-token
# ---------------------------------------------------------------------------


@main.command("issue-token")
@click.argument("subject")
@click.option("--role", "-r", "roles", multiple=True, help="Role to embed (repeatable)")
@click.option("--minutes", "-m", type=int, default=None, help="TTL in minutes")
@click.option("--refresh", is_flag=True, help="Issue a refresh token instead")
def issue_token(subject: str, roles: tuple[str, ...], minutes: Optional[int], refresh: bool):
    """Mint a signed token for SUBJECT with the configured secret."""
    codec = _codec()
    if refresh:
        click.echo(codec.issue_refresh(subject, roles))
        return
    ttl = timedelta(minutes=minutes) if minutes else None
    click.echo(codec.issue(subject, roles, ttl=ttl))


@main.command("inspect-token")
@click.argument("token")
@click.option("--window", "-w", type=int, default=5, help="'Expiring soon' window in minutes")
def inspect_token(token: str, window: int):
    """Verify TOKEN and print its claims and remaining lifetime."""
    from ecovale_hr.errors import TokenExpiredError

    codec = _codec()
    try:
        claims = codec.verify(token, expected_type=None)
    except TokenExpiredError:
        click.secho("Token has expired", fg="yellow")
        sys.exit(2)
    except TokenError as e:
        click.secho(f"Invalid token: {e}", fg="red", err=True)
        sys.exit(1)

    remaining = codec.time_until_expiration(token)
    click.echo(
        _pretty_json(
            {
                "subject": claims.subject,
                "roles": sorted(claims.roles),
                "type": claims.token_type,
                "token_id": claims.token_id,
                "issued_at": claims.issued_at.isoformat(),
                "expires_at": claims.expires_at.isoformat(),
                "seconds_remaining": int(remaining.total_seconds()),
                "expiring_soon": codec.will_expire_soon(token, timedelta(minutes=window)),
            }
        )
    )


# ---------------------------------------------------------------------------
# ecovale-hr create-user
# ---------------------------------------------------------------------------


@main.command("create-user")
@click.argument("username")
@click.argument("email")
@click.option("--full-name", default=None)
@click.option("--role", "-r", "roles", multiple=True, help="Role to grant (repeatable)")
@click.password_option()
def create_user(
    username: str,
    email: str,
    full_name: Optional[str],
    roles: tuple[str, ...],
    password: str,
):
    """Create an account directly in the database (e.g. the first admin)."""
    from ecovale_hr.db.models import DEFAULT_ROLE, KNOWN_ROLES

    unknown = set(roles) - KNOWN_ROLES
    if unknown:
        raise click.BadParameter(
            f"unknown role(s): {', '.join(sorted(unknown))}", param_hint="--role"
        )

    async def _create():
        from sqlalchemy import or_, select

        from ecovale_hr.auth.password import hash_password
        from ecovale_hr.db.engine import async_session_factory, engine, init_db
        from ecovale_hr.db.models import User

        await init_db(engine)
        try:
            async with async_session_factory() as db:
                q = select(User).where(or_(User.username == username, User.email == email))
                if (await db.execute(q)).scalars().first() is not None:
                    return False
                db.add(
                    User(
                        username=username,
                        email=email,
                        full_name=full_name,
                        password_hash=hash_password(password),
                        roles=sorted(set(roles)) or [DEFAULT_ROLE],
                    )
                )
                await db.commit()
                return True
        finally:
            await engine.dispose()

    if not _run(_create()):
        click.secho("Error: username or email already exists", fg="red", err=True)
        sys.exit(1)
    click.secho(f"Created user {username}", fg="green")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
