"""Health check endpoints.

Public (on the authentication allow-list) so load balancers and
platform probes can reach them without a token.
"""

import platform
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from ecovale_hr import __version__
from ecovale_hr.db.engine import get_db

router = APIRouter(prefix="/health")

_started_at = datetime.now(timezone.utc)


def _uptime() -> str:
    seconds = int((datetime.now(timezone.utc) - _started_at).total_seconds())
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    return f"{days}d {hours}h {minutes}m {secs}s"


@router.get("")
async def health_check():
    """The process is up."""
    return {
        "status": "UP",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": _uptime(),
    }


@router.get("/ready")
async def readiness_probe(db: AsyncSession = Depends(get_db)):
    """Ready once the database answers."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        return JSONResponse(
            status_code=503,
            content={"status": "NOT_READY", "database": f"error: {e}"},
        )
    return {"status": "READY", "database": "ok"}


@router.get("/live")
async def liveness_probe():
    return {"status": "ALIVE"}


@router.get("/info")
async def info():
    return {
        "application": "Ecovale HR Management System",
        "version": __version__,
        "python": platform.python_version(),
        "startup_time": _started_at.isoformat(),
        "uptime": _uptime(),
    }
