"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Authentication is enforced by AuthenticationMiddleware, not per
router. Health and the login/register/refresh routes are on its public
allow-list (settings.public_paths); everything else needs a bearer token.
Role checks are route dependencies (see api/admin.py).
"""

from fastapi import APIRouter

from ecovale_hr.api.admin import router as admin_router
from ecovale_hr.api.auth import router as auth_router
from ecovale_hr.api.health import router as health_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(admin_router, tags=["admin"])
