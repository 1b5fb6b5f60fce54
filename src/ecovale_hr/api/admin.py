"""Admin API — account administration, ROLE_ADMIN only."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ecovale_hr.api.auth import UserRead
from ecovale_hr.auth.dependencies import require_roles
from ecovale_hr.db.engine import get_db
from ecovale_hr.db.models import User

router = APIRouter(prefix="/admin", dependencies=[Depends(require_roles("ROLE_ADMIN"))])


@router.get("/users", response_model=list[UserRead])
async def list_users(db: AsyncSession = Depends(get_db)):
    """All accounts, oldest first."""
    result = await db.execute(select(User).order_by(User.created_at, User.username))
    return result.scalars().all()


@router.get("/users/{username}", response_model=UserRead)
async def get_user(username: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalars().first()
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user
