"""User management endpoints (super admin only)."""

import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import BadRequestError, NotFoundError
from canteen.core.security import hash_password
from canteen.database import get_db
from canteen.deps import get_cache, require_super_admin
from canteen.models import SUPER_ADMIN_USERNAME, Order, User, UserRole, utcnow
from canteen.schemas import (
    PasswordReset,
    UserCreate,
    UserOut,
    UserUpdate,
    envelope,
    pagination,
    serialize,
)
from canteen.services.accounts import create_user, update_user
from canteen.services.cache import CacheManager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["Users"],
    dependencies=[Depends(require_super_admin)],
)


async def _get_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


@router.get("/stats/overview", summary="User statistics")
async def user_stats(db: AsyncSession = Depends(get_db)) -> dict:
    since = utcnow() - timedelta(days=30)
    row = (
        await db.execute(
            select(
                func.count(User.id),
                func.count(User.id).filter(User.is_active.is_(True)),
                func.count(User.id).filter(User.role == UserRole.ADMIN),
                func.count(User.id).filter(User.role == UserRole.USER),
                func.count(User.id).filter(User.created_at >= since),
            )
        )
    ).one()
    total, active, admins, regular, recent = row
    return envelope(
        stats={
            "total_users": total,
            "active_users": active,
            "admin_users": admins,
            "regular_users": regular,
            "recent_users": recent,
            "inactive_users": total - active,
        }
    )


@router.get("", summary="List users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: str = Query(""),
    role: Optional[UserRole] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> dict:
    query = select(User)
    search = search.strip()
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                User.username.ilike(pattern),
                User.full_name.ilike(pattern),
                User.email.ilike(pattern),
                User.department.ilike(pattern),
            )
        )
    if role is not None:
        query = query.where(User.role == role)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = result.scalars().all()
    return envelope(
        users=[serialize(UserOut, u) for u in users],
        pagination=pagination(page, limit, total, len(users)),
    )


@router.get("/{user_id}", summary="Get user")
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    return envelope(user=serialize(UserOut, await _get_user(db, user_id)))


@router.post("", status_code=201, summary="Create user")
async def create(body: UserCreate, db: AsyncSession = Depends(get_db)) -> dict:
    user = await create_user(db, body)
    await db.commit()
    return envelope("User created successfully", user=serialize(UserOut, user))


@router.put("/{user_id}", summary="Update user")
async def update(
    user_id: str,
    body: UserUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    user = await update_user(db, await _get_user(db, user_id), body)
    await db.commit()
    cache.invalidate_user_session(user.id)
    return envelope("User updated successfully", user=serialize(UserOut, user))


@router.put("/{user_id}/password", summary="Reset password")
async def reset_password(
    user_id: str,
    body: PasswordReset,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    user = await _get_user(db, user_id)
    user.password_hash = await hash_password(body.new_password)
    await db.commit()
    cache.invalidate_user_session(user.id)
    logger.info(f"Password reset for {user.username}")
    return envelope("Password updated successfully")


@router.delete("/{user_id}", summary="Delete user")
async def delete(
    user_id: str,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    user = await _get_user(db, user_id)
    if user.username == SUPER_ADMIN_USERNAME:
        raise BadRequestError("Cannot delete super admin account")

    has_orders = (
        await db.execute(select(Order.id).where(Order.user_id == user.id).limit(1))
    ).first()
    if has_orders is not None:
        raise BadRequestError("User has orders; deactivate the account instead")

    await db.delete(user)
    await db.commit()
    cache.invalidate_user_session(user_id)
    cache.invalidate_user_order_cache(user_id)
    logger.info(f"Deleted user {user.username}")
    return envelope("User deleted successfully")
