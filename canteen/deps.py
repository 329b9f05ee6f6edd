"""Shared FastAPI dependencies (DB sessions, cache, order queue, current user)."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import AuthenticationError, ForbiddenError
from canteen.core.security import decode_token
from canteen.database import get_db
from canteen.models import User, UserRole
from canteen.services.cache import CacheManager
from canteen.services.order_queue import OrderQueue

_bearer = HTTPBearer(auto_error=False)


def get_cache(request: Request) -> CacheManager:
    return request.app.state.cache


def get_order_queue(request: Request) -> OrderQueue:
    return request.app.state.order_queue


async def _user_from_token(token: str, db: AsyncSession) -> User:
    claims = decode_token(token)
    result = await db.execute(select(User).where(User.id == claims["userId"]))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid or inactive user")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> User:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access token required")
    return await _user_from_token(credentials.credentials, db)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous requests get None instead of 401."""
    if credentials is None or not credentials.credentials:
        return None
    return await _user_from_token(credentials.credentials, db)


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise ForbiddenError("Insufficient permissions")
    return user


async def require_super_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.ADMIN or not user.is_super_admin:
        raise ForbiddenError("Super admin access required")
    return user


# =============================================================================
# CANTEEN SCOPING
# =============================================================================

def allowed_canteens(user: User) -> list[str]:
    """Canteen ids an admin is limited to; an empty list means no restriction."""
    if user.role != UserRole.ADMIN or user.is_super_admin:
        return []
    return [str(c) for c in user.assigned_canteens]


def ensure_canteen_access(user: User, canteen_id: str, message: Optional[str] = None) -> None:
    scope = allowed_canteens(user)
    if scope and canteen_id not in scope:
        raise ForbiddenError(
            message or "Access denied: You don't have permission for this canteen"
        )


def scope_to_canteens(query, column, user: User):
    """Restrict ``query`` to the admin's assigned canteens, if any."""
    scope = allowed_canteens(user)
    if scope:
        query = query.where(column.in_(scope))
    return query
