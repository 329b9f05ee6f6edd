"""
Authentication Endpoints

    POST /api/auth/login      username + password + role → JWT
    POST /api/auth/register   admin creates an account
    GET  /api/auth/profile    current user, served from the cached session
    POST /api/auth/logout     drops the cached session
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import AuthenticationError
from canteen.core.security import generate_token, verify_password
from canteen.database import get_db
from canteen.deps import get_cache, get_current_user, require_admin
from canteen.models import User, utcnow
from canteen.schemas import LoginRequest, UserCreate, UserOut, envelope, serialize
from canteen.services.accounts import create_user
from canteen.services.cache import CacheManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/login", summary="Log in")
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    result = await db.execute(
        select(User).where(
            User.username == body.username,
            User.role == body.role,
            User.is_active.is_(True),
        )
    )
    user = result.scalar_one_or_none()
    # same message for unknown user and wrong password
    if user is None or not await verify_password(body.password, user.password_hash):
        logger.info(f"Failed login for {body.username} ({body.role.value})")
        raise AuthenticationError("Invalid credentials")

    user.last_login = utcnow()
    await db.commit()

    token = generate_token(user.id, user.role.value)
    user_data = serialize(UserOut, user)
    cache.set_user_session(user.id, {"user": user_data, "login_at": user_data["last_login"]})

    logger.info(f"User {user.username} logged in")
    return envelope("Login successful", user=user_data, token=token)


@router.post("/register", status_code=201, summary="Create an account (admin)")
async def register(
    body: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    user = await create_user(db, body)
    await db.commit()
    logger.info(f"{admin.username} registered {user.username}")
    return envelope("User created successfully", user=serialize(UserOut, user))


@router.get("/profile", summary="Current user")
async def profile(
    user: User = Depends(get_current_user),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    session = cache.get_user_session(user.id)
    if session is not None:
        return envelope(user=session["user"])

    user_data = serialize(UserOut, user)
    cache.set_user_session(user.id, {"user": user_data, "login_at": user_data["last_login"]})
    return envelope(user=user_data)


@router.post("/logout", summary="Log out")
async def logout(
    user: User = Depends(get_current_user),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    cache.invalidate_user_session(user.id)
    return envelope("Logged out successfully")
