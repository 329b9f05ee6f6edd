"""Account creation and update rules shared by /api/auth and /api/users."""

import logging
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import BadRequestError, ConflictError
from canteen.core.security import hash_password
from canteen.models import Canteen, User, UserRole, default_permissions
from canteen.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


async def check_canteens_exist(db: AsyncSession, canteen_ids: Iterable[str]) -> list[str]:
    ids = list(dict.fromkeys(canteen_ids))
    if not ids:
        return []
    result = await db.execute(select(Canteen.id).where(Canteen.id.in_(ids)))
    found = set(result.scalars().all())
    for canteen_id in ids:
        if canteen_id not in found:
            raise BadRequestError(f"Invalid canteen in assigned_canteens: {canteen_id}")
    return ids


async def ensure_unique(
    db: AsyncSession,
    username: Optional[str],
    employee_id: Optional[str],
    exclude_id: Optional[str] = None,
) -> None:
    conditions = []
    if username:
        conditions.append(User.username == username)
    if employee_id:
        conditions.append(User.employee_id == employee_id)
    if not conditions:
        return

    query = select(User.id).where(or_(*conditions))
    if exclude_id:
        query = query.where(User.id != exclude_id)
    if (await db.execute(query.limit(1))).first() is not None:
        raise ConflictError("Username or Employee ID already exists")


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """Persist a new account; the caller commits."""
    await ensure_unique(db, data.username, data.employee_id)

    assigned = []
    if data.role == UserRole.ADMIN:
        assigned = await check_canteens_exist(db, data.assigned_canteens)

    user = User(
        username=data.username,
        password_hash=await hash_password(data.password),
        role=data.role,
        employee_id=data.employee_id,
        full_name=data.full_name,
        department=data.department,
        designation=data.designation,
        email=data.email,
        phone=data.phone,
        organization_id=data.organization_id,
        assigned_canteens=assigned,
        permissions=default_permissions(data.role),
        is_active=True,
    )
    db.add(user)
    await db.flush()
    logger.info(f"Created {data.role.value} account {data.username}")
    return user


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> User:
    changes = data.model_dump(exclude_unset=True)

    if "username" in changes or "employee_id" in changes:
        await ensure_unique(
            db,
            changes.get("username"),
            changes.get("employee_id"),
            exclude_id=user.id,
        )

    assigned = changes.pop("assigned_canteens", None)
    for field, value in changes.items():
        setattr(user, field, value)

    if "role" in changes:
        user.permissions = default_permissions(user.role)
    if user.role != UserRole.ADMIN:
        user.assigned_canteens = []
    elif assigned is not None:
        user.assigned_canteens = await check_canteens_exist(db, assigned)

    await db.flush()
    return user
