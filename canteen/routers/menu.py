"""
Menu Endpoints

Per-canteen listings are cached for five minutes, one entry per
(canteen, category, availability) filter. Any change to a canteen's items
drops every cached listing of that canteen and the canteen overview, whose
item counts depend on the menu.
"""

import logging
from typing import Iterable, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import BadRequestError, ForbiddenError, NotFoundError
from canteen.database import get_db
from canteen.deps import (
    allowed_canteens,
    ensure_canteen_access,
    get_cache,
    get_current_user,
    require_admin,
    scope_to_canteens,
)
from canteen.models import MenuCategory, MenuItem, OrderItem, User, UserRole
from canteen.schemas import (
    BulkQuantityUpdate,
    MenuItemCreate,
    MenuItemOut,
    MenuItemUpdate,
    envelope,
    pagination,
    serialize,
)
from canteen.services.cache import CacheManager
from canteen.services.canteens import find_canteen, resolve_canteen

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/menu", tags=["Menu"])

MODIFY_DENIED = "Access denied: You can only modify items from your assigned canteens"


def _filter_value(value: str, allowed: Iterable[str], name: str) -> str:
    value = (value or "all").strip().lower()
    if value != "all" and value not in allowed:
        raise BadRequestError(f"Invalid {name} filter: {value}")
    return value


def _invalidate(cache: CacheManager, canteen_ids: Iterable[str]) -> None:
    for canteen_id in set(canteen_ids):
        cache.invalidate_menu_cache(canteen_id)
    cache.invalidate_canteen_cache()


async def _get_item(db: AsyncSession, item_id: str) -> MenuItem:
    item = await db.get(MenuItem, item_id)
    if item is None:
        raise NotFoundError("Menu item not found")
    return item


async def _reload(db: AsyncSession, item_id: str) -> MenuItem:
    result = await db.execute(
        select(MenuItem)
        .where(MenuItem.id == item_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# =============================================================================
# READ
# =============================================================================

@router.get("/canteen/{canteen_ref}", summary="Menu of one canteen")
async def canteen_menu(
    canteen_ref: str,
    category: str = Query("all"),
    available: str = Query("all"),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    user: User = Depends(get_current_user),
) -> dict:
    """
    Items of a canteen sorted by category and name.

    ``canteen_ref`` may be the canteen id or its legacy code (``canteen-a``).
    Unknown canteens yield an empty list.
    """
    category = _filter_value(category, [c.value for c in MenuCategory], "category")
    available = _filter_value(available, ["true", "false"], "available")

    canteen = await find_canteen(db, canteen_ref)
    if canteen is None:
        return envelope(menu_items=[])

    if user.role == UserRole.ADMIN:
        ensure_canteen_access(user, canteen.id, "Access denied: not assigned to this canteen.")

    cached = cache.get_menu_items(canteen.id, category, available)
    if cached is not None:
        return {"success": True, "data": {"menu_items": cached}, "cached": True}

    query = select(MenuItem).where(MenuItem.canteen_id == canteen.id)
    if category != "all":
        query = query.where(MenuItem.category == MenuCategory(category))
    if available != "all":
        query = query.where(MenuItem.is_available.is_(available == "true"))

    result = await db.execute(query.order_by(MenuItem.category, MenuItem.name))
    items = [serialize(MenuItemOut, item) for item in result.scalars().all()]

    cache.set_menu_items(canteen.id, category, available, items)
    return envelope(menu_items=items)


@router.get("", summary="List menu items (admin)")
async def list_menu_items(
    canteen_id: Optional[str] = Query(None),
    category: Optional[MenuCategory] = Query(None),
    available: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    query = scope_to_canteens(select(MenuItem), MenuItem.canteen_id, admin)
    if canteen_id:
        canteen = await resolve_canteen(db, canteen_id)
        ensure_canteen_access(admin, canteen.id)
        query = query.where(MenuItem.canteen_id == canteen.id)
    if category is not None:
        query = query.where(MenuItem.category == category)
    if available is not None:
        query = query.where(MenuItem.is_available.is_(available))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(or_(MenuItem.name.ilike(pattern), MenuItem.description.ilike(pattern)))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(MenuItem.canteen_id, MenuItem.category, MenuItem.name)
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = result.scalars().all()
    return envelope(
        menu_items=[serialize(MenuItemOut, item) for item in items],
        pagination=pagination(page, limit, total, len(items)),
    )


@router.get("/{item_id}", summary="Get menu item")
async def get_menu_item(item_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    return envelope(menu_item=serialize(MenuItemOut, await _get_item(db, item_id)))


# =============================================================================
# WRITE (admin)
# =============================================================================

@router.post("", status_code=201, summary="Create menu item")
async def create_menu_item(
    body: MenuItemCreate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    canteen = await resolve_canteen(db, body.canteen_id)
    ensure_canteen_access(admin, canteen.id, MODIFY_DENIED)

    item = MenuItem(
        **body.model_dump(exclude={"canteen_id"}),
        canteen_id=canteen.id,
        is_available=body.quantity > 0,
    )
    db.add(item)
    await db.commit()
    _invalidate(cache, [canteen.id])

    logger.info(f"{admin.username} added {item.name} to {canteen.name}")
    item = await _reload(db, item.id)
    return envelope("Menu item created successfully", menu_item=serialize(MenuItemOut, item))


@router.patch("/bulk-update", summary="Update stock of several items")
async def bulk_update_quantities(
    body: BulkQuantityUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    quantities = {u.id: u.quantity for u in body.updates}
    result = await db.execute(select(MenuItem).where(MenuItem.id.in_(quantities)))
    items = result.scalars().all()

    scope = allowed_canteens(admin)
    if scope and any(item.canteen_id not in scope for item in items):
        raise ForbiddenError(MODIFY_DENIED)

    modified = 0
    for item in items:
        quantity = quantities[item.id]
        if item.quantity != quantity or item.is_available != (quantity > 0):
            modified += 1
        item.quantity = quantity
        item.is_available = quantity > 0

    await db.commit()
    _invalidate(cache, [item.canteen_id for item in items])

    return envelope(
        "Menu items updated successfully",
        matched_count=len(items),
        modified_count=modified,
    )


@router.put("/{item_id}", summary="Update menu item")
async def update_menu_item(
    item_id: str,
    body: MenuItemUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    item = await _get_item(db, item_id)
    ensure_canteen_access(admin, item.canteen_id, MODIFY_DENIED)

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(item, field, value)
    if "quantity" in changes:
        item.is_available = item.quantity > 0

    await db.commit()
    _invalidate(cache, [item.canteen_id])

    item = await _reload(db, item.id)
    return envelope("Menu item updated successfully", menu_item=serialize(MenuItemOut, item))


@router.delete("/{item_id}", summary="Delete menu item")
async def delete_menu_item(
    item_id: str,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    item = await _get_item(db, item_id)
    ensure_canteen_access(admin, item.canteen_id, MODIFY_DENIED)

    ordered = (
        await db.execute(select(OrderItem.id).where(OrderItem.menu_item_id == item.id).limit(1))
    ).first()
    if ordered is not None:
        raise BadRequestError("Menu item appears in orders; mark it unavailable instead")

    canteen_id = item.canteen_id
    await db.delete(item)
    await db.commit()
    _invalidate(cache, [canteen_id])

    logger.info(f"{admin.username} deleted menu item {item.name}")
    return envelope("Menu item deleted successfully")
