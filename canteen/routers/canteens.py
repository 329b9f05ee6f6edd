"""
Canteen Endpoints

The public listing is cached under a single key for 30 minutes; every
mutation drops that key.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.database import get_db
from canteen.deps import get_cache, require_admin
from canteen.models import Canteen, User
from canteen.schemas import CanteenCreate, CanteenOut, CanteenUpdate, envelope, serialize
from canteen.services.cache import CacheManager
from canteen.services.canteens import list_canteens_with_stats, resolve_canteen

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/canteens", tags=["Canteens"])


@router.get("", summary="List active canteens")
async def list_canteens(
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
) -> dict:
    cached = cache.get_canteens()
    if cached is not None:
        return {"success": True, "data": {"canteens": cached}, "cached": True}

    canteens = await list_canteens_with_stats(db)
    cache.set_canteens(canteens)
    return envelope(canteens=canteens)


@router.get("/{canteen_id}", summary="Get canteen")
async def get_canteen(canteen_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    return envelope(canteen=serialize(CanteenOut, await resolve_canteen(db, canteen_id)))


@router.post("", status_code=201, summary="Create canteen")
async def create_canteen(
    body: CanteenCreate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    canteen = Canteen(**body.model_dump())
    db.add(canteen)
    await db.commit()
    cache.invalidate_canteen_cache()
    logger.info(f"{admin.username} created canteen {canteen.name}")
    return envelope("Canteen created successfully", canteen=serialize(CanteenOut, canteen))


@router.put("/{canteen_id}", summary="Update canteen")
async def update_canteen(
    canteen_id: str,
    body: CanteenUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    canteen = await resolve_canteen(db, canteen_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(canteen, field, value)
    await db.commit()
    cache.invalidate_canteen_cache()
    return envelope("Canteen updated successfully", canteen=serialize(CanteenOut, canteen))


@router.delete("/{canteen_id}", summary="Deactivate canteen")
async def deactivate_canteen(
    canteen_id: str,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    canteen = await resolve_canteen(db, canteen_id)
    canteen.is_active = False
    await db.commit()
    cache.invalidate_canteen_cache()
    cache.invalidate_menu_cache(canteen.id)
    logger.info(f"{admin.username} deactivated canteen {canteen.name}")
    return envelope("Canteen deactivated successfully")
