"""Canteen lookups shared by the canteen, menu and payment endpoints."""

from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import NotFoundError
from canteen.models import Canteen, MenuItem
from canteen.schemas import CanteenWithStats


async def find_canteen(db: AsyncSession, ref: str) -> Optional[Canteen]:
    """Look a canteen up by id, or by its short code (``canteen-a``)."""
    result = await db.execute(
        select(Canteen).where(or_(Canteen.id == ref, Canteen.code == ref)).limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_canteen(db: AsyncSession, ref: str) -> Canteen:
    canteen = await find_canteen(db, ref)
    if canteen is None:
        raise NotFoundError("Canteen not found")
    return canteen


async def list_canteens_with_stats(db: AsyncSession) -> list[dict]:
    """Active canteens sorted by name, with menu item counts."""
    counts = (
        select(
            MenuItem.canteen_id.label("canteen_id"),
            func.count(MenuItem.id).label("total"),
            func.count(MenuItem.id).filter(MenuItem.is_available.is_(True)).label("available"),
        )
        .group_by(MenuItem.canteen_id)
        .subquery()
    )
    result = await db.execute(
        select(Canteen, counts.c.total, counts.c.available)
        .outerjoin(counts, counts.c.canteen_id == Canteen.id)
        .where(Canteen.is_active.is_(True))
        .order_by(Canteen.name)
    )

    listing = []
    for canteen, total, available in result.all():
        data = CanteenWithStats.model_validate(canteen).model_dump(mode="json")
        data["total_menu_items"] = total or 0
        data["available_menu_items"] = available or 0
        listing.append(data)
    return listing
