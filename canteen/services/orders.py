"""
Order Placement

The processor the order queue runs for ``POST /api/orders`` plus the stock
bookkeeping shared with cancellation. Each placement runs in its own session
because it completes after the submitting request may have stopped waiting.

Stock is decremented with a conditional UPDATE so two concurrent placements
can never take the last portions twice.
"""

import logging
from datetime import datetime
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from canteen import database
from canteen.core.errors import BadRequestError, NotFoundError
from canteen.models import (
    Canteen,
    MenuItem,
    Order,
    OrderItem,
    OrderStatus,
    PaymentType,
)
from canteen.schemas import OrderCreate, OrderOut
from canteen.services.cache import CacheManager
from canteen.services.order_queue import Processor, QueueItem

logger = logging.getLogger(__name__)

LOCAL_TZ = ZoneInfo("Asia/Kolkata")


def local_order_time(now: datetime) -> str:
    """Wall-clock time printed on the bill, e.g. ``01:05 PM``."""
    return now.astimezone(LOCAL_TZ).strftime("%I:%M %p")


async def load_order(session: AsyncSession, order_id: str) -> Order:
    result = await session.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found")
    return order


async def take_stock(session: AsyncSession, menu_item: MenuItem, quantity: int) -> None:
    result = await session.execute(
        update(MenuItem)
        .where(MenuItem.id == menu_item.id, MenuItem.quantity >= quantity)
        .values(quantity=MenuItem.quantity - quantity)
    )
    if result.rowcount != 1:
        await session.refresh(menu_item)
        raise BadRequestError(
            f"Insufficient quantity for {menu_item.name}. "
            f"Available: {menu_item.quantity}, Requested: {quantity}"
        )
    await session.execute(
        update(MenuItem)
        .where(MenuItem.id == menu_item.id, MenuItem.quantity <= 0)
        .values(is_available=False)
    )


async def restore_stock(session: AsyncSession, items: Iterable[OrderItem]) -> None:
    """Give back the portions of a cancelled order."""
    for item in items:
        await session.execute(
            update(MenuItem)
            .where(MenuItem.id == item.menu_item_id)
            .values(quantity=MenuItem.quantity + item.quantity, is_available=True)
        )


async def price_items(
    session: AsyncSession,
    canteen: Canteen,
    items: Iterable[Any],
    check_stock: bool = True,
) -> tuple[list[tuple[MenuItem, int]], float]:
    """
    Look up each ``(menu_item_id, quantity)`` line on ``canteen``'s menu and
    price it at the current menu price.

    With ``check_stock`` the item must also be available with enough
    portions left. Verified gateway payments price without it.
    """
    total = 0.0
    lines = []
    for line in items:
        menu_item = await session.get(MenuItem, line.menu_item_id)
        if menu_item is None or menu_item.canteen_id != canteen.id:
            raise BadRequestError(f"Menu item {line.menu_item_id} not found or unavailable")
        if check_stock:
            if not menu_item.is_available:
                raise BadRequestError(f"Menu item {line.menu_item_id} not found or unavailable")
            if menu_item.quantity < line.quantity:
                raise BadRequestError(
                    f"Insufficient quantity for {menu_item.name}. "
                    f"Available: {menu_item.quantity}, Requested: {line.quantity}"
                )
        total += menu_item.price * line.quantity
        lines.append((menu_item, line.quantity))
    return lines, round(total, 2)


def order_lines(lines: Iterable[tuple[MenuItem, int]]) -> list[OrderItem]:
    return [
        OrderItem(menu_item_id=menu_item.id, quantity=quantity, price=menu_item.price)
        for menu_item, quantity in lines
    ]


async def create_order(session: AsyncSession, user_id: str, data: OrderCreate) -> Order:
    """
    Validate ``data`` against the current menu and persist the order.

    Raises:
        NotFoundError: canteen missing or inactive
        BadRequestError: an item is unavailable, belongs to another canteen
            or has too little stock left
    """
    canteen = await session.get(Canteen, data.canteen_id)
    if canteen is None or not canteen.is_active:
        raise NotFoundError("Canteen not found or inactive")

    lines, total = await price_items(session, canteen, data.items)

    for menu_item, quantity in lines:
        await take_stock(session, menu_item, quantity)

    organization = data.payment_type == PaymentType.ORGANIZATION
    now = datetime.now(LOCAL_TZ)
    order = Order(
        user_id=user_id,
        canteen_id=canteen.id,
        total=total,
        order_type=data.order_type,
        payment_type=data.payment_type,
        organization_bill=organization,
        status=OrderStatus.PENDING if organization else OrderStatus.APPROVED,
        notes=data.notes or None,
        order_date=now,
        order_time=local_order_time(now),
        bill_generated_at=now,
        items=order_lines(lines),
    )
    session.add(order)
    await session.flush()
    return order


def order_processor(cache: CacheManager) -> Processor:
    """Build the queue processor that places orders and refreshes caches."""

    async def place_order(item: QueueItem) -> dict[str, Any]:
        data: OrderCreate = item.payload
        async with database.async_session_maker() as session:
            try:
                order = await create_order(session, item.submitted_by, data)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            order = await load_order(session, order.id)
            body = OrderOut.model_validate(order).model_dump(mode="json")

        cache.invalidate_menu_cache(data.canteen_id)
        cache.invalidate_canteen_cache()
        cache.invalidate_user_order_cache(item.submitted_by)

        logger.info(
            f"Order {body['order_code']} placed by {item.submitted_by} "
            f"(total={body['total']:.2f}, queue_item={item.id})"
        )
        return body

    return place_order
