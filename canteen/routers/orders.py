"""
Order Endpoints

Order placement goes through the process-wide OrderQueue so at most
ORDER_QUEUE_CONCURRENCY placements touch stock at the same time; the request
waits for its own placement and sees only its own failure.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from kombu.exceptions import OperationalError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import APIError, BadRequestError, ForbiddenError
from canteen.database import get_db
from canteen.deps import (
    ensure_canteen_access,
    get_cache,
    get_current_user,
    get_order_queue,
    require_admin,
    scope_to_canteens,
)
from canteen.models import Order, OrderStatus, PaymentType, User, UserRole
from canteen.schemas import (
    OrderCreate,
    OrderExportRequest,
    OrderOut,
    OrderStatusUpdate,
    envelope,
    pagination,
    serialize,
)
from canteen.services.cache import CacheManager
from canteen.services.order_queue import OrderQueue
from canteen.services.orders import load_order, restore_stock
from canteen.tasks import export_orders_report

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["Orders"])

RECENT_ORDERS_LIMIT = 20


def _parse_date(value: Optional[str], label: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise BadRequestError(f"Invalid {label} date format")


def _check_order_access(user: User, order: Order) -> None:
    if user.role == UserRole.ADMIN:
        ensure_canteen_access(user, order.canteen_id)
    elif order.user_id != user.id:
        raise ForbiddenError("Access denied")


# =============================================================================
# PLACEMENT
# =============================================================================

@router.post("", status_code=201, summary="Place an order")
async def create_order(
    body: OrderCreate,
    user: User = Depends(get_current_user),
    queue: OrderQueue = Depends(get_order_queue),
) -> dict:
    order = await queue.submit(body, submitted_by=user.id)
    return envelope("Order created successfully", order=order)


@router.get("/queue/status", summary="Order queue status")
async def queue_status(
    queue: OrderQueue = Depends(get_order_queue),
    admin: User = Depends(require_admin),
) -> dict:
    return envelope(queue=queue.status())


# =============================================================================
# LISTINGS
# =============================================================================

@router.get("/my-orders", summary="Current user's orders")
async def my_orders(
    status: Optional[OrderStatus] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(RECENT_ORDERS_LIMIT, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    user: User = Depends(get_current_user),
) -> dict:
    # only the default first page is cached
    cacheable = status is None and page == 1 and limit == RECENT_ORDERS_LIMIT
    if cacheable:
        cached = cache.get_user_recent_orders(user.id)
        if cached is not None:
            return {"success": True, "data": cached, "cached": True}

    query = select(Order).where(Order.user_id == user.id)
    if status is not None:
        query = query.where(Order.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    orders = result.scalars().all()
    data = {
        "orders": [serialize(OrderOut, o) for o in orders],
        "pagination": pagination(page, limit, total, len(orders)),
    }
    if cacheable:
        cache.set_user_recent_orders(user.id, data)
    return {"success": True, "data": data}


@router.get("", summary="List orders (admin)")
async def list_orders(
    status: Optional[OrderStatus] = Query(None),
    canteen_id: Optional[str] = Query(None),
    payment_type: Optional[PaymentType] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    query = scope_to_canteens(select(Order), Order.canteen_id, admin)
    if status is not None:
        query = query.where(Order.status == status)
    if canteen_id:
        query = query.where(Order.canteen_id == canteen_id)
    if payment_type is not None:
        query = query.where(Order.payment_type == payment_type)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    orders = result.scalars().all()
    return envelope(
        orders=[serialize(OrderOut, o) for o in orders],
        pagination=pagination(page, limit, total, len(orders)),
    )


@router.get("/analytics/summary", summary="Order analytics (admin)")
async def order_analytics(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    canteen_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    start = _parse_date(start_date, "start")
    end = _parse_date(end_date, "end")

    def count_status(status: OrderStatus):
        return func.count(Order.id).filter(Order.status == status)

    query = select(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total), 0.0),
        count_status(OrderStatus.PENDING),
        count_status(OrderStatus.APPROVED),
        count_status(OrderStatus.COMPLETED),
        count_status(OrderStatus.CANCELLED),
        count_status(OrderStatus.REJECTED),
        func.count(Order.id).filter(Order.payment_type == PaymentType.ORGANIZATION),
        func.coalesce(func.avg(Order.total), 0.0),
    )
    query = scope_to_canteens(query, Order.canteen_id, admin)
    if start is not None:
        query = query.where(Order.created_at >= start)
    if end is not None:
        query = query.where(Order.created_at <= end)
    if canteen_id:
        query = query.where(Order.canteen_id == canteen_id)

    (total, revenue, pending, approved, completed, cancelled, rejected,
     organization, average) = (await db.execute(query)).one()

    return envelope(
        analytics={
            "total_orders": total,
            "total_revenue": round(float(revenue), 2),
            "pending_orders": pending,
            "approved_orders": approved,
            "completed_orders": completed,
            "cancelled_orders": cancelled,
            "rejected_orders": rejected,
            "organization_orders": organization,
            "avg_order_value": round(float(average), 2),
        }
    )


@router.post("/export", status_code=202, summary="Export orders to Excel (admin)")
async def export_orders(
    body: OrderExportRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    query = scope_to_canteens(select(Order), Order.canteen_id, admin)
    if body.canteen_id:
        ensure_canteen_access(admin, body.canteen_id)
        query = query.where(Order.canteen_id == body.canteen_id)
    if body.status is not None:
        query = query.where(Order.status == body.status)
    if body.start_date is not None:
        query = query.where(Order.created_at >= body.start_date)
    if body.end_date is not None:
        query = query.where(Order.created_at <= body.end_date)

    result = await db.execute(query.order_by(Order.created_at))
    orders = [serialize(OrderOut, o) for o in result.scalars().all()]

    try:
        task = export_orders_report.delay(orders)
    except OperationalError as e:
        logger.error(f"Could not queue order export: {e}")
        raise APIError("Report worker unavailable", status_code=503)

    logger.info(f"{admin.username} queued export of {len(orders)} orders ({task.id})")
    return envelope("Order export queued", task_id=task.id, orders=len(orders))


@router.get("/{order_id}", summary="Get order")
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    order = await load_order(db, order_id)
    _check_order_access(user, order)
    return envelope(order=serialize(OrderOut, order))


# =============================================================================
# STATUS CHANGES
# =============================================================================

@router.patch("/{order_id}/status", summary="Update order status (admin)")
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    admin: User = Depends(require_admin),
) -> dict:
    order = await load_order(db, order_id)
    ensure_canteen_access(admin, order.canteen_id)

    order.status = body.status
    if body.notes:
        order.notes = body.notes
    if body.status == OrderStatus.APPROVED:
        order.approved_by = admin.id
    await db.commit()

    cache.invalidate_user_order_cache(order.user_id)
    logger.info(f"{admin.username} set {order.order_code} to {body.status.value}")

    order = await load_order(db, order.id)
    return envelope("Order status updated successfully", order=serialize(OrderOut, order))


@router.patch("/{order_id}/cancel", summary="Cancel a pending order")
async def cancel_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    user: User = Depends(get_current_user),
) -> dict:
    order = await load_order(db, order_id)
    _check_order_access(user, order)
    if order.status != OrderStatus.PENDING:
        raise BadRequestError("Can only cancel pending orders")

    await restore_stock(db, order.items)
    order.status = OrderStatus.CANCELLED
    await db.commit()

    cache.invalidate_menu_cache(order.canteen_id)
    cache.invalidate_canteen_cache()
    cache.invalidate_user_order_cache(order.user_id)
    logger.info(f"Order {order.order_code} cancelled by {user.username}")

    order = await load_order(db, order.id)
    return envelope("Order cancelled successfully", order=serialize(OrderOut, order))
