"""
Payment Gateway Endpoints

Checkout for individually paid orders:

    1. GET  /api/payment/config/{canteen}  publishable key for the client
    2. POST /api/payment/create-order      payment intent + ``created`` transaction
    3. POST /api/payment/verify-payment    confirm with the gateway, record the order

Each canteen settles through its own gateway account (see
``canteen.services.payment``).
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.config import get_settings
from canteen.core.errors import BadRequestError, ConflictError, NotFoundError
from canteen.database import get_db
from canteen.deps import (
    ensure_canteen_access,
    get_cache,
    get_current_user,
    require_admin,
    scope_to_canteens,
)
from canteen.models import (
    Canteen,
    Order,
    OrderStatus,
    PaymentMethod,
    PaymentType,
    Transaction,
    TransactionStatus,
    User,
    utcnow,
)
from canteen.schemas import (
    CreatePaymentRequest,
    TransactionOut,
    VerifyPaymentRequest,
    envelope,
    pagination,
    serialize,
)
from canteen.services.cache import CacheManager
from canteen.services.canteens import resolve_canteen
from canteen.services.orders import LOCAL_TZ, local_order_time, order_lines, price_items
from canteen.services.payment import BasePaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payment", tags=["Payment"])


def gateway_for(canteen: Canteen) -> BasePaymentGateway:
    """Gateway of ``canteen``; 400 when its credentials are placeholders."""
    gateway = get_payment_gateway(canteen.code or canteen.id)
    if not gateway.has_valid_config():
        raise BadRequestError(
            f"Payment gateway not configured for {canteen.name}. "
            "Please contact the administrator."
        )
    return gateway


# =============================================================================
# CHECKOUT
# =============================================================================

@router.get("/config/{canteen_ref}", summary="Gateway configuration for a canteen")
async def payment_config(
    canteen_ref: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    canteen = await resolve_canteen(db, canteen_ref)
    gateway = gateway_for(canteen)
    return envelope(
        key=gateway.public_key,
        provider=gateway.provider_name,
        currency=get_settings().payment_currency,
        canteen_id=canteen.id,
        canteen_name=canteen.name,
    )


@router.post("/create-order", summary="Start a gateway payment")
async def create_payment(
    body: CreatePaymentRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    canteen = await resolve_canteen(db, body.order_data.canteen_id)
    if not canteen.is_active:
        raise NotFoundError("Canteen not found or inactive")
    gateway = gateway_for(canteen)

    intent = await gateway.create_payment_intent(
        body.amount,
        currency=body.currency,
        metadata={
            "user_id": user.id,
            "canteen_id": canteen.id,
            "order_type": body.order_data.order_type.value,
        },
    )
    if not intent.success:
        raise BadRequestError(intent.error_message or "Failed to create payment order")

    transaction = Transaction(
        gateway_order_id=intent.payment_intent_id,
        amount=body.amount,
        currency=intent.currency,
        user_id=user.id,
        canteen_id=canteen.id,
        payment_method=PaymentMethod.GATEWAY,
        extra=body.order_data.model_dump(mode="json"),
    )
    db.add(transaction)
    await db.commit()

    logger.info(
        f"Payment intent {intent.payment_intent_id} created for {user.username} "
        f"at {canteen.name} ({body.amount:.2f} {intent.currency})"
    )
    return envelope(
        order_id=intent.payment_intent_id,
        client_secret=intent.client_secret,
        amount=intent.amount,
        currency=intent.currency,
        transaction_id=transaction.id,
        key=gateway.public_key,
        canteen_id=canteen.id,
        canteen_name=canteen.name,
    )


@router.post("/verify-payment", summary="Confirm a gateway payment")
async def verify_payment(
    body: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
    cache: CacheManager = Depends(get_cache),
    user: User = Depends(get_current_user),
) -> dict:
    transaction = await db.get(Transaction, body.transaction_id)
    if transaction is None or transaction.user_id != user.id:
        raise NotFoundError("Transaction not found")
    if transaction.gateway_order_id != body.payment_intent_id:
        raise BadRequestError("Payment verification failed")
    if transaction.status == TransactionStatus.PAID:
        raise ConflictError("Payment already verified")

    canteen = await resolve_canteen(db, transaction.canteen_id)
    gateway = get_payment_gateway(canteen.code or canteen.id)

    confirmation = await gateway.confirm_payment(body.payment_intent_id)
    if not confirmation.success:
        transaction.status = TransactionStatus.FAILED
        transaction.extra = {**transaction.extra, "failure": confirmation.error_code}
        await db.commit()
        logger.warning(
            f"Payment {body.payment_intent_id} not confirmed: {confirmation.error_message}"
        )
        raise BadRequestError("Payment verification failed")

    lines, total = await price_items(db, canteen, body.order_data.items, check_stock=False)
    if abs(total - transaction.amount) > 0.01:
        logger.warning(
            f"Payment {body.payment_intent_id}: paid {transaction.amount:.2f}, "
            f"menu total {total:.2f}"
        )

    now = datetime.now(LOCAL_TZ)
    order = Order(
        order_code=transaction.order_code,
        user_id=user.id,
        canteen_id=canteen.id,
        total=total,
        order_type=body.order_data.order_type,
        payment_type=PaymentType.INDIVIDUAL,
        status=OrderStatus.COMPLETED,
        notes=f"Paid via {gateway.provider_name} - Payment ID: {body.payment_intent_id}",
        order_date=now,
        order_time=local_order_time(now),
        bill_generated_at=now,
        items=order_lines(lines),
    )
    db.add(order)

    transaction.status = TransactionStatus.PAID
    transaction.gateway_payment_id = confirmation.payment_intent_id
    transaction.extra = {
        **transaction.extra,
        "canteen_name": canteen.name,
        "provider": gateway.provider_name,
    }
    await db.commit()

    cache.invalidate_user_order_cache(user.id)
    logger.info(f"Payment {body.payment_intent_id} verified, order {order.order_code} recorded")
    return envelope(
        "Payment verified successfully",
        order_id=order.id,
        order_code=order.order_code,
        transaction_id=transaction.id,
        payment_id=confirmation.payment_intent_id,
    )


# =============================================================================
# REPORTING (admin)
# =============================================================================

@router.get("/transactions", summary="Payment transactions (admin)")
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[TransactionStatus] = Query(None),
    canteen_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    conditions = []
    if canteen_id:
        ensure_canteen_access(admin, canteen_id)
        conditions.append(Transaction.canteen_id == canteen_id)
    if start_date is not None:
        conditions.append(Transaction.created_at >= start_date)
    if end_date is not None:
        conditions.append(Transaction.created_at <= end_date)

    query = scope_to_canteens(select(Transaction), Transaction.canteen_id, admin).where(*conditions)
    if status is not None:
        query = query.where(Transaction.status == status)

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(Transaction.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    transactions = result.scalars().all()

    paid = scope_to_canteens(
        select(func.coalesce(func.sum(Transaction.amount), 0.0)),
        Transaction.canteen_id,
        admin,
    ).where(Transaction.status == TransactionStatus.PAID, *conditions)
    today = datetime.combine(utcnow().date(), time.min)

    total_revenue = (await db.execute(paid)).scalar_one()
    today_revenue = (await db.execute(paid.where(Transaction.created_at >= today))).scalar_one()

    return envelope(
        transactions=[serialize(TransactionOut, t) for t in transactions],
        pagination=pagination(page, limit, total, len(transactions)),
        summary={
            "total_revenue": round(float(total_revenue), 2),
            "today_revenue": round(float(today_revenue), 2),
            "total_transactions": total,
        },
    )


@router.get("/analytics", summary="Payment analytics (admin)")
async def payment_analytics(
    canteen_id: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
) -> dict:
    def scoped(query):
        query = scope_to_canteens(query, Transaction.canteen_id, admin)
        if canteen_id:
            query = query.where(Transaction.canteen_id == canteen_id)
        return query

    if canteen_id:
        ensure_canteen_access(admin, canteen_id)

    methods = await db.execute(
        scoped(
            select(
                Transaction.payment_method,
                func.count(Transaction.id),
                func.coalesce(func.sum(Transaction.amount), 0.0),
            )
        ).group_by(Transaction.payment_method)
    )

    day = func.date(Transaction.created_at)
    daily = await db.execute(
        scoped(select(day, func.sum(Transaction.amount), func.count(Transaction.id)))
        .where(
            Transaction.status == TransactionStatus.PAID,
            Transaction.created_at >= utcnow() - timedelta(days=7),
        )
        .group_by(day)
        .order_by(day)
    )

    revenue = func.sum(Transaction.amount).label("revenue")
    top = await db.execute(
        scoped(
            select(Transaction.canteen_id, Canteen.name, revenue, func.count(Transaction.id))
            .outerjoin(Canteen, Canteen.id == Transaction.canteen_id)
        )
        .where(Transaction.status == TransactionStatus.PAID)
        .group_by(Transaction.canteen_id, Canteen.name)
        .order_by(revenue.desc())
        .limit(5)
    )

    return envelope(
        payment_methods=[
            {"method": method.value, "count": count, "amount": round(float(amount), 2)}
            for method, count, amount in methods.all()
        ],
        daily_revenue=[
            {"date": str(date), "revenue": round(float(amount), 2), "count": count}
            for date, amount, count in daily.all()
        ],
        top_canteens=[
            {"canteen_id": cid, "name": name, "revenue": round(float(amount), 2), "orders": count}
            for cid, name, amount, count in top.all()
        ],
    )
