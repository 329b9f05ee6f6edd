"""Order feedback endpoints."""

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.errors import BadRequestError, NotFoundError
from canteen.database import get_db
from canteen.deps import get_current_user, get_optional_user, scope_to_canteens
from canteen.models import Feedback, Order, OrderStatus, User, UserRole
from canteen.schemas import (
    FeedbackCreate,
    FeedbackOut,
    FeedbackUpdate,
    envelope,
    pagination,
    serialize,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/feedback", tags=["Feedback"])

SORT_COLUMNS = {
    "created_at": Feedback.created_at,
    "rating": Feedback.rating,
}


def feedback_body(feedback: Feedback) -> dict:
    body = serialize(FeedbackOut, feedback)
    body["order_code"] = feedback.order.order_code if feedback.order else None
    if feedback.is_anonymous:
        body["user"] = None
    return body


def _scoped(query, user: Optional[User]):
    if user is not None and user.role == UserRole.ADMIN:
        query = scope_to_canteens(query, Feedback.canteen_id, user)
    return query


async def _reload(db: AsyncSession, feedback_id: str) -> Feedback:
    result = await db.execute(
        select(Feedback)
        .where(Feedback.id == feedback_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def _own_feedback(db: AsyncSession, feedback_id: str, user: User) -> Feedback:
    feedback = await db.get(Feedback, feedback_id)
    if feedback is None or feedback.user_id != user.id:
        raise NotFoundError("Feedback not found or unauthorized")
    return feedback


@router.get("/analytics", summary="Feedback analytics")
async def feedback_analytics(
    canteen_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> dict:
    query = _scoped(select(Feedback.rating, func.count(Feedback.id)), user)
    recommend_query = _scoped(select(func.count(Feedback.id)), user).where(
        Feedback.recommend.is_(True)
    )
    conditions = []
    if canteen_id:
        conditions.append(Feedback.canteen_id == canteen_id)
    if start_date is not None:
        conditions.append(Feedback.created_at >= start_date)
    if end_date is not None:
        conditions.append(Feedback.created_at <= end_date)

    rows = await db.execute(query.where(*conditions).group_by(Feedback.rating))
    distribution = {rating: 0 for rating in range(1, 6)}
    for rating, count in rows.all():
        distribution[rating] = count

    recommended = (await db.execute(recommend_query.where(*conditions))).scalar_one()

    total = sum(distribution.values())
    average = sum(r * c for r, c in distribution.items()) / total if total else 0.0
    positive = distribution[4] + distribution[5]

    return envelope(
        total_feedbacks=total,
        average_rating=round(average, 2),
        satisfaction_percentage=round(positive / total * 100) if total else 0,
        recommendation_rate=round(recommended / total * 100) if total else 0,
        rating_distribution={str(r): c for r, c in distribution.items()},
    )


@router.get("", summary="List feedback")
async def list_feedback(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    canteen_id: Optional[str] = Query(None),
    rating: Optional[int] = Query(None, ge=1, le=5),
    sort_by: Literal["created_at", "rating"] = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> dict:
    query = _scoped(select(Feedback), user)
    if canteen_id:
        query = query.where(Feedback.canteen_id == canteen_id)
    if rating is not None:
        query = query.where(Feedback.rating == rating)

    column = SORT_COLUMNS[sort_by]
    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
    result = await db.execute(
        query.order_by(column.desc() if sort_order == "desc" else column.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    feedbacks = result.scalars().all()
    return envelope(
        feedbacks=[feedback_body(f) for f in feedbacks],
        pagination=pagination(page, limit, total, len(feedbacks)),
    )


@router.get("/order/{order_id}", summary="Feedback of an order")
async def order_feedback(order_id: str, db: AsyncSession = Depends(get_db)) -> dict:
    result = await db.execute(select(Feedback).where(Feedback.order_id == order_id))
    feedback = result.scalar_one_or_none()
    if feedback is None:
        raise NotFoundError("No feedback found for this order")
    return envelope(feedback=feedback_body(feedback))


@router.post("", status_code=201, summary="Submit feedback")
async def submit_feedback(
    body: FeedbackCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    result = await db.execute(
        select(Order).where(
            Order.id == body.order_id,
            Order.user_id == user.id,
            Order.status == OrderStatus.COMPLETED,
        )
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFoundError("Order not found or not eligible for feedback")

    existing = await db.execute(select(Feedback.id).where(Feedback.order_id == order.id))
    if existing.first() is not None:
        raise BadRequestError("Feedback already submitted for this order")

    feedback = Feedback(
        user_id=user.id,
        order_id=order.id,
        canteen_id=order.canteen_id,
        rating=body.rating,
        comment=body.comment or None,
        recommend=body.recommend,
        is_anonymous=body.is_anonymous,
    )
    db.add(feedback)
    await db.commit()

    logger.info(f"Feedback {body.rating}/5 for order {order.order_code}")
    feedback = await _reload(db, feedback.id)
    return envelope("Feedback submitted successfully", feedback=feedback_body(feedback))


@router.put("/{feedback_id}", summary="Edit own feedback")
async def update_feedback(
    feedback_id: str,
    body: FeedbackUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    feedback = await _own_feedback(db, feedback_id, user)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(feedback, field, value)
    await db.commit()

    feedback = await _reload(db, feedback.id)
    return envelope("Feedback updated successfully", feedback=feedback_body(feedback))


@router.delete("/{feedback_id}", summary="Delete own feedback")
async def delete_feedback(
    feedback_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> dict:
    feedback = await _own_feedback(db, feedback_id, user)
    await db.delete(feedback)
    await db.commit()
    return envelope("Feedback deleted successfully")
