"""
Pydantic Schemas for Request/Response Validation

Request bodies are validated here; response bodies are built from the ORM
models through the ``*Out`` schemas and wrapped in the API envelope:

    {"success": true, "message": "...", "data": {...}}
"""

import re
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from canteen.models import (
    MenuCategory,
    OrderStatus,
    OrderType,
    PaymentType,
    UserRole,
)


class RequestModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


def _check_email(v: Optional[str]) -> Optional[str]:
    if v is None or v == "":
        return None
    if not re.match(r'^[\w\.\+-]+@[\w\.-]+\.\w+$', v):
        raise ValueError('Invalid email format')
    return v.lower()


def envelope(message: Optional[str] = None, **data: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data:
        body["data"] = data
    return body


def serialize(schema: type[BaseModel], obj: Any) -> dict[str, Any]:
    """ORM object to JSON-ready dict through ``schema``."""
    return schema.model_validate(obj).model_dump(mode="json")


def pagination(page: int, limit: int, total: int, count: int) -> dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
        "count": count,
        "total": total,
    }


# =============================================================================
# AUTH & USERS
# =============================================================================

class LoginRequest(RequestModel):
    username: str = Field(..., min_length=3, max_length=50, examples=["demo_user1"])
    password: str = Field(..., min_length=6, max_length=72)
    role: UserRole = Field(..., examples=["user"])


class UserCreate(RequestModel):
    """Request schema for creating a new account."""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, max_length=72)
    role: UserRole
    employee_id: Optional[str] = Field(None, max_length=50)
    full_name: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    designation: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    organization_id: Optional[str] = Field(None, max_length=50)
    assigned_canteens: List[str] = Field(default_factory=list)

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)

    @field_validator('employee_id')
    @classmethod
    def blank_employee_id(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class UserUpdate(RequestModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    role: Optional[UserRole] = None
    employee_id: Optional[str] = Field(None, max_length=50)
    full_name: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    designation: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=30)
    organization_id: Optional[str] = Field(None, max_length=50)
    assigned_canteens: Optional[List[str]] = None
    is_active: Optional[bool] = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, v: Optional[str]) -> Optional[str]:
        return _check_email(v)


class PasswordReset(RequestModel):
    new_password: str = Field(..., min_length=6, max_length=72)


class UserOut(ORMModel):
    id: str
    username: str
    employee_id: Optional[str] = None
    role: UserRole
    full_name: Optional[str] = None
    department: Optional[str] = None
    designation: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    organization_id: Optional[str] = None
    assigned_canteens: List[str] = []
    permissions: List[str] = []
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: datetime


class UserBrief(ORMModel):
    id: str
    username: str
    full_name: Optional[str] = None
    role: UserRole
    organization_id: Optional[str] = None
    employee_id: Optional[str] = None


# =============================================================================
# CANTEENS
# =============================================================================

class CanteenCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Campus Canteen A"])
    location: str = Field(..., min_length=1, max_length=200)
    timing: str = Field(..., min_length=1, max_length=100, examples=["8:00 AM - 5:00 PM"])
    code: Optional[str] = Field(None, max_length=50, pattern=r"^[a-z0-9][a-z0-9-]*$")
    is_active: bool = True
    specialties: List[str] = Field(default_factory=list)
    rating: float = Field(default=0.0, ge=0, le=5)
    distance: str = Field(default="0m", max_length=20)
    wait_time: str = Field(default="5-10 mins", max_length=30)


class CanteenUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, min_length=1, max_length=200)
    timing: Optional[str] = Field(None, min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=50, pattern=r"^[a-z0-9][a-z0-9-]*$")
    is_active: Optional[bool] = None
    specialties: Optional[List[str]] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    distance: Optional[str] = Field(None, max_length=20)
    wait_time: Optional[str] = Field(None, max_length=30)


class CanteenOut(ORMModel):
    id: str
    code: Optional[str] = None
    name: str
    location: str
    timing: str
    is_active: bool
    specialties: List[str] = []
    rating: float
    distance: str
    wait_time: str
    created_at: datetime
    updated_at: datetime


class CanteenWithStats(CanteenOut):
    total_menu_items: int = 0
    available_menu_items: int = 0


class CanteenBrief(ORMModel):
    id: str
    code: Optional[str] = None
    name: str
    location: str


# =============================================================================
# MENU
# =============================================================================

class MenuItemCreate(RequestModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Masala Dosa"])
    price: float = Field(..., ge=0, examples=[80])
    quantity: int = Field(..., ge=0, examples=[40])
    category: MenuCategory
    canteen_id: str = Field(..., min_length=1)
    description: Optional[str] = Field(None, max_length=1000)
    image: Optional[str] = Field(None, max_length=500)

    @field_validator('image')
    @classmethod
    def validate_image_url(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not re.match(r'^https?://\S+$', v):
            raise ValueError('Image must be a valid URL')
        return v


class MenuItemUpdate(RequestModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=0)
    category: Optional[MenuCategory] = None
    description: Optional[str] = Field(None, max_length=1000)
    image: Optional[str] = Field(None, max_length=500)
    is_available: Optional[bool] = None


class QuantityUpdate(RequestModel):
    id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=0)


class BulkQuantityUpdate(RequestModel):
    updates: List[QuantityUpdate] = Field(..., min_length=1)


class MenuItemOut(ORMModel):
    id: str
    name: str
    price: float
    quantity: int
    category: MenuCategory
    description: Optional[str] = None
    image: Optional[str] = None
    canteen_id: str
    canteen: Optional[CanteenBrief] = None
    is_available: bool
    created_at: datetime
    updated_at: datetime


class MenuItemBrief(ORMModel):
    id: str
    name: str
    price: float
    category: MenuCategory
    description: Optional[str] = None


# =============================================================================
# ORDERS
# =============================================================================

class OrderItemCreate(RequestModel):
    """Single item in an order."""
    menu_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=99, examples=[2])


class OrderCreate(RequestModel):
    """Request schema for placing a new order."""
    canteen_id: str = Field(..., min_length=1)
    items: List[OrderItemCreate] = Field(..., min_length=1)
    order_type: OrderType = Field(..., examples=["takeaway"])
    payment_type: PaymentType = Field(..., examples=["individual"])
    notes: Optional[str] = Field(None, max_length=500)


class OrderStatusUpdate(RequestModel):
    status: OrderStatus
    notes: Optional[str] = Field(None, max_length=500)


class OrderExportRequest(RequestModel):
    canteen_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class OrderItemOut(ORMModel):
    menu_item_id: str
    quantity: int
    price: float
    menu_item: Optional[MenuItemBrief] = None


class OrderOut(ORMModel):
    """Response schema for a single order."""
    id: str
    order_code: str
    user_id: str
    user: Optional[UserBrief] = None
    canteen_id: str
    canteen: Optional[CanteenBrief] = None
    items: List[OrderItemOut]
    total: float
    order_type: OrderType
    payment_type: PaymentType
    status: OrderStatus
    organization_bill: bool
    approved_by: Optional[str] = None
    approver: Optional[UserBrief] = None
    notes: Optional[str] = None
    order_date: datetime
    order_time: Optional[str] = None
    bill_generated_at: datetime
    created_at: datetime
    updated_at: datetime


# =============================================================================
# FEEDBACK
# =============================================================================

class FeedbackCreate(RequestModel):
    order_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    recommend: bool = True
    is_anonymous: bool = False


class FeedbackUpdate(RequestModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    recommend: Optional[bool] = None


class FeedbackOut(ORMModel):
    id: str
    user_id: str
    user: Optional[UserBrief] = None
    order_id: str
    order_code: Optional[str] = None
    canteen_id: str
    canteen: Optional[CanteenBrief] = None
    rating: int
    comment: Optional[str] = None
    recommend: bool
    is_anonymous: bool
    created_at: datetime
    updated_at: datetime


# =============================================================================
# PAYMENT
# =============================================================================

class PaymentItem(RequestModel):
    """Client prices are ignored; orders are priced from the menu."""
    menu_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class PaymentOrderData(RequestModel):
    canteen_id: str = Field(..., min_length=1)
    items: List[PaymentItem] = Field(default_factory=list)
    order_type: OrderType = OrderType.TAKEAWAY


class CreatePaymentRequest(RequestModel):
    amount: float = Field(..., gt=0, examples=[240])
    currency: str = Field(default="inr", min_length=3, max_length=3)
    order_data: PaymentOrderData


class VerifyPaymentRequest(RequestModel):
    payment_intent_id: str = Field(..., min_length=1)
    transaction_id: str = Field(..., min_length=1)
    order_data: PaymentOrderData


class TransactionOut(ORMModel):
    id: str
    order_code: str
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    amount: float
    currency: str
    status: str
    user_id: str
    user: Optional[UserBrief] = None
    canteen_id: str
    payment_method: str
    extra: dict = {}
    created_at: datetime


class PaymentQROut(ORMModel):
    id: str
    admin_id: str
    admin: Optional[UserBrief] = None
    canteen_id: str
    canteen: Optional[CanteenBrief] = None
    qr_code_url: str
    public_id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


# =============================================================================
# HEALTH
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    payment_service: str
    storage_service: str
    timestamp: datetime
