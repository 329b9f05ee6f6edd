"""
SQLAlchemy Database Models

Users, canteens, menus, orders, payment transactions, per-canteen payment QR
codes and order feedback. Ids are opaque 32-character hex strings.
"""

import enum
import random
import string
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from canteen.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def random_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def generate_order_code() -> str:
    """Human-facing order number, e.g. ``ORD-1718000000000-k3j9x0a1b``."""
    return f"ORD-{int(time.time() * 1000)}-{random_suffix()}"


class UserRole(str, enum.Enum):
    ADMIN = "admin"
    USER = "user"


class MenuCategory(str, enum.Enum):
    MAIN = "main"
    SOUTH = "south"
    SNACKS = "snacks"
    BEVERAGES = "beverages"
    DESSERTS = "desserts"


class OrderType(str, enum.Enum):
    DINE_IN = "dine-in"
    TAKEAWAY = "takeaway"


class PaymentType(str, enum.Enum):
    INDIVIDUAL = "individual"
    ORGANIZATION = "organization"


class OrderStatus(str, enum.Enum):
    """Order status workflow."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransactionStatus(str, enum.Enum):
    CREATED = "created"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    GATEWAY = "gateway"
    QR = "qr"
    ORGANIZATION = "organization"


ADMIN_PERMISSIONS = ["manage_menu", "view_orders", "manage_qr", "view_analytics"]
USER_PERMISSIONS = ["place_order", "view_menu", "track_orders"]
SUPER_ADMIN_USERNAME = "super_admin"


def default_permissions(role: UserRole) -> list[str]:
    return list(ADMIN_PERMISSIONS if role == UserRole.ADMIN else USER_PERMISSIONS)


def _enum(enum_cls, name: str) -> Enum:
    # Persist the value ("dine-in"), not the member name ("DINE_IN")
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class User(TimestampMixin, Base):
    """
    Application account. Admins with no assigned canteens, or the account
    named ``super_admin``, may act on every canteen.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    username = Column(String(50), nullable=False, unique=True)
    employee_id = Column(String(50), nullable=True, unique=True)
    password_hash = Column(String(100), nullable=False)
    role = Column(_enum(UserRole, "user_role"), nullable=False, index=True)

    full_name = Column(String(100), nullable=True)
    department = Column(String(100), nullable=True)
    designation = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)
    organization_id = Column(String(50), nullable=True)

    assigned_canteens = Column(JSON, nullable=False, default=list)
    permissions = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_login = Column(DateTime(timezone=True), nullable=True)

    @property
    def is_super_admin(self) -> bool:
        return self.username == SUPER_ADMIN_USERNAME or not self.assigned_canteens

    def __repr__(self):
        return f"<User {self.username} ({self.role.value})>"


class Canteen(TimestampMixin, Base):
    __tablename__ = "canteens"

    id = Column(String(32), primary_key=True, default=new_id)
    # Short slug ("canteen-a") used by payment configuration and legacy clients
    code = Column(String(50), nullable=True, unique=True)
    name = Column(String(100), nullable=False, index=True)
    location = Column(String(200), nullable=False)
    timing = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    specialties = Column(JSON, nullable=False, default=list)
    rating = Column(Float, nullable=False, default=0.0)
    distance = Column(String(20), nullable=False, default="0m")
    wait_time = Column(String(30), nullable=False, default="5-10 mins")

    __table_args__ = (
        CheckConstraint("rating >= 0 AND rating <= 5", name="ck_canteen_rating"),
    )

    def __repr__(self):
        return f"<Canteen {self.name}>"


class MenuItem(TimestampMixin, Base):
    __tablename__ = "menu_items"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    price = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    category = Column(_enum(MenuCategory, "menu_category"), nullable=False, index=True)
    description = Column(Text, nullable=True)
    image = Column(String(500), nullable=True)
    canteen_id = Column(String(32), ForeignKey("canteens.id"), nullable=False, index=True)
    is_available = Column(Boolean, nullable=False, default=True, index=True)

    canteen = relationship("Canteen", lazy="selectin")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_menu_item_price"),
        CheckConstraint("quantity >= 0", name="ck_menu_item_quantity"),
        Index("ix_menu_items_canteen_category", "canteen_id", "category"),
        Index("ix_menu_items_canteen_available", "canteen_id", "is_available"),
    )

    def __repr__(self):
        return f"<MenuItem {self.name} x{self.quantity}>"


class Order(TimestampMixin, Base):
    """
    A placed order. Organization-billed orders wait for admin approval;
    individual orders are approved on placement.
    """
    __tablename__ = "orders"

    id = Column(String(32), primary_key=True, default=new_id)
    order_code = Column(String(40), nullable=False, unique=True, default=generate_order_code)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    canteen_id = Column(String(32), ForeignKey("canteens.id"), nullable=False, index=True)

    total = Column(Float, nullable=False)
    order_type = Column(_enum(OrderType, "order_type"), nullable=False)
    payment_type = Column(_enum(PaymentType, "payment_type"), nullable=False)
    status = Column(
        _enum(OrderStatus, "order_status"),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    organization_bill = Column(Boolean, nullable=False, default=False)
    approved_by = Column(String(32), ForeignKey("users.id"), nullable=True)
    notes = Column(Text, nullable=True)

    order_date = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    order_time = Column(String(20), nullable=True)
    bill_generated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    user = relationship("User", foreign_keys=[user_id], lazy="selectin")
    canteen = relationship("Canteen", lazy="selectin")
    approver = relationship("User", foreign_keys=[approved_by], lazy="selectin")

    __table_args__ = (
        CheckConstraint("total >= 0", name="ck_order_total"),
    )

    def __repr__(self):
        return f"<Order {self.order_code} - {self.status.value}>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(32), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    menu_item_id = Column(String(32), ForeignKey("menu_items.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
    menu_item = relationship("MenuItem", lazy="selectin")

    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),
    )


class Transaction(TimestampMixin, Base):
    """Payment gateway attempt for an individually paid order."""
    __tablename__ = "transactions"

    id = Column(String(32), primary_key=True, default=new_id)
    order_code = Column(String(40), nullable=False, default=generate_order_code)
    gateway_order_id = Column(String(100), nullable=False, index=True)
    gateway_payment_id = Column(String(100), nullable=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(10), nullable=False, default="inr")
    status = Column(
        _enum(TransactionStatus, "transaction_status"),
        nullable=False,
        default=TransactionStatus.CREATED,
        index=True,
    )
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    canteen_id = Column(String(32), nullable=False, index=True)
    payment_method = Column(_enum(PaymentMethod, "payment_method"), nullable=False)
    extra = Column(JSON, nullable=False, default=dict)

    user = relationship("User", lazy="selectin")


class PaymentQR(TimestampMixin, Base):
    """Uploaded payment QR image for a canteen. One active QR per canteen."""
    __tablename__ = "payment_qrs"

    id = Column(String(32), primary_key=True, default=new_id)
    admin_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    canteen_id = Column(String(32), ForeignKey("canteens.id"), nullable=False, index=True)
    qr_code_url = Column(String(500), nullable=False)
    public_id = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    admin = relationship("User", lazy="selectin")
    canteen = relationship("Canteen", lazy="selectin")


class Feedback(TimestampMixin, Base):
    __tablename__ = "feedback"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    order_id = Column(String(32), ForeignKey("orders.id"), nullable=False, unique=True)
    canteen_id = Column(String(32), ForeignKey("canteens.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False, index=True)
    comment = Column(String(500), nullable=True)
    recommend = Column(Boolean, nullable=False, default=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)

    user = relationship("User", lazy="selectin")
    canteen = relationship("Canteen", lazy="selectin")
    order = relationship("Order", lazy="selectin")

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_feedback_rating"),
    )
