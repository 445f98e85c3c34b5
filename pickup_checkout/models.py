from enum import Enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Float,
    Boolean,
    JSON,
    DateTime,
    ForeignKey,
    Numeric,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from .clock import utcnow

Base = declarative_base()


class DeliveryMethod(str, Enum):
    PICKUP = "PICKUP"
    DELIVERY = "DELIVERY"


class PaymentMethod(str, Enum):
    ROBOKASSA = "ROBOKASSA"
    CASH = "CASH"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class CouponKind(str, Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


# --- Pickup points and their time windows ---

class PickupPoint(Base):
    __tablename__ = "pickup_points"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    # {"mon": {"from": "09:00", "to": "18:00"}, ..., "sun": null}
    working_schedule = Column(JSON, nullable=True)
    url = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    windows = relationship("PickupWindow", back_populates="point")


class PickupWindow(Base):
    """A bounded time slot at one pickup point. ``reserved`` is written only by the capacity ledger."""
    __tablename__ = "pickup_windows"

    id = Column(Integer, primary_key=True, index=True)
    point_id = Column(Integer, ForeignKey("pickup_points.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    capacity = Column(Integer, nullable=False, default=24)
    reserved = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    point = relationship("PickupPoint", back_populates="windows")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_pickup_windows_time_order"),
        CheckConstraint("capacity > 0", name="ck_pickup_windows_capacity_positive"),
        CheckConstraint("reserved >= 0", name="ck_pickup_windows_reserved_non_negative"),
        CheckConstraint("reserved <= capacity", name="ck_pickup_windows_reserved_le_capacity"),
        Index("ix_pickup_windows_point_start", "point_id", "start_time"),
    )


class ReservationHold(Base):
    """One reserved unit of a window. Released at most once (released_at)."""
    __tablename__ = "reservation_holds"

    id = Column(Integer, primary_key=True, index=True)
    window_id = Column(Integer, ForeignKey("pickup_windows.id"), nullable=False, index=True)
    token = Column(String, nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    released_at = Column(DateTime, nullable=True)


# --- Coupons ---

class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)  # stored upper-case
    kind = Column(String, nullable=False, default=CouponKind.PERCENTAGE.value)
    value = Column(Numeric(10, 2), nullable=False)
    valid_from = Column(DateTime, nullable=False)
    valid_to = Column(DateTime, nullable=False)
    usage_limit = Column(Integer, nullable=False, default=0)  # 0 = unlimited
    usage_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("usage_count >= 0", name="ck_coupons_usage_non_negative"),
        CheckConstraint(
            "usage_limit = 0 OR usage_count <= usage_limit",
            name="ck_coupons_usage_within_limit",
        ),
    )


# --- Catalog (read-mostly; owned by the product service) ---

class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    available_qty = Column(Integer, nullable=True)  # NULL = stock not tracked


# --- Orders ---

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value, index=True)

    buyer_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=False)

    delivery_method = Column(String, nullable=False)
    payment_method = Column(String, nullable=False)
    pay_later = Column(Boolean, nullable=False, default=False)

    point_id = Column(Integer, ForeignKey("pickup_points.id"), nullable=True, index=True)
    window_id = Column(Integer, ForeignKey("pickup_windows.id"), nullable=True, index=True)
    address = Column(String, nullable=True)

    total = Column(Numeric(10, 2), nullable=False)
    discount = Column(Numeric(10, 2), nullable=False, default=0)
    final_total = Column(Numeric(10, 2), nullable=False)

    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True, index=True)
    coupon_usage_recorded = Column(Boolean, nullable=False, default=False)

    idempotency_key = Column(String, nullable=True, unique=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    point = relationship("PickupPoint")
    window = relationship("PickupWindow")
    coupon = relationship("Coupon")

    __table_args__ = (
        CheckConstraint("final_total >= 0", name="ck_orders_final_total_non_negative"),
        Index("ix_orders_status_created_at", "status", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)

    product_name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)
    # Price captured when the item went into the cart, never re-read from the catalog
    unit_price = Column(Numeric(10, 2), nullable=False)
    line_total = Column(Numeric(10, 2), nullable=False)

    order = relationship("Order", back_populates="items")
