import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, Enum, ForeignKey, Integer, String, Text
)
from sqlalchemy.orm import relationship

from storefront.database import Base


def _new_id():
    return uuid.uuid4().hex


def _utcnow():
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("unit_amount >= 0", name="ck_products_unit_amount"),)

    id = Column(String, primary_key=True, default=_new_id)
    slug = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String, nullable=False)
    currency = Column(String(3), nullable=False, default="usd")   # lowercase ISO 4217
    unit_amount = Column(Integer, nullable=False)                  # minor units
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(String, primary_key=True, default=_new_id)
    stripe_payment_id = Column(String, unique=True, index=True, nullable=False)  # Checkout Session ID
    email = Column(String, nullable=False, default="")
    name = Column(String, nullable=True)
    address_line1 = Column(String, nullable=True)
    address_line2 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    state = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="usd")
    subtotal = Column(Integer, nullable=False, default=0)
    total = Column(Integer, nullable=False, default=0)
    status = Column(Enum(OrderStatus, native_enum=False), nullable=False, default=OrderStatus.PENDING)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(String, nullable=False)     # app_product_id from Stripe metadata, not a join
    quantity = Column(Integer, nullable=False)
    unit_amount = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
