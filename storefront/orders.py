"""Order store: the only write paths for orders and their line items.

Orders are written by upsert keyed on the Stripe checkout session id, and
line items are synced with replace-set semantics (delete all, insert all, one
transaction), so redelivered webhooks converge on the same rows.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from storefront.models import Order, OrderItem, OrderStatus

logger = logging.getLogger(__name__)


@dataclass
class OrderSnapshot:
    stripe_payment_id: str
    email: str = ""
    name: Optional[str] = None
    currency: str = "usd"
    subtotal: int = 0
    total: int = 0
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


@dataclass
class ResolvedItem:
    product_id: str
    quantity: int
    unit_amount: int


def _mark_paid(order: Order):
    # PENDING -> PAID only; the customer snapshot from first sight is kept.
    if order.status != OrderStatus.PAID:
        order.status = OrderStatus.PAID


def upsert_paid_order(db, snapshot: OrderSnapshot) -> str:
    """Create the order as PAID on first sight, otherwise only flip its status. Returns the order id."""
    order = db.query(Order).filter_by(stripe_payment_id=snapshot.stripe_payment_id).first()
    if order is not None:
        _mark_paid(order)
        db.commit()
        return order.id

    order = Order(
        stripe_payment_id=snapshot.stripe_payment_id,
        email=snapshot.email,
        name=snapshot.name,
        currency=snapshot.currency,
        subtotal=snapshot.subtotal,
        total=snapshot.total,
        status=OrderStatus.PAID,
        address_line1=snapshot.address_line1,
        address_line2=snapshot.address_line2,
        city=snapshot.city,
        state=snapshot.state,
        postal_code=snapshot.postal_code,
        country=snapshot.country,
    )
    db.add(order)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent delivery inserted the same session first.
        db.rollback()
        logger.info("Order for %s inserted concurrently, updating instead", snapshot.stripe_payment_id)
        order = db.query(Order).filter_by(stripe_payment_id=snapshot.stripe_payment_id).one()
        _mark_paid(order)
        db.commit()
    return order.id


def replace_order_items(db, order_id: str, items: List[ResolvedItem]):
    try:
        db.query(OrderItem).filter_by(order_id=order_id).delete(synchronize_session=False)
        if items:
            db.add_all(
                OrderItem(
                    order_id=order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_amount=item.unit_amount,
                )
                for item in items
            )
        db.commit()
    except Exception:
        db.rollback()
        raise


def get_order_by_payment_id(db, stripe_payment_id: str):
    return db.query(Order).filter_by(stripe_payment_id=stripe_payment_id).first()


def list_recent_orders(db, limit: int = 5):
    return db.query(Order).order_by(Order.created_at.desc()).limit(limit).all()
