"""Stripe webhook handling: verify, then record the paid order.

A delivery is processed in a fixed order: signature header present, secret
configured, signature valid over the raw bytes, then dispatch on event type.
Only ``checkout.session.completed`` writes anything. Persistence failures are
re-raised as ``PersistenceFailureError`` (HTTP 500) so that Stripe's own
redelivery drives the retry.
"""

import logging
from typing import Iterable, List, Optional

import stripe
from pydantic import ValidationError

from storefront.exceptions import (
    InvalidPayloadError, InvalidSignatureError, MissingSignatureError,
    PersistenceFailureError, ServerMisconfiguredError
)
from storefront.orders import OrderSnapshot, ResolvedItem, replace_order_items, upsert_paid_order
from storefront.schemas import (
    CheckoutSessionCompleted, CompletedSession, ProviderLineItem, parse_event
)
from storefront.stripe_service import construct_event, list_session_line_items

logger = logging.getLogger(__name__)

ACKNOWLEDGED = {"received": True}


def per_unit_amount(item: ProviderLineItem) -> int:
    """Stripe's per-unit price, else the line subtotal split evenly (rounded half up)."""
    if item.price is not None and item.price.unit_amount is not None:
        return item.price.unit_amount
    qty = max(item.quantity or 1, 1)
    subtotal = item.amount_subtotal or 0
    return (2 * subtotal + qty) // (2 * qty)


def resolve_order_items(line_items: Iterable) -> List[ResolvedItem]:
    resolved = []
    for raw in line_items:
        item = ProviderLineItem.model_validate(raw)
        product_id = item.app_product_id
        if not product_id:
            # Not one of ours (legacy or ad-hoc line item)
            logger.warning("Skipping line item without app_product_id metadata")
            continue
        resolved.append(ResolvedItem(
            product_id=product_id,
            quantity=item.quantity if item.quantity is not None else 1,
            unit_amount=per_unit_amount(item),
        ))
    return resolved


def snapshot_from_session(session: CompletedSession) -> OrderSnapshot:
    details = session.customer_details
    address = details.address if details and details.address else None
    return OrderSnapshot(
        stripe_payment_id=session.id,
        email=(details.email if details else None) or session.customer_email or "",
        name=details.name if details else None,
        currency=session.currency or "usd",
        subtotal=session.amount_subtotal or 0,
        total=session.amount_total or 0,
        address_line1=address.line1 if address else None,
        address_line2=address.line2 if address else None,
        city=address.city if address else None,
        state=address.state if address else None,
        postal_code=address.postal_code if address else None,
        country=address.country if address else None,
    )


class FulfillmentReconciler:
    """Takes a session factory, not a session: nothing touches the database before verification."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def verify(self, payload: bytes, signature: Optional[str], secret: Optional[str]):
        if not signature:
            raise MissingSignatureError()
        if not secret:
            logger.error("STRIPE_WEBHOOK_SECRET is missing")
            raise ServerMisconfiguredError(
                details="STRIPE_WEBHOOK_SECRET is not set. Copy the whsec_... value from the Stripe dashboard or `stripe listen`."
            )
        try:
            event = construct_event(payload, signature, secret)
        except ValueError:
            raise InvalidPayloadError()
        except stripe.SignatureVerificationError as e:
            logger.warning("Invalid webhook signature: %s", e)
            raise InvalidSignatureError()
        try:
            return parse_event(event)
        except (ValidationError, KeyError, TypeError, AttributeError):
            raise InvalidPayloadError()

    def handle(self, payload: bytes, signature: Optional[str], secret: Optional[str]) -> dict:
        event = self.verify(payload, signature, secret)
        logger.info("Webhook received: %s", event.kind)

        if isinstance(event, CheckoutSessionCompleted):
            self.record_completed_session(event.session)
        return ACKNOWLEDGED

    def record_completed_session(self, session: CompletedSession):
        db = self.session_factory()
        try:
            # Header first: item rows are keyed by the order id it returns.
            order_id = upsert_paid_order(db, snapshot_from_session(session))
            items = resolve_order_items(list_session_line_items(session.id))
            replace_order_items(db, order_id, items)
        except Exception:
            logger.exception("Failed to process order for session %s", session.id)
            raise PersistenceFailureError()
        finally:
            db.close()

        logger.info("Order %s recorded as PAID with %d items", order_id, len(items))
        return order_id
