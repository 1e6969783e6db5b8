"""Order intake: turn an untrusted cart into a Stripe Checkout Session.

Prices, names, currencies and images always come from the catalog; the client
only gets to choose which products and how many.
"""

import json
import logging
import uuid

import stripe
from pydantic import ValidationError

from storefront import config
from storefront.catalog import get_active_products
from storefront.exceptions import (
    InvalidPayloadError, InvalidPromoCodeError, PaymentProviderError, ProductsUnavailableError
)
from storefront.schemas import MAX_LINE_QUANTITY, CheckoutRequest
from storefront.stripe_service import create_checkout_session, find_promotion_coupon

logger = logging.getLogger(__name__)


def validate_checkout(payload) -> CheckoutRequest:
    try:
        return CheckoutRequest.model_validate(payload)
    except ValidationError as e:
        details = [
            {"path": list(err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidPayloadError(details=details)


def _distinct(ids):
    seen = []
    for i in ids:
        if i not in seen:
            seen.append(i)
    return seen


def build_line_items(cart: CheckoutRequest, products: dict):
    line_items = []
    for line in cart.items:
        p = products[line.product_id]
        line_items.append({
            "price_data": {
                "currency": p.currency,
                "unit_amount": p.unit_amount,
                "product_data": {
                    "name": p.name,
                    "images": [p.image_url],
                    # Lets the webhook map Stripe line items back to catalog products
                    "metadata": {"app_product_id": p.id},
                },
            },
            "quantity": line.quantity,
            "adjustable_quantity": {"enabled": True, "minimum": 1, "maximum": MAX_LINE_QUANTITY},
        })
    return line_items


def cart_total(cart: CheckoutRequest, products: dict) -> int:
    return sum(products[line.product_id].unit_amount * line.quantity for line in cart.items)


class OrderIntakeService:

    def __init__(self, db):
        self.db = db

    def _load_products(self, cart: CheckoutRequest) -> dict:
        ids = _distinct(line.product_id for line in cart.items)
        products = {p.id: p for p in get_active_products(self.db, ids)}
        missing = [i for i in ids if i not in products]
        if missing:
            logger.info("Rejected cart, unavailable products: %s", missing)
            raise ProductsUnavailableError(missing)
        return products

    def _discounts(self, promo_code):
        if not promo_code or not config.promo_codes_enabled():
            return None
        try:
            coupon_id = find_promotion_coupon(promo_code)
        except stripe.StripeError as e:
            logger.error("Error validating promo code: %s", e)
            raise PaymentProviderError("Failed to validate promo code")
        if coupon_id is None:
            raise InvalidPromoCodeError()
        return [{"coupon": coupon_id}]

    def create_checkout(self, payload) -> dict:
        cart = validate_checkout(payload)
        products = self._load_products(cart)
        line_items = build_line_items(cart, products)
        discounts = self._discounts(cart.promo_code)

        metadata = {
            "cart": json.dumps([line.model_dump(by_alias=True) for line in cart.items]),
            "subtotal": str(cart_total(cart, products)),
        }
        if cart.promo_code:
            metadata["promoCode"] = cart.promo_code

        params = {
            "mode": "payment",
            "line_items": line_items,
            "success_url": config.SUCCESS_URL,
            "cancel_url": config.CANCEL_URL,
            "customer_email": cart.address.email,
            "metadata": metadata,
            "shipping_address_collection": {"allowed_countries": config.ALLOWED_COUNTRIES},
        }
        if discounts:
            params["discounts"] = discounts

        try:
            # Fresh key per call: distinct attempts must never be deduplicated.
            session = create_checkout_session(idempotency_key=str(uuid.uuid4()), **params)
        except stripe.StripeError as e:
            logger.error("Checkout session creation failed: %s", e)
            raise PaymentProviderError("Failed to create checkout session", details=getattr(e, "user_message", None))

        logger.info("Checkout session %s created with %d line items", session["id"], len(line_items))
        return session
