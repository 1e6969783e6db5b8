import os

import stripe

# Loads .env as a side effect before the key is read.
import storefront.config  # noqa: F401

stripe.api_key = os.getenv("STRIPE_SECRET_KEY")


def _plain(obj):
    # Recent stripe releases no longer subclass dict; callers only see plain dicts.
    if isinstance(obj, stripe.StripeObject):
        obj = obj.to_dict()
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_plain(v) for v in obj]
    return obj


def create_checkout_session(idempotency_key: str, **params):
    session = stripe.checkout.Session.create(idempotency_key=idempotency_key, **params)
    return {"id": session.id, "url": session.url}


def find_promotion_coupon(code: str):
    """Coupon id for a valid coupon whose id is the (upper-cased) code, or None."""
    try:
        coupon = stripe.Coupon.retrieve(code.upper())
    except stripe.InvalidRequestError as e:
        if e.code == "resource_missing":
            return None
        raise
    if not getattr(coupon, "valid", False) or getattr(coupon, "deleted", False):
        return None
    return coupon.id


def list_session_line_items(session_id: str):
    items = stripe.checkout.Session.list_line_items(
        session_id,
        expand=["data.price.product"],
        limit=100,
    )
    return [_plain(item) for item in items.auto_paging_iter()]


def construct_event(payload: bytes, signature: str, secret: str) -> dict:
    return _plain(stripe.Webhook.construct_event(payload, signature, secret))
