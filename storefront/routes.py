import math

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from storefront.auth import verify_token
from storefront.catalog import (
    get_product_by_slug, get_products_by_ids, list_active_products, product_to_dict
)
from storefront.database import SessionLocal
from storefront.exceptions import (
    InvalidPayloadError, OrderNotFoundError, ProductNotFoundError, RateLimitedError
)
from storefront.formatting import format_currency, mask_address, mask_email
from storefront.intake import OrderIntakeService
from storefront.orders import get_order_by_payment_id, list_recent_orders
from storefront.rate_limit import RateLimiter, client_key, rate_limit_headers

router = APIRouter()


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.checkout_rate_limiter


def enforce_rate_limit(
    request: Request,
    response: Response,
    limiter: RateLimiter = Depends(get_rate_limiter)
):
    decision = limiter.check(client_key(request.headers))
    if not decision.allowed:
        retry_after = math.ceil(limiter.retry_after_ms(decision) / 1000)
        raise RateLimitedError(decision, retry_after)
    response.headers.update(rate_limit_headers(decision))


@router.post("/api/checkout")
async def create_checkout(request: Request, _=Depends(enforce_rate_limit)):
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidPayloadError()

    # Catalog reads and the Stripe call block; keep them off the event loop.
    return await run_in_threadpool(_checkout, payload)


def _checkout(payload):
    db = SessionLocal()
    try:
        return OrderIntakeService(db).create_checkout(payload)
    finally:
        db.close()


@router.get("/api/products")
def list_products(ids: str = None):
    if not ids:
        return {"products": []}

    wanted = [i for i in ids.split(",") if i]
    db = SessionLocal()
    try:
        return {"products": [product_to_dict(p) for p in get_products_by_ids(db, wanted)]}
    finally:
        db.close()


@router.get("/api/catalog")
def catalog():
    db = SessionLocal()
    try:
        return {"products": [product_to_dict(p) for p in list_active_products(db)]}
    finally:
        db.close()


@router.get("/api/products/{slug}")
def product_by_slug(slug: str):
    db = SessionLocal()
    try:
        product = get_product_by_slug(db, slug)
        if product is None:
            raise ProductNotFoundError()
        return product_to_dict(product)
    finally:
        db.close()


def _order_summary(order) -> dict:
    return {
        "id": order.id,
        "status": order.status.value,
        "currency": order.currency,
        "total": order.total,
        "createdAt": order.created_at.isoformat(),
    }


@router.get("/api/orders/session/{session_id}")
def get_order_for_session(session_id: str):
    db = SessionLocal()
    try:
        order = get_order_by_payment_id(db, session_id)
        # The webhook may not have landed yet; the success page keeps polling.
        if order is None:
            raise OrderNotFoundError()

        return {
            **_order_summary(order),
            "subtotal": order.subtotal,
            "totalFormatted": format_currency(order.total, order.currency),
            "email": mask_email(order.email),
            "name": order.name,
            "addressLine1": mask_address(order.address_line1),
            "city": order.city,
            "country": order.country,
            "items": [
                {"productId": i.product_id, "quantity": i.quantity, "unitAmount": i.unit_amount}
                for i in order.items
            ],
        }
    finally:
        db.close()


@router.get("/api/admin/orders")
def recent_orders(limit: int = 5, auth=Depends(verify_token)):
    db = SessionLocal()
    try:
        orders = list_recent_orders(db, limit=min(max(limit, 1), 50))
        return {"orders": [{**_order_summary(o), "email": o.email} for o in orders]}
    finally:
        db.close()


@router.get("/status")
def status():
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return {"ok": True, "database": "up"}
    finally:
        db.close()
