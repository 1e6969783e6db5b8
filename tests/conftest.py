import hashlib
import hmac
import os
import time

# Must be set before storefront.database is imported.
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_temp.db")
os.environ.setdefault("APP_URL", "http://localhost:3000")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from storefront.database import Base, make_engine
from storefront.main import app as fastapi_app
from storefront.models import Product
from storefront.rate_limit import RateLimiter
from storefront.routes import get_rate_limiter

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = make_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)


class FakeClock:
    def __init__(self, start=1_700_000_000_000):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(max_requests=10, window_ms=60_000, clock=clock)


@pytest.fixture
def client(monkeypatch, limiter):
    monkeypatch.setattr("storefront.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("storefront.main.SessionLocal", TestingSessionLocal)
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
    monkeypatch.delenv("ENABLE_PROMO_CODES", raising=False)
    fastapi_app.dependency_overrides[get_rate_limiter] = lambda: limiter
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def products():
    db = TestingSessionLocal()
    db.add_all([
        Product(id="prod_tee", slug="tee", name="Tee", image_url="https://img.test/tee.png",
                currency="usd", unit_amount=2999, active=True),
        Product(id="prod_mug", slug="mug", name="Mug", image_url="https://img.test/mug.png",
                currency="usd", unit_amount=1500, active=True),
        Product(id="prod_old", slug="old", name="Retired", image_url="https://img.test/old.png",
                currency="usd", unit_amount=999, active=False),
    ])
    db.commit()
    db.close()


def address(**overrides):
    data = {
        "email": "ada@example.com",
        "name": "Ada Lovelace",
        "addressLine1": "12 Analytical Row",
        "city": "London",
        "postalCode": "N1 9GU",
        "country": "US",
    }
    data.update(overrides)
    return data


def completed_event(session_id="cs_test_123", email="ada@example.com"):
    return {
        "id": "evt_1",
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": session_id,
                "currency": "usd",
                "amount_subtotal": 7498,
                "amount_total": 7498,
                "customer_details": {
                    "email": email,
                    "name": "Ada Lovelace",
                    "address": {
                        "line1": "12 Analytical Row",
                        "city": "London",
                        "postal_code": "N1 9GU",
                        "country": "GB",
                    },
                },
            }
        },
    }


def line_item(app_product_id, quantity, unit_amount=None, amount_subtotal=None):
    metadata = {"app_product_id": app_product_id} if app_product_id else {}
    return {
        "quantity": quantity,
        "amount_subtotal": amount_subtotal,
        "price": {"unit_amount": unit_amount, "product": {"id": "prod_stripe", "metadata": metadata}},
    }


def signed_header(payload: bytes, secret="whsec_test", timestamp=None):
    """A Stripe-Signature header value that stripe.Webhook.construct_event accepts."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.".encode("utf-8") + payload
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"
