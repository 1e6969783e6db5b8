"""Boundary types: the client checkout payload and the Stripe payloads we consume.

Client payloads use camelCase JSON names (``productId``, ``postalCode``) and
are validated once at the edge. Stripe payloads are parsed into the small
typed shapes below right after signature verification; the rest of the code
never touches raw dicts.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_LINE_QUANTITY = 10
PRODUCT_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"

CHECKOUT_COMPLETED = "checkout.session.completed"


class _ClientModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class CartLine(_ClientModel):
    product_id: str = Field(..., pattern=PRODUCT_ID_PATTERN)
    quantity: int = Field(..., ge=1, le=MAX_LINE_QUANTITY)


class Address(_ClientModel):
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=80)
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: Optional[str] = Field(default=None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: str = Field(..., min_length=2, max_length=20)
    country: str = Field(..., pattern=r"^[A-Za-z]{2}$")

    @field_validator("country")
    @classmethod
    def _upper_country(cls, v: str) -> str:
        return v.upper()


class CheckoutRequest(_ClientModel):
    items: List[CartLine] = Field(..., min_length=1)
    address: Address
    promo_code: Optional[str] = Field(default=None, max_length=64)

    @field_validator("promo_code")
    @classmethod
    def _blank_promo_is_none(cls, v):
        return v or None


# ----- Stripe payloads -----

class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CustomerAddress(_ProviderModel):
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CustomerDetails(_ProviderModel):
    email: Optional[str] = None
    name: Optional[str] = None
    address: Optional[CustomerAddress] = None


class CompletedSession(_ProviderModel):
    id: str
    currency: Optional[str] = None
    amount_subtotal: Optional[int] = None
    amount_total: Optional[int] = None
    customer_email: Optional[str] = None
    customer_details: Optional[CustomerDetails] = None


class CheckoutSessionCompleted(_ProviderModel):
    kind: Literal["checkout.session.completed"] = CHECKOUT_COMPLETED
    event_id: Optional[str] = None
    session: CompletedSession


class IgnoredEvent(_ProviderModel):
    kind: str
    event_id: Optional[str] = None


ProviderEvent = Union[CheckoutSessionCompleted, IgnoredEvent]


def parse_event(event) -> ProviderEvent:
    """Turn a verified Stripe event (dict-like) into one of the typed variants."""
    kind = event.get("type") or ""
    event_id = event.get("id")
    if kind == CHECKOUT_COMPLETED:
        session = CompletedSession.model_validate(event["data"]["object"])
        return CheckoutSessionCompleted(event_id=event_id, session=session)
    return IgnoredEvent(kind=kind, event_id=event_id)


class ProviderProduct(_ProviderModel):
    id: Optional[str] = None
    metadata: dict = Field(default_factory=dict)


class ProviderPrice(_ProviderModel):
    unit_amount: Optional[int] = None
    # A bare id when the product was not expanded.
    product: Union[ProviderProduct, str, None] = None


class ProviderLineItem(_ProviderModel):
    quantity: Optional[int] = None
    amount_subtotal: Optional[int] = None
    price: Optional[ProviderPrice] = None

    @property
    def app_product_id(self) -> Optional[str]:
        if self.price is None or not isinstance(self.price.product, ProviderProduct):
            return None
        return self.price.product.metadata.get("app_product_id") or None
