import json

import pytest
import stripe

from conftest import completed_event, line_item, signed_header
from storefront import stripe_service
from storefront.reconciler import resolve_order_items
from storefront.schemas import CheckoutSessionCompleted, parse_event


def stripe_object(values):
    return stripe.StripeObject.construct_from(values, "sk_test")


def test_line_items_come_back_as_plain_dicts(mocker):
    page = mocker.Mock()
    page.auto_paging_iter.return_value = iter([
        stripe_object(line_item("prod_tee", 2, unit_amount=2999)),
        stripe_object(line_item(None, 1, unit_amount=500)),
    ])
    list_items = mocker.patch.object(stripe.checkout.Session, "list_line_items", return_value=page)

    items = stripe_service.list_session_line_items("cs_test_123")

    list_items.assert_called_once_with("cs_test_123", expand=["data.price.product"], limit=100)
    assert all(type(i) is dict for i in items)
    assert type(items[0]["price"]["product"]) is dict
    assert items[0]["price"]["product"]["metadata"] == {"app_product_id": "prod_tee"}

    resolved = resolve_order_items(items)
    assert [(r.product_id, r.quantity, r.unit_amount) for r in resolved] == [("prod_tee", 2, 2999)]


def test_construct_event_verifies_and_returns_dict():
    payload = json.dumps(completed_event()).encode("utf-8")

    event = stripe_service.construct_event(payload, signed_header(payload), "whsec_test")

    assert type(event) is dict
    assert type(event["data"]["object"]["customer_details"]) is dict
    parsed = parse_event(event)
    assert isinstance(parsed, CheckoutSessionCompleted)
    assert parsed.session.customer_details.address.country == "GB"


def test_construct_event_rejects_wrong_secret():
    payload = json.dumps(completed_event()).encode("utf-8")

    with pytest.raises(stripe.SignatureVerificationError):
        stripe_service.construct_event(payload, signed_header(payload, secret="whsec_other"), "whsec_test")


def test_promotion_coupon_looked_up_by_upper_cased_code(mocker):
    retrieve = mocker.patch.object(stripe.Coupon, "retrieve", return_value=stripe_object(
        {"id": "SAVE10", "object": "coupon", "valid": True, "percent_off": 10}))

    assert stripe_service.find_promotion_coupon("save10") == "SAVE10"
    retrieve.assert_called_once_with("SAVE10")


def test_expired_coupon_is_not_applied(mocker):
    mocker.patch.object(stripe.Coupon, "retrieve", return_value=stripe_object(
        {"id": "SUMMER", "object": "coupon", "valid": False}))

    assert stripe_service.find_promotion_coupon("summer") is None


def test_unknown_coupon_is_not_applied(mocker):
    mocker.patch.object(stripe.Coupon, "retrieve", side_effect=stripe.InvalidRequestError(
        "No such coupon: 'NOPE'", "id", code="resource_missing"))

    assert stripe_service.find_promotion_coupon("nope") is None


def test_other_coupon_lookup_errors_propagate(mocker):
    mocker.patch.object(stripe.Coupon, "retrieve", side_effect=stripe.APIConnectionError("timeout"))

    with pytest.raises(stripe.APIConnectionError):
        stripe_service.find_promotion_coupon("save10")
