from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import PromoCode
from storefront.services import promotions_service
from storefront.services.promotions_service import PromoCodeError
from storefront.time_utils import utcnow
from storefront.validation import ConflictError


@pytest.mark.parametrize("discount_type,value,cap,subtotal,expected", [
    ("PERCENTAGE", 1000, None, 10000, 1000),
    ("PERCENTAGE", 1000, None, 999, 99),        # floor
    ("PERCENTAGE", 5000, 1500, 10000, 1500),    # capped
    ("FIXED_AMOUNT", 500, None, 10000, 500),
    ("FIXED_AMOUNT", 5000, None, 1200, 1200),   # never exceeds subtotal
    ("FIXED_AMOUNT", 5000, 3000, 10000, 3000),
])
def test_calculate_discount(discount_type, value, cap, subtotal, expected):
    promo = PromoCode(discount_type=discount_type, discount_value=value, max_discount_cents=cap)
    assert promotions_service.calculate_discount(promo, subtotal) == expected


def test_codes_are_case_insensitive(make_promo):
    make_promo(code="Spring25")
    assert promotions_service.validate_promo_code("spring25", 1000).code == "SPRING25"


def test_duplicate_code_rejected(make_promo):
    make_promo(code="DUP")
    with pytest.raises(ConflictError):
        make_promo(code="dup")


@pytest.mark.parametrize("fields,subtotal,message", [
    ({"is_active": False}, 1000, "Promo code is not active"),
    ({"starts_at": "future"}, 1000, "Promo code is not yet valid"),
    ({"expires_at": "past"}, 1000, "Promo code has expired"),
    ({"usage_limit": 1, "usage_count": 1}, 1000, "Promo code usage limit reached"),
    ({"min_order_cents": 5000}, 4999, "Order subtotal is below the minimum for this promo code"),
])
def test_validation_failures(app, make_promo, fields, subtotal, message):
    fields = dict(fields)
    usage_count = fields.pop("usage_count", 0)
    if fields.get("starts_at") == "future":
        fields["starts_at"] = utcnow() + timedelta(days=1)
    if fields.get("expires_at") == "past":
        fields["expires_at"] = utcnow() - timedelta(seconds=1)
    promo = make_promo(code="RULES", **fields)
    promo.usage_count = usage_count
    db.session.commit()

    with pytest.raises(PromoCodeError) as exc:
        promotions_service.validate_promo_code("RULES", subtotal)
    assert str(exc.value) == message


def test_unknown_code(app):
    with pytest.raises(PromoCodeError, match="Invalid promo code"):
        promotions_service.validate_promo_code("MISSING", 1000)


def test_increment_usage_is_cumulative(make_promo):
    promo = make_promo(code="COUNT")
    promotions_service.increment_usage("count")
    promotions_service.increment_usage("COUNT")
    assert db.session.get(PromoCode, promo.id).usage_count == 2


def test_validate_endpoint_previews_discount(client, auth_headers, make_promo):
    make_promo(code="SAVE10", discount_type="PERCENTAGE", discount_value=1000)

    resp = client.post("/promo-codes/validate", json={"code": "save10", "subtotal_cents": 2500}, headers=auth_headers)

    assert resp.status_code == 200
    promo = resp.get_json()["promo"]
    assert promo["discount_cents"] == 250
    assert promo["total_cents"] == 2250


def test_validate_endpoint_rejects_bad_code(client, auth_headers):
    resp = client.post("/promo-codes/validate", json={"code": "NOPE", "subtotal_cents": 2500}, headers=auth_headers)

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid promo code"
