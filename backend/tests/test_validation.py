import pytest

from storefront.validation import (
    ValidationError,
    parse_pagination,
    validate_add_to_cart,
    validate_create_order,
    validate_register,
)


SHIPPING = {"address": "1 Main St", "city": "Austin", "state": "TX", "zip_code": "73301", "country": "US"}


def test_create_order_cleans_items_and_drops_unknown_keys():
    result = validate_create_order({
        "items": [{"cart_id": "7", "offered_price_per_unit_cents": 1}],
        "order_type": "bulk",
        **SHIPPING,
    })

    assert result.ok
    assert result.data["items"] == [{"cart_id": 7}]
    assert "order_type" not in result.data


@pytest.mark.parametrize("items,field", [
    (None, "items"),
    ([], "items"),
    ("abc", "items"),
    ([{"cart_id": 0}], "items[0].cart_id"),
    ([{"cart_id": 1.5}], "items[0].cart_id"),
    ([{"cart_id": "1e3"}], "items[0].cart_id"),
    ([{"cart_id": 2}, {"cart_id": 2}], "items[1].cart_id"),
    (["x"], "items[0]"),
])
def test_create_order_item_errors(items, field):
    result = validate_create_order({"items": items, **SHIPPING})

    assert not result.ok
    assert field in result.errors


def test_create_order_requires_shipping_fields():
    result = validate_create_order({"items": [{"cart_id": 1}], "city": "   "})

    assert set(result.errors) == {"address", "city", "state", "zip_code", "country"}


def test_blank_promo_code_is_dropped():
    result = validate_create_order({"items": [{"cart_id": 1}], "promo_code": "  ", **SHIPPING})

    assert result.ok
    assert "promo_code" not in result.data


def test_add_to_cart_rejects_booleans_and_unknown_types():
    result = validate_add_to_cart({"product_id": True, "quantity": 1, "type": "wholesale"})

    assert set(result.errors) == {"product_id", "type"}


def test_register_normalizes_email():
    result = validate_register({
        "full_name": "A B", "username": "ab_1", "email": " A@B.IO ", "password": "x",
    })

    assert result.ok
    assert result.data["email"] == "a@b.io"


def test_non_object_body():
    result = validate_register(["not", "a", "dict"])
    assert result.errors["_body"] == "Invalid JSON payload"


def test_raise_for_errors():
    with pytest.raises(ValidationError) as exc:
        validate_register({}).raise_for_errors()
    assert "email" in exc.value.to_dict()["fields"]


@pytest.mark.parametrize("args,expected", [
    ({}, (1, 10)),
    ({"page": "3", "limit": "5"}, (3, 5)),
    ({"page": "0", "limit": "1000"}, (1, 100)),
    ({"page": "x", "limit": "-4"}, (1, 1)),
])
def test_parse_pagination(args, expected):
    assert parse_pagination(args) == expected
