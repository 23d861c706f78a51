"""
Checkout pipeline tests.

Covers stock sufficiency, mixed-type rejection, price snapshots, total
arithmetic, bulk item status, promo codes, best-effort settlement and the
cancellation guard.
"""

import logging

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from storefront.extensions import db
from storefront.models import CartLine, Order, OrderItem, Product, PromoCode
from storefront.models.cart import CART_TYPE_BULK
from storefront.services import order_service, products_service, promotions_service
from storefront.services.order_service import OrderError, ValidatedLine


def _checkout(client, headers, shipping, cart_ids, **extra):
    body = {"items": [{"cart_id": cid} for cid in cart_ids], **shipping, **extra}
    return client.post("/orders/create", json=body, headers=headers)


def _cart_line_count(cart_id):
    return db.session.query(CartLine).filter_by(id=cart_id).count()


def test_checkout_happy_path(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=3)

    resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["order_number"].startswith("ORD-")
    assert order["status"] == "pending"
    assert order["order_type"] == "regular"
    assert order["subtotal_cents"] == 3000
    assert order["discount_cents"] == 0
    assert order["total_cents"] == 3000
    assert order["first_name"] == "Jane"
    assert order["last_name"] == "Doe"
    assert order["email"] == "jane@example.com"
    assert order["city"] == "Portland"

    items = order["order_items"]
    assert len(items) == 1
    assert items[0]["product_name"] == "Widget"
    assert items[0]["quantity"] == 3
    assert items[0]["unit_price_cents"] == 1000
    assert items[0]["total_price_cents"] == 3000
    assert items[0]["item_status"] == "accepted"

    assert db.session.get(Product, product.id).stock_quantity == 7
    assert _cart_line_count(line.id) == 0


def test_insufficient_stock_rejects_before_any_write(client, auth_headers, shipping, customer, make_product, add_cart_line):
    product = make_product(title="Lamp", stock_quantity=2)
    line = add_cart_line(customer, product, quantity=3)

    resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "Insufficient stock for Lamp"
    assert body["details"]["available"] == 2
    assert db.session.query(Order).count() == 0
    assert db.session.get(Product, product.id).stock_quantity == 2
    assert db.session.get(CartLine, line.id).is_active is True


def test_mixed_item_types_rejected(client, auth_headers, shipping, customer, make_product, add_cart_line):
    regular = add_cart_line(customer, make_product(), quantity=1)
    bulk = add_cart_line(customer, make_product(), quantity=5, line_type=CART_TYPE_BULK)

    resp = _checkout(client, auth_headers, shipping, [regular.id, bulk.id])

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Cart contains mixed item types"
    assert db.session.query(Order).count() == 0
    assert db.session.query(OrderItem).count() == 0


def test_bulk_order_items_start_pending_at_offered_price(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(
        customer, product, quantity=5, line_type=CART_TYPE_BULK,
        requested_price_per_unit_cents=750, offered_price_per_unit_cents=800, bulk_min_quantity=5,
    )

    resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["order_type"] == "bulk"
    item = order["order_items"][0]
    assert item["item_status"] == "pending"
    assert item["unit_price_cents"] == 800
    assert item["total_price_cents"] == 4000
    assert item["requested_price_per_unit_cents"] == 750
    assert item["offered_price_per_unit_cents"] == 800
    assert item["bulk_min_quantity"] == 5
    assert order["total_cents"] == 4000


def test_request_fills_bulk_fields_only_when_cart_has_none(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=4, line_type=CART_TYPE_BULK)

    body = {
        "items": [{"cart_id": line.id, "requested_price_per_unit_cents": 900, "bulk_min_quantity": 4}],
        **shipping,
    }
    resp = client.post("/orders/create", json=body, headers=auth_headers)

    assert resp.status_code == 201
    item = resp.get_json()["order"]["order_items"][0]
    assert item["requested_price_per_unit_cents"] == 900
    assert item["bulk_min_quantity"] == 4
    # no seller offer: catalog price applies
    assert item["unit_price_cents"] == 1000


def test_client_price_and_order_type_are_ignored(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=2)

    body = {
        "items": [{"cart_id": line.id, "offered_price_per_unit_cents": 1}],
        "order_type": "bulk",
        **shipping,
    }
    resp = client.post("/orders/create", json=body, headers=auth_headers)

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["order_type"] == "regular"
    assert order["order_items"][0]["unit_price_cents"] == 1000
    assert order["total_cents"] == 2000


def test_price_snapshot_survives_catalog_change(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=1)
    resp = _checkout(client, auth_headers, shipping, [line.id])
    order_id = resp.get_json()["order"]["id"]

    products_service.update_product(product.id, {"title": "Renamed", "price_cents": 5000})

    resp = client.get(f"/orders/{order_id}", headers=auth_headers)
    item = resp.get_json()["order"]["order_items"][0]
    assert item["product_name"] == "Widget"
    assert item["unit_price_cents"] == 1000
    assert item["total_price_cents"] == 1000


def test_tax_inclusive_price_used_for_regular_lines(client, auth_headers, shipping, customer, make_product, add_cart_line):
    taxed = make_product(price_cents=1000, tax_rate_bps=825)
    assert taxed.total_price_cents == 1083
    line = add_cart_line(customer, taxed, quantity=2)

    resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.get_json()["order"]["subtotal_cents"] == 2166


def test_percentage_promo_applied(client, auth_headers, shipping, customer, make_product, add_cart_line, make_promo):
    promo = make_promo(code="SAVE10", discount_type="PERCENTAGE", discount_value=1000)
    line = add_cart_line(customer, make_product(price_cents=2500), quantity=4)

    resp = _checkout(client, auth_headers, shipping, [line.id], promo_code="save10")

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert order["subtotal_cents"] == 10000
    assert order["discount_cents"] == 1000
    assert order["total_cents"] == 9000
    assert order["promo_code_id"] == promo.id
    assert db.session.get(PromoCode, promo.id).usage_count == 1


def test_fixed_promo_never_makes_total_negative(client, auth_headers, shipping, customer, product, add_cart_line, make_promo):
    make_promo(code="BIG", discount_type="FIXED_AMOUNT", discount_value=50000)
    line = add_cart_line(customer, product, quantity=1)

    resp = _checkout(client, auth_headers, shipping, [line.id], promo_code="BIG")

    order = resp.get_json()["order"]
    assert order["discount_cents"] == 1000
    assert order["total_cents"] == 0


def test_invalid_promo_aborts_checkout(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=1)

    resp = _checkout(client, auth_headers, shipping, [line.id], promo_code="NOPE")

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid promo code"
    assert db.session.query(Order).count() == 0
    assert db.session.get(Product, product.id).stock_quantity == 10
    assert db.session.get(CartLine, line.id).is_active is True


def test_cart_line_of_other_customer_is_not_found(client, shipping, customer, make_customer, headers_for, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=1)
    intruder = make_customer()

    resp = _checkout(client, headers_for(intruder), shipping, [line.id])

    assert resp.status_code == 404
    assert db.session.query(Order).count() == 0


def test_inactive_product_rejected(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=1)
    products_service.update_product(product.id, {"is_active": False})

    resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Product is no longer available"


def test_create_order_validation_errors(client, auth_headers):
    resp = client.post("/orders/create", json={"items": []}, headers=auth_headers)

    assert resp.status_code == 400
    fields = resp.get_json()["fields"]
    assert "items" in fields
    assert "address" in fields
    assert "zip_code" in fields


def test_create_order_requires_auth(client, shipping):
    resp = client.post("/orders/create", json={"items": [{"cart_id": 1}], **shipping})
    assert resp.status_code == 401


def test_settlement_failure_is_logged_and_skipped(app, product, caplog):
    lines = [
        ValidatedLine(
            cart_id=1, product_id=product.id, product_name="Widget", product_sku=product.sku,
            quantity=25, unit_price_cents=1000, line_type="regular",
        ),
        ValidatedLine(
            cart_id=2, product_id=999999, product_name="Ghost", product_sku=None,
            quantity=1, unit_price_cents=1000, line_type="regular",
        ),
    ]

    with caplog.at_level(logging.WARNING):
        failed = order_service.settle_inventory("ORD-TEST", lines)

    assert failed == [product.id, 999999]
    assert db.session.get(Product, product.id).stock_quantity == 10

    events = [r for r in caplog.records if getattr(r, "event", None) == "inventory.settlement_failed"]
    assert [r.reason for r in events] == ["insufficient_stock", "product_missing"]
    assert events[0].available == 10
    assert events[0].order_number == "ORD-TEST"


def test_order_survives_settlement_shortfall(client, auth_headers, shipping, customer, product, add_cart_line, monkeypatch):
    """Stock sold elsewhere between validation and settlement: order stands."""
    line = add_cart_line(customer, product, quantity=4)
    original = order_service.validate_cart_lines

    def validate_then_oversell(customer_id, items):
        lines = original(customer_id, items)
        db.session.get(Product, product.id).stock_quantity = 1
        db.session.commit()
        return lines

    monkeypatch.setattr(order_service, "validate_cart_lines", validate_then_oversell)

    resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.status_code == 201
    assert db.session.get(Product, product.id).stock_quantity == 1
    assert _cart_line_count(line.id) == 0


def test_promo_usage_failure_is_logged_and_order_stands(
    client, auth_headers, shipping, customer, product, add_cart_line, make_promo, monkeypatch, caplog
):
    promo = make_promo(code="SAVE10", discount_type="PERCENTAGE", discount_value=1000)
    line = add_cart_line(customer, product, quantity=2)

    def broken(code):
        raise OperationalError("UPDATE promo_codes", {}, Exception("database is locked"))

    monkeypatch.setattr(promotions_service, "increment_usage", broken)

    with caplog.at_level(logging.WARNING):
        resp = _checkout(client, auth_headers, shipping, [line.id], promo_code="SAVE10")

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert db.session.get(Order, order["id"]).discount_cents == 200
    assert db.session.get(PromoCode, promo.id).usage_count == 0
    assert db.session.get(Product, product.id).stock_quantity == 8
    events = [r for r in caplog.records if getattr(r, "event", None) == "promo.usage_increment_failed"]
    assert len(events) == 1
    assert events[0].order_number == order["order_number"]


def test_cart_cleanup_failure_is_logged_and_order_stands(
    client, auth_headers, shipping, customer, product, add_cart_line, monkeypatch, caplog
):
    line = add_cart_line(customer, product, quantity=2)

    def broken(self, *args, **kwargs):
        raise OperationalError("DELETE FROM cart", {}, Exception("database is locked"))

    monkeypatch.setattr(Query, "delete", broken)

    with caplog.at_level(logging.WARNING):
        resp = _checkout(client, auth_headers, shipping, [line.id])

    assert resp.status_code == 201
    order = resp.get_json()["order"]
    assert db.session.get(Order, order["id"]) is not None
    assert db.session.get(Product, product.id).stock_quantity == 8
    assert _cart_line_count(line.id) == 1
    events = [r for r in caplog.records if getattr(r, "event", None) == "cart.cleanup_failed"]
    assert len(events) == 1
    assert events[0].cart_ids == [line.id]


def test_my_orders_paginates_newest_first(client, auth_headers, shipping, customer, product, add_cart_line):
    numbers = []
    for _ in range(3):
        line = add_cart_line(customer, product, quantity=1)
        numbers.append(_checkout(client, auth_headers, shipping, [line.id]).get_json()["order"]["id"])

    resp = client.get("/orders/my-orders?page=1&limit=2", headers=auth_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert [o["id"] for o in body["items"]] == [numbers[2], numbers[1]]
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["has_next"] is True
    assert "order_items" in body["items"][0]


def test_get_order_of_other_customer_is_404(client, auth_headers, shipping, customer, make_customer, headers_for, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=1)
    order_id = _checkout(client, auth_headers, shipping, [line.id]).get_json()["order"]["id"]

    resp = client.get(f"/orders/{order_id}", headers=headers_for(make_customer()))

    assert resp.status_code == 404


def test_cancel_only_from_pending(client, auth_headers, shipping, customer, product, add_cart_line):
    line = add_cart_line(customer, product, quantity=1)
    order_id = _checkout(client, auth_headers, shipping, [line.id]).get_json()["order"]["id"]

    resp = client.put(f"/orders/{order_id}/cancel", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.get_json()["order"]["status"] == "cancelled"

    resp = client.put(f"/orders/{order_id}/cancel", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Only pending orders can be cancelled"


@pytest.mark.parametrize("status", ["accepted", "shipped", "delivered"])
def test_cancel_rejected_for_non_pending_status(app, customer, product, add_cart_line, shipping, status):
    line = add_cart_line(customer, product, quantity=1)
    order = order_service.create_order(customer.id, {"items": [{"cart_id": line.id}], **shipping})
    db.session.get(Order, order["id"]).status = status
    db.session.commit()

    with pytest.raises(OrderError) as exc:
        order_service.cancel_order(customer.id, order["id"])
    assert exc.value.status_code == 400
