"""
Product review tests.

Covers verified-purchase gating, duplicates, moderation, public listings
with filters, the customer's own reviews and the rating summary.
"""

import pytest

from storefront.extensions import db
from storefront.models import Review
from storefront.models.orders import OrderStatus
from storefront.services import order_service, review_service


COMMENT = "Solid build, arrived quickly."


@pytest.fixture
def buy(client, headers_for, shipping, add_cart_line):
    """Check out one unit of product for customer and move the order to status."""
    def _buy(customer, product, status=OrderStatus.ACCEPTED):
        line = add_cart_line(customer, product, quantity=1)
        body = {"items": [{"cart_id": line.id}], **shipping}
        resp = client.post("/orders/create", json=body, headers=headers_for(customer))
        assert resp.status_code == 201
        order_id = resp.get_json()["order"]["id"]
        if status != OrderStatus.PENDING:
            order_service.update_order_status(order_id, status)
        return order_id
    return _buy


def _submit(client, headers, product_id, rating=5, comment=COMMENT):
    return client.post(
        "/reviews",
        json={"product_id": product_id, "rating": rating, "comment": comment},
        headers=headers,
    )


def _approved_review(buy, customer, product, rating):
    buy(customer, product)
    review = review_service.create_review(customer.id, product.id, rating, COMMENT)
    review_service.moderate_review(review["id"], "approved")
    return review


def test_submit_review_for_accepted_order(client, auth_headers, customer, product, buy):
    order_id = buy(customer, product)

    resp = _submit(client, auth_headers, product.id, rating=4)

    assert resp.status_code == 201
    review = resp.get_json()["review"]
    assert review["status"] == "pending"
    assert review["rating"] == 4
    assert review["order_id"] == order_id
    assert review["is_verified_purchase"] is True
    assert review["customer_name"] == "Jane Doe"


@pytest.mark.parametrize("status", [OrderStatus.PENDING, OrderStatus.CANCELLED, OrderStatus.REJECTED])
def test_review_requires_accepted_order(client, auth_headers, customer, product, buy, status):
    buy(customer, product, status=status)

    resp = _submit(client, auth_headers, product.id)

    assert resp.status_code == 403
    assert resp.get_json()["error"] == "You can only review products from your accepted orders"


def test_review_without_any_order_forbidden(client, auth_headers, product):
    resp = _submit(client, auth_headers, product.id)
    assert resp.status_code == 403


def test_other_customers_order_does_not_count(client, auth_headers, make_customer, product, buy):
    buy(make_customer(), product)

    resp = _submit(client, auth_headers, product.id)

    assert resp.status_code == 403


def test_delivered_order_counts_as_purchase(client, auth_headers, customer, product, buy):
    buy(customer, product, status=OrderStatus.DELIVERED)
    assert _submit(client, auth_headers, product.id).status_code == 201


def test_duplicate_review_conflict(client, auth_headers, customer, product, buy):
    buy(customer, product)
    assert _submit(client, auth_headers, product.id).status_code == 201

    resp = _submit(client, auth_headers, product.id, rating=1)

    assert resp.status_code == 409
    assert resp.get_json()["error"] == "You have already reviewed this product"
    assert db.session.query(Review).count() == 1


def test_review_unknown_product(client, auth_headers):
    resp = _submit(client, auth_headers, 9999)
    assert resp.status_code == 404


@pytest.mark.parametrize("body, field", [
    ({"product_id": 1, "rating": 6, "comment": COMMENT}, "rating"),
    ({"product_id": 1, "rating": 0, "comment": COMMENT}, "rating"),
    ({"product_id": 1, "rating": 5, "comment": "Too short"}, "comment"),
    ({"rating": 5, "comment": COMMENT}, "product_id"),
])
def test_review_validation(client, auth_headers, body, field):
    resp = client.post("/reviews", json=body, headers=auth_headers)

    assert resp.status_code == 400
    assert field in resp.get_json()["fields"]


def test_submit_requires_auth(client, product):
    resp = client.post("/reviews", json={"product_id": product.id, "rating": 5, "comment": COMMENT})
    assert resp.status_code == 401


def test_product_listing_shows_only_approved(client, make_customer, product, buy):
    approved = _approved_review(buy, make_customer(), product, 5)
    pending_author = make_customer()
    buy(pending_author, product)
    review_service.create_review(pending_author.id, product.id, 3, COMMENT)

    body = client.get(f"/reviews/product/{product.id}").get_json()

    assert [r["id"] for r in body["items"]] == [approved["id"]]
    assert body["pagination"]["total"] == 1


def test_product_listing_rating_filter(client, make_customer, product, buy):
    _approved_review(buy, make_customer(), product, 5)
    low = _approved_review(buy, make_customer(), product, 2)

    body = client.get(f"/reviews/product/{product.id}?rating=2").get_json()

    assert [r["id"] for r in body["items"]] == [low["id"]]


def test_product_listing_verified_filter(client, make_customer, product, buy):
    review = _approved_review(buy, make_customer(), product, 4)

    verified = client.get(f"/reviews/product/{product.id}?verified=true").get_json()
    unverified = client.get(f"/reviews/product/{product.id}?verified=false").get_json()

    assert [r["id"] for r in verified["items"]] == [review["id"]]
    assert unverified["items"] == []


@pytest.mark.parametrize("query", ["rating=7", "rating=abc", "verified=maybe"])
def test_product_listing_rejects_bad_filters(client, product, query):
    resp = client.get(f"/reviews/product/{product.id}?{query}")
    assert resp.status_code == 400


def test_product_listing_pagination(client, make_customer, product, buy):
    for _ in range(3):
        _approved_review(buy, make_customer(), product, 5)

    body = client.get(f"/reviews/product/{product.id}?page=2&limit=2").get_json()

    assert body["count"] == 1
    assert body["pagination"]["total"] == 3
    assert body["pagination"]["has_prev"] is True
    assert body["pagination"]["has_next"] is False


def test_product_listing_unknown_product(client):
    assert client.get("/reviews/product/9999").status_code == 404


def test_my_reviews_include_every_status(client, auth_headers, customer, make_product, buy):
    first, second = make_product(), make_product()
    buy(customer, first)
    buy(customer, second)
    kept = review_service.create_review(customer.id, first.id, 5, COMMENT)
    rejected = review_service.create_review(customer.id, second.id, 1, COMMENT)
    review_service.moderate_review(rejected["id"], "rejected")

    body = client.get("/reviews/my", headers=auth_headers).get_json()

    statuses = {r["id"]: r["status"] for r in body["items"]}
    assert statuses == {kept["id"]: "pending", rejected["id"]: "rejected"}


def test_my_reviews_requires_auth(client):
    assert client.get("/reviews/my").status_code == 401


def test_review_summary(client, make_customer, product, buy):
    for rating in (5, 5, 4, 1):
        _approved_review(buy, make_customer(), product, rating)
    pending_author = make_customer()
    buy(pending_author, product)
    review_service.create_review(pending_author.id, product.id, 2, COMMENT)

    summary = client.get(f"/reviews/product/{product.id}/summary").get_json()["summary"]

    assert summary["product_id"] == product.id
    assert summary["total_reviews"] == 4
    assert summary["average_rating"] == 3.75
    assert summary["rating_breakdown"] == {"5": 2, "4": 1, "3": 0, "2": 0, "1": 1}


def test_review_summary_without_reviews(client, product):
    summary = client.get(f"/reviews/product/{product.id}/summary").get_json()["summary"]

    assert summary["total_reviews"] == 0
    assert summary["average_rating"] == 0
    assert summary["rating_breakdown"] == {"5": 0, "4": 0, "3": 0, "2": 0, "1": 0}


def test_moderate_unknown_review(app):
    with pytest.raises(review_service.NotFoundError):
        review_service.moderate_review(9999, "approved")


def test_cli_moderate_review(app, customer, product, buy):
    buy(customer, product)
    review = review_service.create_review(customer.id, product.id, 5, COMMENT)

    result = app.test_cli_runner().invoke(args=[
        "reviews", "moderate", "--review-id", str(review["id"]), "--status", "approved",
    ])

    assert f"PASS Review {review['id']} is now approved" in result.output
    assert db.session.get(Review, review["id"]).status == "approved"

    missing = app.test_cli_runner().invoke(args=["reviews", "moderate", "--review-id", "9999", "--status", "approved"])
    assert "FAIL Review not found" in missing.output


def test_cli_set_order_status_unlocks_review(app, client, auth_headers, customer, product, buy):
    order_id = buy(customer, product, status=OrderStatus.PENDING)
    assert _submit(client, auth_headers, product.id).status_code == 403

    result = app.test_cli_runner().invoke(args=[
        "orders", "set-status", "--order-id", str(order_id), "--status", "accepted",
    ])

    assert "is now accepted" in result.output
    assert _submit(client, auth_headers, product.id).status_code == 201

    missing = app.test_cli_runner().invoke(args=["orders", "set-status", "--order-id", "9999", "--status", "accepted"])
    assert "FAIL Order not found" in missing.output
