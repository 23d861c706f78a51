# Overview: Flask API routes for orders; checkout, history and cancellation.

# backend/storefront/routes/orders.py
"""Order API routes. All routes act on the authenticated customer's orders."""

from flask import Blueprint, request, jsonify, g
from flask import current_app

from ..decorators import require_auth
from ..services import order_service
from ..services.errors import ServiceError
from ..validation import parse_pagination, validate_create_order


orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.post("/create")
@require_auth
def create_order_route():
    """
    Checkout selected cart lines.

    Body: items[{cart_id, requested_price_per_unit_cents?, bulk_min_quantity?}],
    address, city, state, zip_code, country, promo_code?, notes?

    Prices and order type are derived from stored cart and catalog data.
    """
    result = validate_create_order(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        order = order_service.create_order(g.customer_id, result.data)
        return jsonify({"message": "Order created successfully", "order": order}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/my-orders")
@require_auth
def my_orders_route():
    page, limit = parse_pagination(request.args)
    return jsonify(order_service.get_my_orders(g.customer_id, page=page, limit=limit))


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(g.customer_id, order_id)})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.put("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(g.customer_id, order_id)
        return jsonify({"message": "Order cancelled successfully", "order": order}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500
