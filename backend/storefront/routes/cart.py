# Overview: Flask API routes for the customer cart; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import cart_service
from ..services.errors import ServiceError
from ..validation import validate_add_to_cart, validate_update_cart

cart_bp = Blueprint("cart", __name__, url_prefix="/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    return jsonify(cart_service.get_cart(g.customer_id))


@cart_bp.post("/add")
@require_auth
def add_to_cart_route():
    result = validate_add_to_cart(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    data = result.data
    try:
        line, created = cart_service.add_to_cart(
            g.customer_id,
            data["product_id"],
            data["quantity"],
            line_type=data["type"],
            requested_price_per_unit_cents=data.get("requested_price_per_unit_cents"),
            bulk_min_quantity=data.get("bulk_min_quantity"),
        )
        message = "Item added to cart" if created else "Cart item updated"
        return jsonify({"message": message, "item": line}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.put("/update/<int:cart_id>")
@require_auth
def update_cart_item_route(cart_id: int):
    """quantity=0 removes the line."""
    result = validate_update_cart(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        line = cart_service.update_cart_item(g.customer_id, cart_id, result.data["quantity"])
        if line is None:
            return jsonify({"message": "Item removed from cart"}), 200
        return jsonify({"message": "Cart item updated", "item": line}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/remove/<int:cart_id>")
@require_auth
def remove_from_cart_route(cart_id: int):
    try:
        cart_service.remove_from_cart(g.customer_id, cart_id)
        return jsonify({"message": "Item removed from cart"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.delete("/clear")
@require_auth
def clear_cart_route():
    cleared = cart_service.clear_cart(g.customer_id)
    return jsonify({"message": "Cart cleared", "cleared": cleared}), 200
