from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import wishlist_service
from ..services.errors import ServiceError
from ..validation import validate_wishlist_add

wishlist_bp = Blueprint("wishlist", __name__, url_prefix="/wishlist")


@wishlist_bp.get("")
@require_auth
def get_wishlist_route():
    items = wishlist_service.get_wishlist(g.customer_id)
    return jsonify({"items": items, "count": len(items)})


@wishlist_bp.post("")
@require_auth
def add_to_wishlist_route():
    result = validate_wishlist_add(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400
    try:
        item = wishlist_service.add_to_wishlist(g.customer_id, result.data["product_id"])
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"message": "Product added to wishlist", "item": item}), 201


@wishlist_bp.delete("/<int:product_id>")
@require_auth
def remove_from_wishlist_route(product_id: int):
    try:
        wishlist_service.remove_from_wishlist(g.customer_id, product_id)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"message": "Product removed from wishlist"})


@wishlist_bp.get("/check/<int:product_id>")
@require_auth
def check_in_wishlist_route(product_id: int):
    return jsonify({
        "product_id": product_id,
        "in_wishlist": wishlist_service.check_in_wishlist(g.customer_id, product_id),
    })


@wishlist_bp.get("/count")
@require_auth
def wishlist_count_route():
    return jsonify({"count": wishlist_service.get_wishlist_count(g.customer_id)})
