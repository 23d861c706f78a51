# Overview: Flask API routes for product reviews; submission, public listings and rating summary.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..services import review_service
from ..services.errors import ServiceError
from ..validation import parse_pagination, validate_create_review, validate_review_filters

reviews_bp = Blueprint("reviews", __name__, url_prefix="/reviews")


@reviews_bp.post("")
@require_auth
def create_review_route():
    """Submit a review. Only products from the customer's accepted orders qualify."""
    result = validate_create_review(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        review = review_service.create_review(g.customer_id, **result.data)
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Review submission failed")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({
        "message": "Review submitted successfully. It will be visible after approval.",
        "review": review,
    }), 201


@reviews_bp.get("/product/<int:product_id>")
def product_reviews_route(product_id: int):
    filters = validate_review_filters(request.args)
    if not filters.ok:
        return jsonify(filters.to_error_dict()), 400

    page, limit = parse_pagination(request.args)
    try:
        return jsonify(review_service.get_product_reviews(product_id, page=page, limit=min(limit, 50), **filters.data))
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reviews_bp.get("/product/<int:product_id>/summary")
def review_summary_route(product_id: int):
    try:
        return jsonify({"summary": review_service.get_review_summary(product_id)})
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@reviews_bp.get("/my")
@require_auth
def my_reviews_route():
    page, limit = parse_pagination(request.args)
    return jsonify(review_service.get_my_reviews(g.customer_id, page=page, limit=min(limit, 50)))
