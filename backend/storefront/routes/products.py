# Overview: Flask API routes for catalog browsing; public, read-only.

from flask import Blueprint, jsonify, request

from ..services import products_service
from ..services.errors import NotFoundError
from ..validation import parse_pagination

products_bp = Blueprint("products", __name__)


@products_bp.get("/products")
def list_products_route():
    page, limit = parse_pagination(request.args, default_limit=20)
    result = products_service.list_products(
        page=page,
        limit=limit,
        search=request.args.get("search") or None,
        category_id=request.args.get("category_id", type=int),
        brand_id=request.args.get("brand_id", type=int),
    )
    return jsonify(result)


@products_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify({"product": products_service.get_product(product_id)})
    except NotFoundError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/categories")
def list_categories_route():
    return jsonify({"items": products_service.list_categories()})


@products_bp.get("/brands")
def list_brands_route():
    return jsonify({"items": products_service.list_brands()})
