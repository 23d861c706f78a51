from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..services import promotions_service
from ..services.errors import ServiceError
from ..validation import validate_promo_preview

promotions_bp = Blueprint("promotions", __name__, url_prefix="/promo-codes")


@promotions_bp.post("/validate")
@require_auth
def validate_promo_code_route():
    result = validate_promo_preview(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400
    try:
        preview = promotions_service.preview(result.data["code"], result.data["subtotal_cents"])
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"valid": True, "promo": preview})
