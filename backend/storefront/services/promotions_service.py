# Overview: Service-layer operations for promo codes; validation, discount math and redemption counting.

"""
Promo Code Service

Discounts are integer cents:
- PERCENTAGE: discount_value is basis points, discount = subtotal * bps // 10000
- FIXED_AMOUNT: discount_value is cents

Either is capped by max_discount_cents (when set) and never exceeds the
subtotal, so order totals never go negative.
"""

from __future__ import annotations

from ..extensions import db
from ..models import PromoCode
from ..models.promotions import DISCOUNT_FIXED_AMOUNT, DISCOUNT_PERCENTAGE, DISCOUNT_TYPES
from ..time_utils import as_naive_utc, utcnow
from ..validation import ConflictError
from .errors import ServiceError


class PromoCodeError(ServiceError):
    """Raised when a code cannot be applied to an order."""
    pass


def normalize_code(code: str) -> str:
    return code.strip().upper()


def create_promo_code(data: dict) -> PromoCode:
    code = normalize_code(data.get("code") or "")
    if not code:
        raise ValueError("code is required")

    discount_type = (data.get("discount_type") or "").upper()
    if discount_type not in DISCOUNT_TYPES:
        raise ValueError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")

    discount_value = int(data.get("discount_value", 0))
    if discount_value < 0:
        raise ValueError("discount_value must be >= 0")
    if discount_type == DISCOUNT_PERCENTAGE and discount_value > 10000:
        raise ValueError("Percentage discount cannot exceed 10000 bps (100%)")

    if db.session.query(PromoCode).filter_by(code=code).first():
        raise ConflictError("Promo code already exists.")

    promo = PromoCode(
        code=code,
        description=data.get("description"),
        discount_type=discount_type,
        discount_value=discount_value,
        max_discount_cents=data.get("max_discount_cents"),
        min_order_cents=data.get("min_order_cents"),
        usage_limit=data.get("usage_limit"),
        usage_count=0,
        starts_at=data.get("starts_at"),
        expires_at=data.get("expires_at"),
        is_active=data.get("is_active", True),
    )
    db.session.add(promo)
    db.session.commit()
    return promo


def validate_promo_code(code: str, subtotal_cents: int) -> PromoCode:
    """
    Return the applicable PromoCode or raise PromoCodeError.

    Checks, in order: exists, active, started, not expired, usage cap,
    minimum order amount.
    """
    promo = db.session.query(PromoCode).filter_by(code=normalize_code(code)).first()
    if promo is None:
        raise PromoCodeError("Invalid promo code")
    if not promo.is_active:
        raise PromoCodeError("Promo code is not active")

    now = utcnow()
    if promo.starts_at is not None and as_naive_utc(promo.starts_at) > now:
        raise PromoCodeError("Promo code is not yet valid")
    if promo.expires_at is not None and as_naive_utc(promo.expires_at) <= now:
        raise PromoCodeError("Promo code has expired")
    if promo.usage_limit is not None and promo.usage_count >= promo.usage_limit:
        raise PromoCodeError("Promo code usage limit reached")
    if promo.min_order_cents is not None and subtotal_cents < promo.min_order_cents:
        raise PromoCodeError(
            "Order subtotal is below the minimum for this promo code",
            details={"min_order_cents": promo.min_order_cents, "subtotal_cents": subtotal_cents},
        )
    return promo


def calculate_discount(promo: PromoCode, subtotal_cents: int) -> int:
    if promo.discount_type == DISCOUNT_PERCENTAGE:
        discount = subtotal_cents * promo.discount_value // 10000
    elif promo.discount_type == DISCOUNT_FIXED_AMOUNT:
        discount = promo.discount_value
    else:
        discount = 0

    if promo.max_discount_cents is not None:
        discount = min(discount, promo.max_discount_cents)
    return max(0, min(discount, subtotal_cents))


def increment_usage(code: str) -> None:
    """Atomic usage_count + 1 in a single UPDATE."""
    db.session.query(PromoCode).filter_by(code=normalize_code(code)).update(
        {PromoCode.usage_count: PromoCode.usage_count + 1},
        synchronize_session=False,
    )
    db.session.commit()


def preview(code: str, subtotal_cents: int) -> dict:
    promo = validate_promo_code(code, subtotal_cents)
    discount = calculate_discount(promo, subtotal_cents)
    return {
        "code": promo.code,
        "description": promo.description,
        "discount_type": promo.discount_type,
        "discount_value": promo.discount_value,
        "subtotal_cents": subtotal_cents,
        "discount_cents": discount,
        "total_cents": max(0, subtotal_cents - discount),
    }
