from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from .models.cart import CART_TYPES, CART_TYPE_REGULAR


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 100_000
MAX_PAGE_SIZE = 100

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,64}$")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        super().__init__(message)
        self.fields = fields or {}

    def to_dict(self) -> dict:
        body = {"error": str(self)}
        if self.fields:
            body["fields"] = self.fields
        return body


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass
class ValidationResult:
    """
    Outcome of validating one request body.

    ok=True: data holds the cleaned values (only known keys, coerced types).
    ok=False: errors maps field name -> message.
    """
    data: dict = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> dict:
        if self.errors:
            raise ValidationError("Validation failed", fields=self.errors)
        return self.data

    def to_error_dict(self) -> dict:
        return {"error": "Validation failed", "fields": self.errors}


# -----------------------------
# Field coercion helpers
# -----------------------------

def _coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValueError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValueError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValueError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValueError(f"{key} must be an integer, not a decimal")
    raise ValueError(f"{key} must be an integer")


def _string(result: ValidationResult, payload: dict, key: str, *, required: bool = True,
            max_length: int = 255, min_length: int = 0) -> None:
    raw = payload.get(key)
    if raw is None:
        if required:
            result.errors[key] = f"{key} is required"
        return
    if not isinstance(raw, str):
        result.errors[key] = f"{key} must be a string"
        return
    value = raw.strip()
    if required and value == "":
        result.errors[key] = f"{key} cannot be blank"
        return
    if len(value) > max_length:
        result.errors[key] = f"{key} exceeds max length {max_length}"
        return
    if value and len(value) < min_length:
        result.errors[key] = f"{key} must be at least {min_length} characters"
        return
    result.data[key] = value


def _integer(result: ValidationResult, payload: dict, key: str, *, required: bool = True,
             minimum: int | None = None, maximum: int | None = None) -> None:
    raw = payload.get(key)
    if raw is None:
        if required:
            result.errors[key] = f"{key} is required"
        return
    try:
        value = _coerce_int(key, raw)
    except ValueError as e:
        result.errors[key] = str(e)
        return
    if minimum is not None and value < minimum:
        result.errors[key] = f"{key} must be >= {minimum}"
        return
    if maximum is not None and value > maximum:
        result.errors[key] = f"{key} cannot exceed {maximum}"
        return
    result.data[key] = value


def _email(result: ValidationResult, payload: dict, key: str = "email") -> None:
    _string(result, payload, key, max_length=255)
    if key in result.data:
        value = result.data[key].lower()
        if not EMAIL_RE.match(value):
            del result.data[key]
            result.errors[key] = f"{key} must be a valid email address"
        else:
            result.data[key] = value


def _ensure_object(payload: Any) -> tuple[ValidationResult, dict]:
    result = ValidationResult()
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        result.errors["_body"] = "Invalid JSON payload"
        return result, {}
    return result, payload


# -----------------------------
# Auth requests
# -----------------------------

def validate_register(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _string(result, payload, "full_name", max_length=255)
    _string(result, payload, "username", max_length=64)
    if "username" in result.data and not USERNAME_RE.match(result.data["username"]):
        del result.data["username"]
        result.errors["username"] = "username may only contain letters, digits, '.', '_' and '-' (3-64 chars)"
    _email(result, payload)
    _string(result, payload, "password", max_length=72)
    _string(result, payload, "phone", required=False, max_length=32)
    return result


def validate_login(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _email(result, payload)
    _string(result, payload, "password", max_length=72)
    return result


def validate_refresh(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _string(result, payload, "refresh_token", max_length=4096)
    return result


def validate_edit_profile(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _string(result, payload, "full_name", required=False, max_length=255)
    _string(result, payload, "username", required=False, max_length=64)
    if result.data.get("username") and not USERNAME_RE.match(result.data["username"]):
        del result.data["username"]
        result.errors["username"] = "username may only contain letters, digits, '.', '_' and '-' (3-64 chars)"
    _string(result, payload, "phone", required=False, max_length=32)
    return result


def validate_change_password(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _string(result, payload, "current_password", max_length=72)
    _string(result, payload, "new_password", max_length=72)
    _string(result, payload, "confirm_password", max_length=72)
    return result


def validate_forgot_password_otp(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _email(result, payload)
    return result


def validate_reset_password_otp(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _email(result, payload)
    _string(result, payload, "otp", max_length=6, min_length=6)
    _string(result, payload, "new_password", max_length=72)
    _string(result, payload, "confirm_password", max_length=72)
    return result


def validate_verify_otp(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _string(result, payload, "otp", max_length=6, min_length=6)
    return result


# -----------------------------
# Cart / order requests
# -----------------------------

def validate_add_to_cart(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _integer(result, payload, "product_id", minimum=1)
    _integer(result, payload, "quantity", minimum=1, maximum=MAX_QUANTITY)

    cart_type = payload.get("type") or CART_TYPE_REGULAR
    if cart_type not in CART_TYPES:
        result.errors["type"] = f"type must be one of: {', '.join(CART_TYPES)}"
    else:
        result.data["type"] = cart_type

    _integer(result, payload, "requested_price_per_unit_cents", required=False,
             minimum=0, maximum=MAX_PRICE_CENTS)
    _integer(result, payload, "bulk_min_quantity", required=False, minimum=1, maximum=MAX_QUANTITY)

    if result.data.get("type") == CART_TYPE_REGULAR:
        for key in ("requested_price_per_unit_cents", "bulk_min_quantity"):
            if payload.get(key) is not None:
                result.errors[key] = f"{key} is only allowed for bulk items"
                result.data.pop(key, None)
    return result


def validate_update_cart(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _integer(result, payload, "quantity", minimum=0, maximum=MAX_QUANTITY)
    return result


def validate_create_order(payload: Any) -> ValidationResult:
    """
    Checkout body.

    items: [{cart_id, requested_price_per_unit_cents?, bulk_min_quantity?}]
    Any order_type or offered_price_per_unit_cents sent by the client is
    dropped here; both are derived from persisted cart state.
    """
    result, payload = _ensure_object(payload)

    items = payload.get("items")
    if items is None:
        result.errors["items"] = "items is required"
    elif not isinstance(items, list) or not items:
        result.errors["items"] = "items must be a non-empty list"
    else:
        cleaned = []
        seen: set[int] = set()
        for index, raw in enumerate(items):
            key = f"items[{index}]"
            if not isinstance(raw, dict):
                result.errors[key] = "each item must be an object"
                continue
            item = ValidationResult()
            _integer(item, raw, "cart_id", minimum=1)
            _integer(item, raw, "requested_price_per_unit_cents", required=False,
                     minimum=0, maximum=MAX_PRICE_CENTS)
            _integer(item, raw, "bulk_min_quantity", required=False, minimum=1, maximum=MAX_QUANTITY)
            for field_name, message in item.errors.items():
                result.errors[f"{key}.{field_name}"] = message
            if item.ok:
                if item.data["cart_id"] in seen:
                    result.errors[f"{key}.cart_id"] = "duplicate cart_id"
                    continue
                seen.add(item.data["cart_id"])
                cleaned.append(item.data)
        result.data["items"] = cleaned

    for key in ("address",):
        _string(result, payload, key, max_length=1000)
    for key in ("city", "state", "country"):
        _string(result, payload, key, max_length=128)
    _string(result, payload, "zip_code", max_length=32)
    _string(result, payload, "promo_code", required=False, max_length=64)
    _string(result, payload, "notes", required=False, max_length=2000)

    if result.data.get("promo_code") == "":
        result.data.pop("promo_code")
    return result


def validate_promo_preview(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _string(result, payload, "code", max_length=64)
    _integer(result, payload, "subtotal_cents", minimum=0)
    return result


def validate_wishlist_add(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _integer(result, payload, "product_id", minimum=1)
    return result


def validate_create_review(payload: Any) -> ValidationResult:
    result, payload = _ensure_object(payload)
    _integer(result, payload, "product_id", minimum=1)
    _integer(result, payload, "rating", minimum=1, maximum=5)
    _string(result, payload, "comment", max_length=2000, min_length=10)
    return result


def validate_review_filters(args) -> ValidationResult:
    """Optional rating (1-5) and verified (true/false) query filters."""
    result = ValidationResult()
    if args.get("rating"):
        _integer(result, {"rating": args.get("rating")}, "rating", minimum=1, maximum=5)
    verified = (args.get("verified") or "").strip().lower()
    if verified in ("true", "1"):
        result.data["verified"] = True
    elif verified in ("false", "0"):
        result.data["verified"] = False
    elif verified:
        result.errors["verified"] = "verified must be true or false"
    return result


def parse_pagination(args, default_limit: int = 10) -> tuple[int, int]:
    """Read page/limit query args, clamping to sane bounds."""
    try:
        page = int(args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)
