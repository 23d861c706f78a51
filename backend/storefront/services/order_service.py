# Overview: Service-layer operations for orders; checkout pipeline, order history and cancellation.

"""
Order Service

Checkout runs top to bottom inside one request:

    1. validate cart lines        (read-only, all-or-nothing)
    2. resolve order type         (mixed regular/bulk carts rejected)
    3. subtotal                   (sum of quantity * unit price)
    4. promo code                 (validate + discount, before any write)
    5. persist order, then items  (status pending)
    6. promo usage increment      best effort
    7. inventory settlement       best effort, per line
    8. cart cleanup               best effort

Steps 1-4 raise and nothing is written. Steps 6-8 run after the order is
committed; their failures are logged with an event name and never undo the
order.

KNOWN GAPS (kept as documented behavior):
- Stock is checked in step 1 and decremented in step 7 without a lock, so
  two concurrent checkouts of the last unit can both pass validation. The
  second settlement then logs inventory.settlement_failed.
- cancel_order reads the status and then updates it unconditionally.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import CartLine, Order, OrderItem, OrderStatus, Product
from ..models.cart import CART_TYPE_REGULAR
from ..models.orders import ITEM_STATUS_ACCEPTED, ITEM_STATUS_PENDING, ORDER_TYPE_BULK
from . import promotions_service
from .auth_service import get_active_customer
from .cart_service import line_unit_price_cents
from .errors import NotFoundError, ServiceError
from .pagination import paginate


class OrderError(ServiceError):
    """Raised for checkout and order state violations."""
    pass


# Best-effort policy: these steps log under the named event and continue.
EVENT_PROMO_USAGE_FAILED = "promo.usage_increment_failed"
EVENT_SETTLEMENT_FAILED = "inventory.settlement_failed"
EVENT_CART_CLEANUP_FAILED = "cart.cleanup_failed"


@dataclass
class ValidatedLine:
    """A cart line checked against the catalog, with its price resolved."""
    cart_id: int
    product_id: int
    product_name: str
    product_sku: str | None
    quantity: int
    unit_price_cents: int
    line_type: str
    requested_price_per_unit_cents: int | None = None
    offered_price_per_unit_cents: int | None = None
    bulk_min_quantity: int | None = None

    @property
    def total_price_cents(self) -> int:
        return self.quantity * self.unit_price_cents


def _log_best_effort_failure(event: str, message: str, exc_info: bool = False, **fields) -> None:
    current_app.logger.warning(message, exc_info=exc_info, extra={"event": event, **fields})


# -----------------------------
# Pipeline steps
# -----------------------------

def validate_cart_lines(customer_id: int, items: list[dict]) -> list[ValidatedLine]:
    """
    Resolve each requested cart line for customer_id.

    Raises NotFoundError for a missing/inactive/foreign cart line and
    OrderError for an unavailable product or insufficient stock.
    """
    if not items:
        raise OrderError("Order must contain at least one item")

    validated: list[ValidatedLine] = []
    for item in items:
        line = db.session.query(CartLine).filter_by(
            id=item["cart_id"], customer_id=customer_id, is_active=True
        ).first()
        if line is None:
            raise NotFoundError(f"Cart item {item['cart_id']} not found")

        product = db.session.query(Product).filter_by(id=line.product_id, is_active=True).first()
        if product is None:
            raise OrderError(
                "Product is no longer available",
                details={"cart_id": line.id, "product_id": line.product_id},
            )

        if product.stock_quantity < line.quantity:
            raise OrderError(
                f"Insufficient stock for {product.title}",
                details={
                    "product_id": product.id,
                    "requested": line.quantity,
                    "available": product.stock_quantity,
                },
            )

        # Cart values win; the request only fills gaps.
        requested_price = line.requested_price_per_unit_cents
        if requested_price is None:
            requested_price = item.get("requested_price_per_unit_cents")
        bulk_min = line.bulk_min_quantity
        if bulk_min is None:
            bulk_min = item.get("bulk_min_quantity")

        validated.append(ValidatedLine(
            cart_id=line.id,
            product_id=product.id,
            product_name=product.title,
            product_sku=product.sku,
            quantity=line.quantity,
            unit_price_cents=line_unit_price_cents(line, product),
            line_type=line.line_type,
            requested_price_per_unit_cents=requested_price,
            offered_price_per_unit_cents=line.offered_price_per_unit_cents,
            bulk_min_quantity=bulk_min,
        ))
    return validated


def resolve_order_type(lines: list[ValidatedLine]) -> str:
    types = {line.line_type or CART_TYPE_REGULAR for line in lines}
    if len(types) > 1:
        raise OrderError("Cart contains mixed item types", details={"types": sorted(types)})
    return types.pop()


def calculate_subtotal(lines: list[ValidatedLine]) -> int:
    return sum(line.total_price_cents for line in lines)


def apply_promo_code(code: str | None, subtotal_cents: int):
    """Returns (promo or None, discount_cents). Raises PromoCodeError."""
    if not code:
        return None, 0
    promo = promotions_service.validate_promo_code(code, subtotal_cents)
    return promo, promotions_service.calculate_discount(promo, subtotal_cents)


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def settle_inventory(order_number: str, lines: list[ValidatedLine]) -> list[int]:
    """
    Decrement stock for each line against a fresh read of the product.

    Returns product ids that could not be settled. Never raises for
    missing products, short stock or storage errors.
    """
    failed: list[int] = []
    for line in lines:
        fields = {"order_number": order_number, "product_id": line.product_id, "quantity": line.quantity}
        try:
            product = (
                db.session.query(Product)
                .filter_by(id=line.product_id)
                .populate_existing()
                .first()
            )
            if product is None:
                _log_best_effort_failure(
                    EVENT_SETTLEMENT_FAILED, "Stock settlement skipped: product missing",
                    available=None, reason="product_missing", **fields,
                )
                failed.append(line.product_id)
                continue

            if product.stock_quantity < line.quantity:
                _log_best_effort_failure(
                    EVENT_SETTLEMENT_FAILED, "Stock settlement skipped: insufficient stock",
                    available=product.stock_quantity, reason="insufficient_stock", **fields,
                )
                failed.append(line.product_id)
                continue

            product.stock_quantity = product.stock_quantity - line.quantity
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            _log_best_effort_failure(
                EVENT_SETTLEMENT_FAILED, "Stock settlement failed",
                exc_info=True, available=None, reason=str(e), **fields,
            )
            failed.append(line.product_id)
    return failed


def cleanup_cart(customer_id: int, cart_ids: list[int], order_number: str) -> bool:
    """Hard-delete the ordered cart lines. Returns False if cleanup failed."""
    try:
        db.session.query(CartLine).filter(
            CartLine.id.in_(cart_ids),
            CartLine.customer_id == customer_id,
        ).delete(synchronize_session=False)
        db.session.commit()
        return True
    except SQLAlchemyError as e:
        db.session.rollback()
        _log_best_effort_failure(
            EVENT_CART_CLEANUP_FAILED, "Cart cleanup failed",
            exc_info=True, order_number=order_number, cart_ids=cart_ids, reason=str(e),
        )
        return False


def _increment_promo_usage(code: str, order_number: str) -> None:
    try:
        promotions_service.increment_usage(code)
    except SQLAlchemyError as e:
        db.session.rollback()
        _log_best_effort_failure(
            EVENT_PROMO_USAGE_FAILED, "Promo usage increment failed",
            exc_info=True, order_number=order_number, reason=str(e),
        )


# -----------------------------
# Public operations
# -----------------------------

def create_order(customer_id: int, data: dict) -> dict:
    """
    Run the checkout pipeline for validated request data.

    data: items, address, city, state, zip_code, country, promo_code?, notes?
    Returns the order dict with order_items.
    """
    customer = get_active_customer(customer_id)

    lines = validate_cart_lines(customer.id, data["items"])
    order_type = resolve_order_type(lines)
    subtotal = calculate_subtotal(lines)
    promo, discount = apply_promo_code(data.get("promo_code"), subtotal)
    total = max(0, subtotal - discount)

    order = Order(
        order_number=generate_order_number(),
        user_id=customer.id,
        first_name=customer.first_name,
        last_name=customer.last_name,
        email=customer.email,
        phone=customer.phone,
        address=data["address"],
        city=data["city"],
        state=data["state"],
        zip_code=data["zip_code"],
        country=data["country"],
        subtotal_cents=subtotal,
        discount_cents=discount,
        total_cents=total,
        promo_code_id=promo.id if promo else None,
        status=OrderStatus.PENDING,
        order_type=order_type,
        notes=data.get("notes"),
    )
    db.session.add(order)
    db.session.commit()

    item_status = ITEM_STATUS_PENDING if order_type == ORDER_TYPE_BULK else ITEM_STATUS_ACCEPTED
    for line in lines:
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=line.product_id,
            product_name=line.product_name,
            product_sku=line.product_sku,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            total_price_cents=line.total_price_cents,
            requested_price_per_unit_cents=line.requested_price_per_unit_cents,
            offered_price_per_unit_cents=line.offered_price_per_unit_cents,
            bulk_min_quantity=line.bulk_min_quantity,
            item_status=item_status,
        ))
    db.session.commit()

    order_number = order.order_number
    if promo is not None:
        _increment_promo_usage(promo.code, order_number)
    settle_inventory(order_number, lines)
    cleanup_cart(customer.id, [line.cart_id for line in lines], order_number)

    current_app.logger.info(
        "Order created",
        extra={"event": "order.created", "order_number": order_number, "customer_id": customer.id},
    )
    return get_order(customer.id, order.id)


def get_my_orders(customer_id: int, page: int = 1, limit: int = 10) -> dict:
    query = (
        db.session.query(Order)
        .filter(Order.user_id == customer_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return paginate(query, page, limit, lambda o: o.to_dict(include_items=True))


def _get_owned_order(customer_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, user_id=customer_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order(customer_id: int, order_id: int) -> dict:
    return _get_owned_order(customer_id, order_id).to_dict(include_items=True)


def cancel_order(customer_id: int, order_id: int) -> dict:
    """Cancel a pending order. Any other status raises OrderError."""
    order = _get_owned_order(customer_id, order_id)
    if order.status != OrderStatus.PENDING:
        raise OrderError(
            "Only pending orders can be cancelled",
            details={"status": order.status},
        )

    db.session.query(Order).filter_by(id=order.id).update(
        {Order.status: OrderStatus.CANCELLED},
        synchronize_session=False,
    )
    db.session.commit()
    return order.to_dict(include_items=True)


def update_order_status(order_id: int, status: str) -> Order:
    """Seller-side status change (accept, ship, deliver...)."""
    if status not in OrderStatus.ALL:
        raise OrderError(f"status must be one of: {', '.join(OrderStatus.ALL)}")

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    order.status = status
    db.session.commit()
    return order
