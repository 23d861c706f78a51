# Overview: Service-layer operations for the customer cart; add, update, remove, clear and bulk offers.

"""
Cart Service

Cart lines are scoped to the acting customer on every read and write; a
line owned by someone else is indistinguishable from a missing one (404).

Regular lines: at most one active line per (customer, product). Adding the
same product again merges quantities; a previously removed line is
reactivated with the new quantity instead of the old one.

Bulk lines: always a new line. The seller records an offered unit price
later (record_bulk_offer), which checkout then uses for pricing.
"""

from __future__ import annotations

from ..extensions import db
from ..models import CartLine, Product
from ..models.cart import CART_TYPE_BULK, CART_TYPE_REGULAR
from .errors import NotFoundError, ServiceError
from .products_service import get_active_product


class CartError(ServiceError):
    """Raised for cart rule violations (stock, quantities, bulk minimums)."""
    pass


def line_unit_price_cents(line: CartLine, product: Product) -> int:
    """Negotiated offer wins over the catalog price."""
    if line.offered_price_per_unit_cents is not None:
        return line.offered_price_per_unit_cents
    return product.total_price_cents


def _serialize_line(line: CartLine) -> dict:
    data = line.to_dict()
    product = line.product
    unit_price = line_unit_price_cents(line, product)
    data["product"] = {
        "id": product.id,
        "title": product.title,
        "sku": product.sku,
        "total_price_cents": product.total_price_cents,
        "stock_quantity": product.stock_quantity,
        "currency": product.currency,
        "is_active": product.is_active,
    }
    data["unit_price_cents"] = unit_price
    data["line_total_cents"] = unit_price * line.quantity
    return data


def get_active_line(customer_id: int, cart_id: int) -> CartLine:
    line = db.session.query(CartLine).filter_by(
        id=cart_id, customer_id=customer_id, is_active=True
    ).first()
    if line is None:
        raise NotFoundError("Cart item not found")
    return line


def get_cart(customer_id: int) -> dict:
    """Active lines with product data and a summary block."""
    lines = (
        db.session.query(CartLine)
        .join(Product, Product.id == CartLine.product_id)
        .filter(CartLine.customer_id == customer_id, CartLine.is_active.is_(True))
        .order_by(CartLine.created_at.desc(), CartLine.id.desc())
        .all()
    )

    items = [_serialize_line(line) for line in lines]
    currency = lines[0].product.currency if lines else "USD"
    return {
        "items": items,
        "summary": {
            "total_items": sum(line.quantity for line in lines),
            "total_cents": sum(item["line_total_cents"] for item in items),
            "currency": currency,
        },
    }


def _require_stock(product: Product, quantity: int) -> None:
    if product.stock_quantity == 0:
        raise CartError("Product is out of stock")
    if product.stock_quantity < quantity:
        raise CartError(
            f"Cannot add {quantity} items. Only {product.stock_quantity} in stock.",
            details={"product_id": product.id, "requested": quantity, "available": product.stock_quantity},
        )


def add_to_cart(
    customer_id: int,
    product_id: int,
    quantity: int,
    line_type: str = CART_TYPE_REGULAR,
    requested_price_per_unit_cents: int | None = None,
    bulk_min_quantity: int | None = None,
) -> tuple[dict, bool]:
    """
    Add a product to the cart.

    Returns (line_dict, created). created is False when an existing regular
    line was merged or reactivated.
    """
    if quantity < 1:
        raise CartError("Quantity must be at least 1")

    product = get_active_product(product_id)
    _require_stock(product, quantity)

    if line_type == CART_TYPE_BULK:
        if bulk_min_quantity is not None and quantity < bulk_min_quantity:
            raise CartError(f"Bulk orders require at least {bulk_min_quantity} units")
        line = CartLine(
            customer_id=customer_id,
            product_id=product.id,
            quantity=quantity,
            type=CART_TYPE_BULK,
            requested_price_per_unit_cents=requested_price_per_unit_cents,
            bulk_min_quantity=bulk_min_quantity,
            is_active=True,
        )
        db.session.add(line)
        db.session.commit()
        return _serialize_line(line), True

    existing = (
        db.session.query(CartLine)
        .filter(
            CartLine.customer_id == customer_id,
            CartLine.product_id == product.id,
            db.or_(CartLine.type == CART_TYPE_REGULAR, CartLine.type.is_(None)),
        )
        .order_by(CartLine.is_active.desc(), CartLine.id.desc())
        .first()
    )

    if existing is None:
        line = CartLine(
            customer_id=customer_id,
            product_id=product.id,
            quantity=quantity,
            type=CART_TYPE_REGULAR,
            is_active=True,
        )
        db.session.add(line)
        db.session.commit()
        return _serialize_line(line), True

    if existing.is_active:
        merged = existing.quantity + quantity
        if product.stock_quantity < merged:
            raise CartError(
                f"Cannot update to {merged} items. Only {product.stock_quantity} in stock.",
                details={"product_id": product.id, "requested": merged, "available": product.stock_quantity},
            )
        existing.quantity = merged
    else:
        existing.quantity = quantity
        existing.is_active = True

    db.session.commit()
    return _serialize_line(existing), False


def update_cart_item(customer_id: int, cart_id: int, quantity: int) -> dict | None:
    """
    Set a line's quantity. Zero removes the line (returns None).
    """
    if quantity == 0:
        remove_from_cart(customer_id, cart_id)
        return None
    if quantity < 1:
        raise CartError("Quantity must be at least 1")

    line = get_active_line(customer_id, cart_id)
    product = line.product
    if product is None or not product.is_active:
        raise CartError("Product is no longer available")
    if product.stock_quantity < quantity:
        raise CartError(
            f"Insufficient stock available. Only {product.stock_quantity} items available.",
            details={"product_id": product.id, "requested": quantity, "available": product.stock_quantity},
        )

    line.quantity = quantity
    db.session.commit()
    return _serialize_line(line)


def remove_from_cart(customer_id: int, cart_id: int) -> None:
    line = get_active_line(customer_id, cart_id)
    line.is_active = False
    db.session.commit()


def clear_cart(customer_id: int) -> int:
    """Soft-delete every active line. Returns count cleared."""
    cleared = db.session.query(CartLine).filter_by(
        customer_id=customer_id, is_active=True
    ).update({CartLine.is_active: False}, synchronize_session=False)
    db.session.commit()
    return cleared


def record_bulk_offer(cart_id: int, offered_price_per_unit_cents: int) -> CartLine:
    """Seller-side: set the negotiated unit price on an active bulk line."""
    if offered_price_per_unit_cents < 0:
        raise CartError("Offered price cannot be negative")

    line = db.session.query(CartLine).filter_by(id=cart_id, is_active=True).first()
    if line is None:
        raise NotFoundError("Cart item not found")
    if line.line_type != CART_TYPE_BULK:
        raise CartError("Offers can only be recorded on bulk cart items")

    line.offered_price_per_unit_cents = offered_price_per_unit_cents
    db.session.commit()
    return line
