from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CART_TYPE_REGULAR = "regular"
CART_TYPE_BULK = "bulk"
CART_TYPES = (CART_TYPE_REGULAR, CART_TYPE_BULK)


class CartLine(db.Model):
    """
    One product + quantity entry in a customer's cart.

    Lines are soft-deleted (is_active=False) when removed or set to zero
    quantity, and hard-deleted once they have been turned into an order.

    At most one active regular line exists per (customer, product); this is
    enforced by cart_service. Bulk lines carry negotiated pricing and may
    repeat for the same product.
    """
    __tablename__ = "customer_cart"
    __table_args__ = (
        db.Index("ix_customer_cart_customer_product", "customer_id", "product_id"),
        db.Index("ix_customer_cart_customer_active", "customer_id", "is_active"),
        db.CheckConstraint("quantity >= 1", name="ck_customer_cart_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    type = db.Column(db.String(20), nullable=True, default=CART_TYPE_REGULAR)

    # Bulk negotiation fields (cents). offered_* is set by the seller.
    requested_price_per_unit_cents = db.Column(db.Integer, nullable=True)
    offered_price_per_unit_cents = db.Column(db.Integer, nullable=True)
    bulk_min_quantity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    product = db.relationship("Product")

    @property
    def line_type(self) -> str:
        return self.type or CART_TYPE_REGULAR

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "type": self.line_type,
            "requested_price_per_unit_cents": self.requested_price_per_unit_cents,
            "offered_price_per_unit_cents": self.offered_price_per_unit_cents,
            "bulk_min_quantity": self.bulk_min_quantity,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
