from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class OrderStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PARTIALLY_ACCEPTED = "partially_accepted"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    ALL = (
        PENDING, ACCEPTED, REJECTED, PARTIALLY_ACCEPTED,
        PROCESSING, SHIPPED, DELIVERED, CANCELLED,
    )


ORDER_TYPE_REGULAR = "regular"
ORDER_TYPE_BULK = "bulk"

ITEM_STATUS_PENDING = "pending"
ITEM_STATUS_ACCEPTED = "accepted"
ITEM_STATUS_REJECTED = "rejected"


class Order(db.Model):
    """
    Order header.

    Identity fields (name/email/phone) are copied from the authenticated
    customer at checkout; shipping fields come from the request as given.

    Amounts are integer cents:
        total_cents = max(0, subtotal_cents - discount_cents)
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False, default="")
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)

    address = db.Column(db.Text, nullable=False)
    city = db.Column(db.String(128), nullable=False)
    state = db.Column(db.String(128), nullable=False)
    zip_code = db.Column(db.String(32), nullable=False)
    country = db.Column(db.String(128), nullable=False)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    promo_code_id = db.Column(db.Integer, db.ForeignKey("promo_codes.id"), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=OrderStatus.PENDING, index=True)
    order_type = db.Column(db.String(20), nullable=False, default=ORDER_TYPE_REGULAR)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "user_id": self.user_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "promo_code_id": self.promo_code_id,
            "status": self.status,
            "order_type": self.order_type,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["order_items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """
    Order line. product_name / product_sku / unit_price_cents are snapshots
    taken at checkout so later catalog edits never alter historical orders.
    """
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    requested_price_per_unit_cents = db.Column(db.Integer, nullable=True)
    offered_price_per_unit_cents = db.Column(db.Integer, nullable=True)
    bulk_min_quantity = db.Column(db.Integer, nullable=True)

    item_status = db.Column(db.String(20), nullable=False, default=ITEM_STATUS_PENDING)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_sku": self.product_sku,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "requested_price_per_unit_cents": self.requested_price_per_unit_cents,
            "offered_price_per_unit_cents": self.offered_price_per_unit_cents,
            "bulk_min_quantity": self.bulk_min_quantity,
            "item_status": self.item_status,
            "created_at": to_utc_z(self.created_at),
        }
