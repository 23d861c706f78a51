from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


REVIEW_STATUS_PENDING = "pending"
REVIEW_STATUS_APPROVED = "approved"
REVIEW_STATUS_REJECTED = "rejected"
REVIEW_STATUSES = (REVIEW_STATUS_PENDING, REVIEW_STATUS_APPROVED, REVIEW_STATUS_REJECTED)


class Review(db.Model):
    """
    Product review by a customer.

    One review per customer and product. Reviews start pending and are only
    shown publicly once approved. order_id points at the accepted order that
    proved the purchase.
    """
    __tablename__ = "reviews"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_reviews_customer_product"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        db.Index("ix_reviews_product_status", "product_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=REVIEW_STATUS_PENDING)
    is_verified_purchase = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "rating": self.rating,
            "comment": self.comment,
            "status": self.status,
            "is_verified_purchase": self.is_verified_purchase,
            "customer_name": self.customer.full_name if self.customer else "Anonymous",
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
