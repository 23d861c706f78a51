from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class WishlistItem(db.Model):
    __tablename__ = "wishlist"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "product_id", name="uq_wishlist_customer_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_dict() if self.product else None,
            "added_at": to_utc_z(self.created_at),
        }
