from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


DISCOUNT_PERCENTAGE = "PERCENTAGE"
DISCOUNT_FIXED_AMOUNT = "FIXED_AMOUNT"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FIXED_AMOUNT)


class PromoCode(db.Model):
    """
    Redeemable discount code.

    discount_value is basis points for PERCENTAGE (1000 = 10%) and cents for
    FIXED_AMOUNT. Codes are stored upper-case and matched case-insensitively.
    """
    __tablename__ = "promo_codes"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_promo_codes_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    discount_type = db.Column(db.String(32), nullable=False)  # PERCENTAGE, FIXED_AMOUNT
    discount_value = db.Column(db.Integer, nullable=False, default=0)
    max_discount_cents = db.Column(db.Integer, nullable=True)
    min_order_cents = db.Column(db.Integer, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "max_discount_cents": self.max_discount_cents,
            "min_order_cents": self.min_order_cents,
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "starts_at": to_utc_z(self.starts_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
