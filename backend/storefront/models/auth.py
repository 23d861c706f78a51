from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CustomerToken(db.Model):
    """
    Issued access/refresh token pair for a customer.

    SECURITY: Only SHA-256 hashes of the JWTs are stored. The plaintext tokens
    are returned to the client once and never persisted.

    expires_at tracks the access token; refresh_expires_at tracks the refresh
    token. Refreshing rotates the access token on the same row.
    """
    __tablename__ = "customer_tokens"
    __table_args__ = (
        db.Index("ix_customer_tokens_customer_revoked", "customer_id", "revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)
    refresh_token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    refresh_expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    revoked = db.Column(db.Boolean, nullable=False, default=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("tokens", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "name": self.name,
            "expires_at": to_utc_z(self.expires_at),
            "refresh_expires_at": to_utc_z(self.refresh_expires_at),
            "revoked": self.revoked,
            "created_at": to_utc_z(self.created_at),
        }
