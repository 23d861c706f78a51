# Overview: Service-layer operations for customer wishlists.

from __future__ import annotations

from ..extensions import db
from ..models import WishlistItem
from .errors import NotFoundError, ServiceError
from .products_service import get_active_product


class WishlistError(ServiceError):
    pass


def get_wishlist(customer_id: int) -> list[dict]:
    rows = (
        db.session.query(WishlistItem)
        .filter_by(customer_id=customer_id)
        .order_by(WishlistItem.created_at.desc(), WishlistItem.id.desc())
        .all()
    )
    return [row.to_dict() for row in rows]


def add_to_wishlist(customer_id: int, product_id: int) -> dict:
    product = get_active_product(product_id)

    existing = db.session.query(WishlistItem).filter_by(
        customer_id=customer_id, product_id=product.id
    ).first()
    if existing:
        raise WishlistError("Product already in wishlist")

    item = WishlistItem(customer_id=customer_id, product_id=product.id)
    db.session.add(item)
    db.session.commit()
    return item.to_dict()


def remove_from_wishlist(customer_id: int, product_id: int) -> None:
    deleted = db.session.query(WishlistItem).filter_by(
        customer_id=customer_id, product_id=product_id
    ).delete(synchronize_session=False)
    if not deleted:
        db.session.rollback()
        raise NotFoundError("Product not found in wishlist")
    db.session.commit()


def check_in_wishlist(customer_id: int, product_id: int) -> bool:
    return db.session.query(WishlistItem.id).filter_by(
        customer_id=customer_id, product_id=product_id
    ).first() is not None


def get_wishlist_count(customer_id: int) -> int:
    return db.session.query(WishlistItem).filter_by(customer_id=customer_id).count()
