# Overview: Service-layer operations for product reviews; verified-purchase submission, listings, rating summary and moderation.

"""
Review Service

A customer may review a product once, and only after buying it: some order
of theirs in an accepted-or-later status must contain the product. New
reviews are pending; product listings and summaries only count approved
ones. A customer sees their own reviews in every status.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, OrderItem, OrderStatus, Review
from ..models.reviews import REVIEW_STATUS_APPROVED, REVIEW_STATUS_PENDING, REVIEW_STATUSES
from .errors import ForbiddenError, NotFoundError, ServiceError
from .pagination import paginate
from .products_service import get_active_product


# Order statuses that prove a purchase
PURCHASED_ORDER_STATUSES = (
    OrderStatus.ACCEPTED,
    OrderStatus.PARTIALLY_ACCEPTED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


class ReviewError(ServiceError):
    pass


def _find_purchase_order(customer_id: int, product_id: int) -> Order | None:
    return (
        db.session.query(Order)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(
            Order.user_id == customer_id,
            Order.status.in_(PURCHASED_ORDER_STATUSES),
            OrderItem.product_id == product_id,
        )
        .order_by(Order.created_at.asc(), Order.id.asc())
        .first()
    )


def create_review(customer_id: int, product_id: int, rating: int, comment: str) -> dict:
    """
    Submit a pending review.

    Raises:
        NotFoundError: product missing or inactive
        ReviewError (409): customer already reviewed this product
        ForbiddenError: no accepted order of the customer contains the product
    """
    product = get_active_product(product_id)

    existing = db.session.query(Review.id).filter_by(customer_id=customer_id, product_id=product.id).first()
    if existing:
        raise ReviewError("You have already reviewed this product", status_code=409)

    order = _find_purchase_order(customer_id, product.id)
    if order is None:
        raise ForbiddenError("You can only review products from your accepted orders")

    review = Review(
        product_id=product.id,
        customer_id=customer_id,
        order_id=order.id,
        rating=rating,
        comment=comment,
        status=REVIEW_STATUS_PENDING,
        is_verified_purchase=True,
    )
    db.session.add(review)
    db.session.commit()
    return review.to_dict()


def get_product_reviews(
    product_id: int,
    page: int = 1,
    limit: int = 10,
    rating: int | None = None,
    verified: bool | None = None,
) -> dict:
    """Approved reviews of a product, newest first."""
    product = get_active_product(product_id)

    query = db.session.query(Review).filter(
        Review.product_id == product.id,
        Review.status == REVIEW_STATUS_APPROVED,
    )
    if rating is not None:
        query = query.filter(Review.rating == rating)
    if verified is not None:
        query = query.filter(Review.is_verified_purchase.is_(verified))

    query = query.order_by(Review.created_at.desc(), Review.id.desc())
    return paginate(query, page, limit, lambda r: r.to_dict())


def get_my_reviews(customer_id: int, page: int = 1, limit: int = 10) -> dict:
    query = (
        db.session.query(Review)
        .filter(Review.customer_id == customer_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
    )
    return paginate(query, page, limit, lambda r: r.to_dict())


def get_review_summary(product_id: int) -> dict:
    """Average rating (2 decimals) and per-star counts over approved reviews."""
    product = get_active_product(product_id)

    rows = (
        db.session.query(Review.rating, db.func.count(Review.id))
        .filter(Review.product_id == product.id, Review.status == REVIEW_STATUS_APPROVED)
        .group_by(Review.rating)
        .all()
    )
    breakdown = {str(stars): 0 for stars in range(5, 0, -1)}
    total = 0
    weighted = 0
    for rating, count in rows:
        breakdown[str(rating)] = count
        total += count
        weighted += rating * count

    return {
        "product_id": product.id,
        "average_rating": round(weighted / total, 2) if total else 0,
        "total_reviews": total,
        "rating_breakdown": breakdown,
    }


def moderate_review(review_id: int, status: str) -> Review:
    """Back-office: approve or reject a review."""
    if status not in REVIEW_STATUSES:
        raise ReviewError(f"status must be one of: {', '.join(REVIEW_STATUSES)}")

    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review not found")

    review.status = status
    db.session.commit()
    return review
