# Overview: Service-layer operations for the catalog; products, categories and brands.

"""
Products Service

Storefront reads only see active rows. create_product / update_product
are used by the CLI and by test fixtures; both keep total_price_cents
consistent with price_cents and tax_rate_bps.
"""
from __future__ import annotations

import re

from ..extensions import db
from ..models import Brand, Category, Product
from ..validation import ConflictError
from .errors import NotFoundError
from .pagination import paginate

PRODUCT_MUTABLE_FIELDS = {
    "title", "description", "sku", "price_cents", "tax_rate_bps",
    "stock_quantity", "currency", "category_id", "brand_id", "is_active",
}


def compute_total_price_cents(price_cents: int, tax_rate_bps: int) -> int:
    """Tax-inclusive price, tax rounded half up to the cent."""
    tax_cents = (price_cents * tax_rate_bps + 5000) // 10000
    return price_cents + tax_cents


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)
    p.total_price_cents = compute_total_price_cents(p.price_cents or 0, p.tax_rate_bps or 0)


def list_products(
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    category_id: int | None = None,
    brand_id: int | None = None,
) -> dict:
    """Active products, newest first, with pagination metadata."""
    query = db.session.query(Product).filter(Product.is_active.is_(True))

    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.title.ilike(pattern), Product.sku.ilike(pattern)))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if brand_id is not None:
        query = query.filter(Product.brand_id == brand_id)

    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    return paginate(query, page, limit, lambda p: p.to_dict())


def get_active_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, is_active=True).first()
    if product is None:
        raise NotFoundError("Product not found")
    return product


def get_product(product_id: int) -> dict:
    return get_active_product(product_id).to_dict()


def create_product(patch: dict) -> Product:
    """
    Create product from a validated patch dict.

    Raises ConflictError if the SKU already exists.
    """
    sku = patch.get("sku")
    if not sku:
        raise ValueError("sku is required")
    if db.session.query(Product).filter_by(sku=sku).first():
        raise ConflictError("SKU already exists.")

    p = Product(price_cents=0, tax_rate_bps=0, stock_quantity=0, currency="USD", is_active=True)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()
    return p


def update_product(product_id: int, patch: dict) -> Product:
    p = db.session.get(Product, product_id)
    if p is None:
        raise NotFoundError("Product not found")
    new_sku = patch.get("sku")
    if new_sku and new_sku != p.sku and db.session.query(Product).filter_by(sku=new_sku).first():
        raise ConflictError("SKU already exists.")
    apply_product_patch(p, patch)
    db.session.commit()
    return p


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def get_or_create_category(name: str) -> Category:
    category = db.session.query(Category).filter_by(name=name).first()
    if category is None:
        category = Category(name=name, slug=_slugify(name), is_active=True)
        db.session.add(category)
        db.session.commit()
    return category


def get_or_create_brand(name: str) -> Brand:
    brand = db.session.query(Brand).filter_by(name=name).first()
    if brand is None:
        brand = Brand(name=name, is_active=True)
        db.session.add(brand)
        db.session.commit()
    return brand


def list_categories() -> list[dict]:
    rows = db.session.query(Category).filter_by(is_active=True).order_by(Category.name.asc()).all()
    return [c.to_dict() for c in rows]


def list_brands() -> list[dict]:
    rows = db.session.query(Brand).filter_by(is_active=True).order_by(Brand.name.asc()).all()
    return [b.to_dict() for b in rows]
