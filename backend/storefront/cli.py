# Overview: Flask CLI command groups for bootstrap, catalog seeding, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables and the default roles (customer, admin).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog add-product --title "Desk Lamp" --sku LAMP-1 --price-cents 2500 --tax-rate-bps 800 --stock 40
#   Create a product (category/brand are created on first use).
#
# Promo codes:
# - python -m flask promos create --code SAVE10 --type PERCENTAGE --value 1000
#   Create a promo code (value is bps for PERCENTAGE, cents for FIXED_AMOUNT).
#
# Tokens:
# - python -m flask tokens cleanup
#   Delete revoked token rows and rows whose refresh token expired, then purge
#   expired token cache and OTP entries from the key-value store.
#
# Cart:
# - python -m flask cart offer --cart-id 12 --price-cents 1800
#   Record a seller's offered unit price on a bulk cart line.
#
# Orders:
# - python -m flask orders set-status --order-id 7 --status accepted
#   Seller-side status change; accepted orders unlock reviews of their products.
#
# Reviews:
# - python -m flask reviews moderate --review-id 3 --status approved
#   Approve or reject a review; only approved reviews are listed publicly.

import click
from flask.cli import with_appcontext

from .extensions import db
from .kv_store import KeyValueStoreError, get_kv_store
from .models import OrderStatus, Role
from .models.reviews import REVIEW_STATUSES
from .services import (
    cart_service,
    order_service,
    products_service,
    promotions_service,
    review_service,
    token_service,
)
from .services.auth_service import ensure_default_roles
from .services.errors import ServiceError
from .time_utils import parse_iso_datetime
from .validation import ConflictError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create missing tables and default roles. Safe to run repeatedly."""
    click.echo("START Initializing storefront...")
    db.create_all()
    created = ensure_default_roles()
    roles = db.session.query(Role).order_by(Role.id.asc()).all()
    click.echo(f"PASS Roles ({created} new): {', '.join(r.slug for r in roles)}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.confirm("This deletes ALL data. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    ensure_default_roles()
    click.echo("PASS Database reset")


@click.group('catalog')
def catalog_group():
    """Catalog seeding commands."""


@catalog_group.command('add-product')
@click.option('--title', required=True)
@click.option('--sku', required=True)
@click.option('--price-cents', type=click.IntRange(min=0), required=True)
@click.option('--tax-rate-bps', type=click.IntRange(min=0), default=0, show_default=True)
@click.option('--stock', type=click.IntRange(min=0), default=0, show_default=True)
@click.option('--category', help='Category name (created if missing)')
@click.option('--brand', help='Brand name (created if missing)')
@click.option('--description')
@with_appcontext
def add_product(title, sku, price_cents, tax_rate_bps, stock, category, brand, description):
    patch = {
        "title": title,
        "sku": sku,
        "price_cents": price_cents,
        "tax_rate_bps": tax_rate_bps,
        "stock_quantity": stock,
        "description": description,
    }
    if category:
        patch["category_id"] = products_service.get_or_create_category(category).id
    if brand:
        patch["brand_id"] = products_service.get_or_create_brand(brand).id

    try:
        product = products_service.create_product(patch)
    except (ConflictError, ValueError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(
        f"PASS Created product {product.sku} (ID: {product.id}, "
        f"total_price_cents={product.total_price_cents}, stock={product.stock_quantity})"
    )


@click.group('promos')
def promos_group():
    """Promo code management."""


@promos_group.command('create')
@click.option('--code', required=True)
@click.option('--type', 'discount_type', type=click.Choice(['PERCENTAGE', 'FIXED_AMOUNT'], case_sensitive=False), required=True)
@click.option('--value', 'discount_value', type=click.IntRange(min=0), required=True,
              help='Basis points for PERCENTAGE (1000 = 10%), cents for FIXED_AMOUNT')
@click.option('--max-discount-cents', type=click.IntRange(min=0))
@click.option('--min-order-cents', type=click.IntRange(min=0))
@click.option('--usage-limit', type=click.IntRange(min=1))
@click.option('--starts-at', help='ISO-8601, UTC if no offset')
@click.option('--expires-at', help='ISO-8601, UTC if no offset')
@click.option('--description')
@with_appcontext
def create_promo(code, discount_type, discount_value, max_discount_cents, min_order_cents,
                 usage_limit, starts_at, expires_at, description):
    try:
        promo = promotions_service.create_promo_code({
            "code": code,
            "discount_type": discount_type,
            "discount_value": discount_value,
            "max_discount_cents": max_discount_cents,
            "min_order_cents": min_order_cents,
            "usage_limit": usage_limit,
            "starts_at": parse_iso_datetime(starts_at),
            "expires_at": parse_iso_datetime(expires_at),
            "description": description,
        })
    except (ConflictError, ValueError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created promo code {promo.code} (ID: {promo.id})")


@click.group('tokens')
def tokens_group():
    """Customer token maintenance."""


@tokens_group.command('cleanup')
@with_appcontext
def cleanup_tokens():
    deleted = token_service.cleanup_expired_tokens()
    click.echo(f"Deleted {deleted} expired or revoked tokens.")
    try:
        purged = get_kv_store().purge_expired()
    except KeyValueStoreError as e:
        click.echo(f"FAIL Token cache purge: {e}")
        return
    click.echo(f"Purged {purged} expired cache entries.")


@click.group('cart')
def cart_group():
    """Seller-side cart operations."""


@cart_group.command('offer')
@click.option('--cart-id', type=int, required=True)
@click.option('--price-cents', type=click.IntRange(min=0), required=True, help='Offered unit price in cents')
@with_appcontext
def record_offer(cart_id, price_cents):
    try:
        line = cart_service.record_bulk_offer(cart_id, price_cents)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Offer recorded on cart line {line.id}: {line.offered_price_per_unit_cents} cents/unit")


@click.group('orders')
def orders_group():
    """Seller-side order operations."""


@orders_group.command('set-status')
@click.option('--order-id', type=int, required=True)
@click.option('--status', type=click.Choice(list(OrderStatus.ALL)), required=True)
@with_appcontext
def set_order_status(order_id, status):
    try:
        order = order_service.update_order_status(order_id, status)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Order {order.order_number} is now {order.status}")


@click.group('reviews')
def reviews_group():
    """Review moderation."""


@reviews_group.command('moderate')
@click.option('--review-id', type=int, required=True)
@click.option('--status', type=click.Choice(list(REVIEW_STATUSES)), required=True)
@with_appcontext
def moderate_review(review_id, status):
    try:
        review = review_service.moderate_review(review_id, status)
    except ServiceError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Review {review.id} is now {review.status}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(promos_group)
    app.cli.add_command(tokens_group)
    app.cli.add_command(cart_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(reviews_group)
