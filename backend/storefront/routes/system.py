# backend/storefront/routes/system.py
"""
System health and version endpoints.

Health covers the database, the key-value store backing the token cache,
and the presence of the customer role registration depends on.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..kv_store import KeyValueStoreError, get_kv_store
from ..models import Customer, CustomerToken, Product, Role
from ..services.auth_service import CUSTOMER_ROLE_SLUG
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "customers": db.session.query(Customer).count(),
            "products": db.session.query(Product).count(),
            "active_tokens": db.session.query(CustomerToken).filter_by(revoked=False).count(),
        }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_token_cache_health() -> dict:
    """
    Round-trip a health-check key. The cache is advisory, so failure only degrades.
    """
    start_time = time.time()
    key = "health:check"
    try:
        store = get_kv_store()
        store.set(key, "ok", 5)
        ok = store.get(key) == "ok"
        store.delete(key)
    except KeyValueStoreError:
        current_app.logger.warning("Token cache health check failed", exc_info=True)
        ok = False

    if ok:
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time)}
    return {"status": "degraded", "latency_ms": _elapsed_ms(start_time), "warning": "Token cache unavailable"}


def check_auth_health() -> dict:
    start_time = time.time()
    try:
        role = db.session.query(Role).filter_by(slug=CUSTOMER_ROLE_SLUG).first()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Auth health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Auth service error"}

    if role is None:
        return {
            "status": "degraded",
            "latency_ms": _elapsed_ms(start_time),
            "warning": "Missing role: customer (run 'flask system init')",
        }
    return {"status": "healthy", "latency_ms": _elapsed_ms(start_time)}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "token_cache": check_token_cache_health(),
        "auth": check_auth_health(),
    }
    statuses = [check["status"] for check in checks.values()]

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    import sys

    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }
