# Overview: Service-layer operations for customer tokens; JWT issuance, refresh, revocation and cached validation.

"""
Customer Token Service

WHY: Every authenticated request validates its bearer token. Hitting the
database for each one is wasteful, so validation is cache-then-store: the
key-value store holds a short-lived entry keyed by the literal token, and the
customer_tokens table is the source of truth.

SECURITY FEATURES:
- HS256 JWTs (python-jose) carrying sub, email, type, jti, iat, exp
- Tokens hashed with SHA-256 before storage; raw tokens only live in the
  client and in cache keys
- Access and refresh tokens have independent expiry columns
- Logout deletes the row and evicts the cache entry

FAILURE POLICY:
- Cache errors fail open: logged, then the database is consulted
- Database errors fail closed: the request is unauthenticated
"""

from __future__ import annotations

import calendar
import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from jose import JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..kv_store import KeyValueStoreError, get_kv_store
from ..models import Customer, CustomerToken
from ..time_utils import as_naive_utc, parse_iso_datetime, to_utc_z, utcnow
from .errors import AuthenticationError


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

CACHE_PREFIX = "auth:token:"
# Maps a token row id to its current raw access token so the cache entry can
# be evicted when only the row is known (refresh rotation, revoke-all).
ROW_INDEX_PREFIX = "auth:token-row:"


@dataclass
class IssuedTokens:
    """Plaintext tokens handed to the client once, plus the stored row."""
    access_token: str
    refresh_token: str
    expires_at: datetime
    record: CustomerToken

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": current_app.config["JWT_ACCESS_EXPIRES_MINUTES"] * 60,
            "expires_at": to_utc_z(self.expires_at),
        }


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: JWTs are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _epoch(dt: datetime) -> int:
    return calendar.timegm(dt.utctimetuple())


def _access_lifetime() -> timedelta:
    return timedelta(minutes=current_app.config["JWT_ACCESS_EXPIRES_MINUTES"])


def _refresh_lifetime() -> timedelta:
    return timedelta(days=current_app.config["JWT_REFRESH_EXPIRES_DAYS"])


def encode_token(customer: Customer, token_type: str, lifetime: timedelta) -> tuple[str, datetime]:
    """Sign a JWT for customer. Returns (token, expires_at)."""
    now = utcnow()
    expires_at = now + lifetime
    claims = {
        "sub": str(customer.id),
        "email": customer.email,
        "type": token_type,
        # jti keeps two tokens minted in the same second distinct
        "jti": secrets.token_hex(16),
        "iat": _epoch(now),
        "exp": _epoch(expires_at),
    }
    token = jwt.encode(
        claims,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config["JWT_ALGORITHM"],
    )
    return token, expires_at


def decode_token(token: str, expected_type: str) -> dict:
    """
    Verify signature, expiry and token type.

    Raises AuthenticationError on any failure.
    """
    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
        )
    except JWTError:
        raise AuthenticationError("Invalid or expired token")

    if claims.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")
    try:
        int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token subject")
    return claims


# -----------------------------
# Cache helpers (fail open)
# -----------------------------

def _cache_key(token: str) -> str:
    return f"{CACHE_PREFIX}{token}"


def _row_index_key(token_id: int) -> str:
    return f"{ROW_INDEX_PREFIX}{token_id}"


def _log_cache_unavailable(operation: str, error: Exception) -> None:
    current_app.logger.warning(
        "Token cache %s failed; falling back to database",
        operation,
        extra={"event": "token_cache.unavailable", "operation": operation, "reason": str(error)},
    )


def _cache_get(key: str):
    try:
        return get_kv_store().get(key)
    except KeyValueStoreError as e:
        _log_cache_unavailable("get", e)
        return None


def _cache_set(key: str, value, ttl_seconds: int) -> None:
    if ttl_seconds <= 0:
        return
    try:
        get_kv_store().set(key, value, ttl_seconds)
    except KeyValueStoreError as e:
        _log_cache_unavailable("set", e)


def _cache_delete(key: str) -> None:
    try:
        get_kv_store().delete(key)
    except KeyValueStoreError as e:
        _log_cache_unavailable("delete", e)


def _cache_token(token: str, record: CustomerToken, snapshot: dict, now: datetime | None = None) -> None:
    now = now or utcnow()
    expires_at = as_naive_utc(record.expires_at)
    ttl = int((expires_at - now).total_seconds())
    entry = {
        "customer_id": record.customer_id,
        "token_id": record.id,
        "customer": snapshot,
        "revoked": bool(record.revoked),
        "expires_at": to_utc_z(expires_at),
    }
    _cache_set(_cache_key(token), entry, ttl)
    _cache_set(_row_index_key(record.id), token, ttl)


def _evict_token(token: str | None, token_id: int | None = None) -> None:
    if token_id is not None and token is None:
        token = _cache_get(_row_index_key(token_id))
    if token:
        _cache_delete(_cache_key(token))
    if token_id is not None:
        _cache_delete(_row_index_key(token_id))


# -----------------------------
# Issuance
# -----------------------------

def issue_tokens(customer: Customer, name: str = "login") -> IssuedTokens:
    """
    Mint an access/refresh pair, persist the hashed row and warm the cache.
    """
    access_token, access_expires_at = encode_token(customer, ACCESS_TOKEN_TYPE, _access_lifetime())
    refresh_token, refresh_expires_at = encode_token(customer, REFRESH_TOKEN_TYPE, _refresh_lifetime())

    record = CustomerToken(
        customer_id=customer.id,
        name=name,
        token_hash=hash_token(access_token),
        refresh_token_hash=hash_token(refresh_token),
        expires_at=access_expires_at,
        refresh_expires_at=refresh_expires_at,
        revoked=False,
    )
    db.session.add(record)
    db.session.commit()

    _cache_token(access_token, record, customer.to_snapshot())

    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=access_expires_at,
        record=record,
    )


# -----------------------------
# Validation
# -----------------------------

def _find_token_record(token_hash: str, customer_id: int) -> CustomerToken | None:
    return db.session.query(CustomerToken).filter_by(
        token_hash=token_hash,
        customer_id=customer_id,
        revoked=False,
    ).first()


def _cached_snapshot(entry, customer_id: int, now: datetime) -> dict | None:
    if not isinstance(entry, dict):
        return None
    if entry.get("customer_id") != customer_id or entry.get("revoked"):
        return None
    try:
        expires_at = parse_iso_datetime(entry.get("expires_at"))
    except (TypeError, ValueError):
        return None
    if expires_at is None or expires_at <= now:
        return None
    snapshot = entry.get("customer")
    return dict(snapshot) if isinstance(snapshot, dict) else None


def validate_token(token: str, customer_id: int) -> dict | None:
    """
    Resolve a bearer token to a customer snapshot, or None.

    1. Cache entry keyed by the literal token: served without touching the
       database when it belongs to customer_id, is not revoked and has not
       expired. Anything else found there is evicted.
    2. Database row by (token_hash, customer_id, revoked=False), unexpired,
       with an active customer. The cache is re-populated with
       TTL = remaining lifetime.
    """
    now = utcnow()
    key = _cache_key(token)

    entry = _cache_get(key)
    if entry is not None:
        snapshot = _cached_snapshot(entry, customer_id, now)
        if snapshot is not None:
            return snapshot
        _cache_delete(key)

    try:
        record = _find_token_record(hash_token(token), customer_id)
        if record is None or as_naive_utc(record.expires_at) <= now:
            return None

        customer = db.session.get(Customer, customer_id)
        if customer is None or not customer.is_active:
            return None

        record.last_used_at = now
        db.session.commit()
        snapshot = customer.to_snapshot()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Token store lookup failed", extra={"event": "token_store.unavailable"})
        return None

    _cache_token(token, record, snapshot, now)
    return dict(snapshot)


def authenticate_bearer(token: str) -> tuple[dict, dict] | None:
    """
    Decode an access JWT and validate it against cache/store.

    Returns (claims, customer_snapshot) or None.
    """
    try:
        claims = decode_token(token, ACCESS_TOKEN_TYPE)
    except AuthenticationError:
        return None

    snapshot = validate_token(token, int(claims["sub"]))
    if snapshot is None:
        return None
    return claims, snapshot


# -----------------------------
# Refresh / revocation
# -----------------------------

def refresh_access_token(refresh_token: str) -> dict:
    """
    Rotate the access token on the row owning refresh_token.

    The refresh token itself is unchanged. The old access token's cache entry
    is evicted; it still fails store validation because its hash is gone.

    Raises AuthenticationError when the refresh token is invalid, unknown,
    revoked or past refresh_expires_at.
    """
    claims = decode_token(refresh_token, REFRESH_TOKEN_TYPE)
    customer_id = int(claims["sub"])
    now = utcnow()

    record = db.session.query(CustomerToken).filter_by(
        refresh_token_hash=hash_token(refresh_token),
        customer_id=customer_id,
        revoked=False,
    ).first()
    if record is None:
        raise AuthenticationError("Invalid refresh token")
    if as_naive_utc(record.refresh_expires_at) <= now:
        raise AuthenticationError("Refresh token expired")

    customer = db.session.get(Customer, customer_id)
    if customer is None or not customer.is_active:
        raise AuthenticationError("Invalid refresh token")

    _evict_token(None, record.id)

    access_token, expires_at = encode_token(customer, ACCESS_TOKEN_TYPE, _access_lifetime())
    record.token_hash = hash_token(access_token)
    record.expires_at = expires_at
    record.last_used_at = now
    db.session.commit()

    _cache_token(access_token, record, customer.to_snapshot(), now)

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "token_type": "Bearer",
        "expires_in": current_app.config["JWT_ACCESS_EXPIRES_MINUTES"] * 60,
        "expires_at": to_utc_z(expires_at),
    }


def revoke_token(token: str, customer_id: int) -> bool:
    """
    Logout: delete the token row and evict the cache entry.

    Returns True if a row was deleted.
    """
    record = db.session.query(CustomerToken).filter_by(
        token_hash=hash_token(token),
        customer_id=customer_id,
    ).first()

    token_id = record.id if record else None
    if record is not None:
        db.session.delete(record)
        db.session.commit()

    _evict_token(token, token_id)
    return record is not None


def revoke_all_customer_tokens(customer_id: int, keep_token: str | None = None) -> int:
    """
    Revoke every live token of a customer, optionally sparing the one in use.

    WHY: Password changes and resets force re-authentication on all devices.
    """
    query = db.session.query(CustomerToken).filter_by(customer_id=customer_id, revoked=False)
    if keep_token is not None:
        query = query.filter(CustomerToken.token_hash != hash_token(keep_token))

    records = query.all()
    for record in records:
        record.revoked = True
    db.session.commit()

    for record in records:
        _evict_token(None, record.id)
    return len(records)


def cleanup_expired_tokens() -> int:
    """
    Delete revoked rows and rows whose refresh token has expired.

    Returns count of rows deleted. Run periodically (flask tokens cleanup).
    """
    deleted = db.session.query(CustomerToken).filter(
        db.or_(
            CustomerToken.refresh_expires_at < utcnow(),
            CustomerToken.revoked.is_(True),
        )
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
