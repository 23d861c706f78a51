# Overview: Service-layer operations for customer accounts; registration, login, profile, password reset and contact verification.

"""
Customer Authentication Service

WHY: Every order and cart line must be attributable to a customer. Uses
bcrypt for password hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Tokens managed separately (see token_service.py)
- Password reset and email/phone verification use 6-digit one-time codes
  held in the key-value store; wrong guesses are counted per code
"""

from __future__ import annotations

import re
import secrets
import time

import bcrypt
from flask import current_app

from ..extensions import db
from ..kv_store import get_kv_store
from ..models import Customer, Role
from ..time_utils import utcnow
from . import token_service
from .errors import AuthenticationError, NotFoundError, ServiceError


CUSTOMER_ROLE_SLUG = "customer"

DEFAULT_ROLES = (
    ("Customer", CUSTOMER_ROLE_SLUG, "Storefront shopper"),
    ("Admin", "admin", "Back-office administrator"),
)

RESET_OTP_PREFIX = "auth:password-reset-otp:"
VERIFY_EMAIL_OTP_PREFIX = "auth:verify-email-otp:"
VERIFY_PHONE_OTP_PREFIX = "auth:verify-phone-otp:"


class PasswordValidationError(ServiceError):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountError(ServiceError):
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Hash with bcrypt (cost 12). Strength is validated first."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    Returns False for malformed hashes instead of raising.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def ensure_default_roles() -> int:
    """Create missing default roles. Returns count created."""
    created = 0
    for name, slug, description in DEFAULT_ROLES:
        if db.session.query(Role).filter_by(slug=slug).first() is None:
            db.session.add(Role(name=name, slug=slug, description=description))
            created += 1
    db.session.commit()
    return created


def _auth_payload(customer: Customer, tokens: token_service.IssuedTokens) -> dict:
    return {"customer": customer.to_dict(), "tokens": tokens.to_dict()}


def register(
    full_name: str,
    username: str,
    email: str,
    password: str,
    phone: str | None = None,
) -> dict:
    """
    Create a customer account and sign it in.

    Raises:
        AccountError: duplicate email/username, or the customer role is missing
        PasswordValidationError: weak password
    """
    email = email.strip().lower()

    existing = db.session.query(Customer).filter(
        db.or_(Customer.email == email, Customer.username == username)
    ).first()
    if existing:
        if existing.email == email:
            raise AccountError("Email already registered")
        raise AccountError("Username already taken")

    role = db.session.query(Role).filter_by(slug=CUSTOMER_ROLE_SLUG).first()
    if role is None:
        raise AccountError("Customer role is not configured")

    customer = Customer(
        full_name=full_name,
        username=username,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role_id=role.id,
        is_active=True,
        last_login_at=utcnow(),
    )
    db.session.add(customer)
    db.session.commit()

    tokens = token_service.issue_tokens(customer, name="register")
    current_app.logger.info("Customer registered", extra={"event": "auth.register", "customer_id": customer.id})
    return _auth_payload(customer, tokens)


def login(email: str, password: str) -> dict:
    """
    Authenticate by email + password. Updates last_login_at.

    Unknown email, wrong password and inactive accounts all raise the same
    AuthenticationError so callers cannot discover which emails exist.
    """
    customer = db.session.query(Customer).filter_by(email=email.strip().lower()).first()

    if customer is None or not customer.is_active or not verify_password(password, customer.password_hash):
        raise AuthenticationError("Invalid credentials")

    customer.last_login_at = utcnow()
    db.session.commit()

    tokens = token_service.issue_tokens(customer, name="login")
    current_app.logger.info("Customer logged in", extra={"event": "auth.login", "customer_id": customer.id})
    return _auth_payload(customer, tokens)


def get_active_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None or not customer.is_active:
        raise NotFoundError("Customer not found")
    return customer


def get_profile(customer_id: int) -> dict:
    return get_active_customer(customer_id).to_dict()


def edit_profile(customer_id: int, data: dict) -> dict:
    """Update full_name / username / phone. Only keys present in data change."""
    customer = get_active_customer(customer_id)

    username = data.get("username")
    if username and username != customer.username:
        taken = db.session.query(Customer).filter(
            Customer.username == username,
            Customer.id != customer.id,
        ).first()
        if taken:
            raise AccountError("Username already taken")
        customer.username = username

    if data.get("full_name"):
        customer.full_name = data["full_name"]
    if "phone" in data:
        phone = data["phone"] or None
        if phone != customer.phone:
            customer.phone = phone
            customer.phone_verified = False

    db.session.commit()
    return customer.to_dict()


def change_password(
    customer_id: int,
    current_password: str,
    new_password: str,
    confirm_password: str,
    current_token: str | None = None,
) -> int:
    """
    Change password and revoke every other token of the customer.

    Returns count of tokens revoked.
    """
    if new_password != confirm_password:
        raise AccountError("New password and confirmation do not match")

    customer = get_active_customer(customer_id)
    if not verify_password(current_password, customer.password_hash):
        raise AccountError("Current password is incorrect")

    customer.password_hash = hash_password(new_password)
    db.session.commit()

    return token_service.revoke_all_customer_tokens(customer.id, keep_token=current_token)


# -----------------------------
# One-time codes
# -----------------------------

def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def deliver_otp(customer: Customer, otp: str, purpose: str, channel: str = "email") -> None:
    """
    Delivery hook for one-time codes. Email/SMS transport is external; the
    event is logged without the code itself.
    """
    current_app.logger.info(
        "One-time code issued",
        extra={"event": "auth.otp_issued", "customer_id": customer.id, "purpose": purpose, "channel": channel},
    )


def _issue_otp(key: str, customer: Customer, purpose: str, channel: str = "email", **bound) -> dict:
    """
    Store a fresh code under key, replacing any previous one, and deliver it.

    bound: values the code is tied to (email, phone); verification fails if
    they no longer match the customer.
    """
    ttl = current_app.config["OTP_TTL_SECONDS"]
    otp = generate_otp()
    entry = {
        "otp": otp,
        "customer_id": customer.id,
        "attempts": 0,
        "expires_at": time.time() + ttl,
        **bound,
    }
    get_kv_store().set(key, entry, ttl)
    deliver_otp(customer, otp, purpose, channel)

    result = {"message": "OTP sent", "expires_in": ttl}
    if current_app.config.get("EXPOSE_OTP_IN_RESPONSE"):
        result["otp"] = otp
    return result


def _check_otp(key: str, customer_id: int, otp: str, **bound) -> None:
    """
    Match otp against the stored code without consuming it.

    A wrong guess is counted on the entry (keeping its original expiry); the
    code is dropped once OTP_MAX_ATTEMPTS wrong guesses have been made.
    """
    store = get_kv_store()
    entry = store.get(key)
    if not entry or entry.get("customer_id") != customer_id:
        raise AccountError("OTP is invalid or has expired")
    if any(entry.get(name) != value for name, value in bound.items()):
        raise AccountError("OTP is invalid or has expired")

    if secrets.compare_digest(str(entry.get("otp")), otp):
        return

    attempts = int(entry.get("attempts", 0)) + 1
    remaining = int(entry.get("expires_at", 0) - time.time())
    if remaining <= 0:
        store.delete(key)
        raise AccountError("OTP is invalid or has expired")
    if attempts >= current_app.config["OTP_MAX_ATTEMPTS"]:
        store.delete(key)
        current_app.logger.warning(
            "One-time code dropped after failed attempts",
            extra={"event": "auth.otp_locked", "customer_id": customer_id, "attempts": attempts},
        )
        raise AccountError("Too many invalid attempts. Request a new code.")

    store.set(key, {**entry, "attempts": attempts}, remaining)
    raise AccountError("OTP is invalid or has expired")


# -----------------------------
# Password reset with OTP
# -----------------------------

def _reset_key(email: str) -> str:
    return f"{RESET_OTP_PREFIX}{email}"


def _customer_by_email(email: str) -> Customer:
    customer = db.session.query(Customer).filter_by(email=email).first()
    if customer is None or not customer.is_active:
        raise NotFoundError("No account found for this email")
    return customer


def request_password_reset_otp(email: str) -> dict:
    """
    Store a 6-digit code for email with TTL OTP_TTL_SECONDS.

    Issuing a new code replaces the previous one.
    """
    email = email.strip().lower()
    customer = _customer_by_email(email)
    return _issue_otp(_reset_key(email), customer, "password_reset")


def reset_password_with_otp(email: str, otp: str, new_password: str, confirm_password: str) -> int:
    """
    Consume the reset code, rewrite the password hash and revoke every token.

    Returns count of tokens revoked.
    """
    if new_password != confirm_password:
        raise AccountError("New password and confirmation do not match")

    email = email.strip().lower()
    customer = _customer_by_email(email)
    _check_otp(_reset_key(email), customer.id, otp)

    customer.password_hash = hash_password(new_password)
    db.session.commit()
    get_kv_store().delete(_reset_key(email))

    return token_service.revoke_all_customer_tokens(customer.id)


# -----------------------------
# Email / phone verification
# -----------------------------

def _email_key(customer_id: int) -> str:
    return f"{VERIFY_EMAIL_OTP_PREFIX}{customer_id}"


def _phone_key(customer_id: int) -> str:
    return f"{VERIFY_PHONE_OTP_PREFIX}{customer_id}"


def send_email_verification(customer_id: int) -> dict:
    customer = get_active_customer(customer_id)
    if customer.email_verified:
        raise AccountError("Email is already verified")
    return _issue_otp(_email_key(customer.id), customer, "email_verification", email=customer.email)


def verify_email(customer_id: int, otp: str) -> dict:
    """Mark the customer's email verified. The code is tied to the email it was sent to."""
    customer = get_active_customer(customer_id)
    _check_otp(_email_key(customer.id), customer.id, otp, email=customer.email)

    customer.email_verified = True
    db.session.commit()
    get_kv_store().delete(_email_key(customer.id))
    current_app.logger.info("Email verified", extra={"event": "auth.email_verified", "customer_id": customer.id})
    return customer.to_dict()


def send_phone_otp(customer_id: int) -> dict:
    customer = get_active_customer(customer_id)
    if not customer.phone:
        raise AccountError("Add a phone number to your profile first")
    if customer.phone_verified:
        raise AccountError("Phone number is already verified")
    return _issue_otp(_phone_key(customer.id), customer, "phone_verification", channel="sms", phone=customer.phone)


def verify_phone_otp(customer_id: int, otp: str) -> dict:
    """
    Mark the customer's phone verified. A code sent before the phone number
    was edited no longer matches.
    """
    customer = get_active_customer(customer_id)
    _check_otp(_phone_key(customer.id), customer.id, otp, phone=customer.phone)

    customer.phone_verified = True
    db.session.commit()
    get_kv_store().delete(_phone_key(customer.id))
    current_app.logger.info("Phone verified", extra={"event": "auth.phone_verified", "customer_id": customer.id})
    return customer.to_dict()
