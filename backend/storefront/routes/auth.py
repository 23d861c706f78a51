# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Customer authentication API routes

- Registration and login return the customer plus an access/refresh pair
- Refresh rotates the access token; logout deletes the token row
- Password reset and email/phone verification use one-time codes (see auth_service)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..services import auth_service
from ..services import token_service
from ..services.errors import ServiceError
from ..validation import (
    validate_change_password,
    validate_edit_profile,
    validate_forgot_password_otp,
    validate_login,
    validate_refresh,
    validate_register,
    validate_reset_password_otp,
    validate_verify_otp,
)


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/register")
def register_route():
    result = validate_register(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        payload = auth_service.register(**result.data)
        return jsonify(payload), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Registration failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email + password.

    Token must be included in the Authorization header for protected routes.
    """
    result = validate_login(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        payload = auth_service.login(result.data["email"], result.data["password"])
        return jsonify(payload), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Login failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/refresh")
def refresh_route():
    result = validate_refresh(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        tokens = token_service.refresh_access_token(result.data["refresh_token"])
        current_app.logger.info("Access token refreshed", extra={"event": "auth.refresh"})
        return jsonify({"tokens": tokens}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Token refresh failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        token_service.revoke_token(g.access_token, g.customer_id)
        current_app.logger.info("Customer logged out", extra={"event": "auth.logout", "customer_id": g.customer_id})
        return jsonify({"message": "Logged out successfully"}), 200
    except Exception:
        current_app.logger.exception("Logout failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/profile")
@require_auth
def get_profile_route():
    try:
        return jsonify({"customer": auth_service.get_profile(g.customer_id)}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@auth_bp.put("/profile")
@require_auth
def edit_profile_route():
    result = validate_edit_profile(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        customer = auth_service.edit_profile(g.customer_id, result.data)
        return jsonify({"customer": customer}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Profile update failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.put("/change-password")
@require_auth
def change_password_route():
    """Change password. Every other session of the customer is revoked."""
    result = validate_change_password(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        revoked = auth_service.change_password(
            g.customer_id,
            result.data["current_password"],
            result.data["new_password"],
            result.data["confirm_password"],
            current_token=g.access_token,
        )
        return jsonify({"message": "Password changed successfully", "sessions_revoked": revoked}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Password change failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/forgot-password-otp")
def forgot_password_otp_route():
    result = validate_forgot_password_otp(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        return jsonify(auth_service.request_password_reset_otp(result.data["email"])), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Password reset OTP request failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/reset-password-otp")
def reset_password_otp_route():
    result = validate_reset_password_otp(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        auth_service.reset_password_with_otp(
            result.data["email"],
            result.data["otp"],
            result.data["new_password"],
            result.data["confirm_password"],
        )
        return jsonify({"message": "Password reset successfully"}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Password reset failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/send-email-verification")
@require_auth
def send_email_verification_route():
    try:
        return jsonify(auth_service.send_email_verification(g.customer_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Email verification request failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-email")
@require_auth
def verify_email_route():
    result = validate_verify_otp(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        customer = auth_service.verify_email(g.customer_id, result.data["otp"])
        return jsonify({"message": "Email verified successfully", "customer": customer}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Email verification failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/send-phone-otp")
@require_auth
def send_phone_otp_route():
    try:
        return jsonify(auth_service.send_phone_otp(g.customer_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Phone verification request failed")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-phone-otp")
@require_auth
def verify_phone_otp_route():
    result = validate_verify_otp(request.get_json(silent=True))
    if not result.ok:
        return jsonify(result.to_error_dict()), 400

    try:
        customer = auth_service.verify_phone_otp(g.customer_id, result.data["otp"])
        return jsonify({"message": "Phone verified successfully", "customer": customer}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Phone verification failed")
        return jsonify({"error": "Internal server error"}), 500
