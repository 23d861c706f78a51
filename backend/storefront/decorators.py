# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import token_service


def get_bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid access token.

    Sets the following Flask g attributes:
    - g.customer_id: The authenticated customer's id
    - g.current_customer: Customer snapshot (id, full_name, username, email)
    - g.access_token: The raw bearer token (for logout / password change)
    - g.token_claims: Decoded JWT claims

    SECURITY: Returns 401 if:
    - No Authorization header
    - Bad signature, expired, or not an access token
    - Token row deleted/revoked, or customer deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_bearer_token()
        if token is None:
            return jsonify({"error": "Authentication required"}), 401

        result = token_service.authenticate_bearer(token)
        if result is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        claims, snapshot = result
        g.customer_id = snapshot["id"]
        g.current_customer = snapshot
        g.access_token = token
        g.token_claims = claims

        return f(*args, **kwargs)

    return decorated_function
