# Overview: Base exceptions raised by services and mapped to HTTP responses by routes.

from __future__ import annotations


class ServiceError(Exception):
    """
    Business rule violation raised by a service.

    Routes answer with status_code and to_dict(). Subclasses pick the default
    status; callers may override it per raise.
    """
    status_code = 400

    def __init__(self, message: str, details: dict | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(ServiceError):
    """Entity missing, inactive, or owned by another customer."""
    status_code = 404


class AuthenticationError(ServiceError):
    status_code = 401


class ForbiddenError(ServiceError):
    """Authenticated, but the customer is not allowed to do this."""
    status_code = 403
