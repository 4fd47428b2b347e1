"""
Typed errors raised by the RBAC core and the services built on it.

Each error carries the HTTP status and alias it maps to, so the exception
handler in main.py can translate it without inspecting messages.
"""

from typing import Any, Optional


class AppError(Exception):
    status_code: int = 500
    alias: str = "INTERNAL_SERVER_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Any = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.alias}
        if self.details is not None:
            body["details"] = self.details
        return body


class Unauthenticated(AppError):
    status_code = 401
    alias = "UNAUTHORIZED"
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    alias = "FORBIDDEN"
    default_message = "Forbidden"


class CannotModifySystemAccount(AppError):
    status_code = 403
    alias = "CANNOT_MODIFY_SYSTEM_ACCOUNT"
    default_message = "Cannot modify system accounts"


class CannotDeleteSystemAccount(AppError):
    status_code = 403
    alias = "CANNOT_DELETE_SYSTEM_ACCOUNT"
    default_message = "Cannot delete system accounts"


class ValidationError(AppError):
    status_code = 400
    alias = "VALIDATION_ERROR"
    default_message = "Validation error"


class InvalidPermissionFormat(ValidationError):
    alias = "INVALID_PERMISSION_FORMAT"
    default_message = "Invalid permission format"


class NotFoundError(AppError):
    status_code = 404
    alias = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    alias = "CONFLICT"
    default_message = "Resource already exists"


class StoreError(AppError):
    """The grant store could not answer. Never a permission decision."""

    status_code = 503
    alias = "STORE_UNAVAILABLE"
    default_message = "Grant store unavailable"


class AuthUnavailable(AppError):
    """Supabase Auth could not answer. Never an authentication decision."""

    status_code = 503
    alias = "AUTH_UNAVAILABLE"
    default_message = "Authentication service unavailable"
