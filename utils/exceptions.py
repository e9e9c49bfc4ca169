"""
Application error taxonomy.

Every failure that crosses the HTTP boundary is one of these kinds. The Flask
error handlers in blog_api.errors turn them into the uniform error envelope.
"""
from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised at startup when mandatory configuration is missing or unsafe."""


class AppError(Exception):
    status = 500
    error = "INTERNAL_ERROR"
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class InputInvalid(AppError):
    status = 400
    error = "BAD_REQUEST"
    default_message = "Bad request"


class AuthenticationFailed(AppError):
    status = 401
    error = "UNAUTHORIZED"
    default_message = "Authentication required"


class AuthorizationFailed(AppError):
    status = 403
    error = "FORBIDDEN"
    default_message = "Access denied"


class NotFound(AppError):
    status = 404
    error = "NOT_FOUND"
    default_message = "Resource not found"


class Conflict(AppError):
    status = 409
    error = "CONFLICT"
    default_message = "Conflict"


class SessionInvalid(AppError):
    status = 403
    error = "SESSION_INVALID"
    default_message = "Invalid or expired session"


class InternalFault(AppError):
    pass
