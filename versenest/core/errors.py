"""Application error taxonomy.

Every error the API can surface derives from AppError and carries a stable
error code and HTTP status. Messages on security-sensitive failures are
deliberately generic so responses never reveal whether an account exists.
"""

from datetime import UTC, datetime
from typing import Any


class AppError(Exception):
    """Base application error."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        self.timestamp = datetime.now(UTC)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "code": self.error_code,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    """Malformed or semantically invalid input."""

    status_code = 422
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class AuthenticationError(AppError):
    """No, invalid, expired or revoked credential."""

    status_code = 401
    error_code = "AUTHENTICATION_ERROR"
    default_message = "Authentication failed"


class AuthenticationRequiredError(AuthenticationError):
    error_code = "AUTHENTICATION_REQUIRED"
    default_message = "Authentication required"


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password. Both produce the same message."""

    error_code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password"


class InvalidTokenError(AuthenticationError):
    error_code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class TokenExpiredError(InvalidTokenError):
    error_code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class TokenMalformedError(InvalidTokenError):
    error_code = "TOKEN_MALFORMED"
    default_message = "Token is invalid"


class TokenRevokedError(InvalidTokenError):
    error_code = "TOKEN_REVOKED"
    default_message = "Token has been revoked"


class IdentityNotFoundError(AuthenticationError):
    error_code = "IDENTITY_NOT_FOUND"
    default_message = "User not found"


class AccountInactiveError(AuthenticationError):
    error_code = "ACCOUNT_INACTIVE"
    default_message = "Account is deactivated"


class AccountLockedError(AuthenticationError):
    error_code = "ACCOUNT_LOCKED"
    default_message = "Account is temporarily locked due to too many failed attempts"


class AccountBannedError(AuthenticationError):
    error_code = "ACCOUNT_BANNED"
    default_message = "Account is banned"


class AuthorizationError(AppError):
    """Authenticated but not allowed."""

    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "Insufficient permissions"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(AppError):
    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource conflict"


class RateLimitError(AppError):
    status_code = 429
    error_code = "RATE_LIMITED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: str | None = None, retry_after: int = 60) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["retryAfter"] = self.retry_after
        return body


class DatabaseError(AppError):
    status_code = 500
    error_code = "DATABASE_ERROR"
    default_message = "Database operation failed"


class ServiceUnavailableError(AppError):
    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"
