"""
Custom Exceptions for confirm-gate
==================================

Structured error handling lets the HTTP layer map failures to status codes
based on type rather than parsing strings.

Error Codes:
- 1xxx: Client errors (input, lookup, state)
- 2xxx: Security errors (PIN, rate limiting)
- 3xxx: Resource errors (setup missing, mail unavailable)
- 5xxx: System errors (delivery, configuration, internal)
"""

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Structured error codes for user-friendly messages"""

    # 1xxx: Client Errors
    INVALID_INPUT = 1001
    NOT_FOUND = 1002
    EXPIRED = 1003
    CONFLICT = 1004

    # 2xxx: Security Errors
    FORBIDDEN = 2001
    RATE_LIMIT_EXCEEDED = 2002

    # 3xxx: Resource Errors
    UNAVAILABLE = 3001

    # 5xxx: System Errors
    INTERNAL_ERROR = 5001
    DELIVERY_FAILED = 5002
    CONFIGURATION_ERROR = 5003


_HTTP_STATUS = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.EXPIRED: 410,
    ErrorCode.CONFLICT: 409,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.UNAVAILABLE: 503,
}


class ConfirmGateError(Exception):
    """Base exception for all confirm-gate errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self.error_code, 500)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for structured logging"""
        return {
            'error_type': self.__class__.__name__,
            'error_code': int(self.error_code),
            'message': self.message,
            'details': self.details
        }

    def to_response(self) -> dict[str, Any]:
        """Body returned to HTTP callers."""
        body: dict[str, Any] = {
            'error': self.message,
            'code': self.error_code.name.lower(),
        }
        body.update(self.details)
        return body


class InvalidInputError(ConfirmGateError):
    """Raised when a required field is missing or malformed"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class NotFoundError(ConfirmGateError):
    """Raised when a token, code or reset token is unknown"""

    def __init__(self, message: str = "not found", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.NOT_FOUND, details)


class ExpiredError(ConfirmGateError):
    """Raised when a token or reset token has outlived its TTL"""

    def __init__(self, message: str = "expired", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.EXPIRED, details)


class ConflictError(ConfirmGateError):
    """Raised when a transition is attempted from the wrong state"""

    def __init__(self, message: str = "already used", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFLICT, details)


class ForbiddenError(ConfirmGateError):
    """Raised when the PIN is missing or wrong"""

    def __init__(self, message: str = "invalid PIN", details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.FORBIDDEN, details)


class RateLimitError(ConfirmGateError):
    """Raised when rate limit is exceeded"""

    def __init__(self, message: str, retry_after: int, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.RATE_LIMIT_EXCEEDED, details)
        self.retry_after = retry_after


class UnavailableError(ConfirmGateError):
    """Raised when setup or the mail capability is missing"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.UNAVAILABLE, details)


class DeliveryError(ConfirmGateError):
    """Raised when an outbound e-mail could not be sent"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.DELIVERY_FAILED, details)


class ConfigurationError(ConfirmGateError):
    """Raised when settings are inconsistent at startup"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)
