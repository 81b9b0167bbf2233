"""Core confirm-gate module — canonical public API."""

from confirm_gate.core.codes import generate_code, normalize_code
from confirm_gate.core.confirmation import ConfirmationService, RateLimitPolicy
from confirm_gate.core.exceptions import (
    ConfigurationError,
    ConfirmGateError,
    ConflictError,
    DeliveryError,
    ErrorCode,
    ExpiredError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    RateLimitError,
    UnavailableError,
)
from confirm_gate.core.token_store import TokenStore
from confirm_gate.core.types import AccountConfig, ConfirmationToken, ResetToken, TokenStatus
from confirm_gate.core.vault import CredentialVault

__all__ = [
    "AccountConfig",
    "ConfigurationError",
    "ConfirmGateError",
    "ConfirmationService",
    "ConfirmationToken",
    "ConflictError",
    "CredentialVault",
    "DeliveryError",
    "ErrorCode",
    "ExpiredError",
    "ForbiddenError",
    "InvalidInputError",
    "NotFoundError",
    "RateLimitError",
    "RateLimitPolicy",
    "ResetToken",
    "TokenStatus",
    "TokenStore",
    "UnavailableError",
    "generate_code",
    "normalize_code",
]
