"""
confirm-gate Security Module
============================

Per-client rate limiting for the guessing surfaces (confirm, verify,
forgot-PIN).
"""

from .rate_limiter import RateLimiter, client_identifier

__all__ = [
    "RateLimiter",
    "client_identifier",
]
