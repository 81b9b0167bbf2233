"""Credential Vault — PIN hashing, one-shot setup and PIN-reset tokens."""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import time
from collections.abc import Callable

from confirm_gate.core.exceptions import (
    ConflictError,
    ExpiredError,
    InvalidInputError,
    NotFoundError,
)
from confirm_gate.core.structured_logger import get_logger
from confirm_gate.core.types import AccountConfig, ResetToken
from confirm_gate.persistence.repositories import SnapshotRepository

logger = get_logger("CredentialVault")

# PBKDF2-HMAC-SHA512 work factor. Stored hashes do not record it, so changing
# it invalidates existing PINs.
PBKDF2_ITERATIONS = 100_000
PBKDF2_DIGEST = "sha512"
SALT_BYTES = 16
KEY_BYTES = 64

MIN_PIN_LENGTH = 4
RESET_TTL_SECONDS = 15 * 60

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def hash_pin(pin: str, salt: str | None = None, iterations: int = PBKDF2_ITERATIONS) -> tuple[str, str]:
    """Derive ``(hash_hex, salt_hex)`` for a PIN. A new salt is drawn when none is given."""
    salt = salt or secrets.token_hex(SALT_BYTES)
    derived = hashlib.pbkdf2_hmac(
        PBKDF2_DIGEST, pin.encode("utf-8"), bytes.fromhex(salt), iterations, dklen=KEY_BYTES
    )
    return derived.hex(), salt


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


class CredentialVault:
    """
    Holds the singleton ``AccountConfig`` and persists it after every change.

    Without a configured PIN the gate is open: ``verify`` accepts anything.
    Setup is one-shot; later PIN changes go through reset tokens.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        min_pin_length: int = MIN_PIN_LENGTH,
        reset_ttl_seconds: int = RESET_TTL_SECONDS,
        iterations: int = PBKDF2_ITERATIONS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repository = repository
        self.min_pin_length = min_pin_length
        self.reset_ttl_seconds = reset_ttl_seconds
        self.iterations = iterations
        self._clock = clock
        self.config = AccountConfig()
        self.load()

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def load(self) -> None:
        record = self.repository.load_config()
        try:
            self.config = AccountConfig.from_record(record)
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Unreadable account config, starting unconfigured: %s", e)
            self.config = AccountConfig()

    def persist(self) -> None:
        self.repository.save_config(self.config.to_record())

    # ------------------------------------------------------------------
    # PIN
    # ------------------------------------------------------------------

    @property
    def setup_complete(self) -> bool:
        return self.config.setup_complete

    @property
    def pin_required(self) -> bool:
        return bool(self.config.pin_hash and self.config.pin_salt)

    @property
    def email(self) -> str | None:
        return self.config.email

    def verify(self, pin: str | None) -> bool:
        if not self.pin_required:
            return True
        if not pin:
            return False
        candidate, _ = hash_pin(pin, self.config.pin_salt, self.iterations)
        return hmac.compare_digest(candidate, self.config.pin_hash)

    def _validate_pin(self, pin: str | None) -> str:
        if not isinstance(pin, str) or len(pin) < self.min_pin_length:
            raise InvalidInputError(f"PIN must be at least {self.min_pin_length} characters")
        return pin

    def _set_pin(self, pin: str) -> None:
        self.config.pin_hash, self.config.pin_salt = hash_pin(pin, iterations=self.iterations)

    def setup(self, pin: str | None, email: str | None = None) -> None:
        if self.config.setup_complete:
            raise ConflictError("setup already complete")
        pin = self._validate_pin(pin)
        if email:
            email = email.strip()
            if not is_valid_email(email):
                raise InvalidInputError("invalid email address")

        self._set_pin(pin)
        self.config.email = email or None
        self.config.setup_complete = True
        self.persist()
        logger.info("Account setup completed", recovery_email=bool(email))

    def seed_pin(self, pin: str) -> bool:
        """Apply an operator-supplied PIN when the account is not set up yet."""
        if self.config.setup_complete:
            logger.info("Startup PIN ignored, account already set up")
            return False
        self._set_pin(self._validate_pin(pin))
        self.config.setup_complete = True
        self.persist()
        logger.info("Account PIN seeded from startup configuration")
        return True

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def ensure_recoverable(self) -> None:
        if not self.config.setup_complete:
            raise NotFoundError("setup not complete")
        if not self.config.email:
            raise NotFoundError("no recovery email configured")

    def issue_reset(self) -> str:
        self.ensure_recoverable()
        reset_id = secrets.token_hex(16)
        self.config.reset_tokens[reset_id] = ResetToken(
            expires_at=self._now_ms() + self.reset_ttl_seconds * 1000
        )
        self.persist()
        logger.info("Reset token issued", ttl_seconds=self.reset_ttl_seconds)
        return reset_id

    def check_reset(self, reset_id: str) -> ResetToken:
        entry = self.config.reset_tokens.get(reset_id)
        if entry is None:
            raise NotFoundError("invalid reset token")
        if self._now_ms() > entry.expires_at:
            raise ExpiredError("reset token expired")
        return entry

    def consume_reset(self, reset_id: str, new_pin: str | None) -> None:
        self.check_reset(reset_id)
        pin = self._validate_pin(new_pin)
        self._set_pin(pin)
        del self.config.reset_tokens[reset_id]
        self.persist()
        logger.info("PIN reset completed")

    def revoke_reset(self, reset_id: str) -> None:
        if self.config.reset_tokens.pop(reset_id, None) is not None:
            self.persist()

    def prune_resets(self) -> int:
        now = self._now_ms()
        stale = [rid for rid, entry in self.config.reset_tokens.items() if entry.expires_at < now]
        for reset_id in stale:
            del self.config.reset_tokens[reset_id]
        if stale:
            self.persist()
        return len(stale)
