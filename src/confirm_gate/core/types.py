"""Shared record types for confirmation tokens and the account configuration."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any


class TokenStatus(StrEnum):
    """Lifecycle of a confirmation token: pending -> confirmed -> used."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    USED = "used"


@dataclass
class ConfirmationToken:
    """One confirmation request. Timestamps are epoch milliseconds."""

    id: str
    action: str
    details: str
    created_at: int
    expires_at: int
    status: TokenStatus = TokenStatus.PENDING
    code: str | None = None

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at

    def to_record(self) -> dict[str, Any]:
        """Persisted form, keyed externally by ``id``."""
        return {
            "action": self.action,
            "details": self.details,
            "status": self.status.value,
            "code": self.code,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_record(cls, token_id: str, record: dict[str, Any]) -> ConfirmationToken:
        return cls(
            id=token_id,
            action=str(record["action"]),
            details=str(record.get("details") or ""),
            created_at=int(record["created_at"]),
            expires_at=int(record["expires_at"]),
            status=TokenStatus(record.get("status", TokenStatus.PENDING)),
            code=record.get("code"),
        )


def _require_hex(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a hex string")
    bytes.fromhex(value)


@dataclass
class ResetToken:
    expires_at: int


@dataclass
class AccountConfig:
    """Singleton operator account: PIN credentials, recovery e-mail, reset tokens."""

    setup_complete: bool = False
    pin_hash: str | None = None
    pin_salt: str | None = None
    email: str | None = None
    reset_tokens: dict[str, ResetToken] = field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        record = asdict(self)
        record["reset_tokens"] = {rid: asdict(rt) for rid, rt in self.reset_tokens.items()}
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> AccountConfig:
        resets = record.get("reset_tokens") or {}
        if not isinstance(resets, dict):
            raise TypeError(f"reset_tokens must be an object, got {type(resets).__name__}")
        for name in ("pin_hash", "pin_salt"):
            value = record.get(name)
            if value:
                _require_hex(name, value)
        return cls(
            setup_complete=bool(record.get("setup_complete", False)),
            pin_hash=record.get("pin_hash"),
            pin_salt=record.get("pin_salt"),
            email=record.get("email"),
            reset_tokens={
                rid: ResetToken(expires_at=int(entry["expires_at"]))
                for rid, entry in resets.items()
            },
        )
