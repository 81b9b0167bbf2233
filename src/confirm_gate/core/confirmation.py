"""
Confirmation orchestration
==========================

Ties the token store, credential vault, rate limiter and mailer together
into the request -> confirm -> verify exchange and the PIN recovery flow.

All methods except ``forgot_pin`` are synchronous: callers on the event loop
get run-to-completion semantics for every mutation without locking.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from confirm_gate.core.exceptions import (
    ConfirmGateError,
    DeliveryError,
    ForbiddenError,
    InvalidInputError,
    RateLimitError,
    UnavailableError,
)
from confirm_gate.core.structured_logger import get_logger
from confirm_gate.core.token_store import TokenStore, log_ref
from confirm_gate.core.vault import CredentialVault
from confirm_gate.notifications.mailer import Mailer
from confirm_gate.observability import metrics
from confirm_gate.security.rate_limiter import RateLimiter

logger = get_logger("ConfirmationService")

SCOPE_CONFIRM = "confirm"
SCOPE_VERIFY = "verify"
SCOPE_FORGOT_PIN = "forgot-pin"


@dataclass
class RateLimitPolicy:
    """Attempts allowed per client per window on each guessing surface."""

    confirm_max: int = 10
    verify_max: int = 10
    forgot_pin_max: int = 3


class ConfirmationService:
    def __init__(
        self,
        store: TokenStore,
        vault: CredentialVault,
        limiter: RateLimiter,
        base_url: str,
        mailer: Mailer | None = None,
        policy: RateLimitPolicy | None = None,
    ) -> None:
        self.store = store
        self.vault = vault
        self.limiter = limiter
        self.base_url = base_url.rstrip("/")
        self.mailer = mailer
        self.policy = policy or RateLimitPolicy()

    def confirm_url(self, token_id: str) -> str:
        return f"{self.base_url}/confirm/{token_id}"

    def reset_url(self, reset_id: str) -> str:
        return f"{self.base_url}/reset/{reset_id}"

    @property
    def setup_url(self) -> str:
        return f"{self.base_url}/setup"

    def _gate(self, scope: str, client_id: str, max_attempts: int) -> None:
        try:
            self.limiter.check(scope, client_id, max_attempts)
        except RateLimitError:
            metrics.RATE_LIMITED.labels(scope=scope).inc()
            raise

    # ------------------------------------------------------------------
    # Agent / human exchange
    # ------------------------------------------------------------------

    def request(self, action: str, details: str | None = None) -> dict[str, Any]:
        """Create a pending confirmation. No authentication and no rate limit."""
        token = self.store.create(action, details)
        metrics.REQUESTS_CREATED.inc()
        return {
            "token": token.id,
            "url": self.confirm_url(token.id),
            "expires_in": self.store.ttl_seconds,
        }

    def token_info(self, token_id: str) -> dict[str, Any]:
        """What the confirmation page shows before the human approves."""
        if not self.vault.setup_complete:
            raise UnavailableError("setup required", details={"setup_url": self.setup_url})
        token = self.store.inspect(token_id)
        return {
            "action": token.action,
            "details": token.details,
            "expires_at": token.expires_at,
            "pin_required": self.vault.pin_required,
        }

    def confirm(self, token_id: str, pin: str | None = None, client_id: str = "unknown") -> str:
        """Approve a pending token and hand the human a code to relay."""
        self._gate(SCOPE_CONFIRM, client_id, self.policy.confirm_max)
        try:
            self.store.inspect(token_id)
            if not self.vault.verify(pin):
                logger.warning("Confirmation rejected: bad PIN", token=log_ref(token_id), client=client_id)
                raise ForbiddenError("invalid PIN")
            code = self.store.transition_to_confirmed(token_id)
        except ConfirmGateError as e:
            metrics.CONFIRMATIONS.labels(outcome=e.error_code.name.lower()).inc()
            raise
        metrics.CONFIRMATIONS.labels(outcome="ok").inc()
        return code

    def verify(
        self, code: str | None, token_id: str | None = None, client_id: str = "unknown"
    ) -> dict[str, Any]:
        """Exchange a relayed code for the approved action.

        Supplying ``token_id`` makes the lookup exact. Code-only lookups are
        kept for older agents and are ambiguous when two live codes collide.
        """
        self._gate(SCOPE_VERIFY, client_id, self.policy.verify_max)
        path = "token" if token_id else "code"
        if not isinstance(code, str) or not code.strip():
            metrics.VERIFICATIONS.labels(outcome="invalid_input", path=path).inc()
            raise InvalidInputError("code required")
        try:
            action, details = self.store.transition_to_used(token_id=token_id, code=code)
        except ConfirmGateError as e:
            metrics.VERIFICATIONS.labels(outcome=e.error_code.name.lower(), path=path).inc()
            raise
        metrics.VERIFICATIONS.labels(outcome="ok", path=path).inc()
        return {"valid": True, "action": action, "details": details}

    # ------------------------------------------------------------------
    # Account setup and recovery
    # ------------------------------------------------------------------

    def setup(self, pin: str | None, email: str | None = None) -> None:
        self.vault.setup(pin, email)

    async def forgot_pin(self, client_id: str = "unknown") -> None:
        """Issue a reset token and e-mail its link to the recovery address."""
        self._gate(SCOPE_FORGOT_PIN, client_id, self.policy.forgot_pin_max)
        self.vault.ensure_recoverable()
        if self.mailer is None:
            raise UnavailableError("email delivery not configured")
        reset_id = self.vault.issue_reset()

        minutes = self.vault.reset_ttl_seconds // 60
        body = (
            "A PIN reset was requested for your confirm-gate instance.\n\n"
            f"Open this link within {minutes} minutes to choose a new PIN:\n"
            f"{self.reset_url(reset_id)}\n\n"
            "If you did not request this, ignore this message."
        )
        try:
            await self.mailer.send(self.vault.email, "confirm-gate PIN reset", body)
        except DeliveryError:
            self.vault.revoke_reset(reset_id)
            metrics.RESET_EMAILS.labels(outcome="failed").inc()
            raise
        metrics.RESET_EMAILS.labels(outcome="sent").inc()

    def check_reset(self, reset_id: str) -> None:
        self.vault.check_reset(reset_id)

    def reset_pin(self, reset_id: str, pin: str | None) -> None:
        self.vault.consume_reset(reset_id, pin)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def prune(self) -> int:
        removed = self.store.prune()
        self.vault.prune_resets()
        metrics.PRUNED_TOKENS.inc(removed)
        metrics.set_token_counts(self.store.count_by_status())
        return removed
