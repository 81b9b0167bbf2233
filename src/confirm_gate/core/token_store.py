"""Token Store — owns confirmation-token records and their state transitions."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable

from confirm_gate.core.codes import generate_code, normalize_code
from confirm_gate.core.exceptions import (
    ConflictError,
    ExpiredError,
    InvalidInputError,
    NotFoundError,
)
from confirm_gate.core.structured_logger import get_logger
from confirm_gate.core.types import ConfirmationToken, TokenStatus
from confirm_gate.persistence.repositories import SnapshotRepository

logger = get_logger("TokenStore")

DEFAULT_TTL_SECONDS = 300
DEFAULT_PRUNE_GRACE_SECONDS = 60


def generate_token_id() -> str:
    """128 bits from the OS CSPRNG, hex encoded."""
    return secrets.token_hex(16)


def log_ref(token_id: str) -> str:
    """Short prefix for log lines; the full identifier is a bearer secret."""
    return token_id[:8]


class TokenStore:
    """
    In-memory map of confirmation tokens, flushed to a snapshot repository
    after every mutation.

    Every transition checks ``expires_at`` before ``status``, so an expired
    pending token reports ``ExpiredError`` rather than ``ConflictError``.
    """

    def __init__(
        self,
        repository: SnapshotRepository,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        prune_grace_seconds: int = DEFAULT_PRUNE_GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
        code_factory: Callable[[], str] = generate_code,
    ) -> None:
        self.repository = repository
        self.ttl_seconds = ttl_seconds
        self.prune_grace_seconds = prune_grace_seconds
        self._clock = clock
        self._code_factory = code_factory
        self._tokens: dict[str, ConfirmationToken] = {}
        self.load()

    def __len__(self) -> int:
        return len(self._tokens)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace in-memory state with the repository snapshot."""
        records = self.repository.load_tokens()
        tokens: dict[str, ConfirmationToken] = {}
        for token_id, record in records.items():
            try:
                tokens[token_id] = ConfirmationToken.from_record(token_id, record)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping unreadable token record %s: %s", log_ref(token_id), e)
        self._tokens = tokens
        logger.debug("Token store loaded", tokens=len(tokens))

    def persist(self) -> None:
        self.repository.save_tokens(
            {token_id: token.to_record() for token_id, token in self._tokens.items()}
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, action: str, details: str | None = None) -> ConfirmationToken:
        if not isinstance(action, str) or not action.strip():
            raise InvalidInputError("action required")
        if details is not None and not isinstance(details, str):
            raise InvalidInputError("details must be a string")

        token_id = generate_token_id()
        while token_id in self._tokens:
            token_id = generate_token_id()

        now = self._now_ms()
        token = ConfirmationToken(
            id=token_id,
            action=action,
            details=details or "",
            created_at=now,
            expires_at=now + self.ttl_seconds * 1000,
        )
        self._tokens[token_id] = token
        self.persist()
        logger.info("Confirmation requested", token=log_ref(token_id), action=action)
        return token

    def get(self, token_id: str) -> ConfirmationToken:
        token = self._tokens.get(token_id)
        if token is None:
            raise NotFoundError("not found")
        return token

    def inspect(self, token_id: str) -> ConfirmationToken:
        """Return a token that is still awaiting confirmation."""
        token = self.get(token_id)
        self._check_expiry(token)
        if token.status is not TokenStatus.PENDING:
            raise ConflictError("already used")
        return token

    def transition_to_confirmed(self, token_id: str) -> str:
        token = self.inspect(token_id)
        code = self._code_factory()
        token.status = TokenStatus.CONFIRMED
        token.code = code
        self.persist()
        logger.info("Token confirmed", token=log_ref(token_id))
        return code

    def transition_to_used(
        self, token_id: str | None = None, code: str | None = None
    ) -> tuple[str, str]:
        """Consume a confirmed token and return its ``(action, details)``.

        With ``token_id`` the lookup is exact; ``code`` must then match the
        token's code when supplied. Without it, the first confirmed token
        whose code matches is used. That path is ambiguous when two live
        tokens share a code and is kept only for older agents.
        """
        if token_id:
            token = self.get(token_id)
            self._check_expiry(token)
            if token.status is not TokenStatus.CONFIRMED:
                raise ConflictError(
                    "not confirmed" if token.status is TokenStatus.PENDING else "already used"
                )
            if code is not None and token.code != normalize_code(code):
                raise NotFoundError("invalid or already used code")
        elif code:
            token = self._find_confirmed_by_code(normalize_code(code))
            self._check_expiry(token)
        else:
            raise InvalidInputError("code required")

        token.status = TokenStatus.USED
        self.persist()
        logger.info("Token verified", token=log_ref(token.id), action=token.action)
        return token.action, token.details

    def prune(self) -> int:
        """Drop tokens whose expiry is older than the grace window."""
        cutoff = self._now_ms() - self.prune_grace_seconds * 1000
        stale = [tid for tid, t in self._tokens.items() if t.expires_at < cutoff]
        for token_id in stale:
            del self._tokens[token_id]
        if stale:
            self.persist()
            logger.info("Pruned expired tokens", removed=len(stale), remaining=len(self._tokens))
        return len(stale)

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TokenStatus}
        for token in self._tokens.values():
            counts[token.status.value] += 1
        return counts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _check_expiry(self, token: ConfirmationToken) -> None:
        if token.is_expired(self._now_ms()):
            raise ExpiredError("expired")

    def _find_confirmed_by_code(self, code: str) -> ConfirmationToken:
        matches = [
            t for t in self._tokens.values()
            if t.status is TokenStatus.CONFIRMED and t.code == code
        ]
        if not matches:
            raise NotFoundError("invalid or already used code")
        if len(matches) > 1:
            logger.warning(
                "Code-only verification matched several confirmed tokens; using the first",
                matches=len(matches),
            )
        return matches[0]
