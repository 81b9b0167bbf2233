"""Prometheus metrics for the confirmation flow."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

REQUESTS_CREATED = Counter(
    "confirm_gate_requests_created_total", "Confirmation requests created by agents"
)
CONFIRMATIONS = Counter(
    "confirm_gate_confirmations_total", "Confirm attempts by outcome", ["outcome"]
)
VERIFICATIONS = Counter(
    "confirm_gate_verifications_total", "Verify attempts by outcome and lookup path", ["outcome", "path"]
)
RATE_LIMITED = Counter(
    "confirm_gate_rate_limited_total", "Attempts rejected by the rate limiter", ["scope"]
)
RESET_EMAILS = Counter(
    "confirm_gate_reset_emails_total", "PIN reset e-mails by outcome", ["outcome"]
)
TOKENS_STORED = Gauge(
    "confirm_gate_tokens_stored", "Tokens currently held in the store", ["status"]
)
PRUNED_TOKENS = Counter(
    "confirm_gate_pruned_tokens_total", "Tokens removed by the periodic prune"
)


def set_token_counts(counts: dict[str, int]) -> None:
    for status, count in counts.items():
        TOKENS_STORED.labels(status=status).set(count)
