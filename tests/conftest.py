"""
Pytest configuration for confirm-gate tests — shared fixtures built on the
in-memory repository and a controllable clock, plus marker registration.
"""

import sys

import pytest

from confirm_gate.core.confirmation import ConfirmationService, RateLimitPolicy
from confirm_gate.core.exceptions import DeliveryError
from confirm_gate.core.token_store import TokenStore
from confirm_gate.core.vault import CredentialVault
from confirm_gate.notifications.mailer import Mailer
from confirm_gate.persistence import InMemoryRepository
from confirm_gate.security.rate_limiter import RateLimiter

# Low work factor keeps the suite fast; production uses 100k iterations.
TEST_PBKDF2_ITERATIONS = 1_000

BASE_URL = "http://confirm.test"


# =============================================================================
# HELPERS
# =============================================================================


class FakeClock:
    """Callable clock returning epoch seconds that tests advance by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMailer(Mailer):
    """Mailer double that stores messages or fails on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise DeliveryError("failed to send email")
        self.sent.append((to, subject, body))


# =============================================================================
# SHARED FIXTURES
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return InMemoryRepository()


@pytest.fixture
def store(repository, clock):
    return TokenStore(repository, ttl_seconds=300, prune_grace_seconds=60, clock=clock)


@pytest.fixture
def vault(repository, clock):
    return CredentialVault(repository, iterations=TEST_PBKDF2_ITERATIONS, clock=clock)


@pytest.fixture
def limiter(clock):
    return RateLimiter(window_seconds=60, clock=clock)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def failing_mailer():
    return RecordingMailer(fail=True)


@pytest.fixture
def service(store, vault, limiter, mailer):
    return ConfirmationService(
        store,
        vault,
        limiter,
        base_url=BASE_URL,
        mailer=mailer,
        policy=RateLimitPolicy(confirm_max=10, verify_max=10, forgot_pin_max=3),
    )


@pytest.fixture
def configured_service(service):
    """Service whose account is set up with PIN 1234 and a recovery address."""
    service.setup("1234", "ops@example.com")
    return service


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Validate test environment and register custom markers."""
    try:
        import confirm_gate  # noqa: F401
    except ImportError:
        print(
            "\n"
            "=" * 70 + "\n"
            " confirm-gate package not importable.\n"
            " Run: pip install -e '.[dev]'\n"
            "=" * 70,
            file=sys.stderr,
        )
        raise SystemExit(1)

    config.addinivalue_line(
        "markers", "unit: Fast unit tests with no external dependencies"
    )
    config.addinivalue_line(
        "markers", "integration: Tests exercising the HTTP app in-process"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests for full workflows"
    )
