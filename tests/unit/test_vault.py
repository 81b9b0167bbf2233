"""Tests for confirm_gate.core.vault — PIN hashing, setup and reset tokens."""

import pytest

from confirm_gate.core.exceptions import (
    ConflictError,
    ExpiredError,
    InvalidInputError,
    NotFoundError,
)
from confirm_gate.core.vault import CredentialVault, hash_pin, is_valid_email
from confirm_gate.persistence import InMemoryRepository

ITERATIONS = 1_000


class TestHashPin:
    def test_same_salt_same_hash(self):
        digest, salt = hash_pin("1234", iterations=ITERATIONS)
        assert hash_pin("1234", salt, iterations=ITERATIONS) == (digest, salt)

    def test_fresh_salt_each_time(self):
        _, salt_a = hash_pin("1234", iterations=ITERATIONS)
        _, salt_b = hash_pin("1234", iterations=ITERATIONS)
        assert salt_a != salt_b

    def test_hex_lengths(self):
        digest, salt = hash_pin("1234", iterations=ITERATIONS)
        assert len(digest) == 128
        assert len(salt) == 32


class TestEmailValidation:
    @pytest.mark.parametrize("email", ["ops@example.com", "a.b+c@sub.example.org"])
    def test_valid(self, email):
        assert is_valid_email(email)

    @pytest.mark.parametrize("email", ["ops", "ops@", "@example.com", "ops@example", "o ps@example.com"])
    def test_invalid(self, email):
        assert not is_valid_email(email)


class TestOpenGate:
    def test_no_pin_configured_accepts_anything(self, vault):
        assert not vault.pin_required
        assert vault.verify(None)
        assert vault.verify("whatever")


class TestSetup:
    def test_setup_requires_pin_afterwards(self, vault):
        vault.setup("1234", "ops@example.com")
        assert vault.setup_complete
        assert vault.pin_required
        assert vault.verify("1234")
        assert not vault.verify("4321")
        assert not vault.verify(None)
        assert not vault.verify("")

    def test_setup_is_one_shot(self, vault):
        vault.setup("1234", "ops@example.com")
        with pytest.raises(ConflictError):
            vault.setup("5678", "ops@example.com")
        assert vault.verify("1234")

    @pytest.mark.parametrize("pin", [None, "", "123"])
    def test_short_pin_rejected(self, vault, pin):
        with pytest.raises(InvalidInputError):
            vault.setup(pin, "ops@example.com")
        assert not vault.setup_complete

    def test_malformed_email_rejected(self, vault):
        with pytest.raises(InvalidInputError):
            vault.setup("1234", "not-an-email")
        assert not vault.setup_complete

    def test_email_optional(self, vault):
        vault.setup("1234")
        assert vault.email is None

    def test_pin_never_stored_in_clear(self, vault, repository):
        vault.setup("98765", "ops@example.com")
        saved = repository.load_config()
        assert "98765" not in str(saved)
        assert saved["setup_complete"] is True

    def test_config_reloaded(self, vault, repository, clock):
        vault.setup("1234", "ops@example.com")
        reloaded = CredentialVault(repository, iterations=ITERATIONS, clock=clock)
        assert reloaded.setup_complete
        assert reloaded.verify("1234")
        assert reloaded.email == "ops@example.com"


class TestSeedPin:
    def test_seed_when_unconfigured(self, vault):
        assert vault.seed_pin("secret")
        assert vault.setup_complete
        assert vault.verify("secret")

    def test_seed_ignored_after_setup(self, vault):
        vault.setup("1234")
        assert not vault.seed_pin("other")
        assert vault.verify("1234")


class TestResetTokens:
    def test_issue_requires_setup(self, vault):
        with pytest.raises(NotFoundError):
            vault.issue_reset()

    def test_issue_requires_email(self, vault):
        vault.setup("1234")
        with pytest.raises(NotFoundError):
            vault.issue_reset()

    def test_reset_ttl_is_fifteen_minutes(self, vault, clock):
        vault.setup("1234", "ops@example.com")
        reset_id = vault.issue_reset()
        entry = vault.check_reset(reset_id)
        assert entry.expires_at == int(clock.now * 1000) + 15 * 60 * 1000

    def test_consume_replaces_pin_once(self, vault):
        vault.setup("1234", "ops@example.com")
        reset_id = vault.issue_reset()
        vault.consume_reset(reset_id, "5678")
        assert vault.verify("5678")
        assert not vault.verify("1234")
        with pytest.raises(NotFoundError):
            vault.consume_reset(reset_id, "9999")
        assert vault.verify("5678")

    def test_consume_short_pin_keeps_token(self, vault):
        vault.setup("1234", "ops@example.com")
        reset_id = vault.issue_reset()
        with pytest.raises(InvalidInputError):
            vault.consume_reset(reset_id, "12")
        vault.check_reset(reset_id)
        assert vault.verify("1234")

    def test_expired_reset(self, vault, clock):
        vault.setup("1234", "ops@example.com")
        reset_id = vault.issue_reset()
        clock.advance(15 * 60 + 1)
        with pytest.raises(ExpiredError):
            vault.check_reset(reset_id)
        with pytest.raises(ExpiredError):
            vault.consume_reset(reset_id, "5678")

    def test_unknown_reset(self, vault):
        with pytest.raises(NotFoundError):
            vault.check_reset("nope")

    def test_prune_and_revoke(self, vault, clock):
        vault.setup("1234", "ops@example.com")
        stale = vault.issue_reset()
        clock.advance(15 * 60 + 1)
        live = vault.issue_reset()
        assert vault.prune_resets() == 1
        assert stale not in vault.config.reset_tokens
        vault.revoke_reset(live)
        assert vault.config.reset_tokens == {}

    def test_reset_tokens_persisted(self, vault, repository):
        vault.setup("1234", "ops@example.com")
        reset_id = vault.issue_reset()
        assert reset_id in repository.load_config()["reset_tokens"]


class TestCorruptConfig:
    def test_bad_record_starts_unconfigured(self, clock):
        repository = InMemoryRepository(config={"reset_tokens": {"x": {}}})
        vault = CredentialVault(repository, iterations=ITERATIONS, clock=clock)
        assert not vault.setup_complete

    @pytest.mark.parametrize(
        "record",
        [
            {"setup_complete": True, "reset_tokens": ["x"]},
            {"setup_complete": True, "reset_tokens": "x"},
            {"setup_complete": True, "pin_hash": "ab" * 64, "pin_salt": "not-hex"},
            {"setup_complete": True, "pin_hash": "zz", "pin_salt": "ab" * 16},
            {"setup_complete": True, "pin_hash": 42, "pin_salt": "ab" * 16},
        ],
    )
    def test_malformed_fields_start_unconfigured(self, clock, record):
        vault = CredentialVault(InMemoryRepository(config=record), iterations=ITERATIONS, clock=clock)
        assert not vault.setup_complete
        assert not vault.pin_required
        assert vault.verify("1234")

    def test_empty_credentials_mean_no_pin(self, clock):
        repository = InMemoryRepository(config={"setup_complete": True, "pin_hash": "", "pin_salt": ""})
        vault = CredentialVault(repository, iterations=ITERATIONS, clock=clock)
        assert vault.setup_complete
        assert not vault.pin_required
