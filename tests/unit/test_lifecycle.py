"""
Unit tests for lifecycle management — Runtime, RuntimeContext, and shutdown.

Tests component wiring, bootstrap guards and shutdown sequencing against the
in-memory repository.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from confirm_gate.config.settings import Settings
from confirm_gate.core.exceptions import ConfigurationError
from confirm_gate.lifecycle import (
    Runtime,
    ShutdownCallback,
    ShutdownPriority,
    build_mailer,
)
from confirm_gate.notifications.mailer import SmtpMailer
from confirm_gate.persistence import InMemoryRepository


@pytest.fixture
def settings(tmp_path):
    return Settings(storage={"data_dir": str(tmp_path)}, server={"base_url": "https://gate.test"})


@pytest.fixture
def runtime(settings, clock):
    return Runtime(settings, repository=InMemoryRepository(), clock=clock)


# ---------------------------------------------------------------------------
# ShutdownPriority ordering
# ---------------------------------------------------------------------------


class TestShutdownPriority:
    def test_priority_ordering(self):
        """CRITICAL > HIGH > NORMAL > LOW > LOWEST."""
        assert ShutdownPriority.CRITICAL.value > ShutdownPriority.HIGH.value
        assert ShutdownPriority.HIGH.value > ShutdownPriority.NORMAL.value
        assert ShutdownPriority.NORMAL.value > ShutdownPriority.LOW.value
        assert ShutdownPriority.LOW.value > ShutdownPriority.LOWEST.value

    def test_callback_defaults(self):
        cb = ShutdownCallback(callback=lambda: None, priority=ShutdownPriority.LOW, name="low")
        assert cb.timeout is None


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class TestBuild:
    def test_components_share_repository(self, runtime):
        ctx = runtime.prepare()
        assert ctx.store.repository is ctx.repository
        assert ctx.vault.repository is ctx.repository
        assert ctx.service.base_url == "https://gate.test"
        assert ctx.mailer is None

    def test_prepare_is_idempotent(self, runtime):
        assert runtime.prepare() is runtime.prepare()

    def test_periodic_tasks_configured(self, runtime):
        tasks = {t.name: t.interval for t in runtime.prepare().tasks}
        assert tasks == {"token-prune": 3600, "rate-limit-cleanup": 300}

    def test_policy_from_settings(self, tmp_path, clock):
        settings = Settings(
            storage={"data_dir": str(tmp_path)},
            security={"confirm_max_attempts": 2, "forgot_pin_max_attempts": 1},
        )
        policy = Runtime(settings, repository=InMemoryRepository(), clock=clock).prepare().service.policy
        assert policy.confirm_max == 2
        assert policy.verify_max == 10
        assert policy.forgot_pin_max == 1

    def test_startup_pin_seeds_account(self, tmp_path, clock):
        settings = Settings(storage={"data_dir": str(tmp_path)}, security={"pin": "2468"})
        ctx = Runtime(settings, repository=InMemoryRepository(), clock=clock).prepare()
        assert ctx.vault.setup_complete
        assert ctx.vault.verify("2468")

    def test_short_startup_pin_is_configuration_error(self, tmp_path, clock):
        settings = Settings(
            storage={"data_dir": str(tmp_path)}, security={"pin": "123456", "min_pin_length": 8}
        )
        with pytest.raises(ConfigurationError):
            Runtime(settings, repository=InMemoryRepository(), clock=clock).prepare()

    def test_default_repository_is_json(self, settings, tmp_path):
        ctx = Runtime(settings).prepare()
        assert ctx.repository.describe()["tokens_path"] == str(tmp_path / "tokens.json")


class TestBuildMailer:
    def test_disabled_without_host(self):
        assert build_mailer(Settings()) is None

    def test_smtp_mailer(self):
        mailer = build_mailer(
            Settings(smtp={"host": "smtp.example.com", "port": 465, "sender": "gate@example.com"})
        )
        assert isinstance(mailer, SmtpMailer)
        assert mailer.port == 465


# ---------------------------------------------------------------------------
# Bootstrap and shutdown
# ---------------------------------------------------------------------------


class TestRuntimeLifecycle:
    @pytest.mark.asyncio
    async def test_bootstrap_prunes_and_starts_tasks(self, runtime, clock):
        ctx = runtime.prepare()
        ctx.store.create("stale")
        clock.advance(400)

        await runtime.bootstrap()
        try:
            assert runtime.initialized
            assert len(ctx.store) == 0
            assert all(t.running for t in ctx.tasks)
        finally:
            await runtime.shutdown()

        assert not runtime.initialized
        assert not any(t.running for t in ctx.tasks)

    @pytest.mark.asyncio
    async def test_bootstrap_twice_returns_same_context(self, runtime):
        first = await runtime.bootstrap()
        try:
            assert await runtime.bootstrap() is first
        finally:
            await runtime.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_without_bootstrap(self, runtime):
        await runtime.shutdown()
        assert not runtime.initialized

    @pytest.mark.asyncio
    async def test_callbacks_run_in_priority_order(self, runtime):
        order = []
        runtime.prepare()
        runtime.register_shutdown_callback(lambda: order.append("low"), ShutdownPriority.LOW, "low")
        async_cb = AsyncMock(side_effect=lambda: order.append("critical"))
        runtime.register_shutdown_callback(async_cb, ShutdownPriority.CRITICAL, "critical")

        await runtime.bootstrap()
        await runtime.shutdown()

        assert order == ["critical", "low"]
        async_cb.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_block_others(self, runtime):
        ran = []

        def broken():
            raise RuntimeError("boom")

        runtime.prepare()
        runtime.register_shutdown_callback(broken, ShutdownPriority.HIGH, "broken")
        runtime.register_shutdown_callback(lambda: ran.append(1), ShutdownPriority.LOW, "after")

        await runtime.bootstrap()
        await runtime.shutdown()
        assert ran == [1]

    def test_register_before_prepare_is_ignored(self, runtime):
        runtime.register_shutdown_callback(lambda: None)
        assert runtime.context is None
