"""Lifecycle Management — bootstrap, background tasks and graceful shutdown."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from confirm_gate.config.settings import Settings
from confirm_gate.core.confirmation import ConfirmationService, RateLimitPolicy
from confirm_gate.core.exceptions import ConfigurationError, InvalidInputError
from confirm_gate.core.scheduler import PeriodicTask
from confirm_gate.core.structured_logger import get_logger
from confirm_gate.core.token_store import TokenStore
from confirm_gate.core.vault import CredentialVault
from confirm_gate.notifications.mailer import Mailer, SmtpMailer
from confirm_gate.observability import metrics
from confirm_gate.persistence import JsonFileRepository, SnapshotRepository
from confirm_gate.security.rate_limiter import RateLimiter

logger = get_logger("Lifecycle")


class ShutdownPriority(Enum):
    """Shutdown priority levels (higher = shuts down first)."""

    CRITICAL = 100
    HIGH = 75
    NORMAL = 50
    LOW = 25
    LOWEST = 0


@dataclass
class ShutdownCallback:
    """Shutdown callback with priority."""

    callback: Callable
    priority: ShutdownPriority
    name: str
    timeout: float | None = None


@dataclass
class RuntimeContext:
    """DI container holding all initialized confirm-gate components."""

    settings: Settings
    repository: SnapshotRepository
    store: TokenStore
    vault: CredentialVault
    limiter: RateLimiter
    service: ConfirmationService
    mailer: Mailer | None = None
    tasks: list[PeriodicTask] = field(default_factory=list)
    shutdown_callbacks: list[ShutdownCallback] = field(default_factory=list)


def build_mailer(settings: Settings) -> Mailer | None:
    smtp = settings.smtp
    if not smtp.enabled:
        return None
    return SmtpMailer(
        host=smtp.host,
        port=smtp.port,
        username=smtp.username,
        password=smtp.password,
        sender=smtp.sender,
        use_tls=smtp.use_tls,
    )


class Runtime:
    """Runtime orchestrator — wires components, owns the periodic tasks."""

    def __init__(
        self,
        settings: Settings,
        repository: SnapshotRepository | None = None,
        mailer: Mailer | None = None,
        clock: Callable[[], float] = time.time,
        shutdown_timeout: float = 10.0,
    ):
        self.settings = settings
        self._repository = repository
        self._mailer = mailer
        self._clock = clock
        self.shutdown_timeout = shutdown_timeout
        self.context: RuntimeContext | None = None
        self._initialized = False
        self._shutdown_in_progress = False

    def build(self) -> RuntimeContext:
        """Construct every component without starting background work."""
        settings = self.settings
        repository = self._repository or JsonFileRepository(
            settings.storage.tokens_path, settings.storage.config_path
        )
        store = TokenStore(
            repository,
            ttl_seconds=settings.tokens.ttl_seconds,
            prune_grace_seconds=settings.tokens.prune_grace_seconds,
            clock=self._clock,
        )
        vault = CredentialVault(
            repository,
            min_pin_length=settings.security.min_pin_length,
            reset_ttl_seconds=settings.tokens.reset_ttl_seconds,
            iterations=settings.security.pbkdf2_iterations,
            clock=self._clock,
        )
        if settings.security.pin:
            try:
                vault.seed_pin(settings.security.pin)
            except InvalidInputError as e:
                raise ConfigurationError(f"startup PIN rejected: {e.message}") from e

        limiter = RateLimiter(
            window_seconds=settings.security.rate_limit_window_seconds, clock=self._clock
        )
        mailer = self._mailer or build_mailer(settings)
        service = ConfirmationService(
            store,
            vault,
            limiter,
            base_url=settings.public_base_url,
            mailer=mailer,
            policy=RateLimitPolicy(
                confirm_max=settings.security.confirm_max_attempts,
                verify_max=settings.security.verify_max_attempts,
                forgot_pin_max=settings.security.forgot_pin_max_attempts,
            ),
        )
        tasks = [
            PeriodicTask("token-prune", settings.tokens.prune_interval_seconds, service.prune),
            PeriodicTask(
                "rate-limit-cleanup",
                settings.security.rate_limit_cleanup_interval_seconds,
                limiter.cleanup,
            ),
        ]
        metrics.set_token_counts(store.count_by_status())
        return RuntimeContext(
            settings=settings,
            repository=repository,
            store=store,
            vault=vault,
            limiter=limiter,
            service=service,
            mailer=mailer,
            tasks=tasks,
        )

    def prepare(self) -> RuntimeContext:
        """Build the context once; later calls return the same components."""
        if self.context is None:
            self.context = self.build()
        return self.context

    async def bootstrap(self) -> RuntimeContext:
        """Build the components, prune once and start the periodic tasks."""
        if self._initialized:
            logger.warning("Runtime already initialized")
            return self.context

        logger.info("Bootstrapping confirm-gate runtime")
        self.prepare()
        self.context.service.prune()

        for task in self.context.tasks:
            await task.start()

        self._initialized = True
        logger.info(
            "Runtime bootstrap completed",
            tokens=len(self.context.store),
            setup_complete=self.context.vault.setup_complete,
            mail_enabled=self.context.mailer is not None,
            storage=self.context.repository.describe(),
        )
        return self.context

    async def shutdown(self):
        """Graceful shutdown: cancel periodic tasks, run callbacks."""
        if not self._initialized:
            logger.warning("Runtime not initialized, nothing to shutdown")
            return
        if self._shutdown_in_progress:
            logger.warning("Shutdown already in progress")
            return

        self._shutdown_in_progress = True
        shutdown_start = asyncio.get_running_loop().time()
        logger.info("Starting graceful shutdown", timeout_seconds=self.shutdown_timeout)

        try:
            await self._stop_tasks()
            await self._run_shutdown_callbacks()

            shutdown_duration = asyncio.get_running_loop().time() - shutdown_start
            self._initialized = False
            logger.info("Shutdown completed", duration_seconds=round(shutdown_duration, 3))
        except Exception as e:
            logger.error("Critical error during shutdown: %s", e, exc_info=True)
        finally:
            self._shutdown_in_progress = False

    async def _stop_tasks(self):
        for task in self.context.tasks:
            try:
                await asyncio.wait_for(task.stop(), timeout=5.0)
            except Exception as e:
                logger.error("Error stopping %s: %s", task.name, e, exc_info=True)

    async def _run_shutdown_callbacks(self):
        """Run registered shutdown callbacks in priority order."""
        sorted_callbacks = sorted(
            self.context.shutdown_callbacks, key=lambda cb: cb.priority.value, reverse=True
        )
        for cb in sorted_callbacks:
            cb_timeout = cb.timeout or self.shutdown_timeout
            try:
                result = cb.callback()
                if asyncio.iscoroutine(result):
                    await asyncio.wait_for(result, timeout=cb_timeout)
            except TimeoutError:
                logger.error("Shutdown callback timed out: %s", cb.name)
            except Exception as e:
                logger.error("Error in shutdown callback %s: %s", cb.name, e, exc_info=True)

    def register_shutdown_callback(
        self,
        callback: Callable,
        priority: ShutdownPriority = ShutdownPriority.NORMAL,
        name: str | None = None,
        timeout: float | None = None,
    ):
        """Register a callback to be executed during shutdown."""
        if not self.context:
            logger.warning("Cannot register shutdown callback: Runtime not initialized")
            return

        callback_name = name or getattr(callback, "__name__", "unknown")
        self.context.shutdown_callbacks.append(
            ShutdownCallback(
                callback=callback, priority=priority, name=callback_name, timeout=timeout
            )
        )
        logger.debug("Registered shutdown callback: %s", callback_name, priority=priority.value)

    @property
    def initialized(self) -> bool:
        return self._initialized
