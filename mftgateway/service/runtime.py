from __future__ import annotations

import asyncio
import contextlib
import threading

from mftgateway.config import Settings, get_settings, reset_settings_cache
from mftgateway.logging import get_logger
from mftgateway.service.auth import CredentialValidator
from mftgateway.service.gateway import GatewayHandler
from mftgateway.service.llm import CompletionOrchestrator
from mftgateway.service.rate_limit import FixedWindowRateLimiter

logger = get_logger(__name__)


class Runtime:
    """Holds the process-scoped services for the FastAPI app.

    Created once at startup. ``start`` launches the rate-window sweeper and
    ``close`` stops it, drops the rate table and closes the provider client.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        logger.info(
            "runtime_init_started",
            app_env=self.settings.app_env.value,
            model_backend=self.settings.model_backend.value,
        )

        self.credentials = CredentialValidator(self.settings.api_secret_key)
        if not self.credentials.is_configured:
            logger.error(
                "api_secret_not_configured",
                message="API_SECRET_KEY is not set; every chat request will be rejected",
            )
        self.limiter = FixedWindowRateLimiter(
            window_ms=self.settings.rate_limit_window_ms,
            max_requests=self.settings.rate_limit_max,
            grace_ms=self.settings.rate_limit_grace_ms,
        )
        try:
            self.orchestrator = CompletionOrchestrator.from_settings(self.settings)
        except Exception as exc:
            logger.error(
                "runtime_orchestrator_init_failed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        self.gateway = GatewayHandler(self.credentials, self.limiter, self.orchestrator)
        self._sweeper_task: asyncio.Task | None = None

        logger.info(
            "runtime_initialized",
            model=self.settings.model_name,
            rate_limit_max=self.settings.rate_limit_max,
            rate_limit_window_ms=self.settings.rate_limit_window_ms,
            provider_timeout_seconds=self.settings.provider_timeout_seconds,
        )

    async def start(self) -> None:
        if self._sweeper_task is None or self._sweeper_task.done():
            self._sweeper_task = asyncio.create_task(
                self.limiter.run_sweeper(self.settings.rate_limit_sweep_interval_seconds)
            )
            logger.info(
                "rate_limit_sweeper_started",
                interval_seconds=self.settings.rate_limit_sweep_interval_seconds,
            )

    async def close(self) -> None:
        if self._sweeper_task is not None:
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task
            self._sweeper_task = None
        self.limiter.close()
        await self.orchestrator.close()


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton (double-checked locking)."""
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Rebuild the runtime singleton from the current environment."""
    global runtime

    with _runtime_lock:
        reset_settings_cache()
        runtime = Runtime(get_settings())
        return runtime
