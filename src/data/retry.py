"""Resilient execution for storage calls.

``ConnectionRetryStrategy`` retries a failing coroutine with a linear backoff
of ``base_delay * attempt`` seconds. Each strategy instance owns its attempt
counter; share an instance only between calls that are never in flight at
the same time (one per connection or per task).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from src.core.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class RetryConfig(BaseModel):
    """Retry budget: attempts and base delay (seconds)."""

    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, gt=0)
    base_delay: float = Field(default=1.0, gt=0)


class ConnectionRetryStrategy:
    """Retry wrapper with per-instance attempt tracking."""

    def __init__(self, config: RetryConfig | None = None) -> None:
        self._config: RetryConfig = config or RetryConfig()
        self._attempts: int = 0

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def config(self) -> RetryConfig:
        return self._config

    def reset(self) -> None:
        self._attempts = 0

    def backoff(self, attempt: int) -> float:
        """Delay before the next try; linear in the 1-indexed attempt number."""
        return self._config.base_delay * attempt

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        non_retryable: tuple[type[BaseException], ...] = (),
    ) -> T:
        """Run ``operation`` until it succeeds or the retry budget is spent.

        The final failure is re-raised unchanged. Exceptions matching
        ``non_retryable`` are re-raised on the first occurrence.
        """
        self._attempts = 0

        while True:
            try:
                result = await operation()
            except non_retryable:
                raise
            except Exception as exc:
                self._attempts += 1

                if self._attempts >= self._config.max_retries:
                    log.error(
                        "retry_exhausted",
                        max_retries=self._config.max_retries,
                        error=str(exc),
                    )
                    raise

                delay = self.backoff(self._attempts)
                log.warning(
                    "operation_retry",
                    attempt=self._attempts,
                    max_retries=self._config.max_retries,
                    wait_seconds=delay,
                    error=str(exc),
                )
                await asyncio.sleep(delay)
                continue

            if self._attempts > 0:
                log.info("operation_recovered", retries=self._attempts)
            return result

    async def handle_connection_error(
        self,
        error: BaseException,
        health_probe: Callable[[], Awaitable[bool]],
    ) -> None:
        """Passive reconnection path driven by connection error callbacks.

        Waits the backoff for the current attempt, then probes the
        connection. Only a healthy probe clears the attempt counter; probe
        failures are logged and never propagated.
        """
        self._attempts += 1
        log.error(
            "connection_error",
            attempt=self._attempts,
            max_retries=self._config.max_retries,
            error=str(error),
        )

        if self._attempts >= self._config.max_retries:
            log.error("connection_retry_exhausted", max_retries=self._config.max_retries)
            return

        delay = self.backoff(self._attempts)
        log.info("connection_retry_scheduled", wait_seconds=delay)
        await asyncio.sleep(delay)

        try:
            healthy = await health_probe()
        except Exception as exc:
            log.error("connection_probe_failed", attempt=self._attempts, error=str(exc))
            return

        if healthy:
            log.info("connection_restored")
            self._attempts = 0
        else:
            log.error("connection_probe_unhealthy", attempt=self._attempts)
