"""Tests for ConnectionRetryStrategy."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from pydantic import ValidationError

from src.data.retry import ConnectionRetryStrategy, RetryConfig


def _flaky(failures: int, result: str = "ok") -> AsyncMock:
    """Operation that raises ``failures`` times before returning ``result``."""
    effects: list[object] = [ConnectionError(f"down {i}") for i in range(failures)]
    effects.append(result)
    return AsyncMock(side_effect=effects)


class TestRetryConfig:
    """Tests for retry budget validation."""

    def test_defaults(self) -> None:
        cfg = RetryConfig()
        assert cfg.max_retries == 3
        assert cfg.base_delay == 1.0

    @pytest.mark.parametrize("kwargs", [{"max_retries": 0}, {"base_delay": 0}, {"base_delay": -1.0}])
    def test_rejects_non_positive(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(**kwargs)


class TestExecute:
    """Tests for active retry execution."""

    @pytest.mark.asyncio
    async def test_success_first_try(self) -> None:
        strategy = ConnectionRetryStrategy()
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await strategy.execute(_flaky(0)) == "ok"
        sleep.assert_not_awaited()
        assert strategy.attempts == 0

    @pytest.mark.asyncio
    async def test_recovers_after_two_failures(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(max_retries=3, base_delay=1.0))
        operation = _flaky(2)
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await strategy.execute(operation) == "ok"
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_original(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(max_retries=3, base_delay=0.5))
        operation = AsyncMock(side_effect=ConnectionError("still down"))
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ConnectionError, match="still down"):
                await strategy.execute(operation)
        assert operation.await_count == 3
        assert strategy.attempts == 3
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_attempts_reset_per_execute(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(max_retries=3, base_delay=1.0))
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()):
            await strategy.execute(_flaky(2))
            assert await strategy.execute(_flaky(2, "again")) == "again"

    @pytest.mark.asyncio
    async def test_non_retryable_raised_on_first_failure(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(max_retries=3, base_delay=1.0))
        operation = AsyncMock(side_effect=ValueError("conflict"))
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ValueError, match="conflict"):
                await strategy.execute(operation, non_retryable=(ValueError,))
        assert operation.await_count == 1
        assert strategy.attempts == 0
        sleep.assert_not_awaited()

    def test_linear_backoff(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(base_delay=2.0))
        assert [strategy.backoff(n) for n in (1, 2, 3)] == [2.0, 4.0, 6.0]


class TestHandleConnectionError:
    """Tests for the passive reconnection path."""

    @pytest.mark.asyncio
    async def test_healthy_probe_resets(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(max_retries=3, base_delay=1.0))
        probe = AsyncMock(return_value=True)
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await strategy.handle_connection_error(ConnectionError("lost"), probe)
        sleep.assert_awaited_once_with(1.0)
        probe.assert_awaited_once()
        assert strategy.attempts == 0

    @pytest.mark.asyncio
    async def test_unhealthy_probe_keeps_count(self) -> None:
        strategy = ConnectionRetryStrategy()
        probe = AsyncMock(return_value=False)
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()):
            await strategy.handle_connection_error(ConnectionError("lost"), probe)
        assert strategy.attempts == 1

    @pytest.mark.asyncio
    async def test_probe_error_is_swallowed(self) -> None:
        strategy = ConnectionRetryStrategy()
        probe = AsyncMock(side_effect=OSError("refused"))
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()):
            await strategy.handle_connection_error(ConnectionError("lost"), probe)
        assert strategy.attempts == 1

    @pytest.mark.asyncio
    async def test_gives_up_at_limit(self) -> None:
        strategy = ConnectionRetryStrategy(RetryConfig(max_retries=2, base_delay=1.0))
        probe = AsyncMock(return_value=False)
        with patch("src.data.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            await strategy.handle_connection_error(ConnectionError("a"), probe)
            await strategy.handle_connection_error(ConnectionError("b"), probe)
        assert sleep.await_count == 1
        assert probe.await_count == 1
        assert strategy.attempts == 2

    def test_reset(self) -> None:
        strategy = ConnectionRetryStrategy()
        strategy._attempts = 2
        strategy.reset()
        assert strategy.attempts == 0
