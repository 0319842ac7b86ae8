"""
Unit tests for RetryManager in hubfetch.infrastructure.retry_manager.
"""

import pytest
from unittest.mock import AsyncMock, patch

import httpx

from hubfetch.infrastructure.error_handler import ErrorCode, RepositoryError
from hubfetch.infrastructure.retry_manager import RetryManager, RetryConfig


# ---- Helpers ---------------------------------------------------------------

class MockAsyncFunction:
    """Helper class to create async functions with controllable behavior."""

    def __init__(self):
        self.call_count = 0
        self.side_effects = []
        self.return_value = "success"

    def set_side_effects(self, effects):
        """Set a list of exceptions to raise on each call, followed by success."""
        self.side_effects = effects

    async def __call__(self):
        self.call_count += 1

        if self.side_effects and self.call_count <= len(self.side_effects):
            effect = self.side_effects[self.call_count - 1]
            if isinstance(effect, Exception):
                raise effect
            return effect

        return self.return_value


def server_error():
    return RepositoryError(ErrorCode.SERVER_ERROR, "Server error: 503", {"status": 503})


# ---- Configuration ---------------------------------------------------------

def test_retry_manager_defaults():
    manager = RetryManager()

    assert manager.max_retries == 5
    assert manager.base_delay == 1.0
    assert manager.max_delay == 30.0
    assert manager.exponential_base == 2.0
    assert manager.jitter is True


def test_retry_manager_from_config():
    manager = RetryManager.from_config(RetryConfig(max_retries=2, initial_delay=0.5, jitter=False))

    assert manager.max_retries == 2
    assert manager.base_delay == 0.5
    assert manager.jitter is False


def test_retry_manager_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryManager(max_retries=0)


# ---- Delay calculation -----------------------------------------------------

def test_calculate_delay_without_jitter():
    manager = RetryManager(base_delay=1.0, max_delay=30.0, jitter=False)

    assert manager._calculate_delay(0) == 1.0
    assert manager._calculate_delay(1) == 2.0
    assert manager._calculate_delay(3) == 8.0
    assert manager._calculate_delay(10) == 30.0


def test_calculate_delay_jitter_range():
    manager = RetryManager(base_delay=4.0, max_delay=30.0, jitter=True)

    for _ in range(50):
        delay = manager._calculate_delay(0)
        assert 2.0 <= delay <= 4.0


def test_retry_after_overrides_backoff():
    manager = RetryManager(base_delay=1.0, jitter=False)
    error = RepositoryError(ErrorCode.RATE_LIMIT, "Rate limit exceeded", {"retry_after": 5.0})

    assert manager.compute_delay(4, error) == 5.0


def test_rate_limit_without_retry_after_uses_backoff():
    manager = RetryManager(base_delay=1.0, jitter=False)
    error = RepositoryError(ErrorCode.RATE_LIMIT, "Rate limit exceeded")

    assert manager.compute_delay(2, error) == 4.0


# ---- Execution -------------------------------------------------------------

@pytest.mark.asyncio
async def test_execute_success_first_try():
    manager = RetryManager()
    func = MockAsyncFunction()

    result = await manager.execute(func)

    assert result == "success"
    assert func.call_count == 1


@pytest.mark.asyncio
async def test_execute_retries_retryable_errors():
    manager = RetryManager(max_retries=3, jitter=False)
    func = MockAsyncFunction()
    func.set_side_effects([server_error(), httpx.ConnectError("refused")])

    with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
        result = await manager.execute(func)

    assert result == "success"
    assert func.call_count == 3
    assert [call.args[0] for call in mock_sleep.call_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_execute_does_not_retry_permanent_errors():
    manager = RetryManager(max_retries=5)
    func = MockAsyncFunction()
    func.set_side_effects([RepositoryError(ErrorCode.NOT_FOUND, "missing")])

    with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
        with pytest.raises(RepositoryError) as excinfo:
            await manager.execute(func)

    assert excinfo.value.code is ErrorCode.NOT_FOUND
    assert func.call_count == 1
    mock_sleep.assert_not_called()


@pytest.mark.asyncio
async def test_execute_gives_up_after_max_retries():
    manager = RetryManager(max_retries=3, jitter=False)
    func = MockAsyncFunction()
    func.set_side_effects([server_error()] * 5)

    with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
        with pytest.raises(RepositoryError) as excinfo:
            await manager.execute(func)

    assert excinfo.value.code is ErrorCode.SERVER_ERROR
    assert func.call_count == 3
    assert mock_sleep.call_count == 2


@pytest.mark.asyncio
async def test_execute_honors_retry_after():
    manager = RetryManager(max_retries=2, jitter=False)
    func = MockAsyncFunction()
    func.set_side_effects([
        RepositoryError(ErrorCode.RATE_LIMIT, "Rate limit exceeded", {"retry_after": 5.0})
    ])

    with patch("asyncio.sleep", new=AsyncMock()) as mock_sleep:
        result = await manager.execute(func)

    assert result == "success"
    mock_sleep.assert_awaited_once_with(5.0)


@pytest.mark.asyncio
async def test_execute_classifies_raw_exceptions():
    manager = RetryManager(max_retries=1)
    func = MockAsyncFunction()
    func.set_side_effects([httpx.ReadTimeout("slow")])

    with pytest.raises(RepositoryError) as excinfo:
        await manager.execute(func)

    assert excinfo.value.code is ErrorCode.TIMEOUT


@pytest.mark.asyncio
async def test_execute_per_call_override():
    manager = RetryManager(max_retries=5, jitter=False)
    func = MockAsyncFunction()
    func.set_side_effects([server_error()] * 5)

    with patch("asyncio.sleep", new=AsyncMock()):
        with pytest.raises(RepositoryError):
            await manager.execute(func, max_retries=2)

    assert func.call_count == 2
