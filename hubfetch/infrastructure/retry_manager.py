"""
Retry policy with exponential backoff, jitter and Retry-After support.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .error_handler import ErrorCode, RepositoryError, classify, is_retryable
from .logger import logger


@dataclass
class RetryConfig:
    """Configuration for retry behaviour."""

    max_retries: int = 5
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True


class RetryManager:
    """
    Executes async operations with retries.

    ``max_retries`` is the total number of attempts. Failures are classified
    once and only retryable classifications are re-attempted.
    """

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryManager":
        return cls(
            max_retries=config.max_retries,
            base_delay=config.initial_delay,
            max_delay=config.max_delay,
            exponential_base=config.backoff_factor,
            jitter=config.jitter
        )

    def _calculate_delay(self, attempt: int) -> float:
        """
        Backoff delay in seconds for a zero-based attempt number.

        ``min(base * exp ** attempt, max)``, scaled by a uniform factor in
        [0.5, 1.0] when jitter is enabled.
        """
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)
        return delay

    def compute_delay(self, attempt: int, error: RepositoryError) -> float:
        """
        Delay before the next attempt after ``error``.

        An explicit Retry-After on a rate-limit error replaces the computed backoff.
        """
        if error.code is ErrorCode.RATE_LIMIT and error.retry_after is not None:
            return float(error.retry_after)
        return self._calculate_delay(attempt)

    async def execute(
        self,
        func: Callable[[], Awaitable[Any]],
        max_retries: Optional[int] = None,
        description: str = "operation"
    ) -> Any:
        """
        Run ``func`` until it succeeds, fails permanently, or attempts run out.

        Args:
            func: Zero-argument coroutine factory
            max_retries: Per-call override of the attempt ceiling
            description: Label used in log messages

        Returns:
            Whatever ``func`` returns

        Raises:
            RepositoryError: Non-retryable classification or the last error
                once every attempt failed
        """
        attempts = max_retries if max_retries is not None else self.max_retries
        attempts = max(1, attempts)

        for attempt in range(attempts):
            try:
                return await func()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify(e)

                if not is_retryable(error):
                    raise error from (None if error is e else e)

                if attempt == attempts - 1:
                    if attempts > 1:
                        logger.error(
                            f"All {attempts} attempts failed, giving up on {description}: {error.message}"
                        )
                    raise error from (None if error is e else e)

                delay = self.compute_delay(attempt, error)
                if error.code is ErrorCode.RATE_LIMIT and error.retry_after is not None:
                    logger.info(f"Rate limited, waiting {error.retry_after:g}s before retrying")
                logger.warning(
                    f"Attempt {attempt + 1} failed: {error.message}. "
                    f"Retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        # Loop always returns or raises
        raise RuntimeError("unreachable")


__all__ = ["RetryConfig", "RetryManager"]
