"""
Retry with Jittered Exponential Backoff

Used by the OpenAI adapters for transient transport failures.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 30.0
    jitter_factor: float = 0.5

    retryable_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
        asyncio.TimeoutError,
        openai.APIConnectionError,
        openai.APITimeoutError,
        openai.RateLimitError,
    )


def jittered_backoff(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter_factor: float = 0.5,
) -> float:
    """
    Calculate delay with exponential backoff and jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap
        jitter_factor: Amount of random variation (0-1)

    Returns:
        Delay in seconds
    """
    exp_delay = base_delay * (2 ** attempt)
    capped_delay = min(exp_delay, max_delay)

    jitter_range = capped_delay * jitter_factor
    jitter = random.uniform(-jitter_range, jitter_range)

    final_delay = max(0.1, capped_delay + jitter)
    return min(final_delay, max_delay)


async def with_retry(
    func: Callable[[], Awaitable[T]],
    operation: str = "function",
    config: Optional[RetryConfig] = None,
) -> T:
    """
    Execute an async function, retrying transient failures.

    Args:
        func: Async function to execute
        operation: Name used in log messages
        config: Retry configuration (uses defaults if not provided)

    Returns:
        Result of the function

    Raises:
        Exception: Final exception after all retries exhausted, or the first
            non-retryable exception
    """
    config = config or RetryConfig()

    for attempt in range(config.max_attempts):
        try:
            return await func()
        except config.retryable_exceptions as e:
            if attempt >= config.max_attempts - 1:
                logger.error(
                    f"All {config.max_attempts} attempts failed for {operation}. "
                    f"Final error: {e}"
                )
                raise

            delay = jittered_backoff(
                attempt,
                config.base_delay_sec,
                config.max_delay_sec,
                config.jitter_factor,
            )
            logger.warning(
                f"Retry {attempt + 1}/{config.max_attempts} for {operation} "
                f"after {delay:.2f}s. Error: {e}"
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Unexpected: no result and no exception")
