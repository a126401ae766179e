"""
Retry helper with exponential backoff for flaky RPC calls.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

# Configure logger
logger = logging.getLogger("licensechain_polygon.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt cap and backoff schedule for :func:`retry`.

    Args:
        max_attempts (int): Total attempts, at least 1
        base_delay_ms (int): Delay before the second attempt; doubles afterwards
        attempt_timeout (float, optional): Seconds allowed for a single attempt
    """
    max_attempts: int = 3
    base_delay_ms: int = 1000
    attempt_timeout: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError(f"attempt_timeout must be positive, got {self.attempt_timeout}")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.base_delay_ms * (2 ** (attempt - 1)) / 1000


async def sleep(ms: float) -> None:
    """Suspend for ``ms`` milliseconds."""
    await asyncio.sleep(ms / 1000)


async def retry_with_policy(operation: Callable[[], Awaitable[T]], policy: RetryPolicy) -> T:
    """
    Run ``operation`` until it succeeds or the policy's attempt cap is reached.

    Attempts are strictly sequential. The helper does not inspect failures:
    anything raised by ``operation`` counts as a failed attempt, and the last
    failure is re-raised unchanged.

    Args:
        operation: Zero-argument callable returning an awaitable
        policy (RetryPolicy): Attempt cap, backoff and per-attempt timeout

    Returns:
        The result of the first successful attempt
    """
    attempts = 0
    while True:
        try:
            if policy.attempt_timeout is not None:
                return await asyncio.wait_for(operation(), timeout=policy.attempt_timeout)
            return await operation()
        except Exception as e:
            attempts += 1
            if attempts >= policy.max_attempts:
                logger.debug(f"Giving up after {attempts} attempt(s): {type(e).__name__}")
                raise
            delay = policy.delay_for(attempts)
            logger.warning(
                f"Attempt {attempts}/{policy.max_attempts} failed ({type(e).__name__}: {str(e)}). "
                f"Retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)


async def retry(
        operation: Callable[[], Awaitable[T]],
        max_attempts: int = 3,
        base_delay_ms: int = 1000,
        timeout: Optional[float] = None
    ) -> T:
    """
    Retry an async operation with exponential backoff.

    The wait after failed attempt ``n`` is ``base_delay_ms * 2 ** (n - 1)``
    milliseconds. With ``max_attempts=1`` the operation runs exactly once.

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts (int): Total attempts, at least 1
        base_delay_ms (int): Initial backoff delay in milliseconds
        timeout (float, optional): Seconds allowed for each attempt

    Returns:
        The result of the first successful attempt

    Raises:
        Exception: The most recent failure once the attempt cap is reached
    """
    policy = RetryPolicy(max_attempts=max_attempts, base_delay_ms=base_delay_ms, attempt_timeout=timeout)
    return await retry_with_policy(operation, policy)
