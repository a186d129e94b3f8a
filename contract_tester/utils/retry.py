# contract_tester/utils/retry.py
# Retry with exponential backoff and timeout helpers for outbound requests

import asyncio
import logging
from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """
    Per-operation retry policy.

    Config:
    - max_attempts: total attempts, including the first one
    - base_delay: delay before the second attempt, doubled for every further one
    - max_delay: cap applied to every computed delay
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0)
    max_delay: float = Field(default=10.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given zero-based failed attempt."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)


async def sleep_unless_cancelled(delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
    """Sleep for `delay` seconds. Returns False if cancellation cut the sleep short."""
    if cancel_event is None:
        await asyncio.sleep(delay)
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return True
    return False


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    exceptions: tuple = (Exception,),
    cancel_event: Optional[asyncio.Event] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
    name: str = "call",
) -> T:
    """
    Await `func()` until it succeeds or the policy is exhausted.

    The last exception is re-raised when attempts run out, or as soon as the
    cancel event is set (no retry happens after cancellation).
    """
    for attempt in range(policy.max_attempts):
        try:
            return await func()
        except exceptions as e:
            if attempt == policy.max_attempts - 1:
                logger.error(
                    f"All {policy.max_attempts} attempts failed for {name}: {e}"
                )
                raise
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Not retrying {name} after cancellation: {e}")
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt + 1} failed for {name}: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            if on_retry is not None:
                on_retry(attempt + 1, e)
            if not await sleep_unless_cancelled(delay, cancel_event):
                logger.warning(f"Retry of {name} abandoned, run cancelled")
                raise
    raise RuntimeError("Retry failed without exception")


def with_timeout(seconds: float):
    """
    Decorator to add timeout to async functions.

    Usage:
        @with_timeout(10.0)
        async def slow_operation():
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await asyncio.wait_for(
                    func(*args, **kwargs),
                    timeout=seconds
                )
            except asyncio.TimeoutError:
                logger.error(f"Timeout ({seconds}s) exceeded for {func.__name__}")
                raise

        return wrapper
    return decorator
