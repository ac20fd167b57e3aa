"""
Resilience Utilities
Retry logic with exponential backoff and deadline handling for external calls
(AI provider requests, Firestore writes).
"""

import time
import asyncio
import inspect
from typing import Awaitable, Callable, TypeVar, Optional
from functools import wraps


T = TypeVar('T')


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    exceptions: tuple = (Exception,)
):
    """
    Retry a sync or async callable with exponential backoff.

    Args:
        max_retries: Retries after the first attempt
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        exponential_base: Growth factor between delays
        exceptions: Exception types that trigger a retry; others propagate at once

    Usage:
        @retry_with_backoff(max_retries=2, base_delay=1.0)
        async def _complete(self, prompt, ...):
            return await self.client.chat.completions.create(...)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = func.__name__

        def next_delay(attempt: int, error: Exception) -> float:
            # Re-raises the active exception once retries are exhausted
            if attempt >= max_retries:
                print(f"❌ {name} gave up after {max_retries} retries: {error}")
                raise error
            delay = backoff_delay(attempt, base_delay, max_delay, exponential_base)
            print(f"⚠️ {name} failed ({error}), retry {attempt + 1}/{max_retries} in {delay:.1f}s")
            return delay

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs) -> T:
                attempt = 0
                while True:
                    try:
                        return await func(*args, **kwargs)
                    except asyncio.CancelledError:
                        raise
                    except exceptions as e:
                        await asyncio.sleep(next_delay(attempt, e))
                    attempt += 1
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    time.sleep(next_delay(attempt, e))
                attempt += 1
        return sync_wrapper

    return decorator


def backoff_delay(attempt: int, base_delay: float, max_delay: float, exponential_base: float = 2.0) -> float:
    """Delay before the retry following a failed attempt (0-based)."""
    return min(base_delay * (exponential_base ** attempt), max_delay)


def deadline_after(seconds: Optional[float]) -> Optional[float]:
    """
    Absolute deadline on the monotonic clock, `seconds` from now.

    Returns None (no deadline) when seconds is None.
    """
    if seconds is None:
        return None
    return time.monotonic() + seconds


def remaining_time(deadline: Optional[float]) -> Optional[float]:
    """Seconds left until an absolute deadline, never negative; None if unbounded."""
    if deadline is None:
        return None
    return max(0.0, deadline - time.monotonic())


async def run_with_deadline(
    awaitable: Awaitable[T],
    deadline: Optional[float] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Await with the tighter of an absolute deadline and a relative timeout.

    Raises:
        asyncio.TimeoutError: if the budget runs out
    """
    budget = remaining_time(deadline)
    if timeout is not None:
        budget = timeout if budget is None else min(budget, timeout)

    if budget is None:
        return await awaitable
    if budget <= 0:
        # Close the coroutine so it is never left un-awaited
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise asyncio.TimeoutError("deadline already passed")

    return await asyncio.wait_for(awaitable, timeout=budget)
