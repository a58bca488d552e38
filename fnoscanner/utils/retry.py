"""Retry decorator used around broker calls that can be rate limited."""

from __future__ import annotations

import asyncio
import functools
import time
from typing import Any, Callable, Iterator, TypeVar

from loguru import logger

F = TypeVar("F", bound=Callable[..., Any])


def _delays(delay: float, backoff: float, retries: int) -> Iterator[float]:
    """Yield the wait before each retry: ``delay, delay*backoff, ...``."""
    current = delay
    for _ in range(retries):
        yield current
        current *= backoff


def _log_retry(name: str, attempt: int, max_attempts: int, exc: BaseException, wait: float) -> None:
    logger.info(
        "{}() attempt {}/{} failed ({}). Retrying in {:.1f}s",
        name,
        attempt,
        max_attempts,
        exc,
        wait,
    )


def _log_give_up(name: str, max_attempts: int, exc: BaseException) -> None:
    logger.warning("{}() gave up after {} attempts: {}", name, max_attempts, exc)


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """Retry a sync or async callable on the given exception types.

    Args:
        max_attempts: Total calls allowed, including the first one.
        delay: Seconds to wait before the first retry.
        backoff: Factor applied to the wait after every retry; ``1.0`` keeps
            it fixed.
        exceptions: Exception types that trigger a retry. Anything else
            propagates immediately.

    The last exception is re-raised once the attempts are used up.

    Usage::

        @retry(max_attempts=2, delay=1.0, backoff=1.0, exceptions=(RateLimited,))
        async def fetch_history() -> list[Candle]:
            ...
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

    def decorator(func: F) -> F:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            waits = _delays(delay, backoff, max_attempts - 1)
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as exc:
                    wait = next(waits, None)
                    if wait is None:
                        _log_give_up(name, max_attempts, exc)
                        raise
                    _log_retry(name, attempt, max_attempts, exc, wait)
                    await asyncio.sleep(wait)
                    attempt += 1

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            waits = _delays(delay, backoff, max_attempts - 1)
            attempt = 1
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as exc:
                    wait = next(waits, None)
                    if wait is None:
                        _log_give_up(name, max_attempts, exc)
                        raise
                    _log_retry(name, attempt, max_attempts, exc, wait)
                    time.sleep(wait)
                    attempt += 1

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper  # type: ignore[return-value]

    return decorator
