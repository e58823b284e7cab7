"""Retry utilities for remote page fetches.

Provides bounded retry logic for transient failures (network timeouts,
connection resets, 5xx responses, truncated pages). The delay between
attempts doubles from ``base_delay``; a ``base_delay`` of 0 retries
immediately.

Never raises exceptions - returns None on exhaustion.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# HTTP status codes that are permanent failures and should never be retried.
# A missing deputy page stays missing no matter how often it is requested.
_DEFAULT_NON_RETRYABLE_STATUSES: frozenset[int] = frozenset({400, 401, 403, 404, 405, 410, 422})


def _func_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", repr(func))


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 0.0,
    max_delay: float = 10.0,
    non_retryable_statuses: frozenset[int] = _DEFAULT_NON_RETRYABLE_STATUSES,
    non_retryable_exceptions: tuple[type[Exception], ...] = (),
    **kwargs: Any,
) -> T | None:
    """Retry async function on failure, returning None once attempts run out.

    Non-retryable HTTP status codes fail immediately without sleeping.

    Args:
        func: Async function to retry
        *args: Positional arguments for func
        max_attempts: Maximum attempts, first call included (default 3)
        base_delay: Initial retry delay in seconds (default 0, no backoff)
        max_delay: Maximum retry delay in seconds (default 10.0)
        non_retryable_statuses: HTTP status codes that should not be retried.
        non_retryable_exceptions: Exception types that end the loop on first occurrence.
        **kwargs: Keyword arguments for func

    Returns:
        Result from successful func call, or None if all attempts exhausted
    """
    name = _func_name(func)
    attempt = 0
    while attempt < max_attempts:
        status_code: int | None = None
        try:
            return await func(*args, **kwargs)
        except httpx.HTTPStatusError as e:
            attempt += 1
            status_code = e.response.status_code
            error = str(e)
            if status_code in non_retryable_statuses:
                logger.warning(
                    "retry.non_retryable_http_error",
                    func=name,
                    status_code=status_code,
                    error=error,
                )
                return None
        except non_retryable_exceptions as e:
            logger.warning(
                "retry.non_retryable_error",
                func=name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None
        except Exception as e:
            attempt += 1
            error = str(e) or type(e).__name__

        if attempt >= max_attempts:
            logger.error(
                "retry.exhausted",
                func=name,
                attempts=attempt,
                status_code=status_code,
                error=error,
            )
            return None

        delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
        logger.warning(
            "retry.attempt",
            func=name,
            attempt=attempt,
            max_attempts=max_attempts,
            delay_seconds=delay,
            status_code=status_code,
            error=error,
        )
        await asyncio.sleep(delay)

    return None
