"""Bounded exponential-backoff retry for single async operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
import openai

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_TRANSIENT_MARKERS = ("ECONNRESET", "ETIMEDOUT")


@dataclass(frozen=True)
class RetryOptions:
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_retryable_error(exc: BaseException) -> bool:
    """Return True for transient network failures and 429/5xx responses."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, (httpx.TransportError, openai.APIConnectionError)):
        # APITimeoutError subclasses APIConnectionError
        return True
    status = _status_code(exc)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES
    message = str(exc)
    return any(marker in message for marker in _TRANSIENT_MARKERS)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    *,
    on_retry: Optional[Callable[[int, float, BaseException], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run ``operation`` and retry it on transient failures.

    The operation is attempted at most ``max_retries + 1`` times. Non-retryable
    errors are raised after the first attempt. The wait before each retry grows
    by ``backoff_multiplier`` and is capped at ``max_delay``. ``on_retry`` is
    called once per retry with the attempt number, the delay and the error that
    triggered it.
    """
    opts = options or RetryOptions()
    max_retries = max(0, int(opts.max_retries))
    delay = opts.initial_delay

    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable_error(exc) or attempt >= max_retries:
                if attempt:
                    logger.error("Request failed after %d attempts: %s", attempt + 1, exc)
                raise
            attempt += 1
            logger.warning(
                "Retry attempt %d/%d after %.1fs: %s", attempt, max_retries, delay, exc
            )
            if on_retry is not None:
                on_retry(attempt, delay, exc)
            await sleep(delay)
            delay = min(delay * opts.backoff_multiplier, opts.max_delay)
