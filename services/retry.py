"""Bounded exponential-backoff retry for calls to the external scoring service."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from config.settings import settings
from llm_gateway import UNAVAILABLE_STATUS, LlmUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE_MARKERS = (
    "overload",
    "rate limit",
    "rate-limit",
    "too many requests",
    "unavailable",
    "timeout",
    "timed out",
    "bad gateway",
)


def classify_error(exc: BaseException) -> bool:
    """Return True when ``exc`` is a transient service error worth retrying."""

    if isinstance(exc, (LlmUnavailableError, httpx.TimeoutException, httpx.TransportError, asyncio.TimeoutError)):
        return True
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status in UNAVAILABLE_STATUS:
        return True
    text = str(exc).lower()
    return any(marker in text for marker in _RETRYABLE_MARKERS)


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Delay before the retry that follows ``attempt`` (1-based)."""

    return min(base * (2 ** (attempt - 1)), cap)


async def retry(
    operation: Callable[[], Awaitable[T]],
    classify: Callable[[BaseException], bool] = classify_error,
    *,
    max_attempts: Optional[int] = None,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, a fatal error occurs or attempts run out.

    The final error is always re-raised; fallback behaviour belongs to the caller.
    """

    attempts = max_attempts if max_attempts is not None else settings.RETRY_MAX_ATTEMPTS
    base = settings.RETRY_BASE_SECONDS if base_delay is None else base_delay
    cap = settings.RETRY_MAX_SECONDS if max_delay is None else max_delay
    attempts = max(1, attempts)

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            retryable = classify(exc)
            if not retryable or attempt >= attempts:
                logger.error(
                    "%s failed attempt=%d/%d retryable=%s: %s",
                    label,
                    attempt,
                    attempts,
                    retryable,
                    exc,
                )
                raise
            delay = backoff_delay(attempt, base, cap)
            logger.warning(
                "%s retrying attempt=%d/%d delay=%.2fs: %s",
                label,
                attempt,
                attempts,
                delay,
                exc,
            )
            await sleep(delay)
            attempt += 1


__all__ = ["backoff_delay", "classify_error", "retry"]
