"""Retry policy for idempotent platform reads.

BackoffPolicy is a plain value object; with_retry() is the loop that
consumes it (tenacity AsyncRetrying). Attempt count is total calls, so
max_attempts=3 means one call plus two retries. Delays grow as
base_delay * multiplier ** (n - 1): 1s, 2s, 4s with the defaults.

Only errors whose ``retryable`` flag is exactly True are retried. Item
creation must never be wrapped: a retried create can duplicate content.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.app.integrations.errors import IntegrationError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, IntegrationError) and exc.retryable is True


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff parameters."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0

    @classmethod
    def from_settings(cls, settings: Any) -> BackoffPolicy:
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay=settings.RETRY_BASE_DELAY,
            multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
        )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def retrying(
        self,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_delay,
                exp_base=self.multiplier,
                max=self.max_delay,
            ),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_retry,
            sleep=sleep,
            reraise=True,
        )


DEFAULT_POLICY = BackoffPolicy()


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(
        "integration.retrying",
        attempt=state.attempt_number,
        wait_seconds=round(state.next_action.sleep, 2) if state.next_action else None,
        error=str(exc) if exc else None,
        error_code=getattr(exc, "error_code", None),
    )


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: BackoffPolicy | None = None,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Call ``fn`` until it succeeds, a non-retryable error occurs, or attempts run out.

    The last error is re-raised unchanged.
    """
    policy = policy or DEFAULT_POLICY
    async for attempt in policy.retrying(sleep=sleep):
        with attempt:
            return await fn()
    raise AssertionError("unreachable: AsyncRetrying re-raises on exhaustion")
