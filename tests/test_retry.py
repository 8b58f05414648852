"""Tests for the retry policy used on idempotent platform reads."""

from __future__ import annotations

import pytest

from src.app.integrations.errors import (
    ConfigValidationError,
    IntegrationConnectionError,
    ItemCreateOutcomeUnknownError,
    PlatformAPIError,
)
from src.app.integrations.retry import BackoffPolicy, is_retryable, with_retry


class FlakyCall:
    """Fails with the given errors in order, then returns ``result``."""

    def __init__(self, *errors: Exception, result: str = "ok") -> None:
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


# ── Policy ───────────────────────────────────────────────────────────────────


def test_delay_grows_exponentially():
    policy = BackoffPolicy()
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


def test_delay_is_capped():
    policy = BackoffPolicy(base_delay=10.0, max_delay=15.0)
    assert policy.delay_for(3) == 15.0


@pytest.mark.parametrize(
    "exc, expected",
    [
        (IntegrationConnectionError("reset"), True),
        (PlatformAPIError(503), True),
        (PlatformAPIError(429), True),
        (PlatformAPIError(400), False),
        (ConfigValidationError({"api_token": "API Token is required"}), False),
        (ItemCreateOutcomeUnknownError("timed out"), False),
        (RuntimeError("boom"), False),
    ],
)
def test_is_retryable(exc, expected):
    assert is_retryable(exc) is expected


# ── with_retry ───────────────────────────────────────────────────────────────


async def test_transient_failure_is_retried(no_sleep):
    call = FlakyCall(IntegrationConnectionError("reset"))

    assert await with_retry(call, sleep=no_sleep) == "ok"
    assert call.calls == 2
    assert no_sleep.delays == [1.0]


async def test_three_attempts_then_last_error_is_raised(no_sleep):
    errors = [PlatformAPIError(502), PlatformAPIError(503), PlatformAPIError(504)]
    call = FlakyCall(*errors)

    with pytest.raises(PlatformAPIError) as exc_info:
        await with_retry(call, sleep=no_sleep)

    assert exc_info.value is errors[-1]
    assert call.calls == 3
    assert no_sleep.delays == [1.0, 2.0]


async def test_non_retryable_error_is_raised_immediately(no_sleep):
    call = FlakyCall(PlatformAPIError(400, {"message": "bad field"}))

    with pytest.raises(PlatformAPIError, match="bad field"):
        await with_retry(call, sleep=no_sleep)

    assert call.calls == 1
    assert no_sleep.delays == []


async def test_with_caution_error_is_not_retried(no_sleep):
    call = FlakyCall(ItemCreateOutcomeUnknownError("timed out"))

    with pytest.raises(ItemCreateOutcomeUnknownError):
        await with_retry(call, sleep=no_sleep)

    assert call.calls == 1


async def test_custom_policy_attempt_count(no_sleep):
    call = FlakyCall(IntegrationConnectionError("a"), IntegrationConnectionError("b"))

    with pytest.raises(IntegrationConnectionError):
        await with_retry(call, BackoffPolicy(max_attempts=2, base_delay=0.5), sleep=no_sleep)

    assert call.calls == 2
    assert no_sleep.delays == [0.5]
