"""Retry/backoff shared by every adapter.

Rate-limited responses wait for the server-supplied ``Retry-After`` (or a
linear ``base * attempt`` delay), network failures back off exponentially
(``base * 2 ** (attempt - 1)``). Anything else is raised on the first attempt.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from modelgate.core.errors import RateLimitError, TransportError

log = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    sleep: SleepFn = field(default=asyncio.sleep, compare=False)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header: delta-seconds or an HTTP date."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(tz=timezone.utc)).total_seconds())


def backoff_delay(policy: RetryPolicy, retry_state: RetryCallState) -> float:
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, RateLimitError):
        if exc.retry_after is not None:
            return exc.retry_after
        return policy.base_delay_seconds * attempt
    return policy.base_delay_seconds * 2 ** (attempt - 1)


def retrying(
    policy: RetryPolicy,
    *,
    sleep: SleepFn | None = None,
    on_retry: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    def _before_sleep(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "provider.dispatch.retry",
            extra={
                "attempt": retry_state.attempt_number,
                "delay_s": retry_state.next_action.sleep if retry_state.next_action else None,
                "error": type(exc).__name__,
            },
        )
        if on_retry is not None:
            on_retry(retry_state)

    return AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=lambda retry_state: backoff_delay(policy, retry_state),
        retry=retry_if_exception_type((RateLimitError, TransportError)),
        sleep=sleep or policy.sleep,
        before_sleep=_before_sleep,
        reraise=True,
    )
