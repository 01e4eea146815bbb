from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_INITIAL_DELAY_MS = 1000
DEFAULT_MULTIPLIER = 2

logger = logging.getLogger("aios.http")


class RetryExhaustedError(RuntimeError):
    def __init__(self, message: str, attempts: int, last_reason: str | None = None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_reason = last_reason


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Retry:
    reason: str


@dataclass(frozen=True)
class Fatal:
    error: Exception


AttemptOutcome = Union[Success[T], Retry, Fatal]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS
    multiplier: int = DEFAULT_MULTIPLIER

    def delay_ms(self, attempt: int) -> int:
        return backoff_delay_ms(attempt, self.initial_delay_ms, self.multiplier)


def backoff_delay_ms(
    attempt: int,
    initial_delay_ms: int = DEFAULT_INITIAL_DELAY_MS,
    multiplier: int = DEFAULT_MULTIPLIER,
) -> int:
    """Delay to wait after the failed attempt with 0-based index ``attempt``."""
    return int(initial_delay_ms * (multiplier ** max(0, attempt)))


async def run_with_retry(
    operation: Callable[[], Awaitable[AttemptOutcome[T]]],
    *,
    policy: RetryPolicy | None = None,
    sleep: Sleeper = asyncio.sleep,
    label: str = "request",
) -> T:
    """Drive ``operation`` until it succeeds, fails fatally or runs out of attempts.

    The operation classifies its own failures: ``Retry`` waits and tries again,
    ``Fatal`` aborts immediately by raising the wrapped error. Exhausting the
    attempt ceiling on retryable failures raises ``RetryExhaustedError``.
    """
    used = policy or RetryPolicy()
    attempts = max(1, used.max_attempts)
    last_reason: str | None = None

    for attempt in range(attempts):
        outcome = await operation()
        if isinstance(outcome, Success):
            return outcome.value
        if isinstance(outcome, Fatal):
            raise outcome.error

        last_reason = outcome.reason
        if attempt >= attempts - 1:
            break
        delay_ms = used.delay_ms(attempt)
        logger.warning(
            "http_retry",
            extra={
                "extra_fields": {
                    "label": label,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "delay_ms": delay_ms,
                    "reason": last_reason,
                }
            },
        )
        await sleep(delay_ms / 1000.0)

    raise RetryExhaustedError(
        f"{label} failed after {attempts} attempts: {last_reason}",
        attempts=attempts,
        last_reason=last_reason,
    )
