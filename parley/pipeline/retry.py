"""Timeout and exponential backoff around awaitable collaborator calls."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from parley.config import get_settings
from parley.infra.logging_config import get_logger
from parley.pipeline.errors import RetryBudgetExhausted, TransientCollaboratorError

logger = get_logger("pipeline.retry")

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[type, ...] = (
    asyncio.TimeoutError,
    ConnectionError,
    OSError,
    TransientCollaboratorError,
    OperationalError,
)

Sleep = Callable[[float], Awaitable[None]]


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    timeout_seconds: Optional[float] = 60.0
    backoff_seconds: float = 1.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.backoff_seconds * (2 ** (attempt - 1))

    @classmethod
    def for_model(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            attempts=settings.model_retry_attempts,
            timeout_seconds=settings.model_timeout_seconds,
            backoff_seconds=settings.retry_backoff_seconds,
        )

    @classmethod
    def for_fetch(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            attempts=settings.model_retry_attempts,
            timeout_seconds=settings.fetch_timeout_seconds,
            backoff_seconds=settings.retry_backoff_seconds,
        )


async def call_with_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str,
    sleep: Sleep = asyncio.sleep,
) -> Tuple[T, int]:
    """
    Await call() under the policy's timeout, retrying transient failures.

    Returns (result, attempts_used). Raises RetryBudgetExhausted once every
    attempt failed transiently; other exceptions (and cancellation) propagate
    from the first attempt that raises them.
    """
    last_error: Optional[BaseException] = None
    for attempt in range(1, max(policy.attempts, 1) + 1):
        try:
            if policy.timeout_seconds:
                result = await asyncio.wait_for(call(), policy.timeout_seconds)
            else:
                result = await call()
            return result, attempt
        except Exception as exc:
            if not is_transient(exc):
                raise
            last_error = exc
            logger.warning(
                "%s attempt %d/%d failed: %r", label, attempt, policy.attempts, exc
            )
            if attempt < policy.attempts:
                await sleep(policy.delay(attempt))
    raise RetryBudgetExhausted(label, max(policy.attempts, 1), last_error) from last_error
