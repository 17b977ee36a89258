"""Tenacity retry wrapper driven by RetryConfig."""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential,
)

from .config import RetryConfig

T = TypeVar("T")

logger = structlog.get_logger()


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "retrying",
            operation=operation,
            attempt=state.attempt_number,
            error=str(exc) if exc else None,
        )

    return _before_sleep


def with_retry(
    config: RetryConfig,
    *,
    operation: str = "mailbox_call",
    retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    abort_if: Callable[[], bool] | None = None,
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Each failed attempt that will be retried is logged under *operation*.
    When *abort_if* returns ``True`` after a failed attempt, no further
    attempts are made and the last error is re-raised.

    Usage::

        @with_retry(config.retry, operation="connect")
        async def connect() -> MailboxClient: ...
    """
    stop = stop_after_attempt(config.max_attempts)
    if abort_if is not None:
        stop = stop_any(stop, lambda _state: abort_if())

    return retry(
        stop=stop,
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=_log_retry(operation),
        reraise=True,
    )
