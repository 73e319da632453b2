"""
Retry/backoff policy shared by every outbound HTTP call.

One policy object, parameterized by attempt ceiling, retryable-error
classifier and backoff function, drives a tenacity Retrying loop.

Default behaviour:
    - 3 attempts total
    - RateLimitException with retry_after: wait that many seconds
    - anything else retryable: 2 ** attempt seconds (1s, 2s, ...)
    - no sleep after the final attempt
"""
import logging
import time
from typing import Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3

T = TypeVar("T")


class RateLimitException(Exception):
    """Raised when a platform answers 429; carries the server's Retry-After in seconds."""

    def __init__(self, message: str = "Rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class WebhookDeliveryError(Exception):
    """Raised for a non-2xx webhook response other than 429."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"Webhook returned {status_code}: {body[:200]}")
        self.status_code = status_code
        self.body = body


def _always_retry(exc: BaseException) -> bool:
    return isinstance(exc, Exception)


def exponential_backoff(retry_state: RetryCallState) -> float:
    """2 ** attempt seconds, counting attempts from zero."""
    return float(2 ** (retry_state.attempt_number - 1))


def backoff_respecting_retry_after(retry_state: RetryCallState) -> float:
    """
    Honour a server-declared Retry-After for rate limits; otherwise fall back
    to exponential backoff.
    """
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, RateLimitException) and exc.retry_after is not None:
        return max(0.0, float(exc.retry_after))
    return exponential_backoff(retry_state)


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a warning before each retry sleep."""
    exc = retry_state.outcome.exception()
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    if isinstance(exc, RateLimitException):
        logger.warning(
            "Rate limited (attempt %s). Waiting %.1fs before retry.",
            retry_state.attempt_number, wait,
        )
    else:
        logger.warning(
            "Delivery error (attempt %s). Waiting %.1fs before retry. Details: %s",
            retry_state.attempt_number, wait, exc,
        )


class RetryPolicy:
    """
    Reusable retry/backoff policy.

    Args:
        max_attempts: Total attempts, including the first one
        is_retryable: Classifies an exception as worth another attempt
        backoff: Computes the sleep (seconds) before the next attempt
        sleep: Sleep function; injectable for tests
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        is_retryable: Callable[[BaseException], bool] = _always_retry,
        backoff: Callable[[RetryCallState], float] = backoff_respecting_retry_after,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.max_attempts = max_attempts
        self.is_retryable = is_retryable
        self.backoff = backoff
        self.sleep = sleep

    def _retrying(self) -> Retrying:
        return Retrying(
            retry=retry_if_exception(self.is_retryable),
            wait=self.backoff,
            stop=stop_after_attempt(self.max_attempts),
            before_sleep=_log_retry,
            sleep=self.sleep,
            reraise=True,
        )

    def call(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """Run fn under the policy. Re-raises the last error once attempts are exhausted."""
        return self._retrying()(fn, *args, **kwargs)
