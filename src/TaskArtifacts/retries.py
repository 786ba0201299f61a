"""Tenacity retry policy for transient download failures.

Provides:
- :class:`RetryPolicy` describing attempts, backoff, and which failures are transient
- :func:`is_transient_failure` classification
- :func:`build_retrying` Tenacity controller with structured logging between attempts

Integrity mismatches are never retried: a download that completed with the
wrong bytes is fatal for the current call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

import httpx
import tenacity
from tenacity import RetryCallState, retry_if_exception, stop_after_attempt, wait_random_exponential

from .errors import DownloadFailure, IntegrityMismatch, ProcessTimeout

__all__ = ["RetryPolicy", "is_transient_failure", "build_retrying"]

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry configuration for the downloader."""

    max_attempts: int = 3  # total attempts (initial + retries)
    multiplier: float = 1.0  # base for wait_random_exponential
    max_wait_s: float = 30.0
    # wget: 4 = network failure, 8 = server issued an error response
    retryable_exit_codes: FrozenSet[int] = field(default_factory=lambda: frozenset({4, 8}))
    retryable_statuses: FrozenSet[int] = field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504})
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        object.__setattr__(self, "retryable_exit_codes", frozenset(self.retryable_exit_codes))
        object.__setattr__(self, "retryable_statuses", frozenset(self.retryable_statuses))


def is_transient_failure(exception: BaseException, policy: RetryPolicy) -> bool:
    """Return ``True`` when ``exception`` is worth another download attempt."""

    if isinstance(exception, IntegrityMismatch):
        return False
    if isinstance(exception, ProcessTimeout):
        return True
    if isinstance(exception, DownloadFailure):
        if exception.retryable:
            return True
        if exception.status_code is not None:
            return exception.status_code in policy.retryable_statuses
        return exception.exit_code in policy.retryable_exit_codes
    if isinstance(exception, httpx.TransportError):
        return True
    return False


def _log_before_sleep(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    exc: Optional[BaseException] = outcome.exception() if outcome is not None else None
    wait_s = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
    LOGGER.warning(
        "download attempt %d failed (%s); retrying in %.2fs",
        retry_state.attempt_number,
        exc,
        wait_s,
        extra={"stage": "download", "attempt": retry_state.attempt_number},
    )


def build_retrying(policy: RetryPolicy) -> tenacity.Retrying:
    """Return a Tenacity controller that re-raises the last failure when exhausted."""

    return tenacity.Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_random_exponential(multiplier=policy.multiplier, max=policy.max_wait_s),
        retry=retry_if_exception(lambda exc: is_transient_failure(exc, policy)),
        before_sleep=_log_before_sleep,
        reraise=True,
    )
