"""Retry decisions and backoff delays for the request engine.

Vendors signal rate limiting two ways: HTTP 429 with a ``Retry-After``
header, and HTTP 200 with an application error whose free-text message
embeds a wait time ("...Please wait 400ms and try again."). Both are
normalized here into one ``RetryDecision`` so the engine runs a single
backoff loop. Everything in this module is pure and does no I/O.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent_skills.config import RetrySettings

_WAIT_TIME_RE = re.compile(r"wait\s+(\d+)ms", re.IGNORECASE)


class RetryReason(StrEnum):
    """Why an attempt did or did not end the retry loop."""

    NONE = "none"
    HTTP_STATUS = "http_status"
    INVALID_BODY = "invalid_body"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy shared by transport and rate-limit retries."""

    max_retries: int = 3
    backoff_base_ms: int = 1000
    backoff_max_ms: int = 10_000
    rate_limit_fallback_ms: int = 500
    rate_limit_marker: str = "API limit exceeded"

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_retries=settings.max_retries,
            backoff_base_ms=settings.backoff_base_ms,
            backoff_max_ms=settings.backoff_max_ms,
            rate_limit_fallback_ms=settings.rate_limit_fallback_ms,
            rate_limit_marker=settings.rate_limit_marker,
        )

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code == 429 or status_code >= 500


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of inspecting one attempt.

    Attributes:
        should_retry: Whether another attempt will be made.
        delay_ms: Milliseconds to sleep before that attempt (always >= 0).
        reason: The failure class that triggered the decision.
    """

    should_retry: bool
    delay_ms: int
    reason: RetryReason


def backoff_ms(attempt: int, policy: RetryPolicy) -> int:
    """Exponential backoff for a zero-based attempt number.

    >>> backoff_ms(0, RetryPolicy()), backoff_ms(3, RetryPolicy()), backoff_ms(6, RetryPolicy())
    (1000, 8000, 10000)
    """
    return min(policy.backoff_base_ms * 2**attempt, policy.backoff_max_ms)


def parse_retry_after(value: str | None) -> int | None:
    """Convert a ``Retry-After`` header in seconds to milliseconds.

    HTTP-date values and garbage are ignored and yield ``None``.
    """
    if value is None:
        return None
    text = value.strip()
    try:
        seconds = int(text)
    except ValueError:
        return None
    return max(seconds, 0) * 1000


def find_rate_limit_error(
    errors: Any, marker: str = "API limit exceeded"
) -> dict[str, Any] | None:
    """Return the first error whose message carries the rate-limit marker."""
    if not isinstance(errors, list):
        return None
    for error in errors:
        if not isinstance(error, dict):
            continue
        message = error.get("message")
        if isinstance(message, str) and marker in message:
            return error
    return None


def parse_wait_time(message: str, fallback_ms: int = 500) -> int:
    """Extract the ``wait Nms`` hint from a rate-limit message.

    >>> parse_wait_time("API limit exceeded... wait 437ms and try again.")
    437
    >>> parse_wait_time("API limit exceeded")
    500
    """
    match = _WAIT_TIME_RE.search(message)
    if match:
        return int(match.group(1))
    return fallback_ms


def decide_retry(
    *,
    attempt: int,
    policy: RetryPolicy,
    reason: RetryReason,
    retry_after_ms: int | None = None,
    message: str | None = None,
) -> RetryDecision:
    """Decide whether a failed attempt is retried and after how long.

    Args:
        attempt: Zero-based number of the attempt that just failed.
        policy: Retry budget and backoff parameters.
        reason: Failure class of the attempt. ``RetryReason.NONE`` means the
            attempt is final.
        retry_after_ms: Server-declared delay, preferred when present.
        message: Rate-limit error message to mine for a wait hint.

    Returns:
        The decision. ``should_retry`` is false once the budget is spent,
        whatever the reason.
    """
    if reason is RetryReason.NONE or attempt >= policy.max_retries:
        return RetryDecision(should_retry=False, delay_ms=0, reason=reason)

    if retry_after_ms is not None:
        delay = retry_after_ms
    elif reason is RetryReason.RATE_LIMITED:
        delay = parse_wait_time(message or "", policy.rate_limit_fallback_ms)
    else:
        delay = backoff_ms(attempt, policy)

    return RetryDecision(should_retry=True, delay_ms=max(delay, 0), reason=reason)
