#!/usr/bin/env python3
"""Error classification for Google Sheets API failures.

Turns an arbitrary exception into an ErrorClassification: which recovery
class it belongs to and how aggressively it should be retried. The
classifier is pure and stateless; the same error always yields the same
classification.

Classes, highest priority first:
    - Quota:      status 429, or message mentions "quota" / "resource exhausted"
    - Rate limit: status 429, or message mentions "rate limit" / "too many requests"
    - Transient:  status 5xx, or message mentions "temporary",
                  "service unavailable", "internal error", "timeout"
    - Anything else is not retried.

Example:
    classification = classify_error(error)
    if classification.should_retry:
        delay = compute_delay(
            classification.retry_delay,
            attempt,
            classification.backoff_multiplier,
        )
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Optional

from .exceptions import ErrorKind, WbsSyncError

logger = logging.getLogger(__name__)

QUOTA_MARKERS = ("quota", "resource exhausted", "resource_exhausted")
RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
TRANSIENT_MARKERS = (
    "temporary",
    "service unavailable",
    "internal error",
    "timeout",
)

# Maximum fraction of the computed delay added as random jitter
JITTER_FRACTION = 0.1


@dataclass(frozen=True)
class ErrorClassification:
    """Recovery strategy derived from a single error."""

    is_quota_error: bool
    is_rate_limit_error: bool
    is_transient_error: bool
    should_retry: bool
    retry_delay: float
    backoff_multiplier: float
    max_retries: int

    @property
    def kind(self) -> ErrorKind:
        if self.is_quota_error:
            return ErrorKind.QUOTA
        if self.is_rate_limit_error:
            return ErrorKind.RATE_LIMIT
        if self.is_transient_error:
            return ErrorKind.TRANSIENT
        return ErrorKind.FATAL


# (retry_delay seconds, backoff_multiplier, max_retries) per class
_QUOTA_DEFAULTS = (5.0, 3.0, 5)
_RATE_LIMIT_DEFAULTS = (2.0, 2.0, 4)
_TRANSIENT_DEFAULTS = (1.0, 2.0, 3)
_UNCLASSIFIED_DEFAULTS = (1.0, 2.0, 3)


def _extract_status(error: Any) -> Optional[int]:
    """Find an HTTP-like status code on the error, whatever its shape."""
    for attr in ("status", "status_code", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code

    return None


def _extract_message(error: Any) -> str:
    parts = [str(error)]
    message = getattr(error, "message", None)
    if isinstance(message, str) and message not in parts:
        parts.append(message)
    return " ".join(parts).lower()


def classify_error(error: Any) -> ErrorClassification:
    """Classify an error and determine its recovery strategy.

    Args:
        error: Any exception (or exception-like object)

    Returns:
        ErrorClassification for the error
    """
    status = _extract_status(error)
    message = _extract_message(error)
    kind = error.kind if isinstance(error, WbsSyncError) else None

    is_quota = (
        kind is ErrorKind.QUOTA
        or status == 429
        or any(marker in message for marker in QUOTA_MARKERS)
    )
    is_rate_limit = (
        kind is ErrorKind.RATE_LIMIT
        or status == 429
        or any(marker in message for marker in RATE_LIMIT_MARKERS)
    )
    is_transient = (
        kind is ErrorKind.TRANSIENT
        or (status is not None and 500 <= status < 600)
        or isinstance(error, (TimeoutError, asyncio.TimeoutError, ConnectionError))
        or any(marker in message for marker in TRANSIENT_MARKERS)
    )

    if is_quota:
        should_retry = True
        retry_delay, backoff_multiplier, max_retries = _QUOTA_DEFAULTS
    elif is_rate_limit:
        should_retry = True
        retry_delay, backoff_multiplier, max_retries = _RATE_LIMIT_DEFAULTS
    elif is_transient:
        should_retry = True
        retry_delay, backoff_multiplier, max_retries = _TRANSIENT_DEFAULTS
    else:
        should_retry = False
        retry_delay, backoff_multiplier, max_retries = _UNCLASSIFIED_DEFAULTS

    return ErrorClassification(
        is_quota_error=is_quota,
        is_rate_limit_error=is_rate_limit,
        is_transient_error=is_transient,
        should_retry=should_retry,
        retry_delay=retry_delay,
        backoff_multiplier=backoff_multiplier,
        max_retries=max_retries,
    )


def compute_delay(
    base: float,
    attempt: int,
    multiplier: float,
    cap: float = 60.0,
    rng: Optional[random.Random] = None,
) -> float:
    """Exponential backoff with up to 10% jitter, capped.

    delay = min(base * multiplier**(attempt - 1) * (1 + jitter), cap)

    Args:
        base: Delay for the first attempt, in seconds
        attempt: 1-based attempt number
        multiplier: Growth factor per attempt
        cap: Upper bound in seconds
        rng: Optional seeded random.Random for reproducible delays

    Returns:
        Delay in seconds
    """
    exponential = base * multiplier ** (attempt - 1)
    jitter = (rng or random).uniform(0, JITTER_FRACTION)
    return min(exponential * (1 + jitter), cap)


def is_recoverable(error: Any) -> bool:
    """Check if the classifier would retry this error."""
    return classify_error(error).should_retry


def get_recommended_wait_time(error: Any, attempt: int = 1) -> float:
    """Seconds to wait before retrying the error, 0 if it should not be retried."""
    classification = classify_error(error)
    if not classification.should_retry:
        return 0.0

    return compute_delay(
        classification.retry_delay,
        attempt,
        classification.backoff_multiplier,
    )


def log_error(error: Any, context: str = "") -> ErrorClassification:
    """Log an error with its classification and return the classification."""
    classification = classify_error(error)
    prefix = f"[{context}] " if context else ""

    logger.error(
        f"{prefix}Sheets API error: {error} "
        f"(status={_extract_status(error)}, kind={classification.kind.value}, "
        f"should_retry={classification.should_retry}, "
        f"retry_delay={classification.retry_delay}s, "
        f"max_retries={classification.max_retries})"
    )

    if classification.is_quota_error:
        logger.warning(
            f"{prefix}QUOTA ERROR DETECTED - this may require waiting for "
            f"the quota reset or manual intervention"
        )

    return classification


__all__ = [
    "ErrorClassification",
    "classify_error",
    "compute_delay",
    "is_recoverable",
    "get_recommended_wait_time",
    "log_error",
]
