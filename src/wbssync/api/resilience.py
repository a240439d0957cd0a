#!/usr/bin/env python3
"""Resilience Patterns for Google Sheets writes.

This module provides:
    - RetryManager: retry a single async operation with classifier-driven
      exponential backoff
    - process_concurrent: bounded-concurrency gather

The RetryManager never looks at what the operation does, only at the
shape of the error it raises, so it can wrap anything from a single
cell update to an entire chunk of row saves.

Example:
    manager = RetryManager(RetryPolicy(max_retries=3, base_delay=1.0))
    rows = await manager.execute(lambda: sheet.list_rows(handle))
"""
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .error_classifier import classify_error, compute_delay, is_recoverable

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Retry with Exponential Backoff
# ============================================

@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Attributes:
        max_retries: Retries after the first attempt (total attempts = max_retries + 1)
        base_delay: Initial delay in seconds for the fallback backoff
        max_delay: Maximum delay in seconds between attempts
        backoff_multiplier: Growth factor for the fallback backoff
        jitter: Add up to 10% random jitter to policy-backoff waits
            (classifier delays are already jittered); waits never exceed max_delay
        retry_predicate: Decides whether an error is worth retrying.
            Defaults to the error classifier's verdict.
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    retry_predicate: Optional[Callable[[Exception], bool]] = None

    def should_retry(self, error: Exception) -> bool:
        predicate = self.retry_predicate or is_recoverable
        return predicate(error)

    def scaled(self, retry_multiplier: float) -> "RetryPolicy":
        """Copy of this policy with delays stretched by retry_multiplier."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay * retry_multiplier,
            max_delay=self.max_delay * retry_multiplier,
            backoff_multiplier=self.backoff_multiplier,
            jitter=self.jitter,
            retry_predicate=self.retry_predicate,
        )


class RetryManager:
    """Execute an async operation up to max_retries + 1 times.

    Between attempts the wait is the classifier's recommendation when the
    error is recoverable, otherwise the policy's own exponential backoff.
    Once attempts are exhausted, or the error is not retryable, the last
    observed error is re-raised unchanged.

    Example:
        manager = RetryManager(
            RetryPolicy(max_retries=3),
            on_retry=lambda exc, attempt: logger.warning(f"retry {attempt}: {exc}"),
        )
        await manager.execute(save_chunk)
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        on_retry: Optional[Callable[[Exception, int], None]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        """Initialize retry manager.

        Args:
            policy: Retry configuration (defaults to RetryPolicy())
            on_retry: Optional callback called before each wait with (exception, attempt)
            sleep: Awaitable sleep function, injectable for tests
            rng: Optional seeded random.Random for reproducible jitter
        """
        self.policy = policy or RetryPolicy()
        self.on_retry = on_retry
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation, retrying recoverable failures.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            Result from operation

        Raises:
            The last exception raised by operation
        """
        policy = self.policy
        delay = policy.base_delay

        for attempt in range(policy.max_retries + 1):
            try:
                return await operation()

            except Exception as e:
                classification = classify_error(e)

                if attempt == policy.max_retries or not policy.should_retry(e):
                    logger.error(
                        f"Final attempt {attempt + 1} failed: {e} "
                        f"(kind={classification.kind.value}, "
                        f"max_retries={policy.max_retries})"
                    )
                    raise

                if classification.should_retry:
                    delay = compute_delay(
                        classification.retry_delay,
                        attempt + 1,
                        classification.backoff_multiplier,
                        policy.max_delay,
                        rng=self._rng,
                    )
                else:
                    delay = min(delay * policy.backoff_multiplier, policy.max_delay)

                # compute_delay already jittered the classifier delay
                actual_delay = delay
                if policy.jitter and not classification.should_retry:
                    actual_delay = delay + self._rng.random() * delay * 0.1
                actual_delay = min(actual_delay, policy.max_delay)

                if self.on_retry:
                    self.on_retry(e, attempt + 1)

                logger.warning(
                    f"Attempt {attempt + 1}/{policy.max_retries + 1} failed: {e}. "
                    f"Retrying in {actual_delay:.1f}s "
                    f"(kind={classification.kind.value})"
                )

                await self._sleep(actual_delay)

        # Unreachable: the last iteration either returns or raises
        raise RuntimeError("Retry logic error")


# ============================================
# Concurrent Processing Patterns
# ============================================

async def process_concurrent(
    items: list[T],
    processor: Callable[[T], Awaitable[Any]],
    max_concurrent: int = 10,
    return_exceptions: bool = False,
) -> list[Any]:
    """Process items concurrently with bounded concurrency.

    Uses a semaphore to limit the number of concurrent operations, so a
    large chunk never fires more than max_concurrent requests at once.

    Args:
        items: List of items to process
        processor: Async function to apply to each item
        max_concurrent: Maximum concurrent operations (default: 10)
        return_exceptions: If True, return exceptions instead of raising

    Returns:
        List of results in the same order as input items
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def bounded_processor(item: T) -> Any:
        async with semaphore:
            return await processor(item)

    tasks = [bounded_processor(item) for item in items]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


__all__ = [
    "RetryPolicy",
    "RetryManager",
    "process_concurrent",
]
