#!/usr/bin/env python3
"""Throttled, single-flight task queue for Google Sheets API calls.

The RateLimiter guarantees that no two operations submitted to it start
closer together than its current minimum interval. Operations are queued
in FIFO order and drained by exactly one worker task per limiter; callers
only await the future of their own operation.

When an operation fails with a quota or rate-limit error the limiter
widens its interval (local backpressure); the first success restores the
configured baseline.

Example:
    limiter = RateLimiter(min_interval=1.0)
    rows = await limiter.submit(lambda: sheet.list_rows(handle))

    # Group many small operations, three at a time, staggered
    results = await limiter.submit_batch(ops, batch_size=3, parallel_within_batch=True)
"""
import asyncio
import functools
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .error_classifier import classify_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Serialize and pace asynchronous operations.

    Attributes:
        base_interval: Configured minimum seconds between dispatches
        batch_size: Default group size for submit_batch / submit_batch_operation
        batch_delay: Seconds between operations inside a group
        max_interval: Ceiling for the backed-off interval
        max_consecutive_errors: Cap on the backoff exponent
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        batch_size: int = 1000,
        batch_delay: float = 0.1,
        max_interval: float = 60.0,
        max_consecutive_errors: int = 3,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_interval = min_interval
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.max_interval = max_interval
        self.max_consecutive_errors = max_consecutive_errors

        self._clock = clock
        self._sleep = sleep
        self._queue: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._processing = False
        self._worker: Optional[asyncio.Task] = None
        self._last_call_time: Optional[float] = None
        self._min_interval = min_interval
        self._consecutive_errors = 0

    @property
    def min_interval(self) -> float:
        """Current minimum interval, including any backoff."""
        return self._min_interval

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    async def submit(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Queue an operation and wait for its own result.

        Args:
            operation: Zero-argument callable returning an awaitable

        Returns:
            Whatever the operation returns

        Raises:
            Whatever the operation raises
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._queue.append((operation, future))

        if not self._processing:
            self._processing = True
            self._worker = loop.create_task(self._drain())

        return await future

    async def _drain(self) -> None:
        """Worker loop: the only place queue state is mutated."""
        try:
            while self._queue:
                if self._last_call_time is not None:
                    elapsed = self._clock() - self._last_call_time
                    if elapsed < self._min_interval:
                        wait_time = self._min_interval - elapsed
                        logger.debug(
                            f"Waiting {wait_time:.3f}s before next API call (quota protection)"
                        )
                        await self._sleep(wait_time)

                operation, future = self._queue.popleft()
                self._last_call_time = self._clock()

                try:
                    result = await operation()
                except Exception as e:
                    self._on_failure(e)
                    if not future.done():
                        future.set_exception(e)
                else:
                    self._on_success()
                    if not future.done():
                        future.set_result(result)

        except asyncio.CancelledError:
            while self._queue:
                _, future = self._queue.popleft()
                future.cancel()
            raise

        finally:
            self._processing = False
            self._worker = None

    def _on_success(self) -> None:
        if self._consecutive_errors or self._min_interval != self.base_interval:
            logger.info(
                f"Call succeeded, restoring interval to {self.base_interval}s"
            )
        self._consecutive_errors = 0
        self._min_interval = self.base_interval

    def _on_failure(self, error: Exception) -> None:
        self._consecutive_errors = min(
            self._consecutive_errors + 1,
            self.max_consecutive_errors,
        )

        classification = classify_error(error)
        if not (classification.is_quota_error or classification.is_rate_limit_error):
            return

        new_interval = min(
            self.base_interval * 2 ** self._consecutive_errors,
            self.max_interval,
        )
        logger.warning(
            f"Quota error detected (consecutive={self._consecutive_errors}), "
            f"increasing interval from {self._min_interval}s to {new_interval}s"
        )
        self._min_interval = new_interval

    async def submit_batch(
        self,
        operations: list[Callable[[], Awaitable[T]]],
        batch_size: Optional[int] = None,
        parallel_within_batch: bool = False,
    ) -> list[T]:
        """Run operations in size-bounded groups.

        Within a group operations run either sequentially, each followed by
        batch_delay, or staggered-parallel, operation i starting after
        i * batch_delay. Groups are separated by the current minimum interval.

        Args:
            operations: Zero-argument callables returning awaitables
            batch_size: Group size (defaults to self.batch_size)
            parallel_within_batch: Stagger and run each group concurrently

        Returns:
            Results in the same order as operations
        """
        size = batch_size or self.batch_size
        results: list[T] = []

        for start in range(0, len(operations), size):
            batch = operations[start:start + size]

            if parallel_within_batch:
                async def staggered(index: int, operation: Callable[[], Awaitable[T]]) -> T:
                    await self._sleep(index * self.batch_delay)
                    return await operation()

                batch_results = await asyncio.gather(
                    *(staggered(i, op) for i, op in enumerate(batch))
                )
                results.extend(batch_results)
            else:
                for operation in batch:
                    results.append(await operation())
                    await self._sleep(self.batch_delay)

            if start + size < len(operations):
                await self._sleep(self._min_interval)

        return results

    async def submit_batch_operation(
        self,
        batch_fn: Callable[[list[Any]], Awaitable[T]],
        items: list[Any],
        batch_size: Optional[int] = None,
    ) -> list[T]:
        """Call batch_fn once per chunk of items, through the queue.

        Args:
            batch_fn: Async function taking one chunk of items
            items: Items to chunk
            batch_size: Chunk size (defaults to self.batch_size)

        Returns:
            One result per chunk
        """
        size = batch_size or self.batch_size
        results: list[T] = []

        for start in range(0, len(items), size):
            chunk = items[start:start + size]
            results.append(await self.submit(functools.partial(batch_fn, chunk)))

            if start + size < len(items):
                await self._sleep(self._min_interval)

        return results

    def get_status(self) -> dict[str, Any]:
        """Get limiter status for diagnostics."""
        return {
            "queue_length": len(self._queue),
            "processing": self._processing,
            "min_interval": self._min_interval,
            "consecutive_errors": self._consecutive_errors,
            "last_call_time": self._last_call_time,
        }


__all__ = ["RateLimiter"]
