"""Shared sync context.

The rate limiter's backoff and the quota monitor's history must be shared
by every write to the same Google account. Instead of module-level
singletons they live on a SyncContext that the entry point constructs
once and passes to each use case, so tests can build isolated instances.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ...api.error_classifier import classify_error
from ...api.quota_monitor import QuotaMonitor
from ...api.rate_limiter import RateLimiter
from ...api.resilience import RetryManager, RetryPolicy

if TYPE_CHECKING:
    from ...config import SyncConfig

logger = logging.getLogger(__name__)


class SyncContext:
    """Rate limiter, retry manager and quota monitor for one process.

    Example:
        context = SyncContext.from_config(config)
        use_case = SyncSheetUseCase(sheet_client, context)
    """

    def __init__(
        self,
        rate_limiter: RateLimiter | None = None,
        retry_policy: RetryPolicy | None = None,
        quota_monitor: QuotaMonitor | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.rate_limiter = rate_limiter or RateLimiter(sleep=sleep)
        self.quota_monitor = quota_monitor or QuotaMonitor()
        self.sleep = sleep
        self.retry_manager = self._build_retry_manager(retry_policy or RetryPolicy())

    @classmethod
    def from_config(cls, config: "SyncConfig") -> "SyncContext":
        """Build a context from environment-derived configuration."""
        return cls(
            rate_limiter=RateLimiter(
                min_interval=config.rate_limit_min_interval,
                batch_size=config.rate_limit_batch_size,
                batch_delay=config.rate_limit_batch_delay,
            ),
            retry_policy=RetryPolicy(
                max_retries=config.retry_max_retries,
                base_delay=config.retry_base_delay,
                max_delay=config.retry_max_delay,
                backoff_multiplier=config.retry_backoff_multiplier,
            ),
            quota_monitor=QuotaMonitor(
                reset_utc_offset_hours=config.quota_reset_utc_offset_hours,
            ),
        )

    def _build_retry_manager(self, policy: RetryPolicy) -> RetryManager:
        return RetryManager(policy, on_retry=self._record_retried_error, sleep=self.sleep)

    def _record_retried_error(self, error: Exception, attempt: int) -> None:
        if classify_error(error).is_quota_error:
            self.quota_monitor.record_quota_error(error, context=f"retry attempt {attempt}")

    def retry_manager_for(self, retry_multiplier: float) -> RetryManager:
        """Retry manager with delays stretched by the quota recommendation."""
        if retry_multiplier == 1:
            return self.retry_manager
        return self._build_retry_manager(self.retry_manager.policy.scaled(retry_multiplier))

    async def call(
        self,
        operation: Callable[[], Awaitable[Any]],
        retry_manager: RetryManager | None = None,
    ) -> Any:
        """Run one remote call paced by the limiter and retried on failure.

        Every attempt goes back through the limiter queue, so retries are
        paced too and the limiter sees each quota error.
        """
        manager = retry_manager or self.retry_manager
        return await manager.execute(lambda: self.rate_limiter.submit(operation))

    def diagnostics(self) -> dict[str, Any]:
        return {
            "rate_limiter": self.rate_limiter.get_status(),
            "quota": self.quota_monitor.get_stats(),
        }
