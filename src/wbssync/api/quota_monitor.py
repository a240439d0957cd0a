#!/usr/bin/env python3
"""Google Sheets quota monitor.

Keeps a short, bounded history of quota-classified failures and turns it
into a recovery recommendation: keep going, shrink batches, or stop and
wait for the quota to reset.

Decision table (quota errors recorded in the last hour):
    0   -> wait, no delay
    1   -> wait 5 minutes
    2   -> reduce batch size, wait 15 minutes
    >=3 -> exhausted, manual intervention, wait 30 minutes

One monitor instance is shared by everything that writes to the same
Google account for the lifetime of the process, so the history survives
across sync passes.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class RecoveryStrategy(Enum):
    WAIT = "wait"
    REDUCE_BATCH_SIZE = "reduce_batch_size"
    INCREASE_DELAYS = "increase_delays"
    MANUAL_INTERVENTION = "manual_intervention"


@dataclass(frozen=True)
class QuotaErrorEvent:
    """A single recorded quota failure."""
    timestamp: datetime
    error: Any
    context: str = ""


@dataclass(frozen=True)
class QuotaStatus:
    """Result of analyzing the quota error history.

    Attributes:
        is_exhausted: True when the quota is very likely used up
        recommended_wait: Seconds to wait before the next write burst
        recovery_strategy: What the caller should do about it
        estimated_reset_time: Informational estimate of the next quota reset
    """
    is_exhausted: bool
    recommended_wait: float
    recovery_strategy: RecoveryStrategy
    estimated_reset_time: Optional[datetime] = None


@dataclass(frozen=True)
class RecommendedConfig:
    """Suggested batch pacing for a given quota status."""
    batch_size: int
    delay_multiplier: float
    retry_multiplier: float


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaMonitor:
    """Track recent quota errors and recommend backpressure.

    Example:
        monitor = QuotaMonitor()
        monitor.record_quota_error(error, context="sheet=WBS_DEV chunk=3")
        if monitor.should_pause_operations():
            raise QuotaPausedError(monitor.get_recommended_pause_duration())
    """

    def __init__(
        self,
        max_errors: int = 10,
        retention: timedelta = timedelta(hours=24),
        recent_window: timedelta = timedelta(hours=1),
        reset_utc_offset_hours: float = -8,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the monitor.

        Args:
            max_errors: Hard cap on retained events, oldest evicted first
            retention: Events older than this are ignored
            recent_window: Window used by the decision table
            reset_utc_offset_hours: Fixed UTC offset of the provider's quota day
                (Google resets at midnight Pacific time, modeled as UTC-8)
            clock: Returns the current aware datetime, injectable for tests
        """
        self.max_errors = max_errors
        self.retention = retention
        self.recent_window = recent_window
        self.reset_timezone = timezone(timedelta(hours=reset_utc_offset_hours))
        self._clock = clock
        self._events: list[QuotaErrorEvent] = []

    def record_quota_error(self, error: Any, context: str = "") -> None:
        """Record a quota error for trend analysis."""
        event = QuotaErrorEvent(timestamp=self._clock(), error=error, context=context)
        self._events = self._events_within(self.retention)
        self._events.append(event)

        while len(self._events) > self.max_errors:
            self._events.pop(0)

        logger.warning(
            f"Quota error recorded: context={context!r}, "
            f"timestamp={event.timestamp.isoformat()}, error={error}, "
            f"total_quota_errors={len(self._events)}"
        )

    def _events_within(self, window: timedelta) -> list[QuotaErrorEvent]:
        now = self._clock()
        return [event for event in self._events if now - event.timestamp < window]

    def analyze_status(self) -> QuotaStatus:
        """Analyze quota history and recommend a recovery strategy."""
        count = len(self._events_within(min(self.recent_window, self.retention)))

        if count == 0:
            return QuotaStatus(
                is_exhausted=False,
                recommended_wait=0.0,
                recovery_strategy=RecoveryStrategy.WAIT,
            )

        reset_time = self.estimate_quota_reset_time()

        if count >= 3:
            return QuotaStatus(
                is_exhausted=True,
                recommended_wait=30 * 60.0,
                recovery_strategy=RecoveryStrategy.MANUAL_INTERVENTION,
                estimated_reset_time=reset_time,
            )
        if count == 2:
            return QuotaStatus(
                is_exhausted=False,
                recommended_wait=15 * 60.0,
                recovery_strategy=RecoveryStrategy.REDUCE_BATCH_SIZE,
                estimated_reset_time=reset_time,
            )
        return QuotaStatus(
            is_exhausted=False,
            recommended_wait=5 * 60.0,
            recovery_strategy=RecoveryStrategy.WAIT,
            estimated_reset_time=reset_time,
        )

    def get_recommended_config(
        self,
        status: QuotaStatus,
        base_batch_size: int = 50,
    ) -> RecommendedConfig:
        """Map a quota status onto batch size and delay multipliers."""
        strategy = status.recovery_strategy

        if strategy is RecoveryStrategy.REDUCE_BATCH_SIZE:
            return RecommendedConfig(max(1, base_batch_size // 2), 2.0, 1.5)
        if strategy is RecoveryStrategy.INCREASE_DELAYS:
            return RecommendedConfig(base_batch_size, 3.0, 2.0)
        if strategy is RecoveryStrategy.MANUAL_INTERVENTION:
            return RecommendedConfig(max(1, base_batch_size // 5), 5.0, 3.0)
        return RecommendedConfig(base_batch_size, 1.0, 1.0)

    def estimate_quota_reset_time(self) -> datetime:
        """Next midnight in the provider's quota timezone, as UTC."""
        local_now = self._clock().astimezone(self.reset_timezone)
        next_midnight = (local_now + timedelta(days=1)).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        return next_midnight.astimezone(timezone.utc)

    def should_pause_operations(self) -> bool:
        """True only when the history says the quota is exhausted."""
        return (
            self.analyze_status().recovery_strategy
            is RecoveryStrategy.MANUAL_INTERVENTION
        )

    def get_recommended_pause_duration(self) -> float:
        return self.analyze_status().recommended_wait

    def get_stats(self) -> dict[str, Any]:
        """Get quota monitoring statistics for diagnostics."""
        recent = self._events_within(min(self.recent_window, self.retention))
        return {
            "total_quota_errors": len(self._events),
            "recent_quota_errors": len(recent),
            "last_quota_error": (
                self._events[-1].timestamp.isoformat() if self._events else None
            ),
            "estimated_reset_time": self.estimate_quota_reset_time().isoformat(),
        }

    def clear_history(self) -> None:
        self._events.clear()
        logger.info("Quota error history cleared")


__all__ = [
    "QuotaErrorEvent",
    "QuotaMonitor",
    "QuotaStatus",
    "RecommendedConfig",
    "RecoveryStrategy",
]
