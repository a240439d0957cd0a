"""Google Sheets API resilience toolkit and HTTP clients.

This package provides the quota-aware building blocks of the sync engine
and the clients that talk to the outside world.

Classes:
    RateLimiter: Serialized, paced task queue with quota backoff
    RetryManager: Classifier-driven retry with exponential backoff
    QuotaMonitor: Quota error history and recovery recommendations
    SheetsClient: Async gspread facade with error translation
    JiraCsvClient: aiohttp client for the Jira CSV export

Exceptions:
    WbsSyncError: Base exception for all sync errors
    QuotaExceededError, RateLimitError, TransientError: Recoverable
    FatalError, NotFoundError, ConfigurationError: Unrecoverable
    ChunkWriteError, QuotaPausedError: A sync pass was aborted
"""
from .error_classifier import (
    ErrorClassification,
    classify_error,
    compute_delay,
    get_recommended_wait_time,
    is_recoverable,
    log_error,
)
from .exceptions import (
    ChunkWriteError,
    ConfigurationError,
    ErrorKind,
    FatalError,
    NotFoundError,
    PassError,
    QuotaExceededError,
    QuotaPausedError,
    RateLimitError,
    TransientError,
    WbsSyncError,
)
from .jira_client import JiraCsvClient
from .quota_monitor import (
    QuotaErrorEvent,
    QuotaMonitor,
    QuotaStatus,
    RecommendedConfig,
    RecoveryStrategy,
)
from .rate_limiter import RateLimiter
from .resilience import RetryManager, RetryPolicy, process_concurrent
from .sheets_client import SheetsClient, translate_gspread_error

__all__ = [
    # Classifier
    "ErrorClassification",
    "classify_error",
    "compute_delay",
    "get_recommended_wait_time",
    "is_recoverable",
    "log_error",
    # Exceptions
    "ChunkWriteError",
    "ConfigurationError",
    "ErrorKind",
    "FatalError",
    "NotFoundError",
    "PassError",
    "QuotaExceededError",
    "QuotaPausedError",
    "RateLimitError",
    "TransientError",
    "WbsSyncError",
    # Quota
    "QuotaErrorEvent",
    "QuotaMonitor",
    "QuotaStatus",
    "RecommendedConfig",
    "RecoveryStrategy",
    # Pacing and retry
    "RateLimiter",
    "RetryManager",
    "RetryPolicy",
    "process_concurrent",
    # Clients
    "JiraCsvClient",
    "SheetsClient",
    "translate_gspread_error",
]
