#!/usr/bin/env python3
"""Exception Hierarchy for the Jira -> Google Sheets sync.

Every failure the sync engine reasons about is one of four tagged kinds,
so callers never have to guess at the shape of an error object:

Exception Hierarchy:
    WbsSyncError (base)
    ├── QuotaExceededError (recoverable - wait for quota)
    ├── RateLimitError (recoverable - slow down)
    ├── TransientError (recoverable - retry with backoff)
    ├── FatalError (unrecoverable - propagate immediately)
    │   ├── NotFoundError
    │   └── ConfigurationError
    └── PassError (a sync pass was aborted)
        ├── ChunkWriteError
        └── QuotaPausedError

Adapters translate library exceptions (gspread, aiohttp) into this
hierarchy; the ErrorClassifier turns any of them into a retry strategy.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class ErrorKind(Enum):
    """Tag for the recovery class of an error."""
    QUOTA = "quota"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    FATAL = "fatal"


# ============================================
# Base Exception
# ============================================

class WbsSyncError(Exception):
    """Base exception for all sync errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "QUOTA_EXCEEDED")
        status: HTTP-like status code when the failure came from a remote API
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    kind: ErrorKind = ErrorKind.FATAL

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.status = status
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        parts = [f"[{self.code}]", self.message]
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"status={self.status!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "status": self.status,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Recoverable Errors
# ============================================

class QuotaExceededError(WbsSyncError):
    """Raised when the destination API usage allowance is exhausted."""

    kind = ErrorKind.QUOTA

    def __init__(self, message: str = "Quota exceeded", **kwargs):
        kwargs.setdefault("status", 429)
        kwargs.setdefault("code", "QUOTA_EXCEEDED")
        super().__init__(message, recoverable=True, **kwargs)


class RateLimitError(WbsSyncError):
    """Raised when requests are issued faster than the API allows.

    Attributes:
        retry_after: Seconds to wait before retrying, if the server said so
    """

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        **kwargs,
    ):
        kwargs.setdefault("status", 429)
        details = kwargs.pop("details", {})
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message,
            code="RATE_LIMIT_EXCEEDED",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.retry_after = retry_after


class TransientError(WbsSyncError):
    """Raised for 5xx responses, timeouts and dropped connections."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, message: str = "Temporary failure", **kwargs):
        kwargs.setdefault("code", "TRANSIENT_ERROR")
        super().__init__(message, recoverable=True, **kwargs)


# ============================================
# Fatal Errors
# ============================================

class FatalError(WbsSyncError):
    """Raised when retrying cannot help (bad request, bad credentials...)."""

    kind = ErrorKind.FATAL

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "FATAL_ERROR")
        super().__init__(message, recoverable=False, **kwargs)


class NotFoundError(FatalError):
    """Raised when a named destination collection does not exist."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"

        details = kwargs.pop("details", {})
        details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        kwargs.setdefault("status", 404)
        super().__init__(message, code="NOT_FOUND", details=details, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConfigurationError(FatalError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            **kwargs,
        )
        self.missing_keys = missing_keys or []


# ============================================
# Pass-level Errors
# ============================================

class PassError(WbsSyncError):
    """Base class for errors that abort a whole sync pass."""


class ChunkWriteError(PassError):
    """Raised when a chunk of row saves fails after all retries.

    Chunks before the failing one stay committed; the error carries
    enough context for an operator to see how far the pass got.

    Attributes:
        sheet_name: Destination collection being written
        chunk_index: Zero-based index of the failed chunk
        chunk_count: Total number of chunks in the pass
        written_before_failure: Rows saved by earlier chunks
    """

    def __init__(
        self,
        sheet_name: str,
        chunk_index: int,
        chunk_count: int,
        written_before_failure: int,
        cause: Exception,
        limiter_status: Optional[dict[str, Any]] = None,
        quota_stats: Optional[dict[str, Any]] = None,
    ):
        details = {
            "sheet": sheet_name,
            "chunk": f"{chunk_index + 1}/{chunk_count}",
            "written_before_failure": written_before_failure,
        }
        super().__init__(
            f"Failed to save chunk {chunk_index + 1}/{chunk_count} "
            f"of sheet '{sheet_name}': {cause}",
            code="CHUNK_WRITE_FAILED",
            status=getattr(cause, "status", None),
            details=details,
            cause=cause,
            recoverable=False,
        )
        self.sheet_name = sheet_name
        self.chunk_index = chunk_index
        self.chunk_count = chunk_count
        self.written_before_failure = written_before_failure
        self.limiter_status = limiter_status or {}
        self.quota_stats = quota_stats or {}


class QuotaPausedError(PassError):
    """Raised when quota history says all writes should pause.

    Attributes:
        recommended_wait: Seconds to wait before trying again
        estimated_reset_time: When the provider quota is expected to reset
    """

    def __init__(
        self,
        recommended_wait: float,
        estimated_reset_time: Optional[datetime] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        details["recommended_wait_seconds"] = recommended_wait
        if estimated_reset_time:
            details["estimated_reset_time"] = estimated_reset_time.isoformat()
        super().__init__(
            "Quota exhausted, sync operations paused",
            code="QUOTA_PAUSED",
            details=details,
            recoverable=True,
            **kwargs,
        )
        self.recommended_wait = recommended_wait
        self.estimated_reset_time = estimated_reset_time


__all__ = [
    "ErrorKind",
    "WbsSyncError",
    "QuotaExceededError",
    "RateLimitError",
    "TransientError",
    "FatalError",
    "NotFoundError",
    "ConfigurationError",
    "PassError",
    "ChunkWriteError",
    "QuotaPausedError",
]
