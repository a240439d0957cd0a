"""Configuration loaded from environment variables.

The entry points call python-dotenv's load_dotenv() first, so a local .env
file works the same as real environment variables.
"""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping

from .api.exceptions import ConfigurationError
from .sync.domain.rules import SyncRules, UnmatchedPolicy

REQUIRED_KEYS = ("GOOGLE_SHEET_ID", "CSV_URL")


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_number(env: Mapping[str, str], key: str, default, cast):
    value = env.get(key)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError as e:
        raise ConfigurationError(
            f"Invalid value for {key}: {value!r}",
            details={"key": key},
            cause=e,
        )


@dataclass
class SyncConfig:
    """Everything the CLI and the scheduler need to build a sync pass."""

    google_sheet_id: str
    csv_url: str
    service_account_file: str = "service_account.json"
    csv_cookie: str = ""
    sheets: list[str] = field(default_factory=lambda: ["WBS_DEV", "WBS_QC"])

    staleness_minutes: float = 60
    chunk_size: int = 50
    chunk_delay: float = 1.0
    max_parallel_saves: int = 10
    insert_unmatched: bool = False
    review_progress: int = 80
    sheet_timezone: str = "UTC"

    rate_limit_min_interval: float = 1.0
    rate_limit_batch_size: int = 1000
    rate_limit_batch_delay: float = 0.1

    retry_max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retry_backoff_multiplier: float = 2.0

    quota_reset_utc_offset_hours: float = -8

    interval_minutes: int = 60
    sync_on_startup: bool = True
    health_check_port: int = 8080

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "SyncConfig":
        """Build the configuration from environment variables.

        Raises:
            ConfigurationError: If required variables are missing or a value
                cannot be parsed
        """
        env = os.environ if env is None else env

        missing = [key for key in REQUIRED_KEYS if not (env.get(key) or "").strip()]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

        sheets = [
            name.strip()
            for name in env.get("SYNC_SHEETS", "WBS_DEV,WBS_QC").split(",")
            if name.strip()
        ]

        return cls(
            google_sheet_id=env["GOOGLE_SHEET_ID"].strip(),
            csv_url=env["CSV_URL"].strip(),
            service_account_file=env.get("GOOGLE_SERVICE_ACCOUNT_FILE") or "service_account.json",
            csv_cookie=env.get("CSV_COOKIE", ""),
            sheets=sheets,
            staleness_minutes=_get_number(env, "SYNC_STALENESS_MINUTES", 60, float),
            chunk_size=_get_number(env, "SYNC_CHUNK_SIZE", 50, int),
            chunk_delay=_get_number(env, "SYNC_CHUNK_DELAY", 1.0, float),
            max_parallel_saves=_get_number(env, "SYNC_MAX_PARALLEL_SAVES", 10, int),
            insert_unmatched=_get_bool(env, "SYNC_INSERT_UNMATCHED", False),
            review_progress=_get_number(env, "SYNC_REVIEW_PROGRESS", 80, int),
            sheet_timezone=env.get("SHEET_TIMEZONE") or "UTC",
            rate_limit_min_interval=_get_number(env, "RATE_LIMIT_MIN_INTERVAL", 1.0, float),
            rate_limit_batch_size=_get_number(env, "RATE_LIMIT_BATCH_SIZE", 1000, int),
            rate_limit_batch_delay=_get_number(env, "RATE_LIMIT_BATCH_DELAY", 0.1, float),
            retry_max_retries=_get_number(env, "RETRY_MAX_RETRIES", 3, int),
            retry_base_delay=_get_number(env, "RETRY_BASE_DELAY", 1.0, float),
            retry_max_delay=_get_number(env, "RETRY_MAX_DELAY", 30.0, float),
            retry_backoff_multiplier=_get_number(env, "RETRY_BACKOFF_MULTIPLIER", 2.0, float),
            quota_reset_utc_offset_hours=_get_number(env, "QUOTA_RESET_UTC_OFFSET_HOURS", -8, float),
            interval_minutes=_get_number(env, "SYNC_INTERVAL_MINUTES", 60, int),
            sync_on_startup=_get_bool(env, "SYNC_ON_STARTUP", True),
            health_check_port=_get_number(env, "HEALTH_CHECK_PORT", 8080, int),
        )

    def to_rules(self) -> SyncRules:
        """Sync rules derived from this configuration."""
        return SyncRules(
            staleness_window=timedelta(minutes=self.staleness_minutes),
            review_progress=self.review_progress,
            unmatched_policy=(
                UnmatchedPolicy.INSERT if self.insert_unmatched else UnmatchedPolicy.SKIP
            ),
            timezone_name=self.sheet_timezone,
        )

    def __repr__(self):
        return (
            f"SyncConfig("
            f"sheets={self.sheets}, "
            f"interval={self.interval_minutes}m, "
            f"staleness={self.staleness_minutes}m, "
            f"chunk_size={self.chunk_size}, "
            f"insert_unmatched={self.insert_unmatched}, "
            f"startup={self.sync_on_startup}, "
            f"health_port={self.health_check_port})"
        )
