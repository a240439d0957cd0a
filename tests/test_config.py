"""Tests for environment-based configuration."""

from datetime import timedelta

import pytest

from src.wbssync.api.exceptions import ConfigurationError
from src.wbssync.config import SyncConfig
from src.wbssync.sync.domain.rules import UnmatchedPolicy

BASE_ENV = {
    "GOOGLE_SHEET_ID": "sheet-123",
    "CSV_URL": "https://jira.example.com/sr/jira.issueviews:searchrequest-csv-all-fields/10000/SearchRequest-10000.csv",
}


class TestSyncConfig:
    def test_missing_required_keys(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_env({})

        assert exc_info.value.missing_keys == ["GOOGLE_SHEET_ID", "CSV_URL"]

    def test_blank_value_counts_as_missing(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_env({**BASE_ENV, "CSV_URL": "   "})

        assert exc_info.value.missing_keys == ["CSV_URL"]

    def test_defaults(self):
        config = SyncConfig.from_env(BASE_ENV)

        assert config.google_sheet_id == "sheet-123"
        assert config.service_account_file == "service_account.json"
        assert config.csv_cookie == ""
        assert config.sheets == ["WBS_DEV", "WBS_QC"]
        assert config.staleness_minutes == 60
        assert config.chunk_size == 50
        assert config.insert_unmatched is False
        assert config.rate_limit_min_interval == 1.0
        assert config.retry_max_retries == 3
        assert config.quota_reset_utc_offset_hours == -8
        assert config.sync_on_startup is True
        assert config.health_check_port == 8080

    def test_overrides(self):
        config = SyncConfig.from_env({
            **BASE_ENV,
            "CSV_COOKIE": "JSESSIONID=abc",
            "SYNC_SHEETS": " WBS_DEV , ,WBS_OPS ",
            "SYNC_STALENESS_MINUTES": "15",
            "SYNC_CHUNK_SIZE": "20",
            "SYNC_CHUNK_DELAY": "2.5",
            "SYNC_INSERT_UNMATCHED": "yes",
            "SYNC_ON_STARTUP": "false",
            "RETRY_MAX_RETRIES": "5",
            "SHEET_TIMEZONE": "Asia/Ho_Chi_Minh",
        })

        assert config.csv_cookie == "JSESSIONID=abc"
        assert config.sheets == ["WBS_DEV", "WBS_OPS"]
        assert config.staleness_minutes == 15
        assert config.chunk_size == 20
        assert config.chunk_delay == 2.5
        assert config.insert_unmatched is True
        assert config.sync_on_startup is False
        assert config.retry_max_retries == 5
        assert config.sheet_timezone == "Asia/Ho_Chi_Minh"

    def test_invalid_number(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SyncConfig.from_env({**BASE_ENV, "SYNC_CHUNK_SIZE": "fifty"})

        assert exc_info.value.details["key"] == "SYNC_CHUNK_SIZE"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_to_rules(self):
        config = SyncConfig.from_env({
            **BASE_ENV,
            "SYNC_STALENESS_MINUTES": "30",
            "SYNC_REVIEW_PROGRESS": "90",
            "SYNC_INSERT_UNMATCHED": "1",
        })

        rules = config.to_rules()

        assert rules.staleness_window == timedelta(minutes=30)
        assert rules.review_progress == 90
        assert rules.unmatched_policy is UnmatchedPolicy.INSERT

    def test_repr_hides_secrets(self):
        config = SyncConfig.from_env({**BASE_ENV, "CSV_COOKIE": "JSESSIONID=secret"})
        assert "secret" not in repr(config)
        assert "sheet-123" not in repr(config)
