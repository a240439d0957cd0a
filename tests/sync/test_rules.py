"""Tests for the eligibility and transformation rules."""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.wbssync.sync.domain.entities import ExistingTarget, SyncRecord
from src.wbssync.sync.domain.ports import ITargetRow
from src.wbssync.sync.domain.rules import (
    SyncRules,
    build_eligibility_index,
    build_insert_row,
    compute_updates,
    derive_progress,
    email_local_part,
    format_date,
    is_eligible,
    parse_sheet_datetime,
    to_existing_target,
)

NOW = datetime(2025, 8, 14, 12, 0, tzinfo=timezone.utc)


class MockRow(ITargetRow):
    """In-memory sheet row."""

    def __init__(self, values: dict[str, Any]):
        self.values = dict(values)

    def get(self, column: str) -> str:
        return str(self.values.get(column, ""))

    def set_field(self, column: str, value: Any) -> None:
        self.values[column] = value

    async def save(self) -> None:
        pass


def target(key: str, status: str = "Open", last_sync: datetime | None = None) -> ExistingTarget:
    return ExistingTarget(key=key, status=status, last_synced_at=last_sync, row=MockRow({}))


@pytest.fixture
def rules():
    return SyncRules()


# ============================================
# Eligibility
# ============================================

class TestIsEligible:
    """Tests for the per-row eligibility rule."""

    def test_closed_never_eligible(self, rules):
        assert not is_eligible(target("A-1", status="Closed"), rules, NOW)
        assert not is_eligible(
            target("A-1", status="Closed", last_sync=NOW - timedelta(days=3)), rules, NOW
        )

    def test_never_synced_is_eligible(self, rules):
        assert is_eligible(target("A-1"), rules, NOW)

    def test_recent_sync_not_eligible(self, rules):
        assert not is_eligible(target("A-1", last_sync=NOW - timedelta(minutes=59)), rules, NOW)

    def test_exact_window_boundary_is_eligible(self, rules):
        assert is_eligible(target("A-1", last_sync=NOW - timedelta(hours=1)), rules, NOW)

    def test_stale_sync_is_eligible(self, rules):
        assert is_eligible(target("A-1", last_sync=NOW - timedelta(hours=3)), rules, NOW)

    def test_custom_window(self):
        rules = SyncRules(staleness_window=timedelta(minutes=10))
        assert is_eligible(target("A-1", last_sync=NOW - timedelta(minutes=15)), rules, NOW)

    def test_resolved_is_still_eligible(self, rules):
        """Only Closed is excluded; Resolved rows keep receiving updates."""
        assert is_eligible(target("A-1", status="Resolved"), rules, NOW)


class TestEligibilityIndex:
    """Tests for build_eligibility_index."""

    def test_blank_keys_never_indexed(self, rules):
        index = build_eligibility_index([target(""), target("A-1")], rules, NOW)
        assert list(index) == ["A-1"]

    def test_excludes_ineligible(self, rules):
        index = build_eligibility_index(
            [
                target("A-1"),
                target("A-2", status="Closed"),
                target("A-3", last_sync=NOW - timedelta(minutes=5)),
            ],
            rules,
            NOW,
        )
        assert set(index) == {"A-1"}

    def test_duplicate_keys_first_row_wins(self, rules):
        first = target("A-1")
        second = target("A-1")
        index = build_eligibility_index([first, second], rules, NOW)
        assert index["A-1"] is first

    def test_duplicate_after_ineligible_first_row_not_indexed(self, rules):
        index = build_eligibility_index(
            [target("A-1", status="Closed"), target("A-1")], rules, NOW
        )
        assert "A-1" not in index


class TestSheetParsing:
    def test_to_existing_target(self, rules):
        row = MockRow({"Issue Key": " A-1 ", "Status": "In Progress", "Last Sync": "2025/08/14 10:30"})
        existing = to_existing_target(row, rules)

        assert existing.key == "A-1"
        assert existing.status == "In Progress"
        assert existing.last_synced_at == datetime(2025, 8, 14, 10, 30, tzinfo=timezone.utc)
        assert existing.row is row

    def test_unparsable_last_sync_is_eligible(self, rules):
        row = MockRow({"Issue Key": "A-1", "Status": "Open", "Last Sync": "yesterday-ish"})
        existing = to_existing_target(row, rules)

        assert existing.last_synced_at is None
        assert existing.last_synced_raw == "yesterday-ish"
        assert is_eligible(existing, rules, NOW)

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("2025/08/14 10:30", datetime(2025, 8, 14, 10, 30, tzinfo=timezone.utc)),
            ("2025/08/14", datetime(2025, 8, 14, tzinfo=timezone.utc)),
            ("2025-08-14 10:30:15", datetime(2025, 8, 14, 10, 30, 15, tzinfo=timezone.utc)),
            ("2025-08-14T10:30:00+00:00", datetime(2025, 8, 14, 10, 30, tzinfo=timezone.utc)),
            ("", None),
        ],
    )
    def test_parse_sheet_datetime(self, rules, raw, expected):
        assert parse_sheet_datetime(raw, rules) == expected

    def test_sheet_timezone(self):
        rules = SyncRules(timezone_name="Asia/Ho_Chi_Minh")
        parsed = parse_sheet_datetime("2025/08/14 17:00", rules)
        assert parsed == datetime(2025, 8, 14, 10, 0, tzinfo=timezone.utc)


# ============================================
# Transformation
# ============================================

class TestDeriveProgress:
    @pytest.mark.parametrize("status", ["Resolved", "Closed"])
    def test_terminal_statuses(self, rules, status):
        assert derive_progress(SyncRecord("A-1", {"status": status, "percent_done": 10}), rules) == 100

    def test_in_review(self, rules):
        assert derive_progress(SyncRecord("A-1", {"status": "In Review"}), rules) == 80

    def test_in_review_configurable(self):
        rules = SyncRules(review_progress=90)
        assert derive_progress(SyncRecord("A-1", {"status": "In Review"}), rules) == 90

    def test_in_progress_copies_percentage(self, rules):
        assert derive_progress(SyncRecord("A-1", {"status": "In Progress", "percent_done": 40}), rules) == 40

    def test_in_progress_without_percentage(self, rules):
        assert derive_progress(SyncRecord("A-1", {"status": "In Progress"}), rules) == 0

    def test_other_statuses_leave_progress(self, rules):
        assert derive_progress(SyncRecord("A-1", {"status": "Open", "percent_done": 20}), rules) is None

    def test_no_status(self, rules):
        assert derive_progress(SyncRecord("A-1", {}), rules) is None


class TestComputeUpdates:
    """Tests for compute_updates."""

    def test_in_progress_record(self, rules):
        record = SyncRecord(
            "A-1",
            {
                "status": "In Progress",
                "percent_done": 40,
                "assignee": "jane.doe@example.com",
                "due_date": datetime(2025, 9, 1, 3, 0, tzinfo=timezone.utc),
                "plan_start_at": datetime(2025, 8, 1, tzinfo=timezone.utc),
            },
        )

        updates = compute_updates(record, rules, NOW)

        assert updates == {
            "Status": "In Progress",
            "Progress (%)": 40,
            "Pic": "jane.doe",
            "Plan End": "2025/09/01",
            "Plan Start": "2025/08/01",
            "Last Sync": "2025/08/14 12:00",
        }

    def test_absent_fields_not_written(self, rules):
        updates = compute_updates(SyncRecord("A-1", {"status": "Open"}), rules, NOW)
        assert set(updates) == {"Status", "Last Sync"}

    def test_nothing_to_write_means_no_stamp(self, rules):
        assert compute_updates(SyncRecord("A-1", {"summary": "ignored"}), rules, NOW) == {}

    def test_dates_rendered_in_sheet_timezone(self):
        rules = SyncRules(timezone_name="Asia/Ho_Chi_Minh")
        record = SyncRecord("A-1", {"actual_end_at": datetime(2025, 8, 14, 20, 0, tzinfo=timezone.utc)})

        updates = compute_updates(record, rules, NOW)

        assert updates["Actual End"] == "2025/08/15"
        assert updates["Last Sync"] == "2025/08/14 19:00"

    def test_build_insert_row(self, rules):
        row = build_insert_row(SyncRecord("A-9", {"status": "Resolved"}), rules, NOW)
        assert row == {
            "Issue Key": "A-9",
            "Status": "Resolved",
            "Progress (%)": 100,
            "Last Sync": "2025/08/14 12:00",
        }


class TestFormatting:
    def test_email_local_part(self):
        assert email_local_part("jane.doe@example.com") == "jane.doe"
        assert email_local_part("jane") == "jane"
        assert email_local_part("@example.com") == "@example.com"
        assert email_local_part(None) == ""

    def test_format_date_invalid(self, rules):
        assert format_date("not a date", rules) == ""
        assert format_date(None, rules) == ""

    def test_format_date_from_iso_string(self, rules):
        assert format_date("2025-08-14T23:00:00Z", rules) == "2025/08/14"
