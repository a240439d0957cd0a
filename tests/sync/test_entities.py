"""Tests for sync domain entities."""

from datetime import datetime, timezone

import pytest

from src.wbssync.sync.domain.entities import SyncRecord, SyncResult


class TestSyncRecord:
    """Tests for SyncRecord entity."""

    def test_record_creation_minimal(self):
        """Test creating a record with only a key."""
        record = SyncRecord(key="A-1")

        assert record.key == "A-1"
        assert record.fields == {}
        assert record.synced_at is None
        assert record.status is None
        assert record.percent_done is None

    def test_key_is_trimmed(self):
        assert SyncRecord(key="  A-1 ").key == "A-1"

    @pytest.mark.parametrize("key", ["", "   ", None])
    def test_blank_key_rejected(self, key):
        """A record without a business key cannot exist."""
        with pytest.raises(ValueError):
            SyncRecord(key=key)

    def test_field_accessors(self):
        record = SyncRecord(key="A-1", fields={"status": "In Progress", "percent_done": 40})

        assert record.status == "In Progress"
        assert record.percent_done == 40
        assert record.has("status")
        assert not record.has("due_date")


class TestSyncResult:
    """Tests for SyncResult entity."""

    def test_skipped_is_derived(self):
        result = SyncResult(
            sheet_name="WBS_DEV",
            total=10,
            updated=6,
            inserted=1,
            synced_at=datetime(2025, 8, 14, tzinfo=timezone.utc),
        )

        assert result.skipped == 3

    def test_to_dict(self):
        synced_at = datetime(2025, 8, 14, 9, 30, tzinfo=timezone.utc)
        result = SyncResult(sheet_name="WBS_QC", total=2, updated=1, synced_at=synced_at, dry_run=True)

        assert result.to_dict() == {
            "sheet": "WBS_QC",
            "total": 2,
            "updated": 1,
            "inserted": 0,
            "skipped": 1,
            "dry_run": True,
            "synced_at": synced_at.isoformat(),
        }
