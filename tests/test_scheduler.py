#!/usr/bin/env python3
"""Tests for the scheduler's pass runner, health state and loop.

Tests cover:
    - A successful pass reports per-sheet results
    - A quota pause skips the pass without counting as a failure
    - Typed and unexpected errors are reported, never raised
    - Health status and HTTP status codes
    - The loop honours SYNC_ON_STARTUP and the shutdown event
"""
import asyncio
import json
import sys
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from scheduler import HealthState, health_check_handler, run_sync, scheduler_loop
from src.wbssync.api.exceptions import ChunkWriteError, FatalError, QuotaPausedError
from src.wbssync.config import SyncConfig
from src.wbssync.sync.domain.entities import SyncResult
from src.wbssync.sync.use_cases import SyncContext

SYNCED_AT = datetime(2025, 8, 14, 12, 0, tzinfo=timezone.utc)


# ============================================
# Test Fixtures
# ============================================

@pytest.fixture
def config():
    """Create a config that needs no environment."""
    return SyncConfig(google_sheet_id="sheet-123", csv_url="https://jira.example.com/export.csv")


def use_case_returning(*results):
    use_case = MagicMock()
    use_case.execute = AsyncMock(return_value=list(results))
    return use_case


def use_case_raising(error):
    use_case = MagicMock()
    use_case.execute = AsyncMock(side_effect=error)
    return use_case


# ============================================
# run_sync
# ============================================

class TestRunSync:
    """Test a single scheduled pass."""

    @pytest.mark.asyncio
    async def test_success(self):
        result = SyncResult(sheet_name="WBS_DEV", total=3, updated=2, synced_at=SYNCED_AT)

        results = await run_sync(use_case_returning(result))

        assert results["success"] is True
        assert results["skipped"] is False
        assert results["sheets"] == [result.to_dict()]
        assert results["duration_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_quota_pause_skips_pass(self):
        results = await run_sync(use_case_raising(QuotaPausedError(recommended_wait=1800)))

        assert results["success"] is False
        assert results["skipped"] is True
        assert results["error_type"] == "QuotaPausedError"

    @pytest.mark.asyncio
    async def test_chunk_failure_reported(self):
        error = ChunkWriteError(
            sheet_name="WBS_DEV",
            chunk_index=2,
            chunk_count=4,
            written_before_failure=100,
            cause=FatalError("write rejected"),
        )

        results = await run_sync(use_case_raising(error))

        assert results["success"] is False
        assert results["skipped"] is False
        assert results["error_type"] == "ChunkWriteError"
        assert results["details"]["details"]["written_before_failure"] == 100

    @pytest.mark.asyncio
    async def test_unexpected_error_reported(self):
        results = await run_sync(use_case_raising(KeyError("boom")))

        assert results["success"] is False
        assert results["error_type"] == "KeyError"


# ============================================
# Health
# ============================================

class TestHealthState:
    def test_healthy_before_first_sync(self):
        assert HealthState().to_dict()["status"] == "healthy"

    def test_failure_is_unhealthy(self):
        state = HealthState()
        state.record({"success": False, "skipped": False})

        body = state.to_dict()
        assert body["status"] == "unhealthy"
        assert body["failed_syncs"] == 1

    def test_skipped_pass_keeps_previous_status(self):
        state = HealthState()
        state.record({"success": True, "skipped": False})
        state.record({"success": False, "skipped": True})

        body = state.to_dict()
        assert body["status"] == "healthy"
        assert body["skipped_syncs"] == 1
        assert body["total_syncs"] == 2

    def test_quota_stats_included(self):
        body = HealthState(SyncContext()).to_dict()
        assert body["quota"]["total_quota_errors"] == 0

    @pytest.mark.asyncio
    async def test_handler_status_codes(self):
        state = HealthState()
        state.record({"success": False, "skipped": False})

        reader = AsyncMock()
        writer = MagicMock()
        writer.drain = AsyncMock()
        writer.wait_closed = AsyncMock()

        await health_check_handler(reader, writer, state)

        response = writer.write.call_args[0][0].decode()
        head, body = response.split("\r\n\r\n", 1)
        assert head.startswith("HTTP/1.1 503")
        assert json.loads(body)["status"] == "unhealthy"


# ============================================
# Scheduler Loop
# ============================================

class TestSchedulerLoop:
    @pytest.mark.asyncio
    async def test_startup_sync_then_shutdown(self, config):
        use_case = use_case_returning()
        state = HealthState()
        shutdown = asyncio.Event()
        shutdown.set()

        await scheduler_loop(config, use_case, state, shutdown)

        use_case.execute.assert_awaited_once()
        assert state.total_syncs == 1

    @pytest.mark.asyncio
    async def test_no_startup_sync(self, config):
        config.sync_on_startup = False
        use_case = use_case_returning()
        shutdown = asyncio.Event()
        shutdown.set()

        await scheduler_loop(config, use_case, HealthState(), shutdown)

        use_case.execute.assert_not_awaited()
