#!/usr/bin/env python3
"""Automated Scheduler for the Jira -> Google Sheets WBS Sync.

This module provides a long-running scheduler that syncs the Jira CSV
export into the configured worksheets at a fixed interval. Designed to run
as the main process in a Docker container.

Architecture:
    - Simple asyncio loop with sleep (no external scheduler)
    - Graceful shutdown on SIGTERM/SIGINT
    - Configurable via environment variables
    - Health check endpoint via optional HTTP server
    - One SyncContext for the whole process, so the rate limiter's backoff
      and the quota history carry over from one pass to the next

A failed pass is not retried; the next scheduled pass runs normally. When
the quota monitor asks for a pause the pass is skipped.

Environment Variables:
    SYNC_INTERVAL_MINUTES: Minutes between sync runs (default: 60)
    SYNC_ON_STARTUP: Run sync immediately on startup (default: true)
    HEALTH_CHECK_PORT: Port for health check endpoint (default: 8080, 0 to disable)

    Sync:
        GOOGLE_SHEET_ID, GOOGLE_SERVICE_ACCOUNT_FILE, CSV_URL, CSV_COOKIE, SYNC_SHEETS

Example:
    # Run every 30 minutes
    SYNC_INTERVAL_MINUTES=30 python scheduler.py

Docker Usage:
    docker run -e SYNC_INTERVAL_MINUTES=60 -e GOOGLE_SHEET_ID=... wbs-sync
"""
import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.wbssync.api.exceptions import QuotaPausedError, WbsSyncError
from src.wbssync.config import SyncConfig
from src.wbssync.sync.factory import create_sync_use_case
from src.wbssync.sync.use_cases import SyncContext, SyncJiraToSheetsUseCase

# Initialize logger
logger = logging.getLogger(__name__)


# ============================================
# Sync Logic
# ============================================

async def run_sync(use_case: SyncJiraToSheetsUseCase) -> dict:
    """Run a single sync pass.

    Returns:
        Dict with sync results
    """
    start_time = datetime.now(timezone.utc)
    results = {
        "started_at": start_time.isoformat(),
        "sheets": [],
        "success": False,
        "skipped": False,
        "error": None,
    }

    try:
        sheet_results = await use_case.execute()
        results["sheets"] = [result.to_dict() for result in sheet_results]
        results["success"] = True

    except QuotaPausedError as e:
        logger.warning(
            f"Quota exhausted, skipping this pass. Recommended wait "
            f"{e.recommended_wait:.0f}s, estimated reset {e.estimated_reset_time}"
        )
        results["skipped"] = True
        results["error"] = e.message
        results["error_type"] = type(e).__name__

    except WbsSyncError as e:
        logger.error(f"Sync pass failed: {type(e).__name__}: {e}", exc_info=True)
        results["error"] = str(e)
        results["error_type"] = type(e).__name__
        results["details"] = e.to_dict()

    except Exception as e:
        logger.error(f"Sync pass failed unexpectedly: {type(e).__name__}: {e}", exc_info=True)
        results["error"] = str(e)
        results["error_type"] = type(e).__name__

    end_time = datetime.now(timezone.utc)
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    return results


# ============================================
# Health Check Server
# ============================================

class HealthState:
    """Shared state for health checks."""

    def __init__(self, context: Optional[SyncContext] = None):
        self.context = context
        self.last_sync_at: Optional[datetime] = None
        self.last_sync_success: bool = False
        self.total_syncs: int = 0
        self.failed_syncs: int = 0
        self.skipped_syncs: int = 0
        self.started_at: datetime = datetime.now(timezone.utc)

    def record(self, results: dict) -> None:
        self.total_syncs += 1
        self.last_sync_at = datetime.now(timezone.utc)
        if results["skipped"]:
            self.skipped_syncs += 1
            return
        self.last_sync_success = results["success"]
        if not results["success"]:
            self.failed_syncs += 1

    def to_dict(self) -> dict:
        uptime = (datetime.now(timezone.utc) - self.started_at).total_seconds()
        healthy = self.last_sync_success or self.total_syncs == self.skipped_syncs
        body = {
            "status": "healthy" if healthy else "unhealthy",
            "uptime_seconds": round(uptime),
            "total_syncs": self.total_syncs,
            "failed_syncs": self.failed_syncs,
            "skipped_syncs": self.skipped_syncs,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else "never",
        }
        if self.context:
            body["quota"] = self.context.quota_monitor.get_stats()
        return body


async def health_check_handler(reader, writer, state: HealthState):
    """Handle HTTP health check requests."""
    # Read request (we don't care about the content)
    await reader.read(1024)

    payload = state.to_dict()
    body = json.dumps(payload, default=str)

    http_status = 200 if payload["status"] == "healthy" else 503
    response = (
        f"HTTP/1.1 {http_status} {'OK' if http_status == 200 else 'Service Unavailable'}\r\n"
        f"Content-Type: application/json\r\n"
        f"Content-Length: {len(body.encode())}\r\n"
        f"Connection: close\r\n"
        f"\r\n"
        f"{body}"
    )

    writer.write(response.encode())
    await writer.drain()
    writer.close()
    await writer.wait_closed()


async def start_health_server(port: int, state: HealthState):
    """Start the health check HTTP server."""
    if port <= 0:
        return None

    async def handler(reader, writer):
        await health_check_handler(reader, writer, state)

    server = await asyncio.start_server(handler, "0.0.0.0", port)
    logger.info(f"Health check server listening on port {port}")
    return server


# ============================================
# Main Scheduler Loop
# ============================================

async def scheduler_loop(
    config: SyncConfig,
    use_case: SyncJiraToSheetsUseCase,
    health_state: HealthState,
    shutdown_event: asyncio.Event,
):
    """Main scheduling loop.

    Args:
        config: Sync configuration
        use_case: Pass to run on every tick
        health_state: Shared health state
        shutdown_event: Event to signal shutdown
    """
    interval_seconds = config.interval_minutes * 60

    # Initial sync on startup
    if config.sync_on_startup:
        logger.info("Running initial sync on startup...")
        results = await run_sync(use_case)
        health_state.record(results)
        logger.info(f"Initial sync complete: success={results['success']}")

    next_run = datetime.now(timezone.utc) + timedelta(seconds=interval_seconds)
    logger.info(f"Next sync at {next_run.isoformat()} (in {config.interval_minutes} minutes)")

    while not shutdown_event.is_set():
        try:
            # Wait for either the interval or shutdown
            await asyncio.wait_for(
                shutdown_event.wait(),
                timeout=interval_seconds,
            )
            # If we get here, shutdown was requested
            break
        except asyncio.TimeoutError:
            # Timeout means it's time to sync
            pass

        logger.info("========== SCHEDULED SYNC ==========")

        results = await run_sync(use_case)
        health_state.record(results)

        logger.info(
            f"Sync complete: success={results['success']}, "
            f"skipped={results['skipped']}, "
            f"duration={results.get('duration_seconds', 0):.1f}s"
        )

        next_run = datetime.now(timezone.utc) + timedelta(seconds=interval_seconds)
        logger.info(f"Next sync at {next_run.isoformat()} (in {config.interval_minutes} minutes)")

    logger.info("Shutdown requested, exiting loop")


# ============================================
# Main Entry Point
# ============================================

async def main():
    """Main entry point for the scheduler."""
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    logger.info("=" * 60)
    logger.info("Jira -> Google Sheets WBS Sync Scheduler")
    logger.info("=" * 60)

    try:
        config = SyncConfig.from_env()
    except WbsSyncError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info(f"Config: {config}")

    # One context for the lifetime of the process
    context = SyncContext.from_config(config)
    use_case = create_sync_use_case(config, context)

    health_state = HealthState(context)
    shutdown_event = asyncio.Event()

    # Signal handlers
    def handle_shutdown(signum, frame):
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_shutdown)
    signal.signal(signal.SIGINT, handle_shutdown)

    health_server = await start_health_server(config.health_check_port, health_state)

    try:
        await scheduler_loop(
            config=config,
            use_case=use_case,
            health_state=health_state,
            shutdown_event=shutdown_event,
        )
    finally:
        logger.info("Cleaning up...")

        if health_server:
            health_server.close()
            await health_server.wait_closed()

        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
