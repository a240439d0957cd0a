#!/usr/bin/env python3
"""Jira -> Google Sheets WBS Sync CLI.

Runs a single sync pass: downloads the Jira CSV export, maps it to
records and updates the matching rows of every configured worksheet.
Writes are paced by a RateLimiter, retried by a RetryManager and stopped
altogether when the QuotaMonitor says the Google quota is exhausted.

Environment Variables Required:
    - GOOGLE_SHEET_ID: Key of the destination spreadsheet
    - CSV_URL: Jira CSV export URL
    - CSV_COOKIE: Jira session cookie (optional for public filters)
    - GOOGLE_SERVICE_ACCOUNT_FILE: Service account key (default: service_account.json)

Example Usage:
    $ python main.py                              # Sync every configured sheet
    $ python main.py --sheet WBS_DEV              # Sync one sheet
    $ python main.py --dry-run                    # Show what would change
    $ python main.py --insert-unmatched --json    # Append new issues, JSON summary
"""
import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.wbssync.api.exceptions import QuotaPausedError, WbsSyncError
from src.wbssync.config import SyncConfig
from src.wbssync.sync.factory import create_sync_use_case

logger = logging.getLogger(__name__)


async def run_sync(args: argparse.Namespace) -> int:
    """Run one sync pass.

    Args:
        args: Parsed command-line arguments

    Returns:
        Process exit code
    """
    start_time = datetime.now(timezone.utc)
    logger.info(f"Starting at {start_time.isoformat()}")

    try:
        config = SyncConfig.from_env()
    except WbsSyncError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.insert_unmatched:
        config = replace(config, insert_unmatched=True)

    use_case = create_sync_use_case(config)

    try:
        results = await use_case.execute(sheet_names=args.sheet, dry_run=args.dry_run)

    except QuotaPausedError as e:
        logger.warning(
            f"Sync skipped: {e.message}. Retry in {e.recommended_wait:.0f}s "
            f"(estimated reset {e.estimated_reset_time})"
        )
        if args.json:
            print(json.dumps({"success": False, "error": e.to_dict()}, indent=2))
        return 1

    except WbsSyncError as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        if args.json:
            print(json.dumps({"success": False, "error": e.to_dict()}, indent=2))
        return 1

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()

    if args.json:
        print(json.dumps(
            {
                "success": True,
                "duration_seconds": duration,
                "sheets": [result.to_dict() for result in results],
            },
            indent=2,
        ))
    else:
        print("\n" + "=" * 60)
        print("SYNC COMPLETE" + (" (dry run)" if args.dry_run else ""))
        print("=" * 60)
        for result in results:
            print(
                f"{result.sheet_name:<20} total={result.total:<6} "
                f"updated={result.updated:<6} inserted={result.inserted:<6} "
                f"skipped={result.skipped}"
            )
        print(f"\nCompleted in {duration:.1f} seconds")

    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Sync a Jira CSV export into Google Sheets WBS worksheets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          # Sync WBS_DEV and WBS_QC
  python main.py --sheet WBS_QC           # Sync a single worksheet
  python main.py --dry-run -v             # Plan only, verbose logging
        """
    )

    parser.add_argument(
        "--sheet",
        action="append",
        metavar="NAME",
        help="Worksheet to sync (repeatable, default: SYNC_SHEETS)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute the updates without writing to the sheet"
    )
    parser.add_argument(
        "--insert-unmatched",
        action="store_true",
        help="Append issues that have no row in the sheet"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result summary as JSON"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    sys.exit(asyncio.run(run_sync(args)))


if __name__ == "__main__":
    main()
