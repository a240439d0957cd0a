"""Sync Jira To Sheets Use Case - One full pass over every configured sheet.

Workflow:
1. Download the Jira CSV export (via ISourceFetcher)
2. Map rows to normalized records (via IRowMapper)
3. Sync the records into each sheet in turn (via SyncSheetUseCase)
4. Return one SyncResult per sheet

Sheets are processed sequentially; a failure on one sheet aborts the pass
and propagates to the caller, which decides when to run the next pass.
"""

import logging
from datetime import datetime, timezone

from ..domain.entities import SyncResult
from ..domain.ports import IRowMapper, ISourceFetcher
from .sync_sheet import SyncSheetUseCase

logger = logging.getLogger(__name__)

DEFAULT_SHEETS = ("WBS_DEV", "WBS_QC")


class SyncJiraToSheetsUseCase:
    """Orchestrates a complete Jira -> Google Sheets pass.

    Example:
        use_case = SyncJiraToSheetsUseCase(
            source=JiraCsvSource(JiraCsvClient(url, cookie)),
            mapper=JiraCsvRowMapper(),
            sheet_use_case=SyncSheetUseCase(sheet_client, context),
        )
        results = await use_case.execute()
    """

    def __init__(
        self,
        source: ISourceFetcher,
        mapper: IRowMapper,
        sheet_use_case: SyncSheetUseCase,
        sheet_names: list[str] | tuple[str, ...] = DEFAULT_SHEETS,
    ):
        """Initialize the use case with its dependencies.

        Args:
            source: Port for downloading the CSV export
            mapper: Port for turning CSV text into records
            sheet_use_case: Per-sheet sync orchestrator
            sheet_names: Worksheets to update, in order
        """
        self.source = source
        self.mapper = mapper
        self.sheet_use_case = sheet_use_case
        self.sheet_names = list(sheet_names)

    async def execute(
        self,
        sheet_names: list[str] | None = None,
        dry_run: bool = False,
    ) -> list[SyncResult]:
        """Run the pass.

        Args:
            sheet_names: Override the configured sheets for this pass
            dry_run: Plan every sheet without writing

        Returns:
            One SyncResult per synced sheet (empty when the export has no rows)
        """
        started_at = datetime.now(timezone.utc)
        targets = sheet_names or self.sheet_names
        logger.info(f"Starting Jira -> Sheets sync at {started_at.isoformat()}")

        # Step 1: Download
        csv_text = await self.source.fetch_text()

        # Step 2: Map
        records = self.mapper.map_rows(csv_text)
        logger.info(f"Parsed {len(records)} records from Jira export")

        if not records:
            logger.info("No records to sync")
            return []

        # Step 3: Sync each sheet
        results: list[SyncResult] = []
        for sheet_name in targets:
            logger.info(f"Syncing sheet '{sheet_name}'...")
            result = await self.sheet_use_case.execute(records, sheet_name, dry_run=dry_run)
            results.append(result)

        total_updated = sum(result.updated for result in results)
        total_inserted = sum(result.inserted for result in results)
        duration = (datetime.now(timezone.utc) - started_at).total_seconds()
        logger.info(
            f"Sync pass complete in {duration:.2f}s: {len(results)} sheets, "
            f"{total_updated} rows updated, {total_inserted} inserted"
        )

        return results
