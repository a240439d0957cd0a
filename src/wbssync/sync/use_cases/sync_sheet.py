"""Sync Sheet Use Case - Writes normalized records into one worksheet.

This use case implements the quota-aware, idempotent sync of Jira records
into a Google Sheet. It depends on ports (interfaces) for all external
operations, making it fully testable without infrastructure.

Workflow:
1. Refuse to start while the quota monitor says writes must pause
2. Open the sheet, read its header and every existing row
3. Build the eligibility index (closed and recently synced rows excluded)
4. Compute cell updates in memory (no network calls)
5. Save updated rows chunk by chunk through the rate limiter and
   retry manager, pausing between chunks
6. Optionally append records with no matching row
7. Return sync statistics

Re-running a pass is safe: every written row gets a fresh last-sync stamp,
which makes it ineligible until the staleness window has passed.
"""

import functools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from ...api.error_classifier import log_error
from ...api.exceptions import ChunkWriteError, QuotaPausedError
from ...api.resilience import process_concurrent
from ..domain.entities import SyncRecord, SyncResult
from ..domain.ports import ISheetClient, ITargetRow
from ..domain.rules import (
    SyncRules,
    UnmatchedPolicy,
    build_eligibility_index,
    build_insert_row,
    compute_updates,
    to_existing_target,
)
from .context import SyncContext

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncSheetUseCase:
    """Orchestrates the sync of records into a single sheet.

    Example:
        use_case = SyncSheetUseCase(
            sheet_client=GSheetClient(SheetsClient(sheet_id)),
            context=SyncContext.from_config(config),
            rules=SyncRules(staleness_window=timedelta(hours=1)),
        )
        result = await use_case.execute(records, "WBS_DEV")
    """

    def __init__(
        self,
        sheet_client: ISheetClient,
        context: SyncContext,
        rules: SyncRules | None = None,
        chunk_size: int = 50,
        chunk_delay: float = 1.0,
        max_parallel_saves: int = 10,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """Initialize the use case with its dependencies.

        Args:
            sheet_client: Port for the destination spreadsheet
            context: Shared rate limiter, retry manager and quota monitor
            rules: Eligibility and transformation rules
            chunk_size: Rows saved per chunk
            chunk_delay: Seconds to pause between chunks
            max_parallel_saves: Concurrent row saves inside a chunk
            clock: Returns the current aware datetime, injectable for tests
        """
        self.sheets = sheet_client
        self.context = context
        self.rules = rules or SyncRules()
        self.chunk_size = chunk_size
        self.chunk_delay = chunk_delay
        self.max_parallel_saves = max_parallel_saves
        self._clock = clock

    async def execute(
        self,
        records: list[SyncRecord],
        sheet_name: str,
        dry_run: bool = False,
    ) -> SyncResult:
        """Sync records into sheet_name.

        Args:
            records: Normalized source records, deduplicated by key
            sheet_name: Destination worksheet title
            dry_run: Compute the plan without writing anything

        Returns:
            SyncResult with the number of rows written

        Raises:
            QuotaPausedError: Quota history says writes must pause
            NotFoundError: The sheet does not exist
            ChunkWriteError: A chunk failed after all retries
        """
        started_at = self._clock()

        if not records or not sheet_name:
            return SyncResult(
                sheet_name=sheet_name,
                total=len(records),
                updated=0,
                synced_at=started_at,
                dry_run=dry_run,
            )

        self._check_quota()

        # Step 1: Read the sheet
        handle = await self.context.call(lambda: self.sheets.open_collection(sheet_name))
        await self.context.call(lambda: self.sheets.load_schema(handle))
        rows = await self.context.call(lambda: self.sheets.list_rows(handle))

        # Step 2: Eligibility
        now = self._clock()
        targets = [to_existing_target(row, self.rules) for row in rows]
        existing_keys = {target.key for target in targets if target.key}
        index = build_eligibility_index(targets, self.rules, now)

        logger.info(
            f"Sheet '{sheet_name}': {len(rows)} rows, "
            f"{len(index)} eligible for update, {len(records)} source records"
        )

        # Step 3: Plan updates in memory
        planned_updates: list[tuple[ITargetRow, dict[str, Any]]] = []
        planned_inserts: list[dict[str, Any]] = []
        seen: set[str] = set()
        unmatched = 0

        for record in records:
            if record.key in seen:
                continue
            seen.add(record.key)

            target = index.get(record.key)
            if target is None:
                unmatched += 1
                if (
                    self.rules.unmatched_policy is UnmatchedPolicy.INSERT
                    and record.key not in existing_keys
                ):
                    planned_inserts.append(build_insert_row(record, self.rules, now))
                continue

            updates = compute_updates(record, self.rules, now)
            if updates:
                planned_updates.append((target.row, updates))

        if unmatched:
            logger.debug(
                f"Sheet '{sheet_name}': {unmatched} records have no eligible row "
                f"(policy={self.rules.unmatched_policy.value}, {len(planned_inserts)} to insert)"
            )

        if dry_run:
            logger.info(
                f"[dry-run] Sheet '{sheet_name}': would update {len(planned_updates)} "
                f"rows and insert {len(planned_inserts)}"
            )
            return SyncResult(
                sheet_name=sheet_name,
                total=len(records),
                updated=len(planned_updates),
                inserted=len(planned_inserts),
                synced_at=started_at,
                dry_run=True,
            )

        rows_to_save = []
        for row, updates in planned_updates:
            for column, value in updates.items():
                row.set_field(column, value)
            rows_to_save.append(row)

        # Step 4: Persist
        updated = 0
        if rows_to_save:
            logger.info(f"Saving {len(rows_to_save)} rows to '{sheet_name}' in chunks...")
            updated = await self._write_in_chunks(sheet_name, rows_to_save, self._save_chunk)
            logger.info(f"Successfully saved {updated} rows to '{sheet_name}'")

        inserted = 0
        if planned_inserts:
            logger.info(f"Appending {len(planned_inserts)} new rows to '{sheet_name}'...")
            inserted = await self._write_in_chunks(
                sheet_name,
                planned_inserts,
                functools.partial(self.sheets.append_rows, handle),
            )

        completed_at = self._clock()
        duration = (completed_at - started_at).total_seconds()
        logger.info(
            f"Sheet '{sheet_name}' synced in {duration:.2f}s: "
            f"{updated} updated, {inserted} inserted"
        )

        return SyncResult(
            sheet_name=sheet_name,
            total=len(records),
            updated=updated,
            inserted=inserted,
            synced_at=started_at,
        )

    def _check_quota(self) -> None:
        monitor = self.context.quota_monitor
        if not monitor.should_pause_operations():
            return

        status = monitor.analyze_status()
        logger.warning(
            f"Quota exhausted, pausing sync for {status.recommended_wait:.0f}s "
            f"(estimated reset {status.estimated_reset_time})"
        )
        raise QuotaPausedError(
            recommended_wait=status.recommended_wait,
            estimated_reset_time=status.estimated_reset_time,
        )

    async def _save_chunk(self, rows: list[ITargetRow]) -> None:
        # Every save settles before the chunk reports, so a retry never
        # overlaps writes still in flight from the failed attempt
        results = await process_concurrent(
            rows,
            lambda row: row.save(),
            max_concurrent=self.max_parallel_saves,
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            if len(failures) > 1:
                logger.warning(f"{len(failures)} of {len(rows)} row saves in chunk failed")
            raise failures[0]

    async def _write_in_chunks(
        self,
        sheet_name: str,
        items: list[Any],
        write_chunk: Callable[[list[Any]], Awaitable[Any]],
    ) -> int:
        """Write items chunk by chunk, strictly in sequence.

        Chunk size and pauses follow the quota monitor's current
        recommendation. Earlier chunks stay committed when a later one fails.
        """
        monitor = self.context.quota_monitor
        recommended = monitor.get_recommended_config(
            monitor.analyze_status(),
            base_batch_size=self.chunk_size,
        )
        chunk_size = max(1, min(self.chunk_size, recommended.batch_size))
        chunk_delay = self.chunk_delay * recommended.delay_multiplier
        retry_manager = self.context.retry_manager_for(recommended.retry_multiplier)

        chunks = [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]
        written = 0

        for index, chunk in enumerate(chunks):
            try:
                await self.context.call(functools.partial(write_chunk, chunk), retry_manager)
            except Exception as e:
                self._raise_chunk_failure(sheet_name, index, len(chunks), written, e)

            written += len(chunk)
            logger.debug(
                f"Chunk {index + 1}/{len(chunks)} of '{sheet_name}' saved "
                f"({written}/{len(items)})"
            )

            if index < len(chunks) - 1:
                await self.context.sleep(chunk_delay)

        return written

    def _raise_chunk_failure(
        self,
        sheet_name: str,
        chunk_index: int,
        chunk_count: int,
        written: int,
        error: Exception,
    ) -> None:
        position = f"sheet={sheet_name} chunk={chunk_index + 1}/{chunk_count}"
        classification = log_error(error, context=position)

        if classification.is_quota_error:
            self.context.quota_monitor.record_quota_error(error, context=position)

        diagnostics = self.context.diagnostics()
        logger.error(
            f"Chunk write failed ({position}, written_before_failure={written}): "
            f"rate_limiter={diagnostics['rate_limiter']}, quota={diagnostics['quota']}"
        )

        raise ChunkWriteError(
            sheet_name=sheet_name,
            chunk_index=chunk_index,
            chunk_count=chunk_count,
            written_before_failure=written,
            cause=error,
            limiter_status=diagnostics["rate_limiter"],
            quota_stats=diagnostics["quota"],
        ) from error
