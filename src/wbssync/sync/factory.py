"""Wiring of the production adapters into the sync use cases."""

from ..api.jira_client import JiraCsvClient
from ..api.sheets_client import SheetsClient
from ..config import SyncConfig
from .adapters import GSheetClient, JiraCsvRowMapper, JiraCsvSource
from .use_cases import SyncContext, SyncJiraToSheetsUseCase, SyncSheetUseCase


def create_sync_use_case(
    config: SyncConfig,
    context: SyncContext | None = None,
) -> SyncJiraToSheetsUseCase:
    """Build a Jira -> Sheets pass from configuration.

    Args:
        config: Loaded configuration
        context: Shared limiter / retry / quota state; a new one is built
            when omitted. Long-running processes should pass the same
            context on every call.
    """
    context = context or SyncContext.from_config(config)

    sheet_use_case = SyncSheetUseCase(
        sheet_client=GSheetClient(
            SheetsClient(config.google_sheet_id, config.service_account_file)
        ),
        context=context,
        rules=config.to_rules(),
        chunk_size=config.chunk_size,
        chunk_delay=config.chunk_delay,
        max_parallel_saves=config.max_parallel_saves,
    )

    return SyncJiraToSheetsUseCase(
        source=JiraCsvSource(JiraCsvClient(config.csv_url, cookie=config.csv_cookie)),
        mapper=JiraCsvRowMapper(),
        sheet_use_case=sheet_use_case,
        sheet_names=config.sheets,
    )
