"""Use cases layer - Business logic orchestration for sync operations.

This layer contains use case classes that orchestrate the sync workflow:
- Fetch the Jira export (via ISourceFetcher port)
- Transform it to records (via IRowMapper port)
- Write eligible rows to Google Sheets (via ISheetClient port), paced by
  the shared SyncContext

Use cases depend only on ports, not concrete implementations.
"""

from .context import SyncContext
from .sync_jira_to_sheets import SyncJiraToSheetsUseCase
from .sync_sheet import SyncSheetUseCase

__all__ = [
    "SyncContext",
    "SyncJiraToSheetsUseCase",
    "SyncSheetUseCase",
]
