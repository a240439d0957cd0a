"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- JiraCsvSource: Jira CSV download implementation of ISourceFetcher
- JiraCsvRowMapper: CSV parsing implementation of IRowMapper
- GSheetClient / GSheetRow: gspread implementation of ISheetClient / ITargetRow
"""

from .field_mapper import JiraCsvRowMapper
from .gspread_sheet import GSheetClient, GSheetRow, SheetHandle
from .jira_csv_source import JiraCsvSource

__all__ = [
    "GSheetClient",
    "GSheetRow",
    "JiraCsvRowMapper",
    "JiraCsvSource",
    "SheetHandle",
]
