"""Google Sheets adapter implementing ISheetClient and ITargetRow.

Rows are addressed by header name. A row only remembers which cells were
changed, so save() writes exactly those cells in one batch_update request
and never touches columns maintained by hand in the sheet.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from gspread.utils import rowcol_to_a1

from ...api.sheets_client import SheetsClient
from ..domain.ports import ISheetClient, ITargetRow

logger = logging.getLogger(__name__)

HEADER_ROW = 1


@dataclass
class SheetHandle:
    """Opaque handle for one worksheet and its header."""

    title: str
    worksheet: Any
    header: list[str] = field(default_factory=list)

    def column_index(self, column: str) -> int | None:
        """Zero-based position of a header, None when absent."""
        try:
            return self.header.index(column)
        except ValueError:
            return None


class GSheetRow(ITargetRow):
    """One data row of a worksheet with staged, unsaved changes."""

    def __init__(
        self,
        client: SheetsClient,
        handle: SheetHandle,
        row_number: int,
        values: list[str],
    ):
        self._client = client
        self._handle = handle
        self.row_number = row_number
        self._values = list(values)
        self._dirty: dict[str, Any] = {}

    def get(self, column: str) -> str:
        index = self._handle.column_index(column)
        if index is None or index >= len(self._values):
            return ""
        value = self._values[index]
        return "" if value is None else str(value)

    def set_field(self, column: str, value: Any) -> None:
        index = self._handle.column_index(column)
        if index is None:
            logger.debug(f"Column '{column}' not in sheet '{self._handle.title}', skipping")
            return
        self._dirty[column] = value
        if index >= len(self._values):
            self._values.extend([""] * (index + 1 - len(self._values)))
        self._values[index] = value

    @property
    def dirty_columns(self) -> list[str]:
        return list(self._dirty)

    async def save(self) -> None:
        if not self._dirty:
            return

        data = []
        for column, value in self._dirty.items():
            index = self._handle.column_index(column)
            data.append({
                "range": rowcol_to_a1(self.row_number, index + 1),
                "values": [[value]],
            })

        await self._client.batch_update(self._handle.worksheet, data)
        self._dirty.clear()


class GSheetClient(ISheetClient):
    """ISheetClient backed by a SheetsClient (gspread)."""

    def __init__(self, client: SheetsClient):
        self.client = client

    async def open_collection(self, name: str) -> SheetHandle:
        worksheet = await self.client.open_worksheet(name)
        return SheetHandle(title=name, worksheet=worksheet)

    async def load_schema(self, handle: SheetHandle) -> list[str]:
        header = await self.client.row_values(handle.worksheet, HEADER_ROW)
        handle.header = [str(name).strip() for name in header]
        logger.debug(f"Sheet '{handle.title}' header: {handle.header}")
        return handle.header

    async def list_rows(self, handle: SheetHandle) -> list[ITargetRow]:
        values = await self.client.get_all_values(handle.worksheet)
        if not values:
            return []

        if not handle.header:
            handle.header = [str(name).strip() for name in values[0]]

        return [
            GSheetRow(self.client, handle, row_number, row_values)
            for row_number, row_values in enumerate(values[HEADER_ROW:], start=HEADER_ROW + 1)
        ]

    async def append_rows(self, handle: SheetHandle, rows: list[dict[str, Any]]) -> int:
        if not rows:
            return 0

        if not handle.header:
            await self.load_schema(handle)

        unknown = {column for row in rows for column in row} - set(handle.header)
        if unknown:
            logger.debug(f"Columns {sorted(unknown)} not in sheet '{handle.title}', skipping")

        values = [[row.get(column, "") for column in handle.header] for row in rows]
        await self.client.append_rows(handle.worksheet, values)
        return len(values)
