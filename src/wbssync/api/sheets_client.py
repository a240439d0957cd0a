#!/usr/bin/env python3
"""Google Sheets client built on gspread.

gspread is synchronous; every call here runs in a worker thread via
asyncio.to_thread so the event loop (and the RateLimiter's worker) keeps
running while a request is in flight.

All gspread / requests failures are translated into the typed exception
hierarchy:

    429                      -> QuotaExceededError
    403 mentioning quota     -> QuotaExceededError
    403 mentioning rate      -> RateLimitError
    5xx, connection, timeout -> TransientError
    404, missing worksheet   -> NotFoundError
    anything else            -> FatalError

Usage:
    client = SheetsClient(spreadsheet_id, "service_account.json")
    worksheet = await client.open_worksheet("WBS_DEV")
    values = await client.get_all_values(worksheet)
"""
import asyncio
import logging
from typing import Any, Callable, Optional, TypeVar

import gspread
import requests
from gspread.exceptions import APIError, SpreadsheetNotFound, WorksheetNotFound
from gspread.utils import ValueInputOption

from .exceptions import (
    FatalError,
    NotFoundError,
    QuotaExceededError,
    RateLimitError,
    TransientError,
    WbsSyncError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _api_error_status(error: APIError) -> Optional[int]:
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        return status
    code = getattr(error, "code", None)
    return code if isinstance(code, int) else None


def translate_gspread_error(error: Exception, context: str = "") -> Exception:
    """Map a gspread / requests exception onto the sync exception hierarchy.

    Exceptions that are neither are returned unchanged.
    """
    where = f" ({context})" if context else ""

    if isinstance(error, WbsSyncError):
        return error

    if isinstance(error, WorksheetNotFound):
        return NotFoundError("Worksheet", context or str(error), cause=error)

    if isinstance(error, SpreadsheetNotFound):
        return NotFoundError("Spreadsheet", context or None, cause=error)

    if isinstance(error, APIError):
        status = _api_error_status(error)
        message = str(error)
        lowered = message.lower()

        if status == 429:
            return QuotaExceededError(f"Google Sheets quota exceeded{where}: {message}", cause=error)
        if status == 403 and "quota" in lowered:
            return QuotaExceededError(
                f"Google Sheets quota exceeded{where}: {message}",
                status=403,
                cause=error,
            )
        if status == 403 and "rate limit" in lowered:
            return RateLimitError(
                f"Google Sheets rate limit exceeded{where}: {message}",
                status=403,
                cause=error,
            )
        if status is not None and status >= 500:
            return TransientError(
                f"Google Sheets server error{where}: {message}",
                status=status,
                cause=error,
            )
        if status == 404:
            return NotFoundError("Sheets resource", context or None, cause=error)
        return FatalError(f"Google Sheets API error{where}: {message}", status=status, cause=error)

    if isinstance(error, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return TransientError(f"Network error talking to Google Sheets{where}: {error}", cause=error)

    if isinstance(error, (requests.exceptions.RequestException, gspread.exceptions.GSpreadException)):
        return FatalError(f"Google Sheets request failed{where}: {error}", cause=error)

    return error


class SheetsClient:
    """Async facade over one gspread Spreadsheet.

    The spreadsheet is opened lazily on first use and reused afterwards.

    Attributes:
        spreadsheet_id: Key of the Google Spreadsheet
        service_account_file: Path to the service account JSON key
    """

    def __init__(
        self,
        spreadsheet_id: str,
        service_account_file: str = "service_account.json",
        gc: Optional[gspread.Client] = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.service_account_file = service_account_file
        self._gc = gc
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._open_lock = asyncio.Lock()

    async def _call(self, fn: Callable[..., T], *args: Any, context: str = "", **kwargs: Any) -> T:
        """Run a blocking gspread call in a thread, translating its errors."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as e:
            translated = translate_gspread_error(e, context)
            if translated is e:
                raise
            raise translated from e

    def _open_spreadsheet(self) -> gspread.Spreadsheet:
        if self._gc is None:
            self._gc = gspread.service_account(filename=self.service_account_file)
        return self._gc.open_by_key(self.spreadsheet_id)

    async def spreadsheet(self) -> gspread.Spreadsheet:
        async with self._open_lock:
            if self._spreadsheet is None:
                self._spreadsheet = await self._call(
                    self._open_spreadsheet,
                    context=self.spreadsheet_id,
                )
                logger.info(f"Opened spreadsheet '{self._spreadsheet.title}'")
        return self._spreadsheet

    async def open_worksheet(self, title: str) -> gspread.Worksheet:
        """Find a worksheet by title.

        Raises:
            NotFoundError: If the spreadsheet has no such worksheet
        """
        spreadsheet = await self.spreadsheet()
        return await self._call(spreadsheet.worksheet, title, context=title)

    async def row_values(self, worksheet: gspread.Worksheet, row: int) -> list[str]:
        return await self._call(worksheet.row_values, row, context=worksheet.title)

    async def get_all_values(self, worksheet: gspread.Worksheet) -> list[list[str]]:
        return await self._call(worksheet.get_all_values, context=worksheet.title)

    async def batch_update(self, worksheet: gspread.Worksheet, data: list[dict[str, Any]]) -> Any:
        """Write several ranges in one request."""
        return await self._call(
            worksheet.batch_update,
            data,
            value_input_option=ValueInputOption.user_entered,
            context=worksheet.title,
        )

    async def append_rows(self, worksheet: gspread.Worksheet, rows: list[list[Any]]) -> Any:
        return await self._call(
            worksheet.append_rows,
            rows,
            value_input_option=ValueInputOption.user_entered,
            context=worksheet.title,
        )


__all__ = ["SheetsClient", "translate_gspread_error"]
