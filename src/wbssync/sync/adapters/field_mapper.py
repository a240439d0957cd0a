"""Field mapper adapter for transforming Jira CSV exports into SyncRecords.

This adapter implements IRowMapper and encapsulates all knowledge of the
Jira export format: column names, date formats and duration notation.
"""

import csv
import io
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable

from ..domain.entities import SyncRecord
from ..domain.ports import IRowMapper

logger = logging.getLogger(__name__)

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

# "14/Aug/2025", "14/Aug/25 2:30 PM", "14/Aug/2025 14:30"
_JIRA_DATE_RE = re.compile(
    r"^(\d{1,2})/([A-Za-z]{3})/(\d{2,4})(?:\s+(\d{1,2}):(\d{2})(?:\s*([AaPp][Mm]))?)?$"
)
# "14/08/2025", "14-08-2025 14:30"
_NUMERIC_DATE_RE = re.compile(
    r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})(?:\s+(\d{1,2}):(\d{2}))?$"
)
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*([wdhm])")

WEEK_DAYS = 5
DAY_HOURS = 8
_UNIT_SECONDS = {
    "w": WEEK_DAYS * DAY_HOURS * 3600,
    "d": DAY_HOURS * 3600,
    "h": 3600,
    "m": 60,
}

# Record field -> Jira export column(s), first non-empty wins
TEXT_COLUMNS = {
    "issue_id": ("Issue id", "Issue ID"),
    "status": ("Status",),
    "summary": ("Summary",),
    "issue_type": ("Issue Type", "Issue type"),
    "assignee": ("Assignee",),
    "type_of_work": ("Custom field (Type of Work)",),
}
DATE_COLUMNS = {
    "updated_at": ("Updated",),
    "created_at": ("Created",),
    "due_date": ("Due Date", "Due date"),
    "actual_start_at": ("Custom field (Actual Start Date)",),
    "actual_end_at": ("Custom field (Actual End Date)",),
    "plan_start_at": ("Custom field (Plan Start Date)",),
}
DURATION_COLUMNS = {
    "remaining_estimate_sec": ("Remaining Estimate",),
    "original_estimate_sec": ("Original Estimate",),
    "time_spent_sec": ("Time Spent",),
}
KEY_COLUMNS = ("Issue key", "Issue Key")
PERCENT_DONE_COLUMNS = ("Custom field (% Done)", "% Done")


def _expand_year(text: str, century_pivot: int | None) -> int:
    year = int(text)
    if len(text) == 2:
        if century_pivot is not None and year >= century_pivot:
            return 1900 + year
        return 2000 + year
    return year


def parse_jira_datetime(value: str | None) -> datetime | None:
    """Parse the date formats found in Jira exports.

    Accepts ISO 8601, "dd/Mon/yyyy [h:mm [AM|PM]]" and "dd/mm/yyyy [HH:MM]".
    Values without an offset are taken as UTC.

    Returns:
        Aware datetime, or None when empty or unrecognized
    """
    text = (value or "").strip()
    if not text:
        return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    match = _JIRA_DATE_RE.match(text)
    if match:
        day, month_name, year, hour, minute, meridiem = match.groups()
        month = _MONTHS.get(month_name.lower())
        if month is None:
            return None
        hours = int(hour) if hour else 0
        if meridiem:
            meridiem = meridiem.upper()
            if meridiem == "PM" and hours < 12:
                hours += 12
            elif meridiem == "AM" and hours == 12:
                hours = 0
        try:
            return datetime(
                _expand_year(year, century_pivot=70),
                month,
                int(day),
                hours,
                int(minute) if minute else 0,
                tzinfo=timezone.utc,
            )
        except ValueError:
            return None

    match = _NUMERIC_DATE_RE.match(text)
    if match:
        day, month, year, hour, minute = match.groups()
        try:
            return datetime(
                _expand_year(year, century_pivot=None),
                int(month),
                int(day),
                int(hour) if hour else 0,
                int(minute) if minute else 0,
                tzinfo=timezone.utc,
            )
        except ValueError:
            return None

    return None


def parse_jira_duration(value: str | None) -> int:
    """Parse "1w 2d 3h 30m" (1w = 5d, 1d = 8h) or plain seconds into seconds."""
    text = (value or "").strip().lower()
    if not text:
        return 0

    if text.isdigit():
        return int(text)

    seconds = 0.0
    for amount, unit in _DURATION_RE.findall(text):
        seconds += float(amount) * _UNIT_SECONDS[unit]
    return round(seconds)


def parse_percent(value: str | None) -> int | float:
    """Parse "40", "40%" or "12.5 %"; anything unreadable is 0."""
    text = (value or "").replace("%", "").strip()
    if not text:
        return 0
    try:
        percent = float(text)
    except ValueError:
        return 0
    return int(percent) if percent.is_integer() else percent


def _first(row: dict[str, str], columns: tuple[str, ...]) -> str:
    for column in columns:
        value = row.get(column)
        if value:
            return value
    return ""


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JiraCsvRowMapper(IRowMapper):
    """Maps Jira CSV exports to SyncRecord entities.

    This class handles:
    - CSV parsing with trimmed headers and values
    - Business key extraction (rows without one are dropped)
    - Date parsing (ISO 8601 and the Jira "14/Aug/25 2:30 PM" family)
    - Duration parsing (Jira "1w 2d 3h" notation)
    - Deduplication by key, keeping the first occurrence

    Optional fields are only set when the export has a value for them, so
    an empty cell in Jira never blanks a cell in the sheet.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        self._clock = clock

    def map_rows(self, text: str) -> list[SyncRecord]:
        synced_at = self._clock()
        reader = csv.DictReader(io.StringIO(text or ""))
        if reader.fieldnames:
            reader.fieldnames = [name.strip() for name in reader.fieldnames]

        records: list[SyncRecord] = []
        seen: set[str] = set()
        dropped = 0
        duplicates = 0

        for raw in reader:
            row = {
                (name or "").strip(): value.strip() if isinstance(value, str) else ""
                for name, value in raw.items()
            }
            if not any(row.values()):
                continue

            key = _first(row, KEY_COLUMNS)
            if not key:
                dropped += 1
                continue
            if key in seen:
                duplicates += 1
                continue
            seen.add(key)

            records.append(
                SyncRecord(key=key, fields=self.map_fields(row), synced_at=synced_at)
            )

        if dropped:
            logger.warning(f"Dropped {dropped} CSV rows without an issue key")
        if duplicates:
            logger.warning(f"Ignored {duplicates} duplicate issue keys in CSV export")

        return records

    def map_fields(self, row: dict[str, str]) -> dict[str, Any]:
        """Extract record fields from one trimmed CSV row."""
        fields: dict[str, Any] = {}

        for name, columns in TEXT_COLUMNS.items():
            value = _first(row, columns)
            if value:
                fields[name] = value

        for name, columns in DATE_COLUMNS.items():
            value = parse_jira_datetime(_first(row, columns))
            if value is not None:
                fields[name] = value

        for name, columns in DURATION_COLUMNS.items():
            fields[name] = parse_jira_duration(_first(row, columns))

        fields["percent_done"] = parse_percent(_first(row, PERCENT_DONE_COLUMNS))

        return fields
