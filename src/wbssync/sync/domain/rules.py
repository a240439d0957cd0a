"""Business rules for Jira -> sheet synchronization.

Two pure decisions live here:
- Eligibility: which existing sheet rows may be written in this pass.
- Transformation: which cell values a source record produces.

Both are driven by SyncRules so the domain heuristics (terminal statuses,
the 80% "in review" progress, the one hour staleness window) stay
configurable instead of being baked into the use case.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Any, Iterable
from zoneinfo import ZoneInfo

from .entities import ExistingTarget, SyncRecord
from .ports import ITargetRow

logger = logging.getLogger(__name__)


class FieldKind(Enum):
    """How a source value is rendered into a cell."""

    TEXT = "text"
    DATE = "date"
    DATETIME = "datetime"
    EMAIL_LOCAL_PART = "email_local_part"


class UnmatchedPolicy(Enum):
    """What to do with source records that have no destination row."""

    SKIP = "skip"
    INSERT = "insert"


@dataclass(frozen=True)
class ColumnMapping:
    """Maps a SyncRecord field onto a sheet column."""

    field: str
    column: str
    kind: FieldKind = FieldKind.TEXT


DEFAULT_COLUMNS = (
    ColumnMapping("plan_start_at", "Plan Start", FieldKind.DATE),
    ColumnMapping("due_date", "Plan End", FieldKind.DATE),
    ColumnMapping("actual_start_at", "Actual Start", FieldKind.DATE),
    ColumnMapping("actual_end_at", "Actual End", FieldKind.DATE),
    ColumnMapping("assignee", "Pic", FieldKind.EMAIL_LOCAL_PART),
    ColumnMapping("status", "Status", FieldKind.TEXT),
)


@dataclass(frozen=True)
class SyncRules:
    """Configurable rules applied by the sheet sync use case.

    Attributes:
        key_column: Column holding the business key
        status_column: Column holding the row status
        progress_column: Column holding the derived completion percentage
        last_sync_column: Column stamped on every write
        columns: Field -> column mappings written from source records
        closed_statuses: Statuses that exclude a row from updates forever
        terminal_statuses: Statuses that force progress to 100
        review_statuses: Statuses that force progress to review_progress
        in_progress_statuses: Statuses that copy the source percentage
        review_progress: Progress written for review statuses
        staleness_window: Minimum age of the last sync before a rewrite
        unmatched_policy: Skip or insert records without a destination row
        date_format: strftime format for date-only columns
        datetime_format: strftime format for date+time columns
        timezone_name: IANA timezone the sheet's timestamps are written in
    """

    key_column: str = "Issue Key"
    status_column: str = "Status"
    progress_column: str = "Progress (%)"
    last_sync_column: str = "Last Sync"
    columns: tuple[ColumnMapping, ...] = DEFAULT_COLUMNS
    closed_statuses: frozenset[str] = frozenset({"Closed"})
    terminal_statuses: frozenset[str] = frozenset({"Resolved", "Closed"})
    review_statuses: frozenset[str] = frozenset({"In Review"})
    in_progress_statuses: frozenset[str] = frozenset({"In Progress"})
    review_progress: int = 80
    staleness_window: timedelta = timedelta(hours=1)
    unmatched_policy: UnmatchedPolicy = UnmatchedPolicy.SKIP
    date_format: str = "%Y/%m/%d"
    datetime_format: str = "%Y/%m/%d %H:%M"
    timezone_name: str = "UTC"
    extra_datetime_formats: tuple[str, ...] = (
        "%Y/%m/%d %H:%M:%S",
        "%Y-%m-%d %H:%M",
        "%Y-%m-%d %H:%M:%S",
    )

    @property
    def tz(self) -> tzinfo:
        if self.timezone_name.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone_name)


# ============================================
# Formatting helpers
# ============================================


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def format_date(value: Any, rules: SyncRules) -> str:
    """Render a datetime (or ISO string) as a calendar date, "" if invalid."""
    moment = _as_datetime(value)
    if moment is None:
        return ""
    return moment.astimezone(rules.tz).strftime(rules.date_format)


def format_datetime(value: Any, rules: SyncRules) -> str:
    """Render a datetime (or ISO string) as date + time, "" if invalid."""
    moment = _as_datetime(value)
    if moment is None:
        return ""
    return moment.astimezone(rules.tz).strftime(rules.datetime_format)


def email_local_part(value: Any) -> str:
    """Reduce "jane.doe@example.com" to "jane.doe"."""
    if not value:
        return ""
    text = str(value)
    at_index = text.find("@")
    return text[:at_index] if at_index > 0 else text


def parse_sheet_datetime(raw: str, rules: SyncRules) -> datetime | None:
    """Parse a timestamp written in the sheet, None when unparsable."""
    text = (raw or "").strip()
    if not text:
        return None

    for fmt in (rules.datetime_format, rules.date_format, *rules.extra_datetime_formats):
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=rules.tz)
        except ValueError:
            continue

    return _as_datetime(text)


# ============================================
# Eligibility
# ============================================


def to_existing_target(row: ITargetRow, rules: SyncRules) -> ExistingTarget:
    """Read the columns the eligibility rule needs from a sheet row."""
    last_synced_raw = (row.get(rules.last_sync_column) or "").strip()
    return ExistingTarget(
        key=(row.get(rules.key_column) or "").strip(),
        status=(row.get(rules.status_column) or "").strip(),
        last_synced_at=parse_sheet_datetime(last_synced_raw, rules),
        row=row,
        last_synced_raw=last_synced_raw,
    )


def is_eligible(target: ExistingTarget, rules: SyncRules, now: datetime) -> bool:
    """Business rule: may this row be written in the current pass?

    - Closed rows are never updated.
    - Rows synced less than staleness_window ago are skipped.
    - Everything else, including rows with no or an unreadable last-sync
      timestamp, is eligible.
    """
    if target.status in rules.closed_statuses:
        return False

    if target.last_synced_at is not None:
        return now - target.last_synced_at >= rules.staleness_window

    return True


def build_eligibility_index(
    targets: Iterable[ExistingTarget],
    rules: SyncRules,
    now: datetime,
) -> dict[str, ExistingTarget]:
    """Map business key -> updatable row for one sync pass.

    Rows with a blank key are never indexed. When the sheet holds the same
    key twice, the first (top-most) row wins.
    """
    index: dict[str, ExistingTarget] = {}
    seen: set[str] = set()

    for target in targets:
        if not target.key:
            continue
        if target.key in seen:
            logger.warning(f"Duplicate key {target.key!r} in sheet, keeping first row")
            continue
        seen.add(target.key)
        if is_eligible(target, rules, now):
            index[target.key] = target

    return index


# ============================================
# Transformation
# ============================================


def _render(mapping: ColumnMapping, value: Any, rules: SyncRules) -> Any:
    if mapping.kind is FieldKind.DATE:
        return format_date(value, rules)
    if mapping.kind is FieldKind.DATETIME:
        return format_datetime(value, rules)
    if mapping.kind is FieldKind.EMAIL_LOCAL_PART:
        return email_local_part(value)
    return value if value is not None else ""


def derive_progress(record: SyncRecord, rules: SyncRules) -> int | float | None:
    """Completion percentage implied by the record's status, None to leave as is."""
    status = record.status
    if status is None:
        return None
    if status in rules.terminal_statuses:
        return 100
    if status in rules.review_statuses:
        return rules.review_progress
    if status in rules.in_progress_statuses:
        percent = record.percent_done
        return percent if percent is not None else 0
    return None


def compute_updates(
    record: SyncRecord,
    rules: SyncRules,
    now: datetime,
) -> dict[str, Any]:
    """Column -> value changes produced by a record.

    Only fields present in the record are written. The last-sync column is
    stamped whenever anything else is written, and only then.
    """
    updates: dict[str, Any] = {}

    for mapping in rules.columns:
        if record.has(mapping.field):
            updates[mapping.column] = _render(mapping, record.fields[mapping.field], rules)

    progress = derive_progress(record, rules)
    if progress is not None:
        updates[rules.progress_column] = progress

    if updates:
        updates[rules.last_sync_column] = format_datetime(now, rules)

    return updates


def build_insert_row(
    record: SyncRecord,
    rules: SyncRules,
    now: datetime,
) -> dict[str, Any]:
    """Full column -> value mapping for a record appended as a new row."""
    row = {rules.key_column: record.key}
    row.update(compute_updates(record, rules, now))
    row.setdefault(rules.last_sync_column, format_datetime(now, rules))
    return row
