"""Domain entities for sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the core business objects used in sync operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .ports import ITargetRow


@dataclass
class SyncRecord:
    """A normalized unit of work read from the source export.

    The business key (Jira issue key) correlates the record with a
    destination row across runs. Fields holds only the values present in
    the source; a missing field means "leave the destination untouched".
    """

    key: str
    fields: dict[str, Any] = field(default_factory=dict)
    synced_at: datetime | None = None

    def __post_init__(self):
        self.key = (self.key or "").strip()
        if not self.key:
            raise ValueError("SyncRecord requires a non-empty business key")

    @property
    def status(self) -> str | None:
        return self.fields.get("status")

    @property
    def percent_done(self) -> float | None:
        return self.fields.get("percent_done")

    def has(self, name: str) -> bool:
        """Check if the source provided a value for a field."""
        return name in self.fields


@dataclass
class ExistingTarget:
    """A previously written destination row.

    The row handle belongs to the destination adapter; the sync engine only
    holds it for the duration of one pass.
    """

    key: str
    status: str
    last_synced_at: datetime | None
    row: "ITargetRow"
    last_synced_raw: str = ""


@dataclass
class SyncResult:
    """Result of syncing records into one destination sheet."""

    sheet_name: str
    total: int
    updated: int
    synced_at: datetime
    inserted: int = 0
    dry_run: bool = False

    @property
    def skipped(self) -> int:
        """Records neither updated nor inserted (ineligible or unmatched)."""
        return self.total - self.updated - self.inserted

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for CLI output and health reporting."""
        return {
            "sheet": self.sheet_name,
            "total": self.total,
            "updated": self.updated,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "dry_run": self.dry_run,
            "synced_at": self.synced_at.isoformat(),
        }
