"""Port interfaces for sync operations.

Ports define the contracts between the domain/use cases and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from typing import Any

from .entities import SyncRecord


class ITargetRow(ABC):
    """Port for a single logical row of the destination sheet.

    Values are read and written by column header. set_field only stages
    a change; nothing reaches the remote store until save() is awaited.
    """

    @abstractmethod
    def get(self, column: str) -> str:
        """Return the current cell value for a column ("" when empty)."""
        ...

    @abstractmethod
    def set_field(self, column: str, value: Any) -> None:
        """Stage a new value for a column."""
        ...

    @abstractmethod
    async def save(self) -> None:
        """Persist staged changes.

        Raises:
            WbsSyncError subclass describing the failure
        """
        ...


class ISheetClient(ABC):
    """Port for the destination spreadsheet.

    Implementations translate their library's failures into the
    QuotaExceeded / RateLimit / Transient / Fatal taxonomy.
    """

    @abstractmethod
    async def open_collection(self, name: str) -> Any:
        """Locate a sheet by name.

        Returns:
            An opaque handle passed back to the other methods

        Raises:
            NotFoundError: If no sheet has that name
        """
        ...

    @abstractmethod
    async def load_schema(self, handle: Any) -> list[str]:
        """Read the header row.

        Returns:
            Column headers in sheet order
        """
        ...

    @abstractmethod
    async def list_rows(self, handle: Any) -> list[ITargetRow]:
        """Read every data row below the header."""
        ...

    @abstractmethod
    async def append_rows(self, handle: Any, rows: list[dict[str, Any]]) -> int:
        """Append new rows given as column -> value mappings.

        Returns:
            Number of rows appended
        """
        ...


class ISourceFetcher(ABC):
    """Port for downloading the raw tabular export."""

    @abstractmethod
    async def fetch_text(self) -> str:
        """Fetch the export as text.

        Raises:
            WbsSyncError subclass if the download fails or is empty
        """
        ...


class IRowMapper(ABC):
    """Port for turning raw export text into normalized records."""

    @abstractmethod
    def map_rows(self, text: str) -> list[SyncRecord]:
        """Parse the export.

        Rows without a usable business key are dropped and records are
        deduplicated by key before they are returned.
        """
        ...
