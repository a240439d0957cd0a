"""Sync module - Clean Architecture implementation of the Jira -> Sheets sync.

Architecture:
    domain/     - Pure domain entities, rules and port interfaces
    use_cases/  - Business logic orchestration
    adapters/   - Infrastructure implementations (Jira CSV, Google Sheets)
"""

from .domain.entities import ExistingTarget, SyncRecord, SyncResult
from .domain.ports import IRowMapper, ISheetClient, ISourceFetcher, ITargetRow
from .domain.rules import SyncRules, UnmatchedPolicy

__all__ = [
    # Entities
    "ExistingTarget",
    "SyncRecord",
    "SyncResult",
    # Rules
    "SyncRules",
    "UnmatchedPolicy",
    # Ports
    "IRowMapper",
    "ISheetClient",
    "ISourceFetcher",
    "ITargetRow",
]
