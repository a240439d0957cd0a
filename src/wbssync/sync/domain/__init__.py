"""Domain layer - Pure domain entities, rules and port interfaces.

This layer contains:
- Entities: Pure data structures representing business objects
- Rules: Eligibility and transformation decisions
- Ports: Abstract interfaces defining contracts for adapters

No infrastructure dependencies allowed in this layer.
"""

from .entities import ExistingTarget, SyncRecord, SyncResult
from .ports import IRowMapper, ISheetClient, ISourceFetcher, ITargetRow
from .rules import ColumnMapping, FieldKind, SyncRules, UnmatchedPolicy

__all__ = [
    # Entities
    "ExistingTarget",
    "SyncRecord",
    "SyncResult",
    # Rules
    "ColumnMapping",
    "FieldKind",
    "SyncRules",
    "UnmatchedPolicy",
    # Ports
    "IRowMapper",
    "ISheetClient",
    "ISourceFetcher",
    "ITargetRow",
]
