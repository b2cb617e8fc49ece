"""Sync Engine - converge AdGuard Home replicas to an origin instance.

Every keyed collection (rewrites, filters, clients, leases...) goes through
the same pipeline:
- Fetch a snapshot from origin and replica
- Diff the collections by key
- Apply adds, updates and deletes item by item, recording each outcome

Toggle settings (protection, safe search, DNS config...) are compared and
copied whole.

Usage:
    from adguard_sync.config import SyncInventory
    from adguard_sync.sync_engine import SyncEngine

    engine = SyncEngine(SyncInventory().load())
    report = await engine.run_once(dry_run=True)
"""

from .engine import SyncEngine, summarize_report
from .schema import (
    ApplyOrder,
    ChangeType,
    CollectionDiff,
    EntityKind,
    EntityResult,
    ItemOutcome,
    ReplicaReport,
    RunReport,
    Snapshot,
    ToggleResult,
)
from .entities import ENTITY_DEFINITIONS, EntityDefinition, get_definition
from .diff import DiffEngine, diff_collection, summarize_diff
from .executor import CollectionApplier
from .fetcher import SnapshotFetcher
from .toggles import TOGGLE_DEFINITIONS, ToggleDefinition, ToggleSynchronizer

__all__ = [
    # Main engine
    "SyncEngine",
    "summarize_report",
    # Schema classes
    "ApplyOrder",
    "ChangeType",
    "CollectionDiff",
    "EntityKind",
    "EntityResult",
    "ItemOutcome",
    "ReplicaReport",
    "RunReport",
    "Snapshot",
    "ToggleResult",
    # Entity kinds
    "ENTITY_DEFINITIONS",
    "EntityDefinition",
    "get_definition",
    # Components (for advanced use)
    "DiffEngine",
    "diff_collection",
    "summarize_diff",
    "CollectionApplier",
    "SnapshotFetcher",
    "TOGGLE_DEFINITIONS",
    "ToggleDefinition",
    "ToggleSynchronizer",
]
