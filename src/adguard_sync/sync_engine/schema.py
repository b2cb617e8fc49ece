"""Schema definitions for the sync engine.

Snapshots, diffs and the run report.
"""
from collections.abc import Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from ..client.base import (
    AccessList,
    Client,
    DHCPConfig,
    DHCPStaticLease,
    DNSConfig,
    Filter,
    FilteringConfig,
    QueryLogConfig,
    RewriteEntry,
    StatsConfig,
    Status,
)

T = TypeVar("T")


class ChangeType(str, Enum):
    """Type of change in a diff."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    NO_CHANGE = "no_change"


class ApplyOrder(str, Enum):
    """Whether deletions or additions go first for an entity kind."""
    DELETE_FIRST = "delete_first"
    ADD_FIRST = "add_first"


class EntityKind(str, Enum):
    """Keyed collections synced between instances."""
    REWRITES = "rewrites"
    FILTERS = "filters"
    WHITELIST_FILTERS = "whitelist_filters"
    CLIENTS = "clients"
    SERVICES = "services"
    DHCP_STATIC_LEASES = "dhcp_static_leases"
    ACCESS_LIST = "access_list"

    @property
    def feature(self) -> str:
        """Feature flag that enables this kind."""
        return {
            EntityKind.WHITELIST_FILTERS: "filters",
            EntityKind.ACCESS_LIST: "access_lists",
        }.get(self, self.value)


# --- Snapshot ---

@dataclass(frozen=True)
class Snapshot:
    """Configuration read from one instance at one point in time.

    Fields are None when the corresponding feature was not fetched.
    """
    instance: str
    status: Status = field(default_factory=Status)
    rewrites: Optional[tuple[RewriteEntry, ...]] = None
    filters: Optional[tuple[Filter, ...]] = None
    whitelist_filters: Optional[tuple[Filter, ...]] = None
    user_rules: Optional[tuple[str, ...]] = None
    filtering_config: Optional[FilteringConfig] = None
    clients: Optional[tuple[Client, ...]] = None
    services: Optional[tuple[str, ...]] = None
    dhcp_static_leases: Optional[tuple[DHCPStaticLease, ...]] = None
    dhcp_config: Optional[DHCPConfig] = None
    access_list: Optional[AccessList] = None
    safe_browsing: Optional[bool] = None
    parental: Optional[bool] = None
    safe_search: Optional[bool] = None
    query_log_config: Optional[QueryLogConfig] = None
    stats_config: Optional[StatsConfig] = None
    dns_config: Optional[DNSConfig] = None

    @property
    def protection(self) -> bool:
        return self.status.protection_enabled

    def collection(self, kind: EntityKind) -> Any:
        return getattr(self, kind.value)


# --- Diff Results ---

@dataclass
class CollectionDiff(Generic[T]):
    """Operations needed to converge one replica collection."""
    kind: EntityKind
    to_add: list[T] = field(default_factory=list)
    to_update: list[T] = field(default_factory=list)
    to_delete: list[T] = field(default_factory=list)
    unchanged: int = 0
    # Origin items to keep, plus protected replica-only items
    desired: list[T] = field(default_factory=list)
    # Replica version of each item in to_update, by key
    replaced: dict[Hashable, T] = field(default_factory=dict)

    @property
    def no_change(self) -> bool:
        return not (self.to_add or self.to_update or self.to_delete)

    @property
    def total_changes(self) -> int:
        return len(self.to_add) + len(self.to_update) + len(self.to_delete)


# --- Execution Results ---

@dataclass
class ItemOutcome:
    """Result of applying one operation to one item."""
    operation: ChangeType
    key: str
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "operation": self.operation.value,
            "key": self.key,
            "success": self.success,
            "error": self.error,
        }


@dataclass
class EntityResult:
    """Per entity kind result for one replica."""
    kind: EntityKind
    dry_run: bool = False
    planned: dict[str, int] = field(default_factory=dict)
    unchanged: int = 0
    outcomes: list[ItemOutcome] = field(default_factory=list)
    error: Optional[str] = None

    def _count(self, operation: ChangeType, success: bool = True) -> int:
        return sum(
            1 for o in self.outcomes
            if o.operation == operation and o.success == success
        )

    @property
    def added(self) -> int:
        return self._count(ChangeType.CREATE)

    @property
    def updated(self) -> int:
        return self._count(ChangeType.MODIFY)

    @property
    def deleted(self) -> int:
        return self._count(ChangeType.DELETE)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def success(self) -> bool:
        return self.failed == 0 and self.error is None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "dry_run": self.dry_run,
            "planned": dict(self.planned),
            "added": self.added,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "error": self.error,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class ToggleResult:
    """Result of comparing (and copying) one toggle setting."""
    name: str
    changed: bool = False
    success: bool = True
    dry_run: bool = False
    error: Optional[str] = None
    fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "changed": self.changed,
            "success": self.success,
            "dry_run": self.dry_run,
            "error": self.error,
            "fields": list(self.fields),
        }


@dataclass
class ReplicaReport:
    """Everything that happened to one replica during a run."""
    name: str
    host: str = ""
    entities: list[EntityResult] = field(default_factory=list)
    toggles: list[ToggleResult] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: float = 0

    @property
    def success(self) -> bool:
        return (
            self.error is None
            and all(e.success for e in self.entities)
            and all(t.success for t in self.toggles)
        )

    @property
    def operations(self) -> int:
        """Mutating operations attempted (or planned in dry-run)."""
        count = sum(len(e.outcomes) for e in self.entities)
        count += sum(sum(e.planned.values()) for e in self.entities if e.dry_run)
        count += sum(1 for t in self.toggles if t.changed)
        return count

    def entity(self, kind: EntityKind) -> Optional[EntityResult]:
        for result in self.entities:
            if result.kind == kind:
                return result
        return None

    def toggle(self, name: str) -> Optional[ToggleResult]:
        for result in self.toggles:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "host": self.host,
            "success": self.success,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "entities": [e.to_dict() for e in self.entities],
            "toggles": [t.to_dict() for t in self.toggles],
        }


@dataclass
class RunReport:
    """Aggregate result of one sync run."""
    timestamp: str
    origin: str
    dry_run: bool = False
    replicas: list[ReplicaReport] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.error is None and all(r.success for r in self.replicas)

    def replica(self, name: str) -> ReplicaReport:
        for report in self.replicas:
            if report.name == name:
                return report
        raise KeyError(f"Unknown replica: {name}")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": self.timestamp,
            "origin": self.origin,
            "dry_run": self.dry_run,
            "success": self.success,
            "error": self.error,
            "summary": {
                "total_replicas": len(self.replicas),
                "succeeded": sum(1 for r in self.replicas if r.success),
                "failed": sum(1 for r in self.replicas if not r.success),
            },
            "replicas": [r.to_dict() for r in self.replicas],
        }
