"""Diff engine for calculating changes between origin and replica collections.

Computes the minimal set of changes needed to make a replica collection
match the origin one.
"""
from collections.abc import Hashable, Iterable
from typing import Any, Callable, Optional, TypeVar

from .entities import EntityDefinition
from .schema import CollectionDiff, EntityKind

T = TypeVar("T")


def index_by_key(items: Iterable[T], key: Callable[[T], Hashable]) -> dict[Hashable, T]:
    """Map items by key. For duplicate keys the last item wins."""
    indexed: dict[Hashable, T] = {}
    for item in items:
        indexed[key(item)] = item
    return indexed


def diff_collection(
    kind: EntityKind,
    origin: Iterable[T],
    replica: Iterable[T],
    key: Callable[[T], Hashable],
    equals: Optional[Callable[[T, T], bool]] = None,
    protect: bool = False,
) -> CollectionDiff[T]:
    """
    Calculate the operations that converge ``replica`` to ``origin``.

    Args:
        kind: Entity kind, carried into the result
        origin: Authoritative items, in fetch order
        replica: Current replica items, in fetch order
        key: Identity function
        equals: Compares the non-key attributes of two items with the same key
        protect: Keep replica-only items instead of deleting them

    Returns:
        CollectionDiff with adds and updates in origin order and deletes in
        replica order
    """
    equals = equals or (lambda a, b: a == b)
    origin_map = index_by_key(origin, key)
    replica_map = index_by_key(replica, key)

    diff: CollectionDiff[T] = CollectionDiff(kind=kind)

    for item_key, item in origin_map.items():
        diff.desired.append(item)
        if item_key not in replica_map:
            diff.to_add.append(item)
        elif equals(item, replica_map[item_key]):
            diff.unchanged += 1
        else:
            diff.to_update.append(item)
            diff.replaced[item_key] = replica_map[item_key]

    for item_key, item in replica_map.items():
        if item_key in origin_map:
            continue
        if protect:
            diff.desired.append(item)
        else:
            diff.to_delete.append(item)

    return diff


def diff_whole(
    kind: EntityKind,
    origin: T,
    replica: T,
    equals: Optional[Callable[[T, T], bool]] = None,
    key: Hashable = None,
) -> CollectionDiff[T]:
    """Diff a value that is replaced as a whole (e.g. the access list)."""
    equals = equals or (lambda a, b: a == b)
    diff: CollectionDiff[T] = CollectionDiff(kind=kind, desired=[origin])
    if equals(origin, replica):
        diff.unchanged = 1
    else:
        diff.to_update.append(origin)
        diff.replaced[key] = replica
    return diff


class DiffEngine:
    """Calculate differences between origin and replica snapshots."""

    def calculate(
        self,
        definition: EntityDefinition,
        origin: Any,
        replica: Any,
        protect: bool = False,
    ) -> CollectionDiff:
        """
        Diff one entity kind.

        Args:
            definition: EntityDefinition for the kind (key, equality, shape)
            origin: Origin collection (or whole value)
            replica: Replica collection (or whole value)
            protect: Whether replica-only entries are protected

        Returns:
            CollectionDiff with all changes needed
        """
        if definition.whole:
            return diff_whole(
                definition.kind, origin, replica, definition.equals, key=definition.key(origin)
            )
        return diff_collection(
            definition.kind,
            origin,
            replica,
            key=definition.key,
            equals=definition.equals,
            protect=protect,
        )


def summarize_diff(diff: CollectionDiff, describe: Callable[[Any], str] = str) -> str:
    """
    Create a human-readable summary of a diff.

    Useful for dry-run output and logging.
    """
    if diff.no_change:
        return f"{diff.kind.value}: no changes ({diff.unchanged} unchanged)"

    lines = [f"{diff.kind.value}: {diff.total_changes} changes ({diff.unchanged} unchanged)"]
    for item in diff.to_delete:
        lines.append(f"  [-] {describe(item)}")
    for item in diff.to_add:
        lines.append(f"  [+] {describe(item)}")
    for item in diff.to_update:
        lines.append(f"  [~] {describe(item)}")
    return "\n".join(lines)
