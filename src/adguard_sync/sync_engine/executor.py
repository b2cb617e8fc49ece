"""Executor for applying collection diffs to a replica.

Every item is applied on its own: a failed item is recorded and the rest of
the batch is still attempted.
"""
import asyncio
import logging
from typing import Any, Optional

from ..client.base import AdGuardClient
from ..errors import SyncError
from .entities import EntityDefinition
from .schema import ApplyOrder, ChangeType, CollectionDiff, EntityResult, ItemOutcome


def planned_counts(diff: CollectionDiff) -> dict[str, int]:
    return {
        ChangeType.CREATE.value: len(diff.to_add),
        ChangeType.MODIFY.value: len(diff.to_update),
        ChangeType.DELETE.value: len(diff.to_delete),
    }


class CollectionApplier:
    """Apply CollectionDiffs through the capability interface."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def apply(
        self,
        client: AdGuardClient,
        definition: EntityDefinition,
        diff: CollectionDiff,
        result: Optional[EntityResult] = None,
    ) -> EntityResult:
        """
        Apply a diff to a replica.

        Args:
            client: Replica client
            definition: Operations and ordering for the entity kind
            diff: Changes to apply
            result: Result to fill in (kept by the caller if the run is cancelled)

        Returns:
            EntityResult with one outcome per attempted item
        """
        if result is None:
            result = EntityResult(kind=definition.kind)
        result.planned = planned_counts(diff)
        result.unchanged = diff.unchanged

        if diff.no_change:
            return result

        self.logger.info(
            f"{client.name}: applying {diff.total_changes} {definition.kind.value} changes "
            f"(+{len(diff.to_add)} ~{len(diff.to_update)} -{len(diff.to_delete)})"
        )

        if definition.replace_all is not None:
            await self._replace_all(client, definition, diff, result)
        else:
            for operation, items, callback in self._phases(definition, diff):
                for item in items:
                    args = (item,)
                    if operation == ChangeType.MODIFY:
                        # Updates also get the replica version being replaced
                        args = (item, diff.replaced.get(definition.key(item)))
                    await self._apply_item(client, definition, operation, args, callback, result)

        if definition.after_apply is not None and (result.added or result.updated):
            try:
                await definition.after_apply(client)
            except SyncError as e:
                self.logger.warning(f"{client.name}: {definition.kind.value} post-apply step failed: {e}")
                result.error = f"post-apply step failed: {e}"

        return result

    def _phases(self, definition: EntityDefinition, diff: CollectionDiff) -> list[tuple]:
        """Operation batches in the order they must run."""
        deletes = (ChangeType.DELETE, diff.to_delete, definition.delete)
        adds = (ChangeType.CREATE, diff.to_add, definition.add)
        if definition.order == ApplyOrder.DELETE_FIRST:
            phases = [deletes, adds]
        else:
            phases = [adds, deletes]
        # Updates only touch keys present on both sides
        phases.append((ChangeType.MODIFY, diff.to_update, definition.update))
        return phases

    async def _apply_item(
        self,
        client: AdGuardClient,
        definition: EntityDefinition,
        operation: ChangeType,
        args: tuple,
        callback: Any,
        result: EntityResult,
    ) -> None:
        """Apply one operation to one item (``args[0]``) and record the outcome."""
        outcome = ItemOutcome(operation=operation, key=definition.describe(args[0]))
        result.outcomes.append(outcome)

        if callback is None:
            outcome.success = False
            outcome.error = f"{operation.value} not supported for {definition.kind.value}"
            self.logger.error(f"{client.name}: {outcome.error}")
            return

        try:
            await callback(client, *args)
        except asyncio.CancelledError:
            outcome.success = False
            outcome.error = "cancelled"
            raise
        except SyncError as e:
            outcome.success = False
            outcome.error = f"{type(e).__name__}: {e}"
            self.logger.warning(
                f"{client.name}: {operation.value} {definition.kind.value} "
                f"{outcome.key} failed: {e}"
            )
        except Exception as e:
            outcome.success = False
            outcome.error = f"{type(e).__name__}: {e}"
            self.logger.exception(
                f"{client.name}: unexpected error on {operation.value} "
                f"{definition.kind.value} {outcome.key}"
            )

    async def _replace_all(
        self,
        client: AdGuardClient,
        definition: EntityDefinition,
        diff: CollectionDiff,
        result: EntityResult,
    ) -> None:
        """Send the full desired list once; every changed item shares the outcome."""
        outcomes = [
            ItemOutcome(operation=operation, key=definition.describe(item))
            for operation, items, _ in self._phases(definition, diff)
            for item in items
        ]
        result.outcomes.extend(outcomes)

        error = None
        try:
            await definition.replace_all(client, list(diff.desired))
        except asyncio.CancelledError:
            for outcome in outcomes:
                outcome.success = False
                outcome.error = "cancelled"
            raise
        except SyncError as e:
            error = f"{type(e).__name__}: {e}"
            self.logger.warning(f"{client.name}: replacing {definition.kind.value} failed: {e}")

        if error:
            for outcome in outcomes:
                outcome.success = False
                outcome.error = error
