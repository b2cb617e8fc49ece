"""Sync engine: one reconciliation pass from origin to every replica.

Flow:
1. Fetch the origin snapshot once (union of all replica features)
2. For each replica, concurrently on a bounded pool:
   fetch -> diff + apply per entity kind -> toggle sync
3. Collect everything into a RunReport
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ..client import AdGuardClient, create_client
from ..config.schema import Features, Instance, SyncConfig
from ..errors import SyncError
from ..utils.logging_config import timed_section
from .diff import DiffEngine
from .entities import ENTITY_DEFINITIONS, EntityDefinition
from .executor import CollectionApplier, planned_counts
from .fetcher import SnapshotFetcher
from .schema import EntityResult, ReplicaReport, RunReport, Snapshot
from .toggles import ToggleSynchronizer

ClientFactory = Callable[[Instance], AdGuardClient]


class SyncEngine:
    """
    Reconcile replicas against the origin.

    Usage:
        engine = SyncEngine(SyncInventory().load())
        report = await engine.run_once()
        if not report.success:
            ...
    """

    def __init__(
        self,
        config: SyncConfig,
        client_factory: ClientFactory = create_client,
        fetcher: Optional[SnapshotFetcher] = None,
        differ: Optional[DiffEngine] = None,
        applier: Optional[CollectionApplier] = None,
        toggles: Optional[ToggleSynchronizer] = None,
        definitions: tuple[EntityDefinition, ...] = ENTITY_DEFINITIONS,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.client_factory = client_factory
        self.logger = logger or logging.getLogger(__name__)
        self.fetcher = fetcher or SnapshotFetcher(self.logger)
        self.differ = differ or DiffEngine()
        self.applier = applier or CollectionApplier(self.logger)
        self.toggles = toggles or ToggleSynchronizer(logger=self.logger)
        self.definitions = definitions

    async def run_once(self, dry_run: Optional[bool] = None) -> RunReport:
        """
        Run one reconciliation pass.

        Args:
            dry_run: Compute and report changes without applying them
                     (defaults to the configured setting)

        Returns:
            RunReport with one ReplicaReport per configured replica
        """
        settings = self.config.settings
        dry_run = settings.dry_run if dry_run is None else dry_run
        origin = self.config.origin
        deadline = (
            time.monotonic() + settings.run_timeout
            if settings.run_timeout is not None else None
        )

        report = RunReport(
            timestamp=datetime.now(timezone.utc).isoformat(),
            origin=origin.name,
            dry_run=dry_run,
            replicas=[ReplicaReport(name=r.name, host=r.url) for r in self.config.replicas],
        )
        # Invalid replicas are reported failed without any call
        for invalid in self.config.invalid_replicas:
            report.replicas.append(ReplicaReport(
                name=invalid.name, host=invalid.url, error=f"ValidationError: {invalid.error}"
            ))
        invalid_note = (
            f", {len(self.config.invalid_replicas)} invalid" if self.config.invalid_replicas else ""
        )
        self.logger.info(
            f"Starting sync from {origin.name} to {len(self.config.replicas)} replica(s)"
            f"{invalid_note}"
            f"{' (dry run)' if dry_run else ''}"
        )

        try:
            origin_snapshot = await self._with_deadline(self._fetch_origin(), deadline)
        except asyncio.TimeoutError:
            report.error = "origin: deadline exceeded"
        except SyncError as e:
            report.error = f"origin: {type(e).__name__}: {e}"
        except Exception as e:
            self.logger.exception(f"Unexpected error fetching origin {origin.name}")
            report.error = f"origin: {type(e).__name__}: {e}"

        if report.error:
            self.logger.error(f"Aborting run: {report.error}")
            for replica_report in report.replicas:
                if replica_report.error is None:
                    replica_report.error = report.error
            return report

        semaphore = asyncio.Semaphore(settings.workers)
        await asyncio.gather(*(
            self._run_replica(semaphore, instance, replica_report, origin_snapshot, dry_run, deadline)
            for instance, replica_report in zip(self.config.replicas, report.replicas)
        ))

        failed = [r.name for r in report.replicas if not r.success]
        if failed:
            self.logger.warning(f"Sync finished with failures on: {', '.join(failed)}")
        else:
            self.logger.info("Sync finished successfully")
        return report

    async def _with_deadline(self, coro, deadline: Optional[float]):
        if deadline is None:
            return await coro
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            coro.close()
            raise asyncio.TimeoutError()
        return await asyncio.wait_for(coro, timeout=remaining)

    async def _fetch_origin(self) -> Snapshot:
        origin = self.config.origin
        features = Features(**{name: False for name in Features.names()}).union(
            *(replica.features for replica in self.config.replicas)
        )
        async with self.client_factory(origin) as client:
            return await self.fetcher.fetch(client, origin, features)

    async def _run_replica(
        self,
        semaphore: asyncio.Semaphore,
        instance: Instance,
        report: ReplicaReport,
        origin: Snapshot,
        dry_run: bool,
        deadline: Optional[float],
    ) -> None:
        """Sync one replica; every failure ends up in ``report``."""
        async with semaphore:
            start = time.perf_counter()
            try:
                async with timed_section("sync_replica", device_id=instance.name, dry_run=dry_run):
                    await self._with_deadline(
                        self.sync_replica(instance, origin, report, dry_run), deadline
                    )
            except asyncio.TimeoutError:
                report.error = "deadline exceeded"
                self.logger.error(f"{instance.name}: deadline exceeded")
            except SyncError as e:
                report.error = f"{type(e).__name__}: {e}"
                self.logger.error(f"{instance.name}: sync failed: {e}")
            except Exception as e:
                report.error = f"{type(e).__name__}: {e}"
                self.logger.exception(f"{instance.name}: unexpected error during sync")
            finally:
                report.duration_ms = (time.perf_counter() - start) * 1000

    async def sync_replica(
        self,
        instance: Instance,
        origin: Snapshot,
        report: Optional[ReplicaReport] = None,
        dry_run: bool = False,
    ) -> ReplicaReport:
        """
        Converge one replica to the origin snapshot.

        Results are appended to ``report`` as work proceeds, so a cancelled
        run keeps everything done so far.
        """
        if report is None:
            report = ReplicaReport(name=instance.name, host=instance.url)

        async with self.client_factory(instance) as client:
            replica = await self.fetcher.fetch(client, instance)

            if origin.status.version and replica.status.version != origin.status.version:
                self.logger.warning(
                    f"{instance.name}: version {replica.status.version or 'unknown'} "
                    f"differs from origin {origin.status.version}"
                )

            for definition in self.definitions:
                if not instance.features.enabled(definition.feature):
                    continue
                origin_items = origin.collection(definition.kind)
                replica_items = replica.collection(definition.kind)
                if origin_items is None or replica_items is None:
                    continue

                result = EntityResult(kind=definition.kind, dry_run=dry_run)
                report.entities.append(result)

                diff = self.differ.calculate(
                    definition,
                    origin_items,
                    replica_items,
                    protect=instance.protects(definition.feature),
                )
                if dry_run:
                    result.planned = planned_counts(diff)
                    result.unchanged = diff.unchanged
                    continue
                await self.applier.apply(client, definition, diff, result)

            await self.toggles.sync(
                client, instance, origin, replica, dry_run=dry_run, results=report.toggles
            )

        return report


def summarize_report(report: RunReport) -> str:
    """
    Create a human-readable summary of a run.

    Used by the CLI; dry runs show planned counts instead of applied ones.
    """
    header = f"Sync from {report.origin} at {report.timestamp}"
    if report.dry_run:
        header += " (dry run)"
    lines = [header]
    if report.error:
        lines.append(f"  error: {report.error}")

    for replica in report.replicas:
        status = "OK" if replica.success else "FAILED"
        lines.append(f"{replica.name} [{status}] {replica.duration_ms:.0f}ms")
        if replica.error:
            lines.append(f"  error: {replica.error}")
        for entity in replica.entities:
            if entity.dry_run:
                counts = ", ".join(f"{op} {n}" for op, n in entity.planned.items() if n)
                lines.append(f"  {entity.kind.value}: {counts or 'no changes'}")
                continue
            lines.append(
                f"  {entity.kind.value}: +{entity.added} ~{entity.updated} -{entity.deleted}"
                f" ={entity.unchanged}" + (f" ({entity.failed} failed)" if entity.failed else "")
            )
            for outcome in entity.outcomes:
                if not outcome.success:
                    lines.append(f"    {outcome.operation.value} {outcome.key}: {outcome.error}")
            if entity.error:
                lines.append(f"    error: {entity.error}")
        for toggle in replica.toggles:
            if not toggle.changed:
                continue
            verb = "would change" if toggle.dry_run else "changed"
            line = f"  {toggle.name}: {verb} {', '.join(toggle.fields)}"
            if not toggle.success:
                line += f" FAILED: {toggle.error}"
            lines.append(line)

    return "\n".join(lines)
