"""Toggle synchronizer for settings that are copied rather than diffed by key."""
import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional

from ..client.base import AdGuardClient, DHCPConfig, DNSConfig
from ..config.schema import Instance
from ..errors import SyncError
from .schema import Snapshot, ToggleResult


def _whole_changes(name: str) -> Callable[[Any, Any], list[str]]:
    def changes(desired: Any, current: Any) -> list[str]:
        return [] if desired == current else [name]
    return changes


def _dataclass_changes(desired: Any, current: Any) -> list[str]:
    """Names of top-level fields that differ."""
    if current is None:
        return list(vars(desired))
    return [k for k, v in vars(desired).items() if getattr(current, k, None) != v]


def _dns_changes(desired: DNSConfig, current: DNSConfig) -> list[str]:
    # Fields missing on origin are left alone on the replica
    return sorted(
        k for k, v in desired.values.items()
        if current is None or current.values.get(k) != v
    )


def _dhcp_desired(origin: DHCPConfig, instance: Instance) -> DHCPConfig:
    """Apply the replica's interface and enabled overrides."""
    desired = origin
    if instance.interface_name:
        desired = replace(desired, interface_name=instance.interface_name)
    if instance.dhcp_server_enabled is not None:
        desired = replace(desired, enabled=instance.dhcp_server_enabled)
    return desired


async def _set_dns(client: AdGuardClient, desired: DNSConfig, fields: list[str]) -> None:
    await client.set_dns_config({k: desired.values[k] for k in fields})


@dataclass(frozen=True)
class ToggleDefinition:
    """How to compare and copy one toggle setting."""
    name: str
    write: Callable[[AdGuardClient, Any, list[str]], Awaitable[None]]
    # Snapshot attribute holding the value (defaults to ``name``)
    attribute: Optional[str] = None
    changes: Optional[Callable[[Any, Any], list[str]]] = None
    desired: Callable[[Any, Instance], Any] = lambda value, instance: value

    def read(self, snapshot: Snapshot) -> Any:
        return getattr(snapshot, self.attribute or self.name)

    def diff(self, desired: Any, current: Any) -> list[str]:
        changes = self.changes or _whole_changes(self.name)
        return changes(desired, current)


TOGGLE_DEFINITIONS: tuple[ToggleDefinition, ...] = (
    ToggleDefinition(
        name="protection",
        write=lambda client, value, _: client.set_protection(value),
    ),
    ToggleDefinition(
        name="filtering_config",
        write=lambda client, value, _: client.set_filtering_config(value),
        changes=_dataclass_changes,
    ),
    ToggleDefinition(
        name="user_rules",
        write=lambda client, value, _: client.set_user_rules(list(value)),
    ),
    ToggleDefinition(
        name="safe_browsing",
        write=lambda client, value, _: client.set_safe_browsing(value),
    ),
    ToggleDefinition(
        name="parental",
        write=lambda client, value, _: client.set_parental(value),
    ),
    ToggleDefinition(
        name="safe_search",
        write=lambda client, value, _: client.set_safe_search(value),
    ),
    ToggleDefinition(
        name="query_log_config",
        write=lambda client, value, _: client.set_query_log_config(value),
        changes=_dataclass_changes,
    ),
    ToggleDefinition(
        name="stats_config",
        write=lambda client, value, _: client.set_stats_config(value),
        changes=_dataclass_changes,
    ),
    ToggleDefinition(
        name="dns_config",
        write=_set_dns,
        changes=_dns_changes,
    ),
    ToggleDefinition(
        name="dhcp_config",
        write=lambda client, value, _: client.set_dhcp_config(value),
        changes=_dataclass_changes,
        desired=_dhcp_desired,
    ),
)


class ToggleSynchronizer:
    """Compare toggle settings and copy the ones that differ."""

    def __init__(
        self,
        definitions: tuple[ToggleDefinition, ...] = TOGGLE_DEFINITIONS,
        logger: Optional[logging.Logger] = None,
    ):
        self.definitions = definitions
        self.logger = logger or logging.getLogger(__name__)

    async def sync(
        self,
        client: AdGuardClient,
        instance: Instance,
        origin: Snapshot,
        replica: Snapshot,
        dry_run: bool = False,
        results: Optional[list[ToggleResult]] = None,
    ) -> list[ToggleResult]:
        """
        Sync every toggle enabled for ``instance``.

        At most one mutating call is issued per toggle, and only if the
        origin and replica values differ.

        Returns:
            One ToggleResult per compared toggle
        """
        results = [] if results is None else results

        for definition in self.definitions:
            if not instance.features.enabled(definition.name):
                continue
            origin_value = definition.read(origin)
            if origin_value is None:
                self.logger.debug(f"{definition.name} not fetched from origin, skipping")
                continue

            desired = definition.desired(origin_value, instance)
            current = definition.read(replica)
            fields = definition.diff(desired, current)

            result = ToggleResult(name=definition.name, changed=bool(fields), dry_run=dry_run)
            result.fields = fields
            results.append(result)

            if not fields or dry_run:
                continue

            self.logger.info(f"{client.name}: syncing {definition.name} ({', '.join(fields)})")
            try:
                await definition.write(client, desired, fields)
            except asyncio.CancelledError:
                result.success = False
                result.error = "cancelled"
                raise
            except SyncError as e:
                result.success = False
                result.error = f"{type(e).__name__}: {e}"
                self.logger.warning(f"{client.name}: syncing {definition.name} failed: {e}")

        return results
