"""Entity definitions: identity, equality and operations per entity kind.

Each keyed collection is synced by the same generic diff/apply code,
parameterized by one EntityDefinition.
"""
from collections.abc import Awaitable, Hashable
from dataclasses import dataclass
from typing import Any, Callable, Optional

from ..client.base import AccessList, AdGuardClient, Client, DHCPStaticLease, Filter, RewriteEntry
from .schema import ApplyOrder, EntityKind

ItemCallback = Callable[[AdGuardClient, Any], Awaitable[None]]
# Receives the origin item and the replica item it replaces
UpdateCallback = Callable[[AdGuardClient, Any, Any], Awaitable[None]]


@dataclass(frozen=True)
class EntityDefinition:
    """How to diff and apply one entity kind."""
    kind: EntityKind
    key: Callable[[Any], Hashable]
    equals: Callable[[Any, Any], bool]
    describe: Callable[[Any], str]
    order: ApplyOrder = ApplyOrder.DELETE_FIRST
    # Compared and replaced as a single value instead of keyed items
    whole: bool = False
    add: Optional[ItemCallback] = None
    update: Optional[UpdateCallback] = None
    delete: Optional[ItemCallback] = None
    # One call with the full desired list, instead of per-item calls
    replace_all: Optional[Callable[[AdGuardClient, list], Awaitable[None]]] = None
    # Called once if anything was added or updated
    after_apply: Optional[Callable[[AdGuardClient], Awaitable[None]]] = None

    @property
    def feature(self) -> str:
        return self.kind.feature


def _always_equal(origin: Any, replica: Any) -> bool:
    return True


# === Rewrites ===

def _rewrite_key(entry: RewriteEntry) -> Hashable:
    return (entry.domain, entry.answer)


async def _add_rewrite(client: AdGuardClient, entry: RewriteEntry) -> None:
    await client.add_rewrite(entry)


async def _delete_rewrite(client: AdGuardClient, entry: RewriteEntry) -> None:
    await client.delete_rewrite(entry)


# === Filters ===

def _filter_equal(origin: Filter, replica: Filter) -> bool:
    return origin.name == replica.name and origin.enabled == replica.enabled


def _filter_ops(whitelist: bool) -> dict[str, Callable]:
    async def add(client: AdGuardClient, f: Filter) -> None:
        await client.add_filter(f, whitelist)
        # New lists are created enabled
        if not f.enabled:
            await client.update_filter(f, whitelist)

    async def update(client: AdGuardClient, f: Filter, current: Optional[Filter]) -> None:
        await client.update_filter(f, whitelist)

    async def delete(client: AdGuardClient, f: Filter) -> None:
        await client.remove_filter(f, whitelist)

    async def refresh(client: AdGuardClient) -> None:
        await client.refresh_filters(whitelist)

    return {"add": add, "update": update, "delete": delete, "after_apply": refresh}


# === Clients ===

def _client_comparable(client: Client) -> tuple:
    return (
        frozenset(client.ids),
        frozenset(client.tags),
        tuple(client.upstreams),
        client.use_global_settings,
        client.filtering_enabled,
        client.parental_enabled,
        client.safebrowsing_enabled,
        client.safesearch_enabled,
        client.use_global_blocked_services,
        frozenset(client.blocked_services),
        client.ignore_querylog,
        client.ignore_statistics,
        client.extra,
    )


def _client_equal(origin: Client, replica: Client) -> bool:
    return _client_comparable(origin) == _client_comparable(replica)


async def _add_client(client: AdGuardClient, item: Client) -> None:
    await client.add_client(item)


async def _update_client(client: AdGuardClient, item: Client, current: Optional[Client]) -> None:
    await client.update_client(item)


async def _delete_client(client: AdGuardClient, item: Client) -> None:
    await client.delete_client(item.name)


# === Blocked services ===

async def _set_services(client: AdGuardClient, services: list) -> None:
    await client.set_blocked_services(list(services))


# === DHCP static leases ===

def _lease_key(lease: DHCPStaticLease) -> Hashable:
    return lease.mac.lower()


def _lease_equal(origin: DHCPStaticLease, replica: DHCPStaticLease) -> bool:
    return origin.ip == replica.ip and origin.hostname == replica.hostname


async def _add_lease(client: AdGuardClient, lease: DHCPStaticLease) -> None:
    await client.add_static_lease(lease)


async def _delete_lease(client: AdGuardClient, lease: DHCPStaticLease) -> None:
    await client.remove_static_lease(lease)


async def _update_lease(
    client: AdGuardClient, lease: DHCPStaticLease, current: Optional[DHCPStaticLease]
) -> None:
    # No update endpoint. Removal matches on the replica's own ip and hostname.
    await client.remove_static_lease(current or lease)
    await client.add_static_lease(lease)


# === Access list ===

def _access_list_equal(origin: AccessList, replica: AccessList) -> bool:
    return (
        sorted(origin.allowed_clients) == sorted(replica.allowed_clients)
        and sorted(origin.disallowed_clients) == sorted(replica.disallowed_clients)
        and sorted(origin.blocked_hosts) == sorted(replica.blocked_hosts)
    )


async def _set_access_list(
    client: AdGuardClient, access_list: AccessList, current: Optional[AccessList] = None
) -> None:
    await client.set_access_list(access_list)


_blacklist_ops = _filter_ops(whitelist=False)
_whitelist_ops = _filter_ops(whitelist=True)

ENTITY_DEFINITIONS: tuple[EntityDefinition, ...] = (
    EntityDefinition(
        kind=EntityKind.REWRITES,
        key=_rewrite_key,
        equals=_always_equal,
        describe=lambda e: f"{e.domain} -> {e.answer}",
        order=ApplyOrder.DELETE_FIRST,
        add=_add_rewrite,
        delete=_delete_rewrite,
    ),
    EntityDefinition(
        kind=EntityKind.FILTERS,
        key=lambda f: f.url,
        equals=_filter_equal,
        describe=lambda f: f.url,
        order=ApplyOrder.DELETE_FIRST,
        **_blacklist_ops,
    ),
    EntityDefinition(
        kind=EntityKind.WHITELIST_FILTERS,
        key=lambda f: f.url,
        equals=_filter_equal,
        describe=lambda f: f.url,
        order=ApplyOrder.DELETE_FIRST,
        **_whitelist_ops,
    ),
    EntityDefinition(
        kind=EntityKind.CLIENTS,
        key=lambda c: c.name,
        equals=_client_equal,
        describe=lambda c: c.name,
        order=ApplyOrder.ADD_FIRST,
        add=_add_client,
        update=_update_client,
        delete=_delete_client,
    ),
    EntityDefinition(
        kind=EntityKind.SERVICES,
        key=lambda s: s,
        equals=_always_equal,
        describe=str,
        replace_all=_set_services,
    ),
    EntityDefinition(
        kind=EntityKind.DHCP_STATIC_LEASES,
        key=_lease_key,
        equals=_lease_equal,
        describe=lambda lease: f"{lease.mac} -> {lease.ip}",
        order=ApplyOrder.DELETE_FIRST,
        add=_add_lease,
        update=_update_lease,
        delete=_delete_lease,
    ),
    EntityDefinition(
        kind=EntityKind.ACCESS_LIST,
        key=lambda acl: "access_list",
        equals=_access_list_equal,
        describe=lambda acl: "access list",
        whole=True,
        update=_set_access_list,
    ),
)


def get_definition(kind: EntityKind) -> EntityDefinition:
    for definition in ENTITY_DEFINITIONS:
        if definition.kind == kind:
            return definition
    raise KeyError(f"Unknown entity kind: {kind}")
