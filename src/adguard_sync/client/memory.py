"""In-memory AdGuard Home instance.

Keeps the whole configuration in process, records every mutating call and
can be told to fail specific calls. Used by the test suite and for trying
out configurations without a live instance.
"""
from dataclasses import replace
from typing import Any, Callable, Optional

from ..errors import APIError, SetupRequired
from .base import (
    AccessList,
    AdGuardClient,
    Client,
    DHCPConfig,
    DHCPStaticLease,
    DHCPStatus,
    DNSConfig,
    Filter,
    FilteringConfig,
    FilteringStatus,
    QueryLogConfig,
    RewriteEntry,
    StatsConfig,
    Status,
)


class InMemoryAdGuardClient(AdGuardClient):
    """Capability interface backed by plain Python state."""

    def __init__(
        self,
        name: str = "memory",
        *,
        version: str = "v0.107.0",
        protection_enabled: bool = True,
        rewrites: tuple = (),
        filters: tuple = (),
        whitelist_filters: tuple = (),
        user_rules: tuple = (),
        filtering_config: Optional[FilteringConfig] = None,
        clients: tuple = (),
        blocked_services: tuple = (),
        dhcp_config: Optional[DHCPConfig] = None,
        static_leases: tuple = (),
        access_list: Optional[AccessList] = None,
        safe_browsing: bool = False,
        parental: bool = False,
        safe_search: bool = False,
        query_log_config: Optional[QueryLogConfig] = None,
        stats_config: Optional[StatsConfig] = None,
        dns_config: Optional[dict] = None,
        needs_setup: bool = False,
        setup_fixes: bool = True,
    ):
        super().__init__(name)
        self.version = version
        self.protection_enabled = protection_enabled
        self.rewrites: list[RewriteEntry] = list(rewrites)
        self.filters: list[Filter] = list(filters)
        self.whitelist_filters: list[Filter] = list(whitelist_filters)
        self.user_rules: list[str] = list(user_rules)
        self.filtering_config = filtering_config or FilteringConfig()
        self.clients: list[Client] = list(clients)
        self.services: list[str] = list(blocked_services)
        self.dhcp_config = dhcp_config or DHCPConfig()
        self.static_leases: list[DHCPStaticLease] = list(static_leases)
        self.acl = access_list or AccessList()
        self.safe_browsing = safe_browsing
        self.parental = parental
        self.safe_search = safe_search
        self.query_log = query_log_config or QueryLogConfig()
        self.stats = stats_config or StatsConfig()
        self.dns: dict = dict(dns_config or {})
        self.needs_setup = needs_setup
        self.setup_fixes = setup_fixes

        self.calls: list[tuple[str, Any]] = []
        self.reads: list[str] = []
        self.closed = False
        self._failures: list[tuple[str, Optional[Callable[[Any], bool]], Exception]] = []
        self._next_filter_id = 1 + max(
            [f.id or 0 for f in self.filters + self.whitelist_filters] or [0]
        )

    # === Test helpers ===

    def fail(
        self,
        method: str,
        error: Exception,
        when: Optional[Callable[[Any], bool]] = None,
    ) -> None:
        """Make ``method`` raise ``error`` (only for arguments matching ``when``)."""
        self._failures.append((method, when, error))

    def mutations(self, method: Optional[str] = None) -> list[tuple[str, Any]]:
        """Recorded mutating calls, optionally filtered by method name."""
        return [c for c in self.calls if method is None or c[0] == method]

    def _check(self, method: str, arg: Any = None) -> None:
        if self.needs_setup:
            raise SetupRequired(self.name)
        for name, when, error in self._failures:
            if name == method and (when is None or when(arg)):
                raise error

    def _read(self, method: str) -> None:
        self._check(method)
        self.reads.append(method)

    def _record(self, method: str, arg: Any = None) -> None:
        self._check(method, arg)
        self.calls.append((method, arg))

    # === Capability interface ===

    async def close(self) -> None:
        self.closed = True

    async def setup(self) -> None:
        self.calls.append(("setup", None))
        if self.setup_fixes:
            self.needs_setup = False

    async def status(self) -> Status:
        self._read("status")
        return Status(version=self.version, protection_enabled=self.protection_enabled)

    async def list_rewrites(self) -> list[RewriteEntry]:
        self._read("list_rewrites")
        return list(self.rewrites)

    async def add_rewrite(self, entry: RewriteEntry) -> None:
        self._record("add_rewrite", entry)
        self.rewrites.append(entry)

    async def delete_rewrite(self, entry: RewriteEntry) -> None:
        self._record("delete_rewrite", entry)
        if entry in self.rewrites:
            self.rewrites.remove(entry)

    async def filtering_status(self) -> FilteringStatus:
        self._read("filtering_status")
        return FilteringStatus(
            config=self.filtering_config,
            filters=tuple(self.filters),
            whitelist_filters=tuple(self.whitelist_filters),
            user_rules=tuple(self.user_rules),
        )

    def _filter_list(self, whitelist: bool) -> list[Filter]:
        return self.whitelist_filters if whitelist else self.filters

    async def add_filter(self, f: Filter, whitelist: bool) -> None:
        self._record("add_filter", f)
        # AdGuard Home enables newly added lists
        self._filter_list(whitelist).append(replace(
            f, enabled=True, whitelist=whitelist, id=self._next_filter_id, rules_count=0
        ))
        self._next_filter_id += 1

    async def remove_filter(self, f: Filter, whitelist: bool) -> None:
        self._record("remove_filter", f)
        items = self._filter_list(whitelist)
        items[:] = [x for x in items if x.url != f.url]

    async def update_filter(self, f: Filter, whitelist: bool) -> None:
        self._record("update_filter", f)
        items = self._filter_list(whitelist)
        items[:] = [
            replace(x, name=f.name, enabled=f.enabled) if x.url == f.url else x
            for x in items
        ]

    async def refresh_filters(self, whitelist: bool) -> None:
        self._record("refresh_filters", whitelist)

    async def set_user_rules(self, rules: list[str]) -> None:
        self._record("set_user_rules", list(rules))
        self.user_rules = list(rules)

    async def set_filtering_config(self, config: FilteringConfig) -> None:
        self._record("set_filtering_config", config)
        self.filtering_config = config

    async def list_clients(self) -> list[Client]:
        self._read("list_clients")
        return list(self.clients)

    async def add_client(self, client: Client) -> None:
        self._record("add_client", client)
        self.clients.append(client)

    async def update_client(self, client: Client) -> None:
        self._record("update_client", client)
        self.clients = [client if c.name == client.name else c for c in self.clients]

    async def delete_client(self, name: str) -> None:
        self._record("delete_client", name)
        self.clients = [c for c in self.clients if c.name != name]

    async def blocked_services(self) -> list[str]:
        self._read("blocked_services")
        return list(self.services)

    async def set_blocked_services(self, services: list[str]) -> None:
        self._record("set_blocked_services", list(services))
        self.services = list(services)

    async def dhcp_status(self) -> DHCPStatus:
        self._read("dhcp_status")
        return DHCPStatus(config=self.dhcp_config, static_leases=tuple(self.static_leases))

    async def set_dhcp_config(self, config: DHCPConfig) -> None:
        self._record("set_dhcp_config", config)
        self.dhcp_config = config

    async def add_static_lease(self, lease: DHCPStaticLease) -> None:
        self._record("add_static_lease", lease)
        self.static_leases.append(lease)

    async def remove_static_lease(self, lease: DHCPStaticLease) -> None:
        self._record("remove_static_lease", lease)
        # AdGuard Home finds the lease by ip and rejects any other mismatch
        for existing in self.static_leases:
            if (
                existing.ip == lease.ip
                and existing.mac.lower() == lease.mac.lower()
                and existing.hostname == lease.hostname
            ):
                self.static_leases.remove(existing)
                return
        raise APIError(
            400, f"lease not found: {lease.ip}", path="/dhcp/remove_static_lease"
        )

    async def access_list(self) -> AccessList:
        self._read("access_list")
        return self.acl

    async def set_access_list(self, access_list: AccessList) -> None:
        self._record("set_access_list", access_list)
        self.acl = access_list

    async def set_protection(self, enabled: bool) -> None:
        self._record("set_protection", enabled)
        self.protection_enabled = enabled

    async def safe_browsing_enabled(self) -> bool:
        self._read("safe_browsing_enabled")
        return self.safe_browsing

    async def set_safe_browsing(self, enabled: bool) -> None:
        self._record("set_safe_browsing", enabled)
        self.safe_browsing = enabled

    async def parental_enabled(self) -> bool:
        self._read("parental_enabled")
        return self.parental

    async def set_parental(self, enabled: bool) -> None:
        self._record("set_parental", enabled)
        self.parental = enabled

    async def safe_search_enabled(self) -> bool:
        self._read("safe_search_enabled")
        return self.safe_search

    async def set_safe_search(self, enabled: bool) -> None:
        self._record("set_safe_search", enabled)
        self.safe_search = enabled

    async def query_log_config(self) -> QueryLogConfig:
        self._read("query_log_config")
        return self.query_log

    async def set_query_log_config(self, config: QueryLogConfig) -> None:
        self._record("set_query_log_config", config)
        self.query_log = config

    async def stats_config(self) -> StatsConfig:
        self._read("stats_config")
        return self.stats

    async def set_stats_config(self, config: StatsConfig) -> None:
        self._record("set_stats_config", config)
        self.stats = config

    async def dns_config(self) -> DNSConfig:
        self._read("dns_config")
        return DNSConfig.from_dict(self.dns)

    async def set_dns_config(self, values: dict[str, Any]) -> None:
        self._record("set_dns_config", dict(values))
        self.dns.update(values)
