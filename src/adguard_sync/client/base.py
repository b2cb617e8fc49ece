"""Base client abstraction for AdGuard Home instances."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from typing import Any, Optional


@dataclass(frozen=True)
class RewriteEntry:
    """DNS rewrite rule. Both fields together form the identity."""
    domain: str
    answer: str

    @classmethod
    def from_dict(cls, data: dict) -> "RewriteEntry":
        return cls(domain=data.get("domain", ""), answer=data.get("answer", ""))

    def to_dict(self) -> dict:
        return {"domain": self.domain, "answer": self.answer}


@dataclass(frozen=True)
class Filter:
    """Filter list subscription."""
    url: str
    name: str = ""
    enabled: bool = True
    whitelist: bool = False
    # Replica-local values, never compared
    id: Optional[int] = None
    rules_count: int = 0
    last_updated: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, whitelist: bool = False) -> "Filter":
        return cls(
            url=data.get("url", ""),
            name=data.get("name", ""),
            enabled=bool(data.get("enabled", True)),
            whitelist=whitelist,
            id=data.get("id"),
            rules_count=int(data.get("rules_count") or 0),
            last_updated=data.get("last_updated"),
        )

    def to_dict(self) -> dict:
        return {"name": self.name, "url": self.url, "enabled": self.enabled}


@dataclass(frozen=True)
class Client:
    """Persistent client profile.

    Fields not modelled here (``safe_search``, ``blocked_services_schedule``,
    ``upstreams_cache_*`` and whatever newer releases add) are kept in
    ``extra`` and sent back unchanged.
    """
    name: str
    ids: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    upstreams: tuple[str, ...] = ()
    use_global_settings: bool = True
    filtering_enabled: bool = False
    parental_enabled: bool = False
    safebrowsing_enabled: bool = False
    safesearch_enabled: bool = False
    use_global_blocked_services: bool = True
    blocked_services: tuple[str, ...] = ()
    ignore_querylog: bool = False
    ignore_statistics: bool = False
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Client":
        return cls(
            name=data.get("name", ""),
            ids=tuple(data.get("ids") or ()),
            tags=tuple(data.get("tags") or ()),
            upstreams=tuple(data.get("upstreams") or ()),
            use_global_settings=bool(data.get("use_global_settings", True)),
            filtering_enabled=bool(data.get("filtering_enabled", False)),
            parental_enabled=bool(data.get("parental_enabled", False)),
            safebrowsing_enabled=bool(data.get("safebrowsing_enabled", False)),
            safesearch_enabled=bool(data.get("safesearch_enabled", False)),
            use_global_blocked_services=bool(data.get("use_global_blocked_services", True)),
            blocked_services=tuple(data.get("blocked_services") or ()),
            ignore_querylog=bool(data.get("ignore_querylog", False)),
            ignore_statistics=bool(data.get("ignore_statistics", False)),
            extra={k: v for k, v in data.items() if k not in _CLIENT_FIELDS},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "name": self.name,
            "ids": list(self.ids),
            "tags": list(self.tags),
            "upstreams": list(self.upstreams),
            "use_global_settings": self.use_global_settings,
            "filtering_enabled": self.filtering_enabled,
            "parental_enabled": self.parental_enabled,
            "safebrowsing_enabled": self.safebrowsing_enabled,
            "safesearch_enabled": self.safesearch_enabled,
            "use_global_blocked_services": self.use_global_blocked_services,
            "blocked_services": list(self.blocked_services),
            "ignore_querylog": self.ignore_querylog,
            "ignore_statistics": self.ignore_statistics,
        })
        return data


_CLIENT_FIELDS = frozenset(f.name for f in fields(Client)) - {"extra"}


@dataclass(frozen=True)
class DHCPStaticLease:
    """Static DHCP lease, identified by MAC address."""
    mac: str
    ip: str
    hostname: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "DHCPStaticLease":
        return cls(
            mac=data.get("mac", ""),
            ip=data.get("ip", ""),
            hostname=data.get("hostname", ""),
        )

    def to_dict(self) -> dict:
        return {"mac": self.mac, "ip": self.ip, "hostname": self.hostname}


@dataclass(frozen=True)
class AccessList:
    """Allowed/disallowed clients and blocked hosts, replaced as a whole."""
    allowed_clients: tuple[str, ...] = ()
    disallowed_clients: tuple[str, ...] = ()
    blocked_hosts: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "AccessList":
        return cls(
            allowed_clients=tuple(data.get("allowed_clients") or ()),
            disallowed_clients=tuple(data.get("disallowed_clients") or ()),
            blocked_hosts=tuple(data.get("blocked_hosts") or ()),
        )

    def to_dict(self) -> dict:
        return {
            "allowed_clients": list(self.allowed_clients),
            "disallowed_clients": list(self.disallowed_clients),
            "blocked_hosts": list(self.blocked_hosts),
        }


@dataclass(frozen=True)
class Status:
    """Instance status as reported by /status."""
    version: str = ""
    protection_enabled: bool = False
    running: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "Status":
        return cls(
            version=data.get("version", ""),
            protection_enabled=bool(data.get("protection_enabled", False)),
            running=bool(data.get("running", True)),
        )


@dataclass(frozen=True)
class FilteringConfig:
    """Global filtering switch and list update interval (hours)."""
    enabled: bool = True
    interval: int = 24

    def to_dict(self) -> dict:
        return {"enabled": self.enabled, "interval": self.interval}


@dataclass(frozen=True)
class FilteringStatus:
    """Everything /filtering/status returns."""
    config: FilteringConfig = field(default_factory=FilteringConfig)
    filters: tuple[Filter, ...] = ()
    whitelist_filters: tuple[Filter, ...] = ()
    user_rules: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "FilteringStatus":
        return cls(
            config=FilteringConfig(
                enabled=bool(data.get("enabled", True)),
                interval=int(data.get("interval") or 0),
            ),
            filters=tuple(Filter.from_dict(f) for f in data.get("filters") or ()),
            whitelist_filters=tuple(
                Filter.from_dict(f, whitelist=True)
                for f in data.get("whitelist_filters") or ()
            ),
            user_rules=tuple(data.get("user_rules") or ()),
        )


@dataclass(frozen=True)
class QueryLogConfig:
    """Query log settings. Interval is in days; fractions are allowed (0.25 is six hours)."""
    enabled: bool = True
    interval: float = 90
    anonymize_client_ip: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "QueryLogConfig":
        return cls(
            enabled=bool(data.get("enabled", True)),
            interval=float(data.get("interval") or 0),
            anonymize_client_ip=bool(data.get("anonymize_client_ip", False)),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "interval": self.interval,
            "anonymize_client_ip": self.anonymize_client_ip,
        }


@dataclass(frozen=True)
class StatsConfig:
    """Statistics retention interval (days)."""
    interval: int = 1

    def to_dict(self) -> dict:
        return {"interval": self.interval}


# Keys in /dns_info that are owned by other toggles or are read-only
DNS_CONFIG_EXCLUDED_KEYS = frozenset({
    "protection_enabled",
    "protection_disabled_until",
    "default_local_ptr_upstreams",
})


@dataclass(frozen=True)
class DNSConfig:
    """DNS server settings, kept as the raw key/value mapping.

    The AdGuard Home DNS config grows new fields between releases, so the
    mapping is carried as-is and compared field by field.
    """
    values: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "DNSConfig":
        return cls(values={
            k: v for k, v in data.items() if k not in DNS_CONFIG_EXCLUDED_KEYS
        })

    def to_dict(self) -> dict:
        return dict(self.values)


@dataclass(frozen=True)
class DHCPConfig:
    """DHCP server settings (without leases)."""
    enabled: bool = False
    interface_name: str = ""
    v4: dict = field(default_factory=dict)
    v6: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "interface_name": self.interface_name,
            "v4": dict(self.v4),
            "v6": dict(self.v6),
        }


@dataclass(frozen=True)
class DHCPStatus:
    """Everything /dhcp/status returns that is worth syncing."""
    config: DHCPConfig = field(default_factory=DHCPConfig)
    static_leases: tuple[DHCPStaticLease, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "DHCPStatus":
        return cls(
            config=DHCPConfig(
                enabled=bool(data.get("enabled", False)),
                interface_name=data.get("interface_name", ""),
                v4=dict(data.get("v4") or {}),
                v6=dict(data.get("v6") or {}),
            ),
            static_leases=tuple(
                DHCPStaticLease.from_dict(lease)
                for lease in data.get("static_leases") or ()
            ),
        )


class AdGuardClient(ABC):
    """Abstract capability interface for one AdGuard Home instance.

    Every call either returns, or raises one of SetupRequired, APIError or
    TransportError from adguard_sync.errors.
    """

    def __init__(self, name: str, host: str = ""):
        self.name = name
        self._host = host or name

    @property
    def host(self) -> str:
        return self._host

    # Connection management
    async def close(self) -> None:
        """Release any underlying session."""

    @abstractmethod
    async def setup(self) -> None:
        """Provision a fresh instance that still shows its install page."""
        pass

    @abstractmethod
    async def status(self) -> Status:
        pass

    # Rewrites
    @abstractmethod
    async def list_rewrites(self) -> list[RewriteEntry]:
        pass

    @abstractmethod
    async def add_rewrite(self, entry: RewriteEntry) -> None:
        pass

    @abstractmethod
    async def delete_rewrite(self, entry: RewriteEntry) -> None:
        pass

    # Filtering
    @abstractmethod
    async def filtering_status(self) -> FilteringStatus:
        pass

    @abstractmethod
    async def add_filter(self, f: Filter, whitelist: bool) -> None:
        pass

    @abstractmethod
    async def remove_filter(self, f: Filter, whitelist: bool) -> None:
        pass

    @abstractmethod
    async def update_filter(self, f: Filter, whitelist: bool) -> None:
        pass

    @abstractmethod
    async def refresh_filters(self, whitelist: bool) -> None:
        pass

    @abstractmethod
    async def set_user_rules(self, rules: list[str]) -> None:
        pass

    @abstractmethod
    async def set_filtering_config(self, config: FilteringConfig) -> None:
        pass

    # Clients
    @abstractmethod
    async def list_clients(self) -> list[Client]:
        pass

    @abstractmethod
    async def add_client(self, client: Client) -> None:
        pass

    @abstractmethod
    async def update_client(self, client: Client) -> None:
        pass

    @abstractmethod
    async def delete_client(self, name: str) -> None:
        pass

    # Blocked services
    @abstractmethod
    async def blocked_services(self) -> list[str]:
        pass

    @abstractmethod
    async def set_blocked_services(self, services: list[str]) -> None:
        pass

    # DHCP
    @abstractmethod
    async def dhcp_status(self) -> DHCPStatus:
        pass

    @abstractmethod
    async def set_dhcp_config(self, config: DHCPConfig) -> None:
        pass

    @abstractmethod
    async def add_static_lease(self, lease: DHCPStaticLease) -> None:
        pass

    @abstractmethod
    async def remove_static_lease(self, lease: DHCPStaticLease) -> None:
        pass

    # Access list
    @abstractmethod
    async def access_list(self) -> AccessList:
        pass

    @abstractmethod
    async def set_access_list(self, access_list: AccessList) -> None:
        pass

    # Toggles
    @abstractmethod
    async def set_protection(self, enabled: bool) -> None:
        pass

    @abstractmethod
    async def safe_browsing_enabled(self) -> bool:
        pass

    @abstractmethod
    async def set_safe_browsing(self, enabled: bool) -> None:
        pass

    @abstractmethod
    async def parental_enabled(self) -> bool:
        pass

    @abstractmethod
    async def set_parental(self, enabled: bool) -> None:
        pass

    @abstractmethod
    async def safe_search_enabled(self) -> bool:
        pass

    @abstractmethod
    async def set_safe_search(self, enabled: bool) -> None:
        pass

    @abstractmethod
    async def query_log_config(self) -> QueryLogConfig:
        pass

    @abstractmethod
    async def set_query_log_config(self, config: QueryLogConfig) -> None:
        pass

    @abstractmethod
    async def stats_config(self) -> StatsConfig:
        pass

    @abstractmethod
    async def set_stats_config(self, config: StatsConfig) -> None:
        pass

    @abstractmethod
    async def dns_config(self) -> DNSConfig:
        pass

    @abstractmethod
    async def set_dns_config(self, values: dict[str, Any]) -> None:
        """Apply a (possibly partial) DNS config update."""
        pass

    # Context manager support
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False
