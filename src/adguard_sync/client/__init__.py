"""Clients implementing the AdGuard Home capability interface."""
from typing import Optional

import httpx

from ..config.schema import Instance
from .base import (
    AdGuardClient,
    AccessList,
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
from .http import HttpAdGuardClient
from .memory import InMemoryAdGuardClient

__all__ = [
    "AdGuardClient",
    "AccessList",
    "Client",
    "DHCPConfig",
    "DHCPStaticLease",
    "DHCPStatus",
    "DNSConfig",
    "Filter",
    "FilteringConfig",
    "FilteringStatus",
    "QueryLogConfig",
    "RewriteEntry",
    "StatsConfig",
    "Status",
    "HttpAdGuardClient",
    "InMemoryAdGuardClient",
    "create_client",
]


def create_client(instance: Instance, http: Optional[httpx.AsyncClient] = None) -> AdGuardClient:
    """Factory function used by the engine to talk to an instance."""
    return HttpAdGuardClient(instance, http=http)
