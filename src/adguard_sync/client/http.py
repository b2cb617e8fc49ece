"""AdGuard Home REST API client.

Talks to the ``/control`` API with basic auth. Redirects are not followed
unless REDIRECT_POLICY_NO_OF_REDIRECTS sets a limit. An unprovisioned
instance answers every call with a redirect to ``/install.html``, which is
surfaced as SetupRequired either way.
"""
import logging
import os
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..config.schema import Instance
from ..errors import APIError, SetupRequired, TransportError, ValidationError
from ..utils.logging_config import timed
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

logger = logging.getLogger(__name__)

INSTALL_PAGE = "/install.html"
REDIRECT_CODES = (301, 302, 303, 307, 308)

# Addresses a freshly provisioned instance listens on
SETUP_WEB = {"ip": "0.0.0.0", "port": 3000}
SETUP_DNS = {"ip": "0.0.0.0", "port": 53}

REDIRECT_LIMIT_ENV = "REDIRECT_POLICY_NO_OF_REDIRECTS"


def redirect_limit(environ: Optional[Mapping[str, str]] = None) -> int:
    """Number of redirects to follow; 0 (the default) follows none."""
    environ = os.environ if environ is None else environ
    value = environ.get(REDIRECT_LIMIT_ENV)
    if value is None:
        return 0
    try:
        limit = int(value)
    except ValueError as e:
        raise ValidationError(f"{REDIRECT_LIMIT_ENV} must be an integer, got {value!r}") from e
    if limit < 0:
        raise ValidationError(f"{REDIRECT_LIMIT_ENV} must not be negative, got {limit}")
    return limit


class HttpAdGuardClient(AdGuardClient):
    """Capability interface over the AdGuard Home HTTP API."""

    def __init__(self, instance: Instance, http: Optional[httpx.AsyncClient] = None):
        super().__init__(instance.name, urlparse(instance.url).netloc)
        self.instance = instance
        self._owns_http = http is None
        self._auth: Optional[tuple[str, str]] = None
        password = instance.get_password()
        if instance.username and password:
            self._auth = (instance.username, password)
        if http is None:
            limit = redirect_limit()
            options: dict[str, Any] = {"follow_redirects": limit > 0}
            if limit:
                options["max_redirects"] = limit
            http = httpx.AsyncClient(
                base_url=instance.api_url,
                auth=self._auth,
                verify=instance.verify_ssl,
                timeout=httpx.Timeout(instance.timeout),
                **options,
            )
        self._http = http

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        auth: Any = httpx.USE_CLIENT_DEFAULT,
    ) -> httpx.Response:
        path = path.lstrip("/")
        logger.debug(f"{method} {self.host}/{path}")
        try:
            resp = await self._http.request(method, path, json=body, auth=auth)
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {self.host}/{path} failed: {e!r}") from e

        # Reached when redirects are followed
        if resp.url.path.endswith(INSTALL_PAGE):
            raise SetupRequired(self.host)
        if resp.status_code in REDIRECT_CODES:
            location = resp.headers.get("Location", "")
            if location.endswith(INSTALL_PAGE):
                raise SetupRequired(self.host)

        logger.debug(f"{method} {self.host}/{path} -> {resp.status_code}")
        if not resp.is_success:
            raise APIError(resp.status_code, resp.text, path=f"/{path}")
        return resp

    async def _get(self, path: str) -> Any:
        resp = await self._request("GET", path)
        try:
            return resp.json()
        except ValueError as e:
            raise APIError(resp.status_code, "invalid JSON response", path=f"/{path}") from e

    async def _post(self, path: str, body: Any = None) -> None:
        await self._request("POST", path, body)

    @timed("setup")
    async def setup(self) -> None:
        logger.info(f"Setting up new AdGuard Home instance {self.name}")
        config: dict[str, Any] = {"web": dict(SETUP_WEB), "dns": dict(SETUP_DNS)}
        if self._auth:
            config["username"], config["password"] = self._auth
        await self._request("POST", "install/configure", config, auth=None)

    @timed("status")
    async def status(self) -> Status:
        return Status.from_dict(await self._get("status") or {})

    # === Rewrites ===

    async def list_rewrites(self) -> list[RewriteEntry]:
        data = await self._get("rewrite/list") or []
        return [RewriteEntry.from_dict(e) for e in data]

    async def add_rewrite(self, entry: RewriteEntry) -> None:
        logger.info(f"{self.name}: add rewrite {entry.domain} -> {entry.answer}")
        await self._post("rewrite/add", entry.to_dict())

    async def delete_rewrite(self, entry: RewriteEntry) -> None:
        logger.info(f"{self.name}: delete rewrite {entry.domain} -> {entry.answer}")
        await self._post("rewrite/delete", entry.to_dict())

    # === Filtering ===

    async def filtering_status(self) -> FilteringStatus:
        return FilteringStatus.from_dict(await self._get("filtering/status") or {})

    async def add_filter(self, f: Filter, whitelist: bool) -> None:
        logger.info(f"{self.name}: add filter {f.url} (whitelist={whitelist})")
        await self._post("filtering/add_url", {
            "name": f.name,
            "url": f.url,
            "whitelist": whitelist,
        })

    async def remove_filter(self, f: Filter, whitelist: bool) -> None:
        logger.info(f"{self.name}: remove filter {f.url} (whitelist={whitelist})")
        await self._post("filtering/remove_url", {"url": f.url, "whitelist": whitelist})

    async def update_filter(self, f: Filter, whitelist: bool) -> None:
        logger.info(f"{self.name}: update filter {f.url} (enabled={f.enabled})")
        await self._post("filtering/set_url", {
            "url": f.url,
            "whitelist": whitelist,
            "data": f.to_dict(),
        })

    async def refresh_filters(self, whitelist: bool) -> None:
        logger.info(f"{self.name}: refresh filters (whitelist={whitelist})")
        await self._post("filtering/refresh", {"whitelist": whitelist})

    async def set_user_rules(self, rules: list[str]) -> None:
        logger.info(f"{self.name}: set {len(rules)} user rules")
        await self._post("filtering/set_rules", {"rules": list(rules)})

    async def set_filtering_config(self, config: FilteringConfig) -> None:
        logger.info(f"{self.name}: set filtering config {config.to_dict()}")
        await self._post("filtering/config", config.to_dict())

    # === Clients ===

    async def list_clients(self) -> list[Client]:
        data = await self._get("clients") or {}
        return [Client.from_dict(c) for c in data.get("clients") or ()]

    async def add_client(self, client: Client) -> None:
        logger.info(f"{self.name}: add client {client.name}")
        await self._post("clients/add", client.to_dict())

    async def update_client(self, client: Client) -> None:
        logger.info(f"{self.name}: update client {client.name}")
        await self._post("clients/update", {"name": client.name, "data": client.to_dict()})

    async def delete_client(self, name: str) -> None:
        logger.info(f"{self.name}: delete client {name}")
        await self._post("clients/delete", {"name": name})

    # === Blocked services ===

    async def blocked_services(self) -> list[str]:
        return list(await self._get("blocked_services/list") or [])

    async def set_blocked_services(self, services: list[str]) -> None:
        logger.info(f"{self.name}: set {len(services)} blocked services")
        await self._post("blocked_services/set", list(services))

    # === DHCP ===

    async def dhcp_status(self) -> DHCPStatus:
        return DHCPStatus.from_dict(await self._get("dhcp/status") or {})

    async def set_dhcp_config(self, config: DHCPConfig) -> None:
        logger.info(f"{self.name}: set dhcp config (enabled={config.enabled})")
        await self._post("dhcp/set_config", config.to_dict())

    async def add_static_lease(self, lease: DHCPStaticLease) -> None:
        logger.info(f"{self.name}: add static lease {lease.mac} -> {lease.ip}")
        await self._post("dhcp/add_static_lease", lease.to_dict())

    async def remove_static_lease(self, lease: DHCPStaticLease) -> None:
        logger.info(f"{self.name}: remove static lease {lease.mac} -> {lease.ip}")
        await self._post("dhcp/remove_static_lease", lease.to_dict())

    # === Access list ===

    async def access_list(self) -> AccessList:
        return AccessList.from_dict(await self._get("access/list") or {})

    async def set_access_list(self, access_list: AccessList) -> None:
        logger.info(f"{self.name}: set access list")
        await self._post("access/set", access_list.to_dict())

    # === Toggles ===

    async def set_protection(self, enabled: bool) -> None:
        logger.info(f"{self.name}: set protection enabled={enabled}")
        await self._post("dns_config", {"protection_enabled": enabled})

    async def _toggle_status(self, mode: str) -> bool:
        data = await self._get(f"{mode}/status") or {}
        return bool(data.get("enabled", False))

    async def _toggle(self, mode: str, enabled: bool) -> None:
        logger.info(f"{self.name}: toggle {mode} enabled={enabled}")
        await self._post(f"{mode}/{'enable' if enabled else 'disable'}")

    async def safe_browsing_enabled(self) -> bool:
        return await self._toggle_status("safebrowsing")

    async def set_safe_browsing(self, enabled: bool) -> None:
        await self._toggle("safebrowsing", enabled)

    async def parental_enabled(self) -> bool:
        return await self._toggle_status("parental")

    async def set_parental(self, enabled: bool) -> None:
        await self._toggle("parental", enabled)

    async def safe_search_enabled(self) -> bool:
        return await self._toggle_status("safesearch")

    async def set_safe_search(self, enabled: bool) -> None:
        await self._toggle("safesearch", enabled)

    async def query_log_config(self) -> QueryLogConfig:
        return QueryLogConfig.from_dict(await self._get("querylog_info") or {})

    async def set_query_log_config(self, config: QueryLogConfig) -> None:
        logger.info(f"{self.name}: set query log config {config.to_dict()}")
        await self._post("querylog_config", config.to_dict())

    async def stats_config(self) -> StatsConfig:
        data = await self._get("stats_info") or {}
        return StatsConfig(interval=int(data.get("interval") or 0))

    async def set_stats_config(self, config: StatsConfig) -> None:
        logger.info(f"{self.name}: set stats interval={config.interval}")
        await self._post("stats_config", config.to_dict())

    async def dns_config(self) -> DNSConfig:
        return DNSConfig.from_dict(await self._get("dns_info") or {})

    async def set_dns_config(self, values: dict[str, Any]) -> None:
        logger.info(f"{self.name}: set dns config fields {sorted(values)}")
        await self._post("dns_config", dict(values))
