"""Snapshot fetcher: read everything a run needs from one instance."""
import logging
from typing import Any, Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from ..client.base import AdGuardClient
from ..config.schema import Features, Instance
from ..errors import SetupRequired
from ..utils.logging_config import timed_section
from .schema import Snapshot


class SnapshotFetcher:
    """Pull a full configuration snapshot through the capability interface.

    An instance that still shows its install page is provisioned once (when
    its ``auto_setup`` flag is set) and the fetch is retried once. A second
    SetupRequired is raised to the caller.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    async def fetch(
        self,
        client: AdGuardClient,
        instance: Instance,
        features: Optional[Features] = None,
    ) -> Snapshot:
        features = features or instance.features
        if not instance.auto_setup:
            return await self._fetch(client, features)

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(2),
            retry=retry_if_exception_type(SetupRequired),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self.logger.warning(f"{instance.name} needs setup, provisioning it")
                    await client.setup()
                return await self._fetch(client, features)
        raise AssertionError("unreachable")

    async def _fetch(self, client: AdGuardClient, features: Features) -> Snapshot:
        values: dict[str, Any] = {}

        async with timed_section("fetch_snapshot", device_id=client.name):
            values["status"] = await client.status()

            if features.rewrites:
                values["rewrites"] = tuple(await client.list_rewrites())

            if features.filters or features.user_rules or features.filtering_config:
                filtering = await client.filtering_status()
                if features.filters:
                    values["filters"] = filtering.filters
                    values["whitelist_filters"] = filtering.whitelist_filters
                if features.user_rules:
                    values["user_rules"] = filtering.user_rules
                if features.filtering_config:
                    values["filtering_config"] = filtering.config

            if features.clients:
                values["clients"] = tuple(await client.list_clients())

            if features.services:
                values["services"] = tuple(await client.blocked_services())

            if features.dhcp_static_leases or features.dhcp_config:
                dhcp = await client.dhcp_status()
                if features.dhcp_static_leases:
                    values["dhcp_static_leases"] = dhcp.static_leases
                if features.dhcp_config:
                    values["dhcp_config"] = dhcp.config

            if features.access_lists:
                values["access_list"] = await client.access_list()

            if features.safe_browsing:
                values["safe_browsing"] = await client.safe_browsing_enabled()
            if features.parental:
                values["parental"] = await client.parental_enabled()
            if features.safe_search:
                values["safe_search"] = await client.safe_search_enabled()

            if features.query_log_config:
                values["query_log_config"] = await client.query_log_config()
            if features.stats_config:
                values["stats_config"] = await client.stats_config()
            if features.dns_config:
                values["dns_config"] = await client.dns_config()

        self.logger.debug(f"Fetched snapshot of {client.name}: {sorted(values)}")
        return Snapshot(instance=client.name, **values)
