"""Tests for toggle settings sync."""
import asyncio

import pytest

from adguard_sync.client import (
    DHCPConfig,
    DNSConfig,
    FilteringConfig,
    InMemoryAdGuardClient,
    QueryLogConfig,
    Status,
)
from adguard_sync.config import Features, Instance
from adguard_sync.errors import APIError
from adguard_sync.sync_engine import Snapshot, ToggleSynchronizer


def _only(*names: str) -> Features:
    return Features(**{name: name in names for name in Features.names()})


def _instance(*features: str, **kwargs) -> Instance:
    return Instance(url="http://replica.lan:3000", name="replica", features=_only(*features), **kwargs)


def _snapshot(name: str = "origin", protection: bool = True, **values) -> Snapshot:
    return Snapshot(instance=name, status=Status(version="v0.107.0", protection_enabled=protection), **values)


class TestToggleSynchronizer:
    """Tests for ToggleSynchronizer."""

    def setup_method(self):
        self.toggles = ToggleSynchronizer()

    @pytest.mark.asyncio
    async def test_protection_enabled_once(self):
        """Origin on, replica off: exactly one enable call."""
        replica = InMemoryAdGuardClient("replica", protection_enabled=False)

        results = await self.toggles.sync(
            replica,
            _instance("protection"),
            _snapshot(protection=True),
            _snapshot("replica", protection=False),
        )

        assert replica.calls == [("set_protection", True)]
        assert results[0].name == "protection"
        assert results[0].changed
        assert results[0].success

    @pytest.mark.asyncio
    async def test_equal_values_no_call(self):
        """Both on: zero calls."""
        replica = InMemoryAdGuardClient("replica")

        results = await self.toggles.sync(
            replica,
            _instance("protection", "safe_search"),
            _snapshot(safe_search=True),
            _snapshot("replica", safe_search=True),
        )

        assert replica.calls == []
        assert [r.changed for r in results] == [False, False]

    @pytest.mark.asyncio
    async def test_disabled_feature_skipped(self):
        replica = InMemoryAdGuardClient("replica")

        results = await self.toggles.sync(
            replica,
            _instance("safe_browsing"),
            _snapshot(protection=True, parental=True, safe_browsing=False),
            _snapshot("replica", protection=False, parental=False, safe_browsing=False),
        )

        assert replica.calls == []
        assert [r.name for r in results] == ["safe_browsing"]

    @pytest.mark.asyncio
    async def test_dry_run_reports_without_calling(self):
        replica = InMemoryAdGuardClient("replica")

        results = await self.toggles.sync(
            replica,
            _instance("parental"),
            _snapshot(parental=True),
            _snapshot("replica", parental=False),
            dry_run=True,
        )

        assert replica.calls == []
        assert results[0].changed
        assert results[0].dry_run

    @pytest.mark.asyncio
    async def test_composite_reports_changed_fields(self):
        replica = InMemoryAdGuardClient("replica")
        origin = QueryLogConfig(enabled=True, interval=1, anonymize_client_ip=True)

        results = await self.toggles.sync(
            replica,
            _instance("query_log_config", "filtering_config"),
            _snapshot(query_log_config=origin, filtering_config=FilteringConfig(True, 12)),
            _snapshot(
                "replica",
                query_log_config=QueryLogConfig(enabled=True, interval=0.25),
                filtering_config=FilteringConfig(True, 12),
            ),
        )

        assert replica.calls == [("set_query_log_config", origin)]
        query_log = [r for r in results if r.name == "query_log_config"][0]
        assert query_log.fields == ["interval", "anonymize_client_ip"]

    @pytest.mark.asyncio
    async def test_user_rules_whole_list(self):
        replica = InMemoryAdGuardClient("replica", user_rules=("||ads.example^",))

        await self.toggles.sync(
            replica,
            _instance("user_rules"),
            _snapshot(user_rules=("||ads.example^", "@@||ok.example^")),
            _snapshot("replica", user_rules=("||ads.example^",)),
        )

        assert replica.user_rules == ["||ads.example^", "@@||ok.example^"]

    @pytest.mark.asyncio
    async def test_dns_config_partial_update(self):
        """Only fields present on origin that differ are sent."""
        replica = InMemoryAdGuardClient(
            "replica",
            dns_config={"upstream_dns": ["9.9.9.9"], "ratelimit": 20, "local_only": True},
        )

        await self.toggles.sync(
            replica,
            _instance("dns_config"),
            _snapshot(dns_config=DNSConfig({"upstream_dns": ["1.1.1.1"], "ratelimit": 20})),
            _snapshot("replica", dns_config=DNSConfig(dict(replica.dns))),
        )

        assert replica.calls == [("set_dns_config", {"upstream_dns": ["1.1.1.1"]})]
        assert replica.dns["local_only"] is True

    @pytest.mark.asyncio
    async def test_dhcp_overrides_applied_before_compare(self):
        """The replica keeps its own interface and enabled flag."""
        origin = DHCPConfig(enabled=True, interface_name="eth0", v4={"gateway_ip": "10.0.0.1"})
        current = DHCPConfig(enabled=False, interface_name="br0", v4={"gateway_ip": "10.0.0.1"})
        replica = InMemoryAdGuardClient("replica", dhcp_config=current)
        instance = _instance("dhcp_config", interface_name="br0", dhcp_server_enabled=False)

        results = await self.toggles.sync(
            replica, instance, _snapshot(dhcp_config=origin), _snapshot("replica", dhcp_config=current)
        )

        assert replica.calls == []
        assert not results[0].changed

    @pytest.mark.asyncio
    async def test_dhcp_overrides_sent(self):
        origin = DHCPConfig(enabled=True, interface_name="eth0", v4={"gateway_ip": "10.0.0.1"})
        current = DHCPConfig(enabled=False, interface_name="br0")
        replica = InMemoryAdGuardClient("replica", dhcp_config=current)
        instance = _instance("dhcp_config", interface_name="br0")

        await self.toggles.sync(
            replica, instance, _snapshot(dhcp_config=origin), _snapshot("replica", dhcp_config=current)
        )

        assert replica.dhcp_config == DHCPConfig(
            enabled=True, interface_name="br0", v4={"gateway_ip": "10.0.0.1"}
        )

    @pytest.mark.asyncio
    async def test_write_failure_recorded(self):
        replica = InMemoryAdGuardClient("replica")
        replica.fail("set_safe_search", APIError(500, "internal"))

        results = await self.toggles.sync(
            replica,
            _instance("safe_search", "parental"),
            _snapshot(safe_search=True, parental=True),
            _snapshot("replica", safe_search=False, parental=False),
        )

        by_name = {r.name: r for r in results}
        assert not by_name["safe_search"].success
        assert "HTTP 500" in by_name["safe_search"].error
        assert by_name["parental"].success
        assert replica.parental is True

    @pytest.mark.asyncio
    async def test_cancelled_write_marked_failed(self):
        """A toggle write cut off by the run deadline is not reported as done."""

        class SlowReplica(InMemoryAdGuardClient):
            async def set_safe_search(self, enabled):
                await asyncio.sleep(10)

        results = []
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                self.toggles.sync(
                    SlowReplica("replica"),
                    _instance("safe_search"),
                    _snapshot(safe_search=True),
                    _snapshot("replica", safe_search=False),
                    results=results,
                ),
                0.05,
            )

        assert results[0].error == "cancelled"
        assert not results[0].success
