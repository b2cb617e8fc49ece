"""Tests for collection diffing."""
import pytest

from adguard_sync.client import AccessList, Client, DHCPStaticLease, Filter, RewriteEntry
from adguard_sync.sync_engine import (
    DiffEngine,
    EntityKind,
    diff_collection,
    get_definition,
    summarize_diff,
)
from adguard_sync.sync_engine.diff import index_by_key


def _key(item):
    return item[0]


def _equals(a, b):
    return a[1] == b[1]


class TestDiffCollection:
    """Tests for the generic keyed diff."""

    def test_add_update_delete(self):
        """O={a,b,c}, R={b,c,d} with c changed gives add a, update c, delete d."""
        origin = [("a", 1), ("b", 2), ("c", 3)]
        replica = [("b", 2), ("c", 30), ("d", 4)]

        diff = diff_collection(EntityKind.CLIENTS, origin, replica, _key, _equals)

        assert diff.to_add == [("a", 1)]
        assert diff.to_update == [("c", 3)]
        assert diff.replaced == {"c": ("c", 30)}
        assert diff.to_delete == [("d", 4)]
        assert diff.unchanged == 1
        assert diff.total_changes == 3

    def test_identical_is_no_change(self):
        """Equal collections produce no operations."""
        items = [("a", 1), ("b", 2)]
        diff = diff_collection(EntityKind.CLIENTS, items, list(items), _key, _equals)
        assert diff.no_change
        assert diff.unchanged == 2

    def test_empty_origin_deletes_everything(self):
        """An empty origin clears the replica."""
        diff = diff_collection(EntityKind.CLIENTS, [], [("a", 1), ("b", 2)], _key, _equals)
        assert diff.to_delete == [("a", 1), ("b", 2)]
        assert diff.to_add == []

    def test_protect_keeps_replica_only_items(self):
        """Protected replica-only items are not deleted but stay desired."""
        origin = [("a", 1)]
        replica = [("a", 1), ("x", 9)]

        diff = diff_collection(EntityKind.CLIENTS, origin, replica, _key, _equals, protect=True)

        assert diff.to_delete == []
        assert diff.desired == [("a", 1), ("x", 9)]

    def test_duplicate_keys_last_wins(self):
        """With duplicate keys the last item in fetch order is used."""
        origin = [("a", 1), ("a", 2)]
        replica = [("a", 1)]

        diff = diff_collection(EntityKind.CLIENTS, origin, replica, _key, _equals)

        assert diff.to_update == [("a", 2)]
        assert diff.to_add == []

    def test_order_follows_fetch_order(self):
        """Adds follow origin order, deletes follow replica order."""
        origin = [("c", 1), ("a", 1), ("b", 1)]
        replica = [("z", 1), ("y", 1)]

        diff = diff_collection(EntityKind.CLIENTS, origin, replica, _key, _equals)

        assert [k for k, _ in diff.to_add] == ["c", "a", "b"]
        assert [k for k, _ in diff.to_delete] == ["z", "y"]

    def test_default_equality(self):
        """Without an equals callback whole items are compared."""
        diff = diff_collection(EntityKind.SERVICES, ["a", "b"], ["b", "c"], key=lambda s: s)
        assert diff.to_add == ["a"]
        assert diff.to_delete == ["c"]

    def test_index_by_key(self):
        """index_by_key keeps the last duplicate."""
        indexed = index_by_key([("a", 1), ("b", 2), ("a", 3)], _key)
        assert indexed == {"a": ("a", 3), "b": ("b", 2)}


class TestEntityDiffs:
    """Tests for diffs using the built-in entity definitions."""

    def setup_method(self):
        self.differ = DiffEngine()

    def test_rewrite_answer_change_is_delete_and_add(self):
        """Rewrites are keyed by domain and answer together."""
        definition = get_definition(EntityKind.REWRITES)
        origin = [RewriteEntry("nas.lan", "10.0.0.2")]
        replica = [RewriteEntry("nas.lan", "10.0.0.3")]

        diff = self.differ.calculate(definition, origin, replica)

        assert diff.to_add == [RewriteEntry("nas.lan", "10.0.0.2")]
        assert diff.to_delete == [RewriteEntry("nas.lan", "10.0.0.3")]
        assert diff.to_update == []

    def test_filter_ignores_replica_local_fields(self):
        """Filter ids and rule counts differ between instances and are ignored."""
        definition = get_definition(EntityKind.FILTERS)
        origin = [Filter("https://lists/a.txt", "A", id=1, rules_count=100)]
        replica = [Filter("https://lists/a.txt", "A", id=7, rules_count=3)]

        diff = self.differ.calculate(definition, origin, replica)

        assert diff.no_change

    def test_filter_enabled_change_is_update(self):
        definition = get_definition(EntityKind.FILTERS)
        origin = [Filter("https://lists/a.txt", "A", enabled=False)]
        replica = [Filter("https://lists/a.txt", "A", enabled=True)]

        diff = self.differ.calculate(definition, origin, replica)

        assert diff.to_update == origin

    def test_client_id_order_does_not_matter(self):
        """Client ids and tags are compared as sets."""
        definition = get_definition(EntityKind.CLIENTS)
        origin = [Client("laptop", ids=("10.0.0.5", "aa:bb:cc:dd:ee:ff"), tags=("user_admin",))]
        replica = [Client("laptop", ids=("aa:bb:cc:dd:ee:ff", "10.0.0.5"), tags=("user_admin",))]

        assert self.differ.calculate(definition, origin, replica).no_change

    def test_client_setting_change_is_update(self):
        definition = get_definition(EntityKind.CLIENTS)
        origin = [Client("laptop", ids=("10.0.0.5",), parental_enabled=True)]
        replica = [Client("laptop", ids=("10.0.0.5",))]

        diff = self.differ.calculate(definition, origin, replica)

        assert diff.to_update == origin

    def test_lease_mac_case_insensitive(self):
        """Leases are keyed by MAC regardless of case."""
        definition = get_definition(EntityKind.DHCP_STATIC_LEASES)
        origin = [DHCPStaticLease("AA:BB:CC:DD:EE:FF", "10.0.0.9", "printer")]
        replica = [DHCPStaticLease("aa:bb:cc:dd:ee:ff", "10.0.0.9", "printer")]

        assert self.differ.calculate(definition, origin, replica).no_change

    def test_lease_update_keeps_replica_version(self):
        """An ip change is an update that remembers the replica lease it replaces."""
        definition = get_definition(EntityKind.DHCP_STATIC_LEASES)
        origin = [DHCPStaticLease("aa:bb", "10.0.0.9", "h")]
        replica = [DHCPStaticLease("AA:BB", "10.0.0.5", "h")]

        diff = self.differ.calculate(definition, origin, replica)

        assert diff.to_update == origin
        assert diff.replaced == {"aa:bb": replica[0]}

    def test_client_extra_fields_compared(self):
        definition = get_definition(EntityKind.CLIENTS)
        origin = [Client("kid", extra={"safe_search": {"enabled": True, "youtube": True}})]
        replica = [Client("kid", extra={"safe_search": {"enabled": True, "youtube": False}})]

        diff = self.differ.calculate(definition, origin, replica)

        assert diff.to_update == origin

    def test_access_list_compared_as_whole(self):
        """The access list is one value; entry order does not matter."""
        definition = get_definition(EntityKind.ACCESS_LIST)
        origin = AccessList(allowed_clients=("10.0.0.1", "10.0.0.2"))
        same = AccessList(allowed_clients=("10.0.0.2", "10.0.0.1"))
        other = AccessList(blocked_hosts=("ads.example",))

        assert self.differ.calculate(definition, origin, same).no_change
        diff = self.differ.calculate(definition, origin, other)
        assert diff.to_update == [origin]
        assert diff.desired == [origin]


class TestSummarizeDiff:
    """Tests for the human-readable diff summary."""

    def test_no_changes(self):
        diff = diff_collection(EntityKind.SERVICES, ["a"], ["a"], key=lambda s: s)
        assert summarize_diff(diff) == "services: no changes (1 unchanged)"

    def test_lists_each_change(self):
        origin = [("a", 1), ("c", 3)]
        replica = [("c", 30), ("d", 4)]
        diff = diff_collection(EntityKind.CLIENTS, origin, replica, _key, _equals)

        summary = summarize_diff(diff, describe=_key)

        assert summary.splitlines() == [
            "clients: 3 changes (0 unchanged)",
            "  [-] d",
            "  [+] a",
            "  [~] c",
        ]


@pytest.mark.parametrize("kind", list(EntityKind))
def test_every_kind_has_a_definition(kind):
    """Every entity kind can be diffed."""
    assert get_definition(kind).kind == kind
