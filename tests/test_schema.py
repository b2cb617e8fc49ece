"""Tests for instance and feature configuration."""
import pytest

from adguard_sync.config import Features, Instance, SyncSettings
from adguard_sync.errors import ValidationError


class TestInstance:
    """Tests for Instance validation."""

    def test_minimal(self):
        instance = Instance(url="http://10.0.0.3:3000/")

        assert instance.url == "http://10.0.0.3:3000"
        assert instance.name == "http://10.0.0.3:3000"
        assert instance.api_url == "http://10.0.0.3:3000/control"
        assert instance.verify_ssl is True
        assert instance.timeout == 30

    @pytest.mark.parametrize("url", ["", "not a url", "ftp://10.0.0.3", "10.0.0.3:3000"])
    def test_invalid_url(self, url):
        with pytest.raises(ValidationError):
            Instance(url=url)

    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("REPLICA_PASSWORD", "from-env")
        instance = Instance(url="http://10.0.0.3", password_env="REPLICA_PASSWORD")
        assert instance.get_password() == "from-env"

    def test_password_takes_precedence(self, monkeypatch):
        monkeypatch.setenv("REPLICA_PASSWORD", "from-env")
        instance = Instance(url="http://10.0.0.3", password="inline", password_env="REPLICA_PASSWORD")
        assert instance.get_password() == "inline"

    def test_unknown_protect_kind(self):
        with pytest.raises(ValidationError, match="bogus"):
            Instance(url="http://10.0.0.3", protect_additional_entries=frozenset({"bogus"}))

    def test_from_dict_protect_forms(self):
        """protect_additional_entries accepts true, a name or a list."""
        everything = Instance.from_dict({"url": "http://10.0.0.3", "protect_additional_entries": True})
        single = Instance.from_dict({"url": "http://10.0.0.3", "protect_additional_entries": "clients"})
        listed = Instance.from_dict(
            {"url": "http://10.0.0.3", "protect_additional_entries": ["rewrites", "filters"]}
        )

        assert all(everything.protects(name) for name in Features.names())
        assert single.protect_additional_entries == frozenset({"clients"})
        assert listed.protects("filters")
        assert not listed.protects("clients")

    def test_from_dict_unknown_option(self):
        with pytest.raises(ValidationError, match="hostname"):
            Instance.from_dict({"url": "http://10.0.0.3", "hostname": "x"})

    def test_from_dict_bad_timeout(self):
        with pytest.raises(ValidationError):
            Instance.from_dict({"url": "http://10.0.0.3", "timeout": "soon"})

    def test_from_dict_missing_url(self):
        with pytest.raises(ValidationError, match="URL is required"):
            Instance.from_dict({"name": "nourl"})


class TestFeatures:
    """Tests for feature flags."""

    def test_all_enabled_by_default(self):
        assert Features().enabled_names() == frozenset(Features.names())

    def test_from_dict_overrides_base(self):
        base = Features.from_dict({"clients": False})
        features = Features.from_dict({"rewrites": False}, base=base)

        assert not features.clients
        assert not features.rewrites
        assert features.filters

    def test_unknown_feature(self):
        with pytest.raises(ValidationError, match="rewritez"):
            Features.from_dict({"rewritez": True})

    def test_union(self):
        none = Features(**{name: False for name in Features.names()})
        a = Features.from_dict({"rewrites": True}, base=none)
        b = Features.from_dict({"clients": True}, base=none)

        assert a.union(b).enabled_names() == frozenset({"rewrites", "clients"})


class TestSyncSettings:
    """Tests for run-wide settings."""

    def test_defaults(self):
        settings = SyncSettings()
        assert settings.workers == 4
        assert settings.run_timeout is None

    @pytest.mark.parametrize("kwargs", [{"workers": 0}, {"run_timeout": 0}, {"run_timeout": -5}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValidationError):
            SyncSettings(**kwargs)
