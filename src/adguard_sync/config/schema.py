"""Instance and sync settings schema."""
import os
from dataclasses import dataclass, field, fields, asdict, replace
from typing import Any, Optional

from pydantic import AnyHttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError

_URL_ADAPTER = TypeAdapter(AnyHttpUrl)

DEFAULT_API_PATH = "control"


@dataclass(frozen=True)
class Features:
    """Which entity kinds and toggles take part in a run."""
    rewrites: bool = True
    filters: bool = True
    clients: bool = True
    services: bool = True
    dhcp_static_leases: bool = True
    access_lists: bool = True
    protection: bool = True
    safe_browsing: bool = True
    parental: bool = True
    safe_search: bool = True
    filtering_config: bool = True
    user_rules: bool = True
    query_log_config: bool = True
    stats_config: bool = True
    dns_config: bool = True
    dhcp_config: bool = True

    @classmethod
    def names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_dict(cls, data: Optional[dict], base: Optional["Features"] = None) -> "Features":
        """Build features from a mapping, overriding ``base`` (all enabled by default)."""
        base = base or cls()
        if not data:
            return base
        unknown = sorted(set(data) - set(cls.names()))
        if unknown:
            raise ValidationError(f"Unknown feature(s): {', '.join(unknown)}")
        return replace(base, **{k: bool(v) for k, v in data.items()})

    def enabled(self, name: str) -> bool:
        return bool(getattr(self, name))

    def enabled_names(self) -> frozenset[str]:
        return frozenset(n for n, v in asdict(self).items() if v)

    def union(self, *others: "Features") -> "Features":
        """Features enabled in this or any of ``others``."""
        merged = {name: self.enabled(name) for name in self.names()}
        for other in others:
            for name in self.names():
                merged[name] = merged[name] or other.enabled(name)
        return Features(**merged)


def validate_url(url: str) -> str:
    """Return ``url`` without a trailing slash, or raise ValidationError."""
    if not url:
        raise ValidationError("Instance URL is required")
    try:
        _URL_ADAPTER.validate_python(url)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid instance URL {url!r}: {e.errors()[0]['msg']}") from e
    return url.rstrip("/")


@dataclass(frozen=True)
class Instance:
    """Connection and sync policy for one AdGuard Home instance."""
    url: str
    name: str = ""
    username: str = ""
    password: Optional[str] = None
    password_env: str = ""
    verify_ssl: bool = True
    api_path: str = DEFAULT_API_PATH
    timeout: float = 30
    # Replica-only options
    auto_setup: bool = False
    interface_name: str = ""
    dhcp_server_enabled: Optional[bool] = None
    protect_additional_entries: frozenset[str] = frozenset()
    features: Features = field(default_factory=Features)

    def __post_init__(self):
        object.__setattr__(self, "url", validate_url(self.url))
        if not self.name:
            object.__setattr__(self, "name", self.url)
        unknown = set(self.protect_additional_entries) - set(Features.names())
        if unknown:
            raise ValidationError(
                f"Unknown protect_additional_entries kind(s) for {self.name}: "
                f"{', '.join(sorted(unknown))}"
            )

    @property
    def api_url(self) -> str:
        path = (self.api_path or DEFAULT_API_PATH).strip("/")
        return f"{self.url}/{path}"

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        if self.password_env:
            return os.environ.get(self.password_env, "")
        return ""

    def protects(self, feature: str) -> bool:
        """Whether replica-only entries of ``feature`` are kept."""
        return feature in self.protect_additional_entries

    @classmethod
    def from_dict(cls, data: dict, features: Optional[Features] = None) -> "Instance":
        """Create an instance from a config mapping."""
        data = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown instance option(s): {', '.join(unknown)}")
        # A missing url fails URL validation like an empty one
        data.setdefault("url", "")

        protect: Any = data.pop("protect_additional_entries", ())
        if protect is True:
            protect = Features.names()
        elif not protect:
            protect = ()
        elif isinstance(protect, str):
            protect = [protect]

        instance_features = Features.from_dict(data.pop("features", None), base=features)

        if "timeout" in data:
            try:
                data["timeout"] = float(data["timeout"])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid timeout: {data['timeout']!r}") from e

        return cls(
            protect_additional_entries=frozenset(protect),
            features=instance_features,
            **data,
        )


@dataclass(frozen=True)
class SyncSettings:
    """Run-wide settings."""
    workers: int = 4
    run_timeout: Optional[float] = None
    dry_run: bool = False

    def __post_init__(self):
        if self.workers < 1:
            raise ValidationError(f"workers must be at least 1, got {self.workers}")
        if self.run_timeout is not None and self.run_timeout <= 0:
            raise ValidationError(f"run_timeout must be positive, got {self.run_timeout}")


@dataclass(frozen=True)
class InvalidReplica:
    """A configured replica that failed validation; it is reported, never contacted."""
    name: str
    error: str
    url: str = ""


@dataclass(frozen=True)
class SyncConfig:
    """Complete configuration for a sync run."""
    origin: Instance
    replicas: tuple[Instance, ...] = ()
    settings: SyncSettings = field(default_factory=SyncSettings)
    invalid_replicas: tuple[InvalidReplica, ...] = ()
