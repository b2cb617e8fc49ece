"""Origin/replica inventory loaded from YAML and the environment."""
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ValidationError
from .schema import Features, Instance, InvalidReplica, SyncConfig, SyncSettings

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

# Environment suffix -> instance option
_ENV_OPTIONS = {
    "URL": "url",
    "USERNAME": "username",
    "PASSWORD": "password",
    "API_PATH": "api_path",
    "AUTO_SETUP": "auto_setup",
    "INTERFACE_NAME": "interface_name",
    "DHCP_SERVER_ENABLED": "dhcp_server_enabled",
}
_BOOL_OPTIONS = {"auto_setup", "dhcp_server_enabled"}
_REPLICA_ENV = re.compile(r"^REPLICA(\d+)_([A-Z_]+)$")


def parse_bool(value: Any, name: str = "value") -> bool:
    """Parse booleans as they appear in YAML or environment variables."""
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValidationError(f"Invalid boolean for {name}: {value!r}")


class SyncInventory:
    """Loads the origin, replicas and run settings.

    Example ``adguard-sync.yaml``:

    ```yaml
    origin:
      url: https://192.168.1.2
      username: admin
      password_env: ORIGIN_PASSWORD

    defaults:
      username: admin
      password_env: REPLICA_PASSWORD
      auto_setup: true

    replicas:
      - name: secondary
        url: http://192.168.1.3:3000
        protect_additional_entries: [rewrites]
        features:
          dhcp_config: false

    features:
      dhcp_static_leases: false

    sync:
      workers: 4
      run_timeout: 300
    ```

    Environment variables (``ORIGIN_URL``, ``REPLICA1_URL``,
    ``FEATURES_DNS_CONFIG=false``...) override the file.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.environ = os.environ if environ is None else environ
        self.config_path = (
            config_path
            or self.environ.get("ADGUARD_SYNC_CONFIG")
            or self._find_config()
        )
        self._config: dict = {}
        self._load_config()

    def _find_config(self) -> Optional[str]:
        """Find the adguard-sync.yaml config file."""
        search_paths = [
            Path.cwd() / "configs" / "adguard-sync.yaml",
            Path.cwd() / "adguard-sync.yaml",
            Path.home() / ".config" / "adguard-sync" / "adguard-sync.yaml",
            Path("/etc/adguard-sync/adguard-sync.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        if self.environ.get("ORIGIN_URL"):
            # Environment-only configuration
            return None

        raise FileNotFoundError(
            "Could not find adguard-sync.yaml. Create one in ./configs/adguard-sync.yaml "
            "or set ORIGIN_URL and REPLICA1_URL"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration and apply environment overrides."""
        if self.config_path:
            with open(self.config_path) as f:
                loaded = yaml.safe_load(f)
            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ValidationError(f"{self.config_path}: top level must be a mapping")
            self._config = loaded
            logger.debug(f"Loaded configuration from {self.config_path}")

        self._config.setdefault("origin", {})
        replicas = self._config.setdefault("replicas", [])
        if not isinstance(replicas, list):
            raise ValidationError("'replicas' must be a list")

        self._apply_env()

        # Merge defaults into replicas
        defaults = self._config.get("defaults", {}) or {}
        for replica in self._config["replicas"]:
            if not isinstance(replica, dict):
                continue
            for key, value in defaults.items():
                if key not in replica:
                    replica[key] = value

    def _apply_env(self) -> None:
        """Apply ORIGIN_*, REPLICA<n>_* and FEATURES_* variables."""
        origin = self._config["origin"]
        for suffix, option in _ENV_OPTIONS.items():
            value = self.environ.get(f"ORIGIN_{suffix}")
            if value is not None:
                origin[option] = value
        insecure = self.environ.get("ORIGIN_INSECURE_SKIP_VERIFY")
        if insecure is not None:
            origin["verify_ssl"] = not parse_bool(insecure, "ORIGIN_INSECURE_SKIP_VERIFY")

        replicas = self._config["replicas"]
        for key in sorted(self.environ):
            match = _REPLICA_ENV.match(key)
            if not match:
                continue
            index, suffix = int(match.group(1)), match.group(2)
            if index < 1:
                raise ValidationError(f"{key}: replica numbering starts at 1")
            while len(replicas) < index:
                replicas.append({})
            replica = replicas[index - 1]
            if suffix == "INSECURE_SKIP_VERIFY":
                replica["verify_ssl"] = not parse_bool(self.environ[key], key)
            elif suffix in _ENV_OPTIONS:
                replica[_ENV_OPTIONS[suffix]] = self.environ[key]
            else:
                logger.warning(f"Ignoring unknown replica variable {key}")

        features = self._config.setdefault("features", {}) or {}
        for name in Features.names():
            value = self.environ.get(f"FEATURES_{name.upper()}")
            if value is not None:
                features[name] = parse_bool(value, f"FEATURES_{name.upper()}")
        self._config["features"] = features

    def _normalize(self, data: dict, label: str) -> dict:
        data = dict(data)
        for option in _BOOL_OPTIONS | {"verify_ssl"}:
            if option in data and data[option] is not None:
                data[option] = parse_bool(data[option], f"{label}.{option}")
        return data

    def get_features(self) -> Features:
        """Global feature defaults."""
        return Features.from_dict(self._config.get("features"))

    def _request_timeout(self) -> Optional[Any]:
        return (self._config.get("sync") or {}).get("timeout")

    def get_origin(self) -> Instance:
        """Get the origin instance."""
        origin = self._normalize(self._config["origin"], "origin")
        if self._request_timeout() is not None:
            origin.setdefault("timeout", self._request_timeout())
        origin.setdefault("name", "origin")
        return Instance.from_dict(origin)

    def _build_replicas(self) -> tuple[list[Instance], list[InvalidReplica]]:
        """Validate every replica on its own; one bad entry does not hide the rest."""
        features = self.get_features()
        replicas: list[Instance] = []
        invalid: list[InvalidReplica] = []
        names: set[str] = set()
        for index, data in enumerate(self._config["replicas"], start=1):
            label = f"replica #{index}"
            url = ""
            if isinstance(data, dict):
                url = str(data.get("url") or "")
                label = str(data.get("name") or url or label)
            try:
                if not isinstance(data, dict):
                    raise ValidationError(f"replica #{index} must be a mapping")
                if self._request_timeout() is not None:
                    data = {"timeout": self._request_timeout(), **data}
                replica = Instance.from_dict(
                    self._normalize(data, f"replica #{index}"), features=features
                )
                if replica.name in names:
                    raise ValidationError(f"Duplicate replica name: {replica.name}")
            except ValidationError as e:
                logger.error(f"Invalid configuration for {label}: {e}")
                invalid.append(InvalidReplica(name=label, error=str(e), url=url))
                continue
            names.add(replica.name)
            replicas.append(replica)
        return replicas, invalid

    def get_replicas(self) -> list[Instance]:
        """Get all replica instances, in configuration order.

        Raises:
            ValidationError: for the first replica that fails validation
        """
        replicas, invalid = self._build_replicas()
        if invalid:
            raise ValidationError(f"{invalid[0].name}: {invalid[0].error}")
        return replicas

    def get_replica(self, name: str) -> Instance:
        """Get a replica by name."""
        for replica in self.get_replicas():
            if replica.name == name:
                return replica
        raise KeyError(f"Unknown replica: {name}")

    def get_settings(self) -> SyncSettings:
        """Get run-wide settings from the ``sync`` section."""
        sync = dict(self._config.get("sync", {}) or {})
        unknown = sorted(set(sync) - {"workers", "run_timeout", "timeout", "dry_run"})
        if unknown:
            raise ValidationError(f"Unknown sync option(s): {', '.join(unknown)}")
        try:
            return SyncSettings(
                workers=int(sync.get("workers", 4)),
                run_timeout=(
                    float(sync["run_timeout"])
                    if sync.get("run_timeout") is not None else None
                ),
                dry_run=parse_bool(sync.get("dry_run", False), "sync.dry_run"),
            )
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid sync settings: {e}") from e

    def load(self) -> SyncConfig:
        """Build the full configuration.

        Origin and run-wide errors raise ValidationError. Invalid replicas are
        carried in ``invalid_replicas`` so the valid ones still sync.
        """
        origin = self.get_origin()
        settings = self.get_settings()
        replicas, invalid = self._build_replicas()
        if not replicas and not invalid:
            logger.warning("No replicas configured")
        return SyncConfig(
            origin=origin,
            replicas=tuple(replicas),
            settings=settings,
            invalid_replicas=tuple(invalid),
        )
