"""Instance configuration loading and validation."""
from .schema import Features, Instance, InvalidReplica, SyncConfig, SyncSettings
from .inventory import SyncInventory

__all__ = [
    "Features",
    "Instance",
    "InvalidReplica",
    "SyncConfig",
    "SyncSettings",
    "SyncInventory",
]
