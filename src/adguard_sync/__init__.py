"""Keep AdGuard Home replicas in sync with an origin instance."""

__version__ = "0.1.0"
