"""Error types raised across the client boundary and by config loading."""


class SyncError(Exception):
    """Base class for all adguard-sync errors."""


class SetupRequired(SyncError):
    """The instance redirects to its first-run install page."""

    def __init__(self, host: str = ""):
        self.host = host
        super().__init__(f"setup required on {host}" if host else "setup required")


class TransportError(SyncError):
    """Network, TLS or timeout failure talking to an instance."""


class APIError(SyncError):
    """Non-success HTTP response from a reachable instance."""

    def __init__(self, status_code: int, body: str = "", path: str = ""):
        self.status_code = status_code
        self.body = body
        self.path = path
        detail = f"{path}: " if path else ""
        message = f"{detail}HTTP {status_code}"
        if body:
            message += f" - {body.strip()[:200]}"
        super().__init__(message)


class ValidationError(SyncError):
    """Malformed instance or sync configuration."""
