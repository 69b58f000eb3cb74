"""Exception hierarchy for membership_monitor.

These never cross the observer boundary: the scheduler converts them into
MonitorError payloads on the "error" channel.
"""


class MembershipMonitorError(Exception):
    """Base exception for all membership_monitor errors."""


class ConfigError(MembershipMonitorError):
    """Invalid or missing configuration."""


class SourceError(MembershipMonitorError):
    """Fetching members failed (network, auth, non-JSON or unexpected shape)."""

    def __init__(self, message: str, *, status_code: int | None = None, url: str = "") -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(message)


class StateStoreError(MembershipMonitorError):
    """Reading or writing the persisted state file failed."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)
