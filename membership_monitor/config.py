import dataclasses
import os
from pathlib import Path

from membership_monitor.exceptions import ConfigError

POLL_INTERVAL_SECONDS: float = 60
FLUSH_INTERVAL_SECONDS: float = 300   # 5 minutes
REQUEST_TIMEOUT_SECONDS: float = 30
PAGE_SIZE: int = 100                  # maximum the members endpoint accepts

API_BASE: str = "https://www.patreon.com/api/oauth2/v2"
USER_AGENT: str = "MembershipMonitor/1.0 (membership-tracker)"

# state file lives beside the package unless overridden
DEFAULT_STATE_FILE: Path = Path(__file__).resolve().parent / "data.json"

MEMBER_FIELDS: list[str] = [
    "patron_status",
    "full_name",
    "email",
    "pledge_relationship_start",
    "will_pay_amount_cents",
    "next_charge_date",
]


@dataclasses.dataclass(frozen=True)
class MonitorSettings:
    """
    Runtime configuration for one monitored campaign.

    access_token and campaign_id are required; everything else falls back to
    the module-level defaults above.
    """
    access_token: str
    campaign_id: str
    poll_interval: float = POLL_INTERVAL_SECONDS
    flush_interval: float = FLUSH_INTERVAL_SECONDS
    state_file: Path = DEFAULT_STATE_FILE
    request_timeout: float = REQUEST_TIMEOUT_SECONDS
    api_base: str = API_BASE

    def __post_init__(self) -> None:
        if not self.access_token:
            raise ConfigError("access_token is required")
        if not self.campaign_id:
            raise ConfigError("campaign_id is required")
        for name in ("poll_interval", "flush_interval", "request_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        # accept plain strings for the path, always store it resolved
        object.__setattr__(self, "state_file", Path(self.state_file).expanduser().resolve())

    @property
    def members_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/campaigns/{self.campaign_id}/members"

    @classmethod
    def from_env(cls, **overrides) -> "MonitorSettings":
        """
        Build settings from MEMBERSHIP_* environment variables.

        Explicit keyword arguments win over the environment.
        """
        env = os.environ

        env_map = {
            "MEMBERSHIP_ACCESS_TOKEN": ("access_token", str),
            "MEMBERSHIP_CAMPAIGN_ID": ("campaign_id", str),
            "MEMBERSHIP_POLL_INTERVAL": ("poll_interval", float),
            "MEMBERSHIP_FLUSH_INTERVAL": ("flush_interval", float),
            "MEMBERSHIP_STATE_FILE": ("state_file", Path),
            "MEMBERSHIP_REQUEST_TIMEOUT": ("request_timeout", float),
            "MEMBERSHIP_API_BASE": ("api_base", str),
        }
        kwargs: dict = {}
        for env_key, (field_name, convert) in env_map.items():
            raw = env.get(env_key)
            if raw is None or raw == "" or field_name in overrides:
                continue
            try:
                kwargs[field_name] = convert(raw)
            except ValueError as exc:
                raise ConfigError(f"Invalid value for {env_key}: {raw!r}") from exc

        kwargs.update(overrides)
        kwargs.setdefault("access_token", "")
        kwargs.setdefault("campaign_id", "")
        return cls(**kwargs)
