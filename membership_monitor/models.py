import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

log = logging.getLogger(__name__)


def parse_dt(value: str | None) -> datetime | None:
    """
    Parse an ISO 8601 timestamp string into an aware UTC datetime.

    The members endpoint returns strings like '2024-11-03T14:32:00.000+00:00'
    and occasionally a bare 'Z' suffix. Anything unparseable becomes None.
    """
    if not value:
        return None

    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)
    except ValueError:
        log.warning("Could not parse datetime string: %r", value)
        return None


def format_dt(dt: datetime | None) -> str:
    """Human-readable UTC timestamp for console display."""
    if dt is None:
        return "Unknown"
    return dt.strftime("%Y-%m-%d %H:%M:%S UTC")


class MembershipStatus(str, Enum):
    """Closed set of membership states, valued as the API spells them."""

    ACTIVE = "active_patron"
    DECLINED = "declined_patron"
    FORMER = "former_patron"
    NONE = "none"

    @classmethod
    def parse(cls, value: Any) -> "MembershipStatus":
        """Map a raw upstream value onto the enum; unknown or missing is NONE."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            if value not in (None, ""):
                log.debug("Unknown membership status %r, treating as none", value)
            return cls.NONE


@dataclass(frozen=True)
class MembershipRecord:
    """
    One membership observation at a point in time.

    Only id, status and linked_id take part in diffing. The remaining fields
    are carried through to event payloads untouched.
    """
    id: str
    status: MembershipStatus
    linked_id: str | None = None          # linked Discord account, if any
    full_name: str | None = None
    email: str | None = None
    patron_status: str | None = None      # raw upstream value, may be None
    pledge_amount: float | None = None
    joined_at: datetime | None = None
    expires_at: datetime | None = None    # next charge date
    relationships: dict[str, Any] = field(default_factory=dict, compare=False)
