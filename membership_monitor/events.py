
# Event types delivered to observers.

# One class per event kind. Every membership event carries the full
# MembershipRecord so observers never have to look anything up.
# For "disconnected" the record's linked_id is the account that was lost,
# not the (null or new) value observed this tick.

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar, Union

from membership_monitor.models import MembershipRecord


class EventKind(str, Enum):
    SUBSCRIBED   = "subscribed"
    CANCELED     = "canceled"
    DECLINED     = "declined"
    REACTIVATED  = "reactivated"
    EXPIRED      = "expired"
    CONNECTED    = "connected"
    DISCONNECTED = "disconnected"
    ERROR        = "error"
    READY        = "ready"


# kinds suppressed by identity; the rest are time-stamped and may re-fire
IDENTITY_KINDS: frozenset[EventKind] = frozenset(
    {EventKind.SUBSCRIBED, EventKind.CONNECTED, EventKind.DISCONNECTED}
)


@dataclass(frozen=True)
class _MemberEvent:
    kind: ClassVar[EventKind]
    record: MembershipRecord

    @property
    def entity_id(self) -> str:
        return self.record.id

    @property
    def linked_id(self) -> str | None:
        return self.record.linked_id


@dataclass(frozen=True)
class Subscribed(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.SUBSCRIBED


@dataclass(frozen=True)
class Canceled(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.CANCELED


@dataclass(frozen=True)
class Declined(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.DECLINED


@dataclass(frozen=True)
class Reactivated(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.REACTIVATED


@dataclass(frozen=True)
class Expired(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.EXPIRED


@dataclass(frozen=True)
class Connected(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.CONNECTED


@dataclass(frozen=True)
class Disconnected(_MemberEvent):
    kind: ClassVar[EventKind] = EventKind.DISCONNECTED


MembershipEvent = Union[Subscribed, Canceled, Declined, Reactivated, Expired, Connected, Disconnected]

EVENT_TYPES: dict[EventKind, type] = {
    cls.kind: cls
    for cls in (Subscribed, Canceled, Declined, Reactivated, Expired, Connected, Disconnected)
}


class ErrorKind(str, Enum):
    SOURCE           = "source"            # fetch failed, tick aborted
    PERSISTENCE      = "persistence"       # state load/save failed
    MALFORMED_RECORD = "malformed_record"  # one record skipped
    RECONCILE        = "reconcile"         # unexpected failure while diffing


@dataclass(frozen=True)
class MonitorError:
    """Structured error payload for the "error" channel."""
    kind: ClassVar[EventKind] = EventKind.ERROR
    error_kind: ErrorKind
    message: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def __str__(self) -> str:
        return f"{self.error_kind.value}: {self.message}"


@dataclass(frozen=True)
class Ready:
    """Emitted once, after the first tick completes successfully."""
    kind: ClassVar[EventKind] = EventKind.READY
    member_count: int = 0
