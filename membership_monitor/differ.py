import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from membership_monitor.dedup import DedupTracker
from membership_monitor.events import (
    Canceled,
    Connected,
    Declined,
    Disconnected,
    Expired,
    MembershipEvent,
    Reactivated,
    Subscribed,
)
from membership_monitor.models import MembershipRecord, MembershipStatus
from membership_monitor.state import PersistedState

log = logging.getLogger(__name__)

_LAPSED = (MembershipStatus.FORMER, MembershipStatus.DECLINED)


@dataclass
class ReconcileResult:
    events: list[MembershipEvent] = field(default_factory=list)
    state: PersistedState = field(default_factory=PersistedState.empty)
    rejected: list[MembershipRecord] = field(default_factory=list)   # skipped, no usable id


class _Reconciler:
    """
    Single-use worker behind reconcile(): owns the working copy of the state
    and the ordered event list while one batch is being diffed.
    """

    def __init__(self, previous: PersistedState, now: datetime) -> None:
        self.state = previous.copy_deep()
        self.tracker = DedupTracker(self.state)
        self.now = now
        self.events: list[MembershipEvent] = []

    def emit(self, event: MembershipEvent) -> None:
        """Record-then-append. Callers have already consulted has_fired()."""
        self.tracker.record(event.kind, event.entity_id, event.linked_id, now=self.now)
        self.events.append(event)

    def emit_once(self, event: MembershipEvent) -> None:
        if self.tracker.has_fired(event.kind, event.entity_id, event.linked_id):
            log.debug("Suppressed duplicate %s for %s", event.kind.value, event.entity_id)
            return
        self.emit(event)

    def lifecycle(self, record: MembershipRecord, is_first_run: bool) -> None:
        previous = self.state.memberships.get(record.id)
        status = record.status

        if previous is None:
            # cold start would make every existing member look new
            if not is_first_run:
                self.emit_once(Subscribed(record))
            return

        if previous == status:
            return

        # flat guards, not an elif chain: each transition is checked on its own
        if status is MembershipStatus.FORMER:
            self.emit(Canceled(record))
        if status is MembershipStatus.DECLINED:
            self.emit(Declined(record))
        if status is MembershipStatus.ACTIVE and previous in _LAPSED:
            self.emit(Reactivated(record))
        if status is MembershipStatus.NONE:
            self.emit(Expired(record))

    def linkage(self, record: MembershipRecord) -> None:
        previous = self.state.linked_ids.get(record.id)
        current = record.linked_id

        if not previous:
            if current:
                self.emit_once(Connected(record))
            return

        if not current:
            # the payload carries the account that was just lost
            self.emit_once(Disconnected(dataclasses.replace(record, linked_id=previous)))
        elif previous != current:
            # account swap: treated as disconnect of the old, then connect of the new
            self.emit_once(Disconnected(dataclasses.replace(record, linked_id=previous)))
            self.emit_once(Connected(record))

    def observe(self, record: MembershipRecord) -> None:
        self.state.memberships[record.id] = record.status
        self.state.linked_ids[record.id] = record.linked_id or None

    def remove(self, entity_id: str) -> None:
        status = self.state.memberships.pop(entity_id, MembershipStatus.NONE)
        linked_id = self.state.linked_ids.pop(entity_id, None)
        if linked_id:
            self.emit_once(Disconnected(MembershipRecord(id=entity_id, status=status, linked_id=linked_id)))
        log.debug("Member %s no longer present, dropped from tracking", entity_id)


def reconcile(
    previous: PersistedState,
    current: list[MembershipRecord],
    is_first_run: bool,
    *,
    now: datetime | None = None,
) -> ReconcileResult:
    """
    Diff one fetched batch against the previous persisted state.

    Returns the ordered events to emit, the updated state (a new value,
    `previous` is left untouched) and any records skipped for lacking an id.

    Order: for each record in batch order its lifecycle event comes first,
    then its linkage event(s). Disconnects for members that vanished from the
    batch come last.
    """
    work = _Reconciler(previous, now or datetime.now(tz=timezone.utc))
    rejected: list[MembershipRecord] = []
    seen: set[str] = set()

    for record in current:
        if not record.id or not str(record.id).strip():
            rejected.append(record)
            continue

        work.lifecycle(record, is_first_run)
        work.linkage(record)
        work.observe(record)
        seen.add(record.id)

    for entity_id in [i for i in previous.memberships if i not in seen]:
        work.remove(entity_id)

    if work.events:
        log.info("%d membership event(s) derived from %d record(s)", len(work.events), len(current))

    return ReconcileResult(events=work.events, state=work.state, rejected=rejected)


def index_by_linked_id(records: list[MembershipRecord]) -> dict[str, MembershipRecord]:
    """Linked account id -> record, for records that have one. Later records win."""
    return {r.linked_id: r for r in records if r.id and r.linked_id}
