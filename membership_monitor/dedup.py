import logging
from datetime import datetime

from membership_monitor.events import IDENTITY_KINDS, EventKind
from membership_monitor.state import PersistedState

log = logging.getLogger(__name__)


class DedupTracker:
    """
    Decides whether a membership event was already signaled, and records it
    once it has been.

    The tracker holds no memory of its own: every mark lives in the wrapped
    PersistedState so it survives restarts with the rest of the state.

    Only identity events are ever suppressed:
      - subscribed    once per entity, until a cancel/decline/expiry retracts it
      - connected     once per (entity, linked id)
      - disconnected  once per (entity, linked id)
    canceled / declined / reactivated / expired are stamped with a time but
    always allowed through, since a member can cycle through them repeatedly.
    """

    def __init__(self, state: PersistedState) -> None:
        self._state = state

    @property
    def state(self) -> PersistedState:
        return self._state

    def has_fired(self, kind: EventKind, entity_id: str, linked_id: str | None = None) -> bool:
        if kind not in IDENTITY_KINDS:
            return False
        s = self._state
        if kind is EventKind.SUBSCRIBED:
            return entity_id in s.subscribed
        if kind is EventKind.CONNECTED:
            return entity_id in s.connected_links and s.connected_links[entity_id] == linked_id
        return entity_id in s.disconnected_links and s.disconnected_links[entity_id] == linked_id

    def record(
        self,
        kind: EventKind,
        entity_id: str,
        linked_id: str | None = None,
        *,
        now: datetime,
    ) -> None:
        s = self._state

        if kind is EventKind.SUBSCRIBED:
            s.subscribed.add(entity_id)
            self._clear(s.canceled_at, entity_id, "canceled", "subscribed again")
            self._clear(s.declined_at, entity_id, "declined", "subscribed again")

        elif kind is EventKind.REACTIVATED:
            s.reactivated_at[entity_id] = now
            self._clear(s.canceled_at, entity_id, "canceled", "reactivated")
            self._clear(s.declined_at, entity_id, "declined", "reactivated")

        elif kind is EventKind.CANCELED:
            s.canceled_at[entity_id] = now
            self._retract_subscription(entity_id, "canceled")
            self._clear(s.reactivated_at, entity_id, "reactivated", "canceled")
            self._clear(s.declined_at, entity_id, "declined", "canceled")

        elif kind is EventKind.DECLINED:
            s.declined_at[entity_id] = now
            self._retract_subscription(entity_id, "declined")
            self._clear(s.reactivated_at, entity_id, "reactivated", "declined")
            self._clear(s.canceled_at, entity_id, "canceled", "declined")

        elif kind is EventKind.EXPIRED:
            self._retract_subscription(entity_id, "expired")

        elif kind is EventKind.CONNECTED:
            if linked_id:
                s.connected_links[entity_id] = linked_id
                self._clear(s.disconnected_links, entity_id, "disconnected", "connected")

        elif kind is EventKind.DISCONNECTED:
            if linked_id:
                s.disconnected_links[entity_id] = linked_id
                self._clear(s.connected_links, entity_id, "connected", "disconnected")

    def _retract_subscription(self, entity_id: str, reason: str) -> None:
        if entity_id in self._state.subscribed:
            self._state.subscribed.discard(entity_id)
            log.debug("Removed subscribed mark for %s (%s)", entity_id, reason)

    @staticmethod
    def _clear(marks: dict, entity_id: str, what: str, reason: str) -> None:
        if marks.pop(entity_id, None) is not None:
            log.debug("Removed %s mark for %s (%s)", what, entity_id, reason)
