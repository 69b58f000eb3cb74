from __future__ import annotations

import pytest
from conftest import NOW

from membership_monitor.dedup import DedupTracker
from membership_monitor.events import IDENTITY_KINDS, EventKind
from membership_monitor.state import PersistedState


@pytest.fixture
def tracker() -> DedupTracker:
    return DedupTracker(PersistedState.empty())


def test_subscribed_is_suppressed_after_record(tracker: DedupTracker) -> None:
    assert not tracker.has_fired(EventKind.SUBSCRIBED, "A")
    tracker.record(EventKind.SUBSCRIBED, "A", now=NOW)
    assert tracker.has_fired(EventKind.SUBSCRIBED, "A")


@pytest.mark.parametrize("kind", [EventKind.CANCELED, EventKind.DECLINED, EventKind.EXPIRED])
def test_retracting_kinds_clear_subscription(tracker: DedupTracker, kind: EventKind) -> None:
    tracker.record(EventKind.SUBSCRIBED, "A", now=NOW)
    tracker.record(kind, "A", now=NOW)
    assert not tracker.has_fired(EventKind.SUBSCRIBED, "A")


@pytest.mark.parametrize("kind", sorted(set(EventKind) - IDENTITY_KINDS, key=lambda k: k.value))
def test_non_identity_kinds_are_never_suppressed(tracker: DedupTracker, kind: EventKind) -> None:
    tracker.record(kind, "A", now=NOW)
    assert not tracker.has_fired(kind, "A")


def test_link_events_are_keyed_by_linked_id(tracker: DedupTracker) -> None:
    tracker.record(EventKind.CONNECTED, "A", "D1", now=NOW)

    assert tracker.has_fired(EventKind.CONNECTED, "A", "D1")
    assert not tracker.has_fired(EventKind.CONNECTED, "A", "D2")
    assert not tracker.has_fired(EventKind.CONNECTED, "B", "D1")


def test_connect_and_disconnect_are_mutually_exclusive(tracker: DedupTracker) -> None:
    state = tracker.state
    tracker.record(EventKind.CONNECTED, "A", "D1", now=NOW)
    tracker.record(EventKind.DISCONNECTED, "A", "D1", now=NOW)
    assert state.connected_links == {}
    assert state.disconnected_links == {"A": "D1"}

    tracker.record(EventKind.CONNECTED, "A", "D2", now=NOW)
    assert state.connected_links == {"A": "D2"}
    assert state.disconnected_links == {}


def test_link_events_without_linked_id_are_not_recorded(tracker: DedupTracker) -> None:
    tracker.record(EventKind.CONNECTED, "A", None, now=NOW)
    tracker.record(EventKind.DISCONNECTED, "A", None, now=NOW)
    assert tracker.state.connected_links == {}
    assert tracker.state.disconnected_links == {}


def test_membership_disposition_is_exclusive(tracker: DedupTracker) -> None:
    state = tracker.state
    tracker.record(EventKind.SUBSCRIBED, "A", now=NOW)
    tracker.record(EventKind.DECLINED, "A", now=NOW)
    tracker.record(EventKind.CANCELED, "A", now=NOW)
    assert "A" not in state.subscribed
    assert state.declined_at == {}
    assert state.canceled_at == {"A": NOW}

    tracker.record(EventKind.REACTIVATED, "A", now=NOW)
    assert state.canceled_at == {}
    assert state.reactivated_at == {"A": NOW}

    tracker.record(EventKind.DECLINED, "A", now=NOW)
    assert state.reactivated_at == {}
    assert state.declined_at == {"A": NOW}

    tracker.record(EventKind.SUBSCRIBED, "A", now=NOW)
    assert state.declined_at == {}
    assert state.subscribed == {"A"}
