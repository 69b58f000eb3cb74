from __future__ import annotations

from datetime import datetime, timezone

import pytest

from membership_monitor.config import MonitorSettings
from membership_monitor.exceptions import StateStoreError
from membership_monitor.models import MembershipRecord, MembershipStatus
from membership_monitor.state import PersistedState

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

_STATUS = {
    "active": MembershipStatus.ACTIVE,
    "declined": MembershipStatus.DECLINED,
    "former": MembershipStatus.FORMER,
    "none": MembershipStatus.NONE,
}


def rec(entity_id: str, status: str = "active", linked: str | None = None, **extra) -> MembershipRecord:
    return MembershipRecord(id=entity_id, status=_STATUS[status], linked_id=linked, **extra)


def prev_state(**members: tuple[str, str | None]) -> PersistedState:
    """prev_state(A=("active", None), B=("declined", "D1"))"""
    state = PersistedState.empty()
    for entity_id, (status, linked) in members.items():
        state.memberships[entity_id] = _STATUS[status]
        state.linked_ids[entity_id] = linked
    return state


class FakeSource:
    """Returns queued batches in order; an Exception instance in the queue is raised."""

    def __init__(self, *batches) -> None:
        self.batches = list(batches)
        self.calls = 0

    async def fetch_all(self) -> list[MembershipRecord]:
        self.calls += 1
        item = self.batches.pop(0) if len(self.batches) > 1 else self.batches[0]
        if isinstance(item, BaseException):
            raise item
        return list(item)


class MemoryStore:
    def __init__(self, initial: PersistedState | None = None, *, fail_load: bool = False) -> None:
        self.saved: list[PersistedState] = []
        self.initial = initial
        self.fail_load = fail_load
        self.fail_save = False

    def load(self) -> PersistedState | None:
        if self.fail_load:
            raise StateStoreError("disk on fire", path="memory")
        return self.initial

    def save(self, state: PersistedState) -> None:
        if self.fail_save:
            raise StateStoreError("read-only filesystem", path="memory")
        self.saved.append(state.copy_deep())


@pytest.fixture
def settings(tmp_path) -> MonitorSettings:
    return MonitorSettings(
        access_token="token",
        campaign_id="123",
        poll_interval=0.01,
        flush_interval=60,
        state_file=tmp_path / "state.json",
    )
