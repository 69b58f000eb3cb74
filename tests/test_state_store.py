from __future__ import annotations

import json

import pytest
from conftest import NOW

from membership_monitor.exceptions import StateStoreError
from membership_monitor.models import MembershipStatus
from membership_monitor.state import PersistedState
from membership_monitor.store import JsonStateStore


def _populated() -> PersistedState:
    return PersistedState(
        memberships={"A": MembershipStatus.ACTIVE, "B": MembershipStatus.FORMER},
        linked_ids={"A": "D1", "B": None},
        subscribed={"Z", "A"},
        canceled_at={"B": NOW},
        connected_links={"A": "D1"},
    )


def test_load_missing_file_returns_none(tmp_path) -> None:
    assert JsonStateStore(tmp_path / "absent.json").load() is None


def test_save_creates_parent_dirs_and_roundtrips(tmp_path) -> None:
    store = JsonStateStore(tmp_path / "nested" / "dir" / "state.json")
    state = _populated()

    store.save(state)
    loaded = store.load()

    assert loaded is not None
    assert loaded.last_updated is not None
    assert loaded.model_copy(update={"last_updated": None}) == state.model_copy(update={"last_updated": None})
    assert not (tmp_path / "nested" / "dir" / "state.json.tmp").exists()


def test_saved_document_shape(tmp_path) -> None:
    path = tmp_path / "state.json"
    JsonStateStore(path).save(_populated())

    doc = json.loads(path.read_text())
    assert doc["memberships"] == {"A": "active_patron", "B": "former_patron"}
    assert doc["linked_ids"] == {"A": "D1", "B": None}
    assert doc["subscribed"] == ["A", "Z"]
    assert doc["canceled_at"]["B"].startswith("2026-01-01T12:00:00")
    assert doc["disconnected_links"] == {}


def test_save_stamps_last_updated(tmp_path) -> None:
    state = _populated()
    assert state.last_updated is None
    JsonStateStore(tmp_path / "state.json").save(state)
    assert state.last_updated is not None


def test_load_tolerates_missing_and_unknown_keys(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_text(json.dumps({
        "lastUpdated": 1700000000000,
        "memberships": {"A": "active_patron", "B": "mystery_status"},
        "subscribed": ["A"],
    }))

    state = JsonStateStore(path).load()

    assert state.memberships == {"A": MembershipStatus.ACTIVE, "B": MembershipStatus.NONE}
    assert state.subscribed == {"A"}
    assert state.linked_ids == {}


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]", '{"subscribed": 5}'])
def test_load_invalid_content_raises(tmp_path, content: str) -> None:
    path = tmp_path / "state.json"
    path.write_text(content)
    with pytest.raises(StateStoreError):
        JsonStateStore(path).load()


def test_save_failure_raises_store_error(tmp_path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")
    store = JsonStateStore(blocker / "state.json")

    with pytest.raises(StateStoreError):
        store.save(PersistedState.empty())


def test_failed_replace_removes_temp_file(tmp_path, monkeypatch) -> None:
    path = tmp_path / "state.json"
    store = JsonStateStore(path)
    store.save(_populated())
    before = path.read_text()

    def fail_replace(src, dst):
        raise PermissionError("locked")

    monkeypatch.setattr("membership_monitor.store.os.replace", fail_replace)

    with pytest.raises(StateStoreError):
        store.save(PersistedState.empty())

    assert not (tmp_path / "state.json.tmp").exists()
    assert path.read_text() == before
