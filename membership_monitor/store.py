import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from membership_monitor.exceptions import StateStoreError
from membership_monitor.state import PersistedState

log = logging.getLogger(__name__)


class JsonStateStore:
    """
    Persists PersistedState as a pretty-printed JSON document.

    - load() returns None when the file does not exist yet.
    - save() creates parent directories on demand and writes through a
      temporary file + os.replace, so a crash mid-write never leaves a
      truncated state file behind.
    Both raise StateStoreError on I/O or decode failures.
    """

    def __init__(self, path: str | os.PathLike) -> None:
        self.path = Path(path)

    def load(self) -> PersistedState | None:
        if not self.path.exists():
            log.info("No state file at %s, starting fresh", self.path)
            return None

        try:
            state = PersistedState.from_json(self.path.read_bytes())
        except (OSError, ValueError, ValidationError) as exc:
            raise StateStoreError(f"Failed to load state from {self.path}: {exc}", path=str(self.path)) from exc

        log.info("Loaded state from %s, with %d membership(s)", self.path, len(state.memberships))
        return state

    def save(self, state: PersistedState) -> None:
        """Write `state`, stamping last_updated on success."""
        stamped = state.model_copy(update={"last_updated": datetime.now(tz=timezone.utc)})
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(stamped.to_json(), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_path.exists():
                tmp_path.unlink()
            raise StateStoreError(f"Failed to save state to {self.path}: {exc}", path=str(self.path)) from exc

        state.last_updated = stamped.last_updated
        log.debug("Saved state to %s", self.path)
