from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from membership_monitor.models import MembershipStatus


class PersistedState(BaseModel):
    """
    Durable cross-restart memory of the monitor, serialized to one JSON object.

    Fields
    - memberships: entity id -> last observed status.
    - linked_ids: entity id -> last observed linked account id (None if unlinked).
    - subscribed: ids with a "subscribed" event that has not been retracted
      by a cancel, decline or expiry.
    - canceled_at / declined_at / reactivated_at: entity id -> time of the most
      recent such event. Informational only, these events may fire again.
    - connected_links / disconnected_links: entity id -> linked id of the most
      recent connect/disconnect, used to suppress repeats of the same linkage event.
    - last_updated: time of the last successful save. Only the state store sets it.

    Notes
    - An id is never in both connected_links and disconnected_links.
    - An id is in at most one of subscribed / canceled_at / declined_at.
    - Unknown keys are ignored on load and missing keys default to empty, so
      files written by older versions still load.
    """

    model_config = ConfigDict(extra="ignore")

    last_updated: Optional[datetime] = None
    memberships: Dict[str, MembershipStatus] = Field(default_factory=dict)
    linked_ids: Dict[str, Optional[str]] = Field(default_factory=dict)
    subscribed: Set[str] = Field(default_factory=set)
    canceled_at: Dict[str, datetime] = Field(default_factory=dict)
    declined_at: Dict[str, datetime] = Field(default_factory=dict)
    reactivated_at: Dict[str, datetime] = Field(default_factory=dict)
    connected_links: Dict[str, str] = Field(default_factory=dict)
    disconnected_links: Dict[str, str] = Field(default_factory=dict)

    @field_validator("memberships", mode="before")
    @classmethod
    def _coerce_statuses(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        return {str(k): MembershipStatus.parse(v) for k, v in value.items()}

    @field_serializer("subscribed")
    def _sorted_subscribed(self, value: Set[str]) -> list[str]:
        # stable output keeps the state file diffable
        return sorted(value)

    @classmethod
    def empty(cls) -> "PersistedState":
        """Convenience constructor for a fresh, empty state."""
        return cls()

    def copy_deep(self) -> "PersistedState":
        return self.model_copy(deep=True)

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json"), indent=2)

    @classmethod
    def from_json(cls, data: str | bytes) -> "PersistedState":
        raw = json.loads(data)
        return cls.model_validate(raw)
