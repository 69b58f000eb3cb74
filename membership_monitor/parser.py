
# parses JSON:API pages from the campaign members endpoint into
# MembershipRecord objects, one per member resource.

# Design decisions:
#   - Users and tiers arrive in the top-level "included" array, so every page
#     is collected first and the join happens once over the whole set.
#   - A member with no id is still turned into a record (with id "") so the
#     diff engine can reject and report it instead of it vanishing here.
#   - The linked account is the Discord user id under the user's
#     social_connections; anything missing along that path means "not linked".

import logging
from typing import Any

from membership_monitor.models import MembershipRecord, MembershipStatus, parse_dt

log = logging.getLogger(__name__)


def _dig(obj: Any, *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a step is missing."""
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def _index_included(included: list[dict]) -> dict[tuple[str, str], dict]:
    return {
        (inc.get("type", ""), str(inc.get("id", ""))): inc
        for inc in included
        if isinstance(inc, dict)
    }


def _linked_id(user: dict | None) -> str | None:
    value = _dig(user, "attributes", "social_connections", "discord", "user_id")
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _pledge_amount(tier: dict | None) -> float | None:
    cents = _dig(tier, "attributes", "amount_cents")
    if not isinstance(cents, (int, float)) or not cents:
        return None
    return cents / 100


def parse_member(member: dict, included: dict[tuple[str, str], dict]) -> MembershipRecord:
    attrs = member.get("attributes") or {}
    relationships = member.get("relationships") or {}

    user_id = _dig(relationships, "user", "data", "id")
    user = included.get(("user", str(user_id))) if user_id is not None else None

    tiers = _dig(relationships, "currently_entitled_tiers", "data") or []
    tier = None
    if isinstance(tiers, list) and tiers and isinstance(tiers[0], dict):
        tier = included.get(("tier", str(tiers[0].get("id"))))

    raw_status = attrs.get("patron_status")

    return MembershipRecord(
        id=str(member.get("id") or ""),
        status=MembershipStatus.parse(raw_status),
        linked_id=_linked_id(user),
        full_name=attrs.get("full_name"),
        email=attrs.get("email"),
        patron_status=raw_status,
        pledge_amount=_pledge_amount(tier),
        joined_at=parse_dt(attrs.get("pledge_relationship_start")),
        expires_at=parse_dt(attrs.get("next_charge_date")),
        relationships=relationships if isinstance(relationships, dict) else {},
    )


def parse_members(members: list[dict], included: list[dict]) -> list[MembershipRecord]:
    """
    Join member resources with their included users and tiers.

    Returns records in the order the API listed the members.
    """
    index = _index_included(included)
    result: list[MembershipRecord] = []
    for member in members:
        if not isinstance(member, dict):
            log.warning("Non-object member entry: %r", member)
            result.append(MembershipRecord(id="", status=MembershipStatus.NONE))
            continue
        result.append(parse_member(member, index))
    return result
