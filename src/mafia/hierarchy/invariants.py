"""Structural invariant checks for an organisation.

Returns human-readable violations instead of raising, so callers can
surface every broken rule at once. An empty list means the active
members form a single tree rooted at the godfather.
"""

from __future__ import annotations

from typing import Optional

from mafia.hierarchy.organisation import Organisation
from mafia.models.member import Member


def check_invariants(org: Organisation) -> list[str]:
    errors: list[str] = []

    active_ids = {m.member_id for m in org.active_members()}
    prison_ids = {m.member_id for m in org.prisoners()}

    overlap = active_ids & prison_ids
    if overlap:
        errors.append(
            f"Members both active and imprisoned: {sorted(overlap)}"
        )

    godfather = org.get_godfather()
    if godfather.member_id not in active_ids:
        errors.append(f"Godfather {godfather.member_id} is not an active member")
    if godfather.boss_id is not None:
        errors.append(
            f"Godfather {godfather.member_id} reports to {godfather.boss_id}"
        )

    for member in org.active_members():
        if member.member_id in member.subordinate_ids:
            errors.append(f"Member {member.member_id} is its own subordinate")
        if member is godfather:
            continue
        if member.boss_id is None:
            errors.append(f"Member {member.member_id} has no boss")
            continue
        if member.boss_id == member.member_id:
            errors.append(f"Member {member.member_id} is its own boss")
            continue
        if member.boss_id not in active_ids:
            errors.append(
                f"Member {member.member_id} reports to inactive member "
                f"{member.boss_id}"
            )
        boss = member.registry.get(member.boss_id)
        if boss is None or member.member_id not in boss.subordinate_ids:
            errors.append(
                f"Boss {member.boss_id} does not list member {member.member_id} "
                f"as a subordinate"
            )
        top = _top_of_chain(member)
        if top is None:
            errors.append(f"Boss chain of member {member.member_id} loops")
        elif top != godfather.member_id:
            errors.append(
                f"Member {member.member_id} is not connected to the godfather "
                f"(chain ends at {top})"
            )

    return errors


def _top_of_chain(member: Member) -> Optional[int]:
    """Id at the top of member's boss chain, or None if the chain loops."""
    seen = {member.member_id}
    current = member
    while current.boss_id is not None:
        if current.boss_id in seen:
            return None
        seen.add(current.boss_id)
        current = current.registry.resolve(current.boss_id)
    return current.member_id
