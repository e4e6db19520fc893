"""Read-only traversals over the member arena.

Both traversals are iterative so deep hierarchies never hit the
interpreter's recursion limit.
"""

from __future__ import annotations

from typing import Iterator, Optional

from mafia.models.member import Member


def subordinate_count(
    member: Member,
    memo: Optional[dict[int, int]] = None,
) -> int:
    """Total transitive subordinates of a member.

    Depth-first accumulation over recorded subordinate sets:
    count(m) = sum(1 + count(s) for s in m.subordinates). A member
    recorded under two bosses is counted under both.

    Args:
        member: Root of the count.
        memo: Optional cache of already computed counts, shared across
            calls made against an unchanged tree.

    An edge leading back to a member already on the current path is not
    followed (stale records left by succession can form such loops).
    A total cut short that way depends on where the walk entered the
    loop, so it is never stored in memo; only complete totals are.
    """
    if memo is None:
        memo = {}
    if member.member_id in memo:
        return memo[member.member_id]

    totals: dict[int, int] = {member.member_id: 0}
    on_path: set[int] = {member.member_id}
    cut: set[int] = set()
    stack: list[tuple[Member, Iterator[Member]]] = [
        (member, iter(member.subordinates)),
    ]
    result = 0
    while stack:
        node, children = stack[-1]
        child = next(children, None)
        if child is None:
            stack.pop()
            node_id = node.member_id
            on_path.discard(node_id)
            total = totals.pop(node_id)
            if node_id in cut:
                cut.discard(node_id)
                if stack:
                    cut.add(stack[-1][0].member_id)
            else:
                memo[node_id] = total
            if stack:
                totals[stack[-1][0].member_id] += 1 + total
            else:
                result = total
            continue

        child_id = child.member_id
        if child_id in memo:
            totals[node.member_id] += 1 + memo[child_id]
        elif child_id in on_path:
            cut.add(node.member_id)
        else:
            on_path.add(child_id)
            totals[child_id] = 0
            stack.append((child, iter(child.subordinates)))

    return result


def depth(member: Member) -> int:
    """Number of boss hops from a member up to a member with no boss.

    Raises ValueError if the boss chain loops.
    """
    hops = 0
    seen = {member.member_id}
    current = member
    while current.boss_id is not None:
        current = current.registry.resolve(current.boss_id)
        if current.member_id in seen:
            raise ValueError(
                f"Boss chain of member {member.member_id} loops at "
                f"member {current.member_id}"
            )
        seen.add(current.member_id)
        hops += 1
    return hops
