"""Organisation engine — succession on imprisonment, recovery on release.

The organisation is a single tree rooted at the godfather. The engine
owns the split between active members and the prison; Member nodes own
their own boss/subordinate records. The engine decides which links must
change and issues the rewrites through Member.set_boss() and
Member.remove_subordinate().

Succession on imprisonment:
1. Peer succession — the oldest active peer (another direct subordinate
   of the imprisoned member's boss) takes over all of the imprisoned
   member's direct subordinates.
2. Promotion — with no such peer, the oldest active direct subordinate
   is promoted into the imprisoned member's seat (including the
   godfather seat) and takes over its former peers.
3. Otherwise there is no successor. The member stays in prison and its
   subordinates keep pointing at it.

Ties on age go to the first candidate in recorded order.

Recovery on release:
The released member reclaims every subordinate it still has on record.
Each one is detached from whoever it currently reports to, and any
former peer it picked up while the member was away is dropped from its
own subordinate set. If the member was itself moved under one of those
subordinates meanwhile, it first takes that subordinate's seat, so the
recovered links never close a loop.

Imprisonment never clears subordinate records. The prisoner keeps its
own list (recovery relies on it) and its boss keeps listing it. Queries
that walk subordinate sets therefore see those stale records, and the
invariant checker reports where they break the tree.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Optional

from mafia.hierarchy.queries import depth, subordinate_count
from mafia.models.member import Member, MemberRegistry


class SuccessionStrategy(str, enum.Enum):
    """How the gap left by an imprisoned member was filled."""
    PEER = "peer"            # Oldest peer took over the subordinates
    PROMOTION = "promotion"  # Oldest subordinate was promoted
    NONE = "none"            # No successor available


@dataclass(frozen=True)
class Succession:
    """Outcome of the restructuring after one imprisonment."""
    imprisoned_id: int
    strategy: SuccessionStrategy
    successor_id: Optional[int] = None
    reassigned_ids: tuple[int, ...] = ()
    godfather_changed: bool = False

    @property
    def succeeded(self) -> bool:
        return self.strategy != SuccessionStrategy.NONE


class Organisation:
    """The hierarchy manager.

    Usage:
        registry = MemberRegistry()
        org = Organisation(registry.enrol(1, 50))
        org.enlist(2, 40, boss=org.get_godfather())
        org.send_to_prison(org.get_member(2))
        org.release_from_prison(org.get_prisoner(2))

    Thread-safety: this class is not thread-safe. Every operation may
    touch an unbounded part of the tree, so callers that share an
    organisation across threads must serialise all calls behind a
    single lock.
    """

    def __init__(self, godfather: Member) -> None:
        self._registry = godfather.registry
        self._godfather = godfather
        self._members: dict[int, Member] = {godfather.member_id: godfather}
        self._prison: dict[int, Member] = {}
        self._last_succession: Optional[Succession] = None

    @property
    def registry(self) -> MemberRegistry:
        return self._registry

    @property
    def last_succession(self) -> Optional[Succession]:
        """Restructuring performed by the most recent send_to_prison()."""
        return self._last_succession

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def get_godfather(self) -> Member:
        return self._godfather

    def add_member(self, member: Member) -> Optional[Member]:
        """Add a member to the active set.

        Returns None if the id is already active or imprisoned.

        Raises:
            ValueError: If the member belongs to another registry.
        """
        if member.registry is not self._registry:
            raise ValueError(
                f"Member {member.member_id} belongs to a different registry"
            )
        if member.member_id in self._members or member.member_id in self._prison:
            return None
        self._members[member.member_id] = member
        return member

    def enlist(
        self,
        member_id: int,
        age: int,
        boss: Optional[Member] = None,
    ) -> Optional[Member]:
        """Create a member in the registry, wire its boss, and add it.

        Returns None if the id is already active or imprisoned.

        Raises:
            ValueError: If id/age are invalid, the boss is not active, or
                the id belongs to a member outside this organisation.
        """
        if member_id in self._members or member_id in self._prison:
            return None
        if boss is not None and boss.member_id not in self._members:
            raise ValueError(f"Boss {boss.member_id} is not an active member")
        member = self._registry.enrol(member_id, age)
        if boss is not None:
            member.set_boss(boss)
        return self.add_member(member)

    def get_member(self, member_id: int) -> Optional[Member]:
        """Active member by ID, or None."""
        return self._members.get(member_id)

    def get_prisoner(self, member_id: int) -> Optional[Member]:
        """Imprisoned member by ID, or None."""
        return self._prison.get(member_id)

    def is_member(self, member: Member) -> bool:
        return member.member_id in self._members

    def is_imprisoned(self, member: Member) -> bool:
        return member.member_id in self._prison

    def active_members(self) -> list[Member]:
        """Active members in the order they joined."""
        return list(self._members.values())

    def prisoners(self) -> list[Member]:
        return list(self._prison.values())

    # ------------------------------------------------------------------
    # Imprisonment
    # ------------------------------------------------------------------

    def send_to_prison(self, member: Member) -> bool:
        """Imprison an active member and restructure around the gap.

        Returns False if the member is not active (nothing changes), or
        if no successor could be found. In the second case the member
        has already been moved to prison and stays there.
        """
        if member.member_id not in self._members:
            return False

        boss = member.boss
        del self._members[member.member_id]
        self._prison[member.member_id] = member

        self._last_succession = self._succeed(member, boss)
        return self._last_succession.succeeded

    def _succeed(self, member: Member, boss: Optional[Member]) -> Succession:
        was_godfather = boss is None

        if boss is not None:
            peer = self._oldest_active(boss.subordinates, exclude=member)
            if peer is not None:
                moved = self._move_subordinates(member, peer)
                return Succession(
                    imprisoned_id=member.member_id,
                    strategy=SuccessionStrategy.PEER,
                    successor_id=peer.member_id,
                    reassigned_ids=moved,
                )

        heir = self._oldest_active(member.subordinates, exclude=member)
        if heir is None:
            return Succession(
                imprisoned_id=member.member_id,
                strategy=SuccessionStrategy.NONE,
            )

        if was_godfather:
            self._godfather = heir
        heir.set_boss(boss)
        moved = self._move_subordinates(member, heir)
        return Succession(
            imprisoned_id=member.member_id,
            strategy=SuccessionStrategy.PROMOTION,
            successor_id=heir.member_id,
            reassigned_ids=moved,
            godfather_changed=was_godfather,
        )

    def _oldest_active(
        self,
        candidates: Iterable[Member],
        exclude: Member,
    ) -> Optional[Member]:
        """Strictly oldest active candidate; first one wins a tie."""
        oldest: Optional[Member] = None
        oldest_age = 0
        for candidate in candidates:
            if (
                candidate.age > oldest_age
                and candidate.member_id != exclude.member_id
                and candidate.member_id in self._members
            ):
                oldest = candidate
                oldest_age = candidate.age
        return oldest

    @staticmethod
    def _move_subordinates(member: Member, new_boss: Member) -> tuple[int, ...]:
        """Point every recorded subordinate of member at new_boss.

        new_boss itself is skipped. Returns the ids that were moved.
        """
        moved: list[int] = []
        for subordinate in member.subordinates:
            if subordinate.member_id != new_boss.member_id:
                subordinate.set_boss(new_boss)
                moved.append(subordinate.member_id)
        return tuple(moved)

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    def release_from_prison(self, member: Member) -> bool:
        """Release an imprisoned member and give back its subordinates.

        Returns False if the member is not in prison.
        """
        if member.member_id not in self._prison:
            return False

        del self._prison[member.member_id]
        self._members[member.member_id] = member

        self._recover_subordinates(member)
        return True

    def _recover_subordinates(self, member: Member) -> None:
        old_subordinates = member.subordinates
        old_ids = set(member.subordinate_ids)

        self._reclaim_seat(member, old_ids)

        for subordinate in old_subordinates:
            current_boss = subordinate.boss
            if current_boss is not None:
                current_boss.remove_subordinate(subordinate)
            subordinate.set_boss(member)

            for stale in subordinate.subordinates:
                if stale.member_id in old_ids:
                    subordinate.remove_subordinate(stale)

    def _reclaim_seat(self, member: Member, old_ids: set[int]) -> None:
        """Put a released member back above the subordinates it reclaims.

        While the member was away it may have been moved under one of its
        own recorded subordinates (a successor, or someone below one). It
        then takes the seat of the highest such subordinate in its boss
        chain. A former godfather whose seat has since passed on takes
        the godfather seat back, and the sitting godfather reports to it.
        """
        seat_holder: Optional[Member] = None
        seen = {member.member_id}
        current = member.boss
        while current is not None and current.member_id not in seen:
            seen.add(current.member_id)
            if current.member_id in old_ids:
                seat_holder = current
            current = current.boss

        if seat_holder is not None:
            new_boss = seat_holder.boss
        elif member.boss_id is None and member is not self._godfather:
            new_boss = None
        else:
            return

        old_boss = member.boss
        if old_boss is not None:
            old_boss.remove_subordinate(member)
        member.set_boss(new_boss)

        if new_boss is None:
            previous = self._godfather
            self._godfather = member
            if previous.member_id not in old_ids:
                previous.set_boss(member)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def subordinate_count(self, member: Member) -> int:
        """Transitive subordinate total used by find_big_bosses()."""
        return subordinate_count(member)

    def depth(self, member: Member) -> int:
        """Boss hops from member to the top of its chain."""
        return depth(member)

    def find_big_bosses(self, minimum_subordinates: int) -> list[Member]:
        """Active members with more than minimum_subordinates in total."""
        memo: dict[int, int] = {}
        return [
            member for member in self._members.values()
            if subordinate_count(member, memo) > minimum_subordinates
        ]

    def compare_members(self, member_a: Member, member_b: Member) -> Optional[Member]:
        """Return the higher-ranking of two members.

        Returns None when both share the same boss (including both
        having none) or when both sit at the same depth.

        Raises:
            ValueError: If either boss chain loops.
        """
        if member_a.boss_id == member_b.boss_id:
            return None

        level_a = depth(member_a)
        level_b = depth(member_b)
        if level_a == level_b:
            return None
        return member_a if level_a < level_b else member_b
