"""Member nodes and the registry that owns them.

Every member lives in exactly one MemberRegistry (the arena). Boss and
subordinate links are stored as integer ids and resolved through that
registry, so a link never holds a direct object alias.

Structural invariants enforced here:
- A member is never its own boss or its own subordinate.
- The subordinate set has no duplicate ids and keeps insertion order.
- Both ends of a link belong to the same registry.

set_boss() registers the member with its new boss but does NOT detach it
from the previous boss's subordinate set. Detaching is the caller's job
(the Organisation engine does it where its succession rules need it).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional


@dataclass(eq=False)
class Member:
    """A single node in the hierarchy.

    member_id and age are fixed at creation. boss_id and subordinate_ids
    change over the member's lifetime; subordinate_ids is an
    insertion-ordered set (dict keys, values unused).
    """
    member_id: int
    age: int
    registry: MemberRegistry = field(repr=False)
    boss_id: Optional[int] = None
    subordinate_ids: dict[int, None] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if isinstance(self.member_id, bool) or not isinstance(self.member_id, int):
            raise ValueError(f"Member id must be an integer, got {self.member_id!r}")
        if isinstance(self.age, bool) or not isinstance(self.age, int):
            raise ValueError(f"Member age must be an integer, got {self.age!r}")
        if self.age <= 0:
            raise ValueError(f"Member age must be > 0, got {self.age}")

    @property
    def boss(self) -> Optional[Member]:
        if self.boss_id is None:
            return None
        return self.registry.resolve(self.boss_id)

    @property
    def subordinates(self) -> list[Member]:
        """Direct subordinates in the order they were recorded."""
        return [self.registry.resolve(sid) for sid in self.subordinate_ids]

    def has_subordinate(self, member: Member) -> bool:
        return member.member_id in self.subordinate_ids

    def add_subordinate(self, subordinate: Member) -> None:
        """Record a direct subordinate. Adding a known subordinate is a no-op."""
        self._check_link(subordinate)
        if subordinate.member_id == self.member_id:
            raise ValueError(f"Member {self.member_id} cannot be its own subordinate")
        if subordinate.member_id not in self.subordinate_ids:
            self.subordinate_ids[subordinate.member_id] = None

    def remove_subordinate(self, subordinate: Member) -> bool:
        """Forget a direct subordinate. Returns False if it was not recorded."""
        if subordinate.member_id not in self.subordinate_ids:
            return False
        del self.subordinate_ids[subordinate.member_id]
        return True

    def set_boss(self, boss: Optional[Member]) -> None:
        """Point this member at a new boss (or none).

        The previous boss keeps its subordinate record of this member.
        """
        if boss is None:
            self.boss_id = None
            return
        self._check_link(boss)
        if boss.member_id == self.member_id:
            raise ValueError(f"Member {self.member_id} cannot be its own boss")
        self.boss_id = boss.member_id
        boss.add_subordinate(self)

    def _check_link(self, other: Member) -> None:
        if other.registry is not self.registry:
            raise ValueError(
                f"Members {self.member_id} and {other.member_id} belong to "
                f"different registries"
            )


class MemberRegistry:
    """Arena of all members, addressed by id.

    Thread-safety: this class is not thread-safe. The caller must
    synchronise access if used from multiple threads.
    """

    def __init__(self) -> None:
        self._members: dict[int, Member] = {}

    def enrol(self, member_id: int, age: int) -> Member:
        """Create a member in this registry.

        Raises ValueError if the id is already taken or id/age are invalid.
        """
        if member_id in self._members:
            raise ValueError(f"Member id already registered: {member_id}")
        member = Member(member_id=member_id, age=age, registry=self)
        self._members[member_id] = member
        return member

    def get(self, member_id: int) -> Optional[Member]:
        """Look up a member by ID."""
        return self._members.get(member_id)

    def resolve(self, member_id: int) -> Member:
        """Look up a member that a link refers to. Raises KeyError if unknown."""
        try:
            return self._members[member_id]
        except KeyError:
            raise KeyError(f"Unknown member id in registry: {member_id}") from None

    def __contains__(self, member_id: object) -> bool:
        return member_id in self._members

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[Member]:
        return iter(list(self._members.values()))
