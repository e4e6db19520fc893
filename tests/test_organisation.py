"""Tests for the Organisation engine — succession, recovery, membership.

Covers:
- Membership (add, duplicate rejection, lookup, enlist)
- Peer succession (oldest active peer takes over the subordinates)
- Promotion (oldest active subordinate takes the seat, godfather included)
- Failed succession (member stays imprisoned, subordinates left dangling)
- Release (subordinates recovered, stale records dropped, godfather seat
  restored)
- Structural invariants after sequences of imprisonments and releases
"""

from __future__ import annotations

import random

import pytest

from mafia.hierarchy.invariants import check_invariants
from mafia.hierarchy.organisation import (
    Organisation,
    Succession,
    SuccessionStrategy,
)
from mafia.models.member import Member, MemberRegistry


def _make_org(godfather_id: int = 1, godfather_age: int = 50) -> Organisation:
    registry = MemberRegistry()
    return Organisation(registry.enrol(godfather_id, godfather_age))


def _enlist(org: Organisation, member_id: int, age: int, boss_id: int) -> Member:
    member = org.enlist(member_id, age, boss=org.get_member(boss_id))
    assert member is not None
    return member


def _ids(members: list[Member]) -> list[int]:
    return [m.member_id for m in members]


@pytest.fixture
def peer_tree() -> Organisation:
    """G(50) -> A(40) -> C(20); G -> B(30)."""
    org = _make_org(1, 50)
    _enlist(org, 2, 40, 1)   # A
    _enlist(org, 3, 30, 1)   # B
    _enlist(org, 4, 20, 2)   # C
    return org


@pytest.fixture
def promotion_tree() -> Organisation:
    """G(50) -> A(40) -> {C(10), D(20)}; A has no peers."""
    org = _make_org(1, 50)
    _enlist(org, 2, 40, 1)   # A
    _enlist(org, 3, 10, 2)   # C
    _enlist(org, 4, 20, 2)   # D
    return org


# ==================================================================
# Membership
# ==================================================================

class TestMembership:
    def test_new_organisation(self) -> None:
        org = _make_org(1, 50)
        godfather = org.get_godfather()
        assert godfather.member_id == 1
        assert org.get_member(1) is godfather
        assert org.active_members() == [godfather]
        assert org.prisoners() == []
        assert org.last_succession is None

    def test_add_member(self) -> None:
        org = _make_org()
        member = org.registry.enrol(2, 30)
        member.set_boss(org.get_godfather())
        assert org.add_member(member) is member
        assert org.get_member(2) is member
        assert org.is_member(member)

    def test_add_duplicate_id_rejected(self, peer_tree: Organisation) -> None:
        before = _ids(peer_tree.active_members())
        imposter = Member(member_id=2, age=99, registry=peer_tree.registry)
        assert peer_tree.add_member(imposter) is None
        assert peer_tree.get_member(2).age == 40
        assert _ids(peer_tree.active_members()) == before

    def test_add_same_member_twice(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        assert peer_tree.add_member(a) is None
        assert len(peer_tree.active_members()) == 4

    def test_add_imprisoned_id_rejected(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        assert peer_tree.send_to_prison(a)
        assert peer_tree.add_member(a) is None
        assert peer_tree.get_member(2) is None
        assert peer_tree.enlist(2, 40, boss=peer_tree.get_godfather()) is None

    def test_add_foreign_member_rejected(self) -> None:
        org = _make_org()
        stranger = MemberRegistry().enrol(5, 30)
        with pytest.raises(ValueError, match="different registry"):
            org.add_member(stranger)

    def test_get_unknown_member(self) -> None:
        org = _make_org()
        assert org.get_member(404) is None
        assert org.get_prisoner(404) is None

    def test_enlist_wires_boss(self, peer_tree: Organisation) -> None:
        c = peer_tree.get_member(4)
        assert c.boss is peer_tree.get_member(2)
        assert _ids(peer_tree.get_member(2).subordinates) == [4]

    def test_enlist_under_prisoner_rejected(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        peer_tree.send_to_prison(a)
        with pytest.raises(ValueError, match="not an active member"):
            peer_tree.enlist(9, 25, boss=a)
        assert 9 not in peer_tree.registry

    def test_enlist_invalid_age(self) -> None:
        org = _make_org()
        with pytest.raises(ValueError, match="age"):
            org.enlist(2, 0, boss=org.get_godfather())


# ==================================================================
# Peer succession
# ==================================================================

class TestPeerSuccession:
    def test_oldest_peer_takes_over(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        b = peer_tree.get_member(3)
        c = peer_tree.get_member(4)

        assert peer_tree.send_to_prison(a) is True

        assert peer_tree.get_member(2) is None
        assert peer_tree.get_prisoner(2) is a
        assert c.boss is b
        assert b.subordinates == [c]
        assert peer_tree.last_succession == Succession(
            imprisoned_id=2,
            strategy=SuccessionStrategy.PEER,
            successor_id=3,
            reassigned_ids=(4,),
        )
        assert check_invariants(peer_tree) == []

    def test_prisoner_keeps_its_subordinate_record(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        peer_tree.send_to_prison(a)
        assert list(a.subordinate_ids) == [4]

    def test_peer_tie_goes_to_first_recorded(self) -> None:
        org = _make_org(1, 90)
        _enlist(org, 2, 40, 1)   # A
        _enlist(org, 3, 35, 1)   # B
        _enlist(org, 5, 35, 1)   # E, same age as B
        c = _enlist(org, 4, 20, 2)

        assert org.send_to_prison(org.get_member(2))
        assert c.boss_id == 3
        assert org.last_succession.successor_id == 3

    def test_imprisoned_peer_is_skipped(self) -> None:
        org = _make_org(1, 90)
        _enlist(org, 2, 40, 1)   # A
        _enlist(org, 3, 60, 1)   # B, oldest peer
        _enlist(org, 4, 30, 1)   # E
        c = _enlist(org, 5, 20, 2)

        assert org.send_to_prison(org.get_member(3))
        assert org.send_to_prison(org.get_member(2))
        assert c.boss_id == 4
        assert check_invariants(org) == []

    def test_peer_succession_without_subordinates(self, peer_tree: Organisation) -> None:
        b = peer_tree.get_member(3)
        assert peer_tree.send_to_prison(b) is True
        succession = peer_tree.last_succession
        assert succession.strategy == SuccessionStrategy.PEER
        assert succession.successor_id == 2
        assert succession.reassigned_ids == ()

    def test_peer_preferred_over_older_subordinate(self) -> None:
        org = _make_org(1, 90)
        _enlist(org, 2, 40, 1)          # A
        _enlist(org, 3, 20, 1)          # B, young peer
        heir = _enlist(org, 4, 80, 2)   # old subordinate of A

        assert org.send_to_prison(org.get_member(2))
        assert org.last_succession.strategy == SuccessionStrategy.PEER
        assert heir.boss_id == 3


# ==================================================================
# Promotion
# ==================================================================

class TestPromotion:
    def test_oldest_subordinate_promoted(self, promotion_tree: Organisation) -> None:
        g = promotion_tree.get_godfather()
        c = promotion_tree.get_member(3)
        d = promotion_tree.get_member(4)

        assert promotion_tree.send_to_prison(promotion_tree.get_member(2)) is True

        assert d.boss is g
        assert g.has_subordinate(d)
        assert c.boss is d
        assert d.subordinates == [c]
        assert promotion_tree.last_succession == Succession(
            imprisoned_id=2,
            strategy=SuccessionStrategy.PROMOTION,
            successor_id=4,
            reassigned_ids=(3,),
            godfather_changed=False,
        )
        assert check_invariants(promotion_tree) == []

    def test_godfather_succeeded_by_oldest_subordinate(self) -> None:
        org = _make_org(1, 70)
        a = _enlist(org, 2, 40, 1)
        b = _enlist(org, 3, 60, 1)
        c = _enlist(org, 4, 60, 1)   # tie with B, recorded later

        assert org.send_to_prison(org.get_godfather()) is True

        assert org.get_godfather() is b
        assert b.boss is None
        assert a.boss is b
        assert c.boss is b
        assert _ids(b.subordinates) == [2, 4]
        assert org.last_succession.godfather_changed is True
        assert check_invariants(org) == []

    def test_imprisoned_subordinate_not_promoted(self) -> None:
        org = _make_org(1, 90)
        a = _enlist(org, 2, 80, 1)
        old = _enlist(org, 3, 70, 2)
        young = _enlist(org, 4, 20, 2)

        assert org.send_to_prison(old)
        assert org.send_to_prison(a)
        assert org.last_succession.successor_id == 4
        assert young.boss_id == 1
        # The prisoner is re-pointed at the heir as well
        assert old.boss_id == 4


# ==================================================================
# Failed succession
# ==================================================================

class TestNoSuccessor:
    def test_lone_godfather_cannot_be_replaced(self) -> None:
        org = _make_org(1, 50)
        g = org.get_godfather()

        assert org.send_to_prison(g) is False

        assert org.get_member(1) is None
        assert org.get_prisoner(1) is g
        assert org.get_godfather() is g
        assert org.last_succession.strategy == SuccessionStrategy.NONE
        assert not org.last_succession.succeeded
        assert "Godfather 1 is not an active member" in check_invariants(org)

    def test_leaf_without_peers_stays_in_prison(self) -> None:
        org = _make_org(1, 50)
        a = _enlist(org, 2, 40, 1)
        assert org.send_to_prison(a) is False
        assert org.is_imprisoned(a)
        assert not org.is_member(a)

    def test_subordinates_left_pointing_at_prisoner(self) -> None:
        org = _make_org(1, 50)
        a = _enlist(org, 2, 40, 1)
        c = _enlist(org, 3, 20, 2)

        assert org.send_to_prison(c) is False
        assert org.send_to_prison(a) is False
        assert c.boss is a
        assert org.is_imprisoned(a)
        assert org.is_imprisoned(c)

    def test_not_a_member(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        assert peer_tree.send_to_prison(a)
        previous = peer_tree.last_succession
        assert peer_tree.send_to_prison(a) is False
        assert peer_tree.last_succession is previous
        assert peer_tree.prisoners() == [a]


# ==================================================================
# Release
# ==================================================================

class TestRelease:
    def test_round_trip_after_peer_succession(self, peer_tree: Organisation) -> None:
        g = peer_tree.get_godfather()
        a = peer_tree.get_member(2)
        b = peer_tree.get_member(3)
        c = peer_tree.get_member(4)

        peer_tree.send_to_prison(a)
        assert peer_tree.release_from_prison(a) is True

        assert peer_tree.get_member(2) is a
        assert peer_tree.prisoners() == []
        assert c.boss is a
        assert a.subordinates == [c]
        assert b.subordinates == []
        assert a.boss is g
        assert check_invariants(peer_tree) == []

    def test_round_trip_after_promotion(self, promotion_tree: Organisation) -> None:
        g = promotion_tree.get_godfather()
        a = promotion_tree.get_member(2)
        c = promotion_tree.get_member(3)
        d = promotion_tree.get_member(4)

        promotion_tree.send_to_prison(a)
        assert promotion_tree.release_from_prison(a) is True

        assert c.boss is a
        assert d.boss is a
        assert _ids(a.subordinates) == [3, 4]
        assert d.subordinates == []
        assert g.subordinates == [a]
        assert check_invariants(promotion_tree) == []

    def test_released_godfather_takes_seat_back(self) -> None:
        org = _make_org(1, 70)
        a = _enlist(org, 2, 40, 1)
        b = _enlist(org, 3, 60, 1)
        g = org.get_godfather()

        org.send_to_prison(g)
        assert org.get_godfather() is b

        assert org.release_from_prison(g) is True
        assert org.get_godfather() is g
        assert g.boss is None
        assert a.boss is g
        assert b.boss is g
        assert b.subordinates == []
        assert check_invariants(org) == []

    def test_released_member_takes_seat_from_godfather_heir(self) -> None:
        org = _make_org(1, 90)
        g = org.get_godfather()
        a = _enlist(org, 2, 80, 1)
        c = _enlist(org, 3, 70, 2)

        assert org.send_to_prison(a)
        assert org.send_to_prison(g)
        assert org.get_godfather() is c
        assert a.boss is c

        assert org.release_from_prison(a) is True
        assert org.get_godfather() is a
        assert a.boss is None
        assert c.boss is a
        assert not c.has_subordinate(a)
        assert check_invariants(org) == []
        assert org.compare_members(c, a) is a

        assert org.release_from_prison(g) is True
        assert org.get_godfather() is g
        assert a.boss is g
        assert c.boss is g
        assert check_invariants(org) == []

    def test_released_member_takes_seat_from_heir_below_godfather(self) -> None:
        org = _make_org(1, 90)
        g = org.get_godfather()
        x = _enlist(org, 2, 80, 1)
        m = _enlist(org, 3, 70, 2)
        s = _enlist(org, 4, 60, 3)

        assert org.send_to_prison(m)
        assert org.send_to_prison(x)
        assert m.boss is s

        assert org.release_from_prison(m) is True
        assert m.boss is g
        assert s.boss is m
        assert not s.has_subordinate(m)
        assert not g.has_subordinate(s)
        assert check_invariants(org) == []
        assert org.compare_members(s, g) is g

        assert org.release_from_prison(x) is True
        assert m.boss is x
        assert s.boss is x
        assert check_invariants(org) == []

    def test_former_godfather_reclaims_seat_after_second_succession(self) -> None:
        org = _make_org(1, 90)
        g = org.get_godfather()
        a = _enlist(org, 2, 80, 1)
        b = _enlist(org, 3, 70, 2)

        assert org.send_to_prison(g)
        assert org.send_to_prison(a)
        assert org.get_godfather() is b

        assert org.release_from_prison(g) is True
        assert org.get_godfather() is g
        assert g.boss is None
        assert b.boss is g
        assert check_invariants(org) == []

        assert org.release_from_prison(a) is True
        assert a.boss is g
        assert b.boss is a
        assert check_invariants(org) == []

    def test_release_lone_godfather(self) -> None:
        org = _make_org(1, 50)
        g = org.get_godfather()
        org.send_to_prison(g)
        assert org.release_from_prison(g) is True
        assert org.get_member(1) is g
        assert check_invariants(org) == []

    def test_release_requires_prisoner(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        assert peer_tree.release_from_prison(a) is False
        assert peer_tree.get_member(2) is a

    def test_release_twice(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        peer_tree.send_to_prison(a)
        assert peer_tree.release_from_prison(a) is True
        assert peer_tree.release_from_prison(a) is False

    def test_imprison_release_imprison(self, peer_tree: Organisation) -> None:
        a = peer_tree.get_member(2)
        c = peer_tree.get_member(4)
        peer_tree.send_to_prison(a)
        peer_tree.release_from_prison(a)
        assert peer_tree.send_to_prison(a) is True
        assert c.boss_id == 3
        assert check_invariants(peer_tree) == []


# ==================================================================
# Invariants across sequences
# ==================================================================

class TestSequences:
    @pytest.mark.parametrize("seed", range(200))
    def test_successful_imprison_and_release_keep_a_tree(self, seed: int) -> None:
        rng = random.Random(seed)
        org = _make_org(1, rng.randint(1, 100))
        for member_id in range(2, 30):
            boss = rng.choice(org.active_members())
            org.enlist(member_id, rng.randint(1, 100), boss=boss)

        for _ in range(80):
            prisoners = org.prisoners()
            if prisoners and (len(org.active_members()) == 1 or rng.random() < 0.4):
                assert org.release_from_prison(rng.choice(prisoners))
            elif len(org.active_members()) > 1:
                if not org.send_to_prison(rng.choice(org.active_members())):
                    break
            else:
                break
            active = {m.member_id for m in org.active_members()}
            imprisoned = {m.member_id for m in org.prisoners()}
            assert active.isdisjoint(imprisoned)
            assert check_invariants(org) == []
            for member in org.active_members():
                if member is not org.get_godfather():
                    assert member.boss_id in active

    def test_deep_hierarchy_round_trip(self) -> None:
        org = _make_org(1, 1000)
        for member_id in range(2, 1200):
            _enlist(org, member_id, 1000 - (member_id % 900), member_id - 1)

        middle = org.get_member(600)
        below = org.get_member(601)
        assert org.send_to_prison(middle)
        assert below.boss_id == 599
        assert org.release_from_prison(middle)
        assert below.boss_id == 600
        assert check_invariants(org) == []
