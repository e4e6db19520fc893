"""Hierarchy engine — succession, recovery, rank and size queries."""

from mafia.hierarchy.invariants import check_invariants
from mafia.hierarchy.organisation import Organisation, Succession, SuccessionStrategy

__all__ = ["Organisation", "Succession", "SuccessionStrategy", "check_invariants"]
