"""Core data models: member nodes and their registry."""

from mafia.models.member import Member, MemberRegistry

__all__ = ["Member", "MemberRegistry"]
