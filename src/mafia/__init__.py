"""Mafia — hierarchical organisation engine with succession and recovery."""

__version__ = "0.1.0"
