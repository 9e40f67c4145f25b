"""Behavior observation engine: session timer, episodes, reconciliation, stats."""

__version__ = "1.0.0"
