"""Data persistence components."""

from .state_store import StateStore

__all__ = [
    "StateStore",
]
