"""Replicated store implementations."""

from .memory import InMemoryStore
from .store import MovementStore, StoreWriteError
from .supabase_store import SupabaseStore

__all__ = ["InMemoryStore", "MovementStore", "StoreWriteError", "SupabaseStore"]
