"""Retrieval of governance resources scoped to a namespace."""

from .store import InMemoryPolicyStore, PolicyStore, StoreError, fetch

__all__ = ["InMemoryPolicyStore", "PolicyStore", "StoreError", "fetch"]
