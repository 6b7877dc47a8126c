"""
Conversation thread storage.

This module provides:
- ThreadStore: Interface the runtime reads history from and appends to
- InMemoryThreadStore: Process-local implementation
"""

from klu.context.threads import InMemoryThreadStore, ThreadStore

__all__ = ["InMemoryThreadStore", "ThreadStore"]
