"""Mirror store implementations."""

from emailops.repository.memory import InMemoryMirrorRepository

__all__ = ["InMemoryMirrorRepository"]
