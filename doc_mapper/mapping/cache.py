"""Identity cache scoped to one read operation.

Within one cache scope, decoding the same (type, identity) pair twice yields
the identical instance. A cache is owned by exactly one cursor or one
reference resolution pass and is dropped with it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def freeze_identity(value: Any) -> Any:
    """Hashable form of a raw identity value.

    Compound identities decoded from documents arrive as dicts and lists.
    """
    if isinstance(value, dict):
        return tuple((k, freeze_identity(v)) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze_identity(v) for v in value)
    return value


@dataclass
class CacheStats:
    """Hit/miss counters of an IdentityCache."""

    entities: int = 0
    hits: int = 0
    misses: int = 0


class IdentityCache:
    """Mapping of (mapped type, identity) to an already materialized instance."""

    def __init__(self) -> None:
        self._entities: dict[tuple[type, Any], Any] = {}
        self._stats = CacheStats()

    def get(self, cls: type, identity: Any) -> Any | None:
        """Return the cached instance, or None if the pair was never seen."""
        instance = self._entities.get((cls, freeze_identity(identity)))
        if instance is None:
            self._stats.misses += 1
        else:
            self._stats.hits += 1
        return instance

    def put(self, cls: type, identity: Any, instance: Any) -> None:
        self._entities[(cls, freeze_identity(identity))] = instance
        self._stats.entities = len(self._entities)

    def exists(self, cls: type, identity: Any) -> bool:
        return (cls, freeze_identity(identity)) in self._entities

    def flush(self) -> None:
        """Drop every cached instance."""
        self._entities.clear()
        self._stats = CacheStats()

    @property
    def stats(self) -> CacheStats:
        return CacheStats(self._stats.entities, self._stats.hits, self._stats.misses)

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, item: tuple[type, Any]) -> bool:
        cls, identity = item
        return self.exists(cls, identity)
