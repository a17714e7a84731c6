"""Shared test fixtures."""

from __future__ import annotations

from typing import Any

import pytest

from doc_mapper.adapters.memory import MemoryCursor
from doc_mapper.core.connection import StoreConfig
from doc_mapper.core.cursor import MappedCursor
from doc_mapper.core.registry import MappingRegistry
from doc_mapper.mapping.cache import IdentityCache
from doc_mapper.mapping.codec import DocumentCodec


@pytest.fixture
def memory_config() -> StoreConfig:
    """In-memory store config."""
    return StoreConfig(driver="memory", database="test")


@pytest.fixture
def registry() -> MappingRegistry:
    """Fresh mapping registry."""
    return MappingRegistry()


class FakeFetcher:
    """Reference fetcher over fixed documents that records every query.

    Usage:
        fetcher = FakeFetcher(registry, {"people": [{"_id": 1, "name": "a"}]})
        codec = fetcher.codec
        ...
        assert fetcher.calls == [("people", [1])]
    """

    def __init__(self, registry: MappingRegistry, collections: dict[str, list[dict[str, Any]]]):
        self.registry = registry
        self.codec = DocumentCodec(registry, self)
        self.collections = collections
        self.calls: list[tuple[str, list[Any]]] = []
        self.cursors: list[MemoryCursor] = []

    def fetch_by_ids(
        self,
        cls: type,
        collection: str,
        ids: list[Any],
        cache: IdentityCache,
    ) -> MappedCursor[Any]:
        self.calls.append((collection, list(ids)))
        documents = [doc for doc in self.collections.get(collection, []) if doc["_id"] in ids]
        raw = MemoryCursor(documents)
        self.cursors.append(raw)
        return MappedCursor(raw, self.codec, cls, cache)


@pytest.fixture
def make_fetcher(registry: MappingRegistry):
    """Factory for FakeFetcher bound to the test registry."""

    def _make(collections: dict[str, list[dict[str, Any]]] | None = None) -> FakeFetcher:
        return FakeFetcher(registry, collections or {})

    return _make
