"""In-memory adapter - process-local document store.

Documents are deep-copied on the way in and out, as a networked store would
serialize them. Filters support top-level equality and ``{"$in": [...]}``.
"""

from __future__ import annotations

import copy
import itertools
from collections.abc import Iterable, Iterator
from typing import Any

from doc_mapper.core.connection import StoreConfig
from doc_mapper.core.exceptions import StoreIOFailure
from doc_mapper.mapping.annotations import ID_KEY
from doc_mapper.mapping.cache import freeze_identity


class MemoryStore:
    """Collections of documents keyed by frozen identity."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.collections: dict[str, dict[Any, dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self.closed = False

    def collection(self, name: str) -> dict[Any, dict[str, Any]]:
        if self.closed:
            raise StoreIOFailure(f"Memory store '{self.name}' is closed")
        return self.collections.setdefault(name, {})

    def next_id(self) -> int:
        return next(self._ids)


class MemoryCursor:
    """Raw cursor over a snapshot of matching documents."""

    def __init__(self, documents: list[dict[str, Any]]) -> None:
        self._documents: Iterator[dict[str, Any]] = iter(documents)
        self.closed = False

    def __iter__(self) -> MemoryCursor:
        return self

    def __next__(self) -> dict[str, Any]:
        if self.closed:
            raise StopIteration
        return copy.deepcopy(next(self._documents))

    def close(self) -> None:
        self.closed = True


def _matches(document: dict[str, Any], filter: dict[str, Any]) -> bool:
    for key, expected in filter.items():
        actual = document.get(key)
        if isinstance(expected, dict) and any(k.startswith("$") for k in expected):
            for operator, operand in expected.items():
                if operator != "$in":
                    raise StoreIOFailure(f"Unsupported filter operator: {operator}")
                frozen = {freeze_identity(v) for v in operand}
                if freeze_identity(actual) not in frozen:
                    return False
        elif freeze_identity(actual) != freeze_identity(expected):
            return False
    return True


class MemoryAdapter:
    """Document adapter backed by a MemoryStore."""

    def connect(self, config: StoreConfig) -> MemoryStore:
        return MemoryStore(config.database)

    def close(self, handle: MemoryStore) -> None:
        handle.closed = True

    def execute_query(
        self,
        handle: MemoryStore,
        collection: str,
        filter: dict[str, Any] | None = None,
    ) -> MemoryCursor:
        documents = handle.collection(collection).values()
        return MemoryCursor([doc for doc in documents if _matches(doc, filter or {})])

    def find_by_ids_in(
        self,
        handle: MemoryStore,
        collection: str,
        ids: Iterable[Any],
    ) -> MemoryCursor:
        return self.execute_query(handle, collection, {ID_KEY: {"$in": list(ids)}})

    def save(self, handle: MemoryStore, collection: str, document: dict[str, Any]) -> Any:
        document = copy.deepcopy(document)
        if document.get(ID_KEY) is None:
            document = {ID_KEY: handle.next_id(), **document}
        handle.collection(collection)[freeze_identity(document[ID_KEY])] = document
        return document[ID_KEY]

    def delete(self, handle: MemoryStore, collection: str, filter: dict[str, Any]) -> int:
        documents = handle.collection(collection)
        doomed = [key for key, doc in documents.items() if _matches(doc, filter)]
        for key in doomed:
            del documents[key]
        return len(doomed)
