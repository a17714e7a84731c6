"""Document store adapter protocols.

Every adapter module MUST implement these protocols so the Datastore can
swap backends without code changes. Adapters wrap driver failures in
StoreIOFailure; documents cross the boundary as plain dicts with string keys
and typed references as :class:`~doc_mapper.mapping.annotations.Key`.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Protocol, runtime_checkable

from doc_mapper.core.connection import StoreConfig


@runtime_checkable
class RawCursor(Protocol):
    """Single-pass stream of raw documents."""

    def __next__(self) -> dict[str, Any]:
        """Return the next raw document or raise StopIteration."""
        ...

    def __iter__(self) -> RawCursor: ...

    def close(self) -> None:
        """Release the server-side or in-process resources of the stream."""
        ...


@runtime_checkable
class DocumentAdapter(Protocol):
    """Document store adapter protocol."""

    def connect(self, config: StoreConfig) -> Any:
        """Open a store handle."""
        ...

    def close(self, handle: Any) -> None:
        """Close the handle and release its resources."""
        ...

    def execute_query(
        self,
        handle: Any,
        collection: str,
        filter: dict[str, Any] | None = None,
    ) -> RawCursor:
        """Stream documents of ``collection`` matching ``filter``."""
        ...

    def find_by_ids_in(
        self,
        handle: Any,
        collection: str,
        ids: Iterable[Any],
    ) -> RawCursor:
        """Stream documents of ``collection`` whose ``_id`` is in ``ids``."""
        ...

    def save(self, handle: Any, collection: str, document: dict[str, Any]) -> Any:
        """Insert or replace ``document`` by ``_id``; return its identity."""
        ...

    def delete(self, handle: Any, collection: str, filter: dict[str, Any]) -> int:
        """Delete matching documents; return the deleted count."""
        ...
