"""Lazy references to documents in other collections.

A reference is either ``Unresolved`` (raw identities plus the context needed
to load them) or ``Resolved`` (the materialized value). The transition is
one-way and happens on first :meth:`DocumentReference.get`.

Resolution of collection and map references issues exactly one query per
distinct target collection. Identities whose document no longer exists are
dropped from the result without raising.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Protocol, TypeVar

from doc_mapper.core.exceptions import DetachedReferenceError
from doc_mapper.mapping.annotations import Key
from doc_mapper.mapping.cache import IdentityCache, freeze_identity

if TYPE_CHECKING:
    from doc_mapper.core.cursor import MappedCursor
    from doc_mapper.core.registry import MappingRegistry
    from doc_mapper.mapping.codec import DocumentCodec
    from doc_mapper.mapping.descriptor import FieldDescriptor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReferenceFetcher(Protocol):
    """What a reference needs from its owning datastore."""

    @property
    def registry(self) -> MappingRegistry: ...

    @property
    def codec(self) -> DocumentCodec: ...

    def fetch_by_ids(
        self,
        cls: type,
        collection: str,
        ids: list[Any],
        cache: IdentityCache,
    ) -> MappedCursor[Any]:
        """Open a cursor over documents of ``collection`` whose ``_id`` is in ``ids``."""
        ...


@dataclass(frozen=True)
class Unresolved:
    """Raw identities not yet loaded.

    ``ids`` keeps the original shape (one id, a list, or a key -> id mapping);
    ``collections`` holds the bare ids collated per target collection.
    """

    ids: Any
    collections: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """Materialized reference value."""

    value: T


def split_raw_id(raw: Any, default_collection: str | None) -> tuple[str, Any]:
    """Return (target collection, bare identity) of a raw reference value."""
    if isinstance(raw, Key):
        return raw.collection, raw.id
    if default_collection is None:
        raise DetachedReferenceError(
            f"Cannot determine the target collection of reference id {raw!r}"
        )
    return default_collection, raw


def collate(raw_ids: Iterable[Any], default_collection: str | None) -> dict[str, tuple[Any, ...]]:
    """Group bare identities by target collection, keeping per-group order."""
    groups: dict[str, list[Any]] = {}
    for raw in raw_ids:
        if raw is None:
            continue
        collection, bare = split_raw_id(raw, default_collection)
        groups.setdefault(collection, []).append(bare)
    return {collection: tuple(ids) for collection, ids in groups.items()}


class DocumentReference(ABC, Generic[T]):
    """Deferred pointer to one or more documents.

    First resolution is single-flight: concurrent callers of :meth:`get` on
    the same instance wait on a per-instance lock and share one load.
    """

    def __init__(
        self,
        state: Unresolved | Resolved[T],
        datastore: ReferenceFetcher | None = None,
        target: type | None = None,
        default_collection: str | None = None,
    ) -> None:
        self._state = state
        self._datastore = datastore
        self._target = target
        self._default_collection = default_collection
        self._lock = threading.Lock()

    @classmethod
    def wrap(cls, value: T) -> DocumentReference[T]:
        """Create an already resolved reference around ``value``."""
        return cls(Resolved(value))

    @property
    def state(self) -> Unresolved | Resolved[T]:
        return self._state

    @property
    def target(self) -> type | None:
        return self._target

    def is_resolved(self) -> bool:
        return isinstance(self._state, Resolved)

    def resolve(self) -> Resolved[T]:
        """Load the referenced value if needed and return the Resolved state."""
        state = self._state
        if isinstance(state, Resolved):
            return state
        with self._lock:
            state = self._state
            if isinstance(state, Unresolved):
                state = Resolved(self._load(state))
                self._state = state
        return state

    def get(self) -> T:
        """Return the referenced value, loading it on first access."""
        return self.resolve().value

    def set(self, value: T) -> None:
        """Replace the value; the reference becomes resolved."""
        self._state = Resolved(value)

    def encode(self, codec: DocumentCodec, fd: FieldDescriptor) -> Any:
        """Raw identities of the resolved value, or None when never loaded."""
        if not isinstance(self._state, Resolved):
            return None
        return codec.encode_reference(fd, self._state.value)

    @abstractmethod
    def _load(self, state: Unresolved) -> T:
        """Fetch and decode the documents described by ``state``."""

    def _require_datastore(self) -> ReferenceFetcher:
        if self._datastore is None:
            raise DetachedReferenceError(
                f"{type(self).__name__} has no datastore to resolve against"
            )
        return self._datastore

    def _class_for(self, collection: str) -> type:
        datastore = self._require_datastore()
        if self._target is not None and collection == self._default_collection:
            return self._target
        return datastore.registry.class_for_collection(collection)

    def _fetch_collated(self, state: Unresolved) -> dict[tuple[str, Any], Any]:
        """Run one query per target collection; map (collection, id) -> instance."""
        datastore = self._require_datastore()
        cache = IdentityCache()
        found: dict[tuple[str, Any], Any] = {}
        for collection, ids in state.collections.items():
            cls = self._class_for(collection)
            with datastore.fetch_by_ids(cls, collection, list(ids), cache) as cursor:
                for instance in cursor:
                    identity = freeze_identity(datastore.codec.identity_of(instance))
                    found[(collection, identity)] = instance
            logger.debug(
                "Resolved %d of %d ids from collection '%s'",
                sum(1 for key in found if key[0] == collection),
                len(ids),
                collection,
            )
        return found

    def _lookup_key(self, raw: Any) -> tuple[str, Any]:
        collection, bare = split_raw_id(raw, self._default_collection)
        return collection, freeze_identity(bare)

    def __repr__(self) -> str:
        if isinstance(self._state, Resolved):
            return f"{type(self).__name__}(resolved={self._state.value!r})"
        return f"{type(self).__name__}(unresolved={self._state.ids!r})"


class SingleReference(DocumentReference[T | None]):
    """Reference to at most one document. A dangling id resolves to None."""

    @classmethod
    def unresolved(
        cls,
        datastore: ReferenceFetcher | None,
        target: type | None,
        default_collection: str | None,
        raw_id: Any,
    ) -> SingleReference[T]:
        return cls(Unresolved(ids=raw_id), datastore, target, default_collection)

    def _load(self, state: Unresolved) -> T | None:
        if state.ids is None:
            return None
        datastore = self._require_datastore()
        collection, bare = split_raw_id(state.ids, self._default_collection)
        cls = self._class_for(collection)
        with datastore.fetch_by_ids(cls, collection, [bare], IdentityCache()) as cursor:
            value = cursor.try_next()
        logger.debug("Resolved single reference %r in '%s': %s", bare, collection, value is not None)
        return value


class CollectionReference(DocumentReference[Any]):
    """Reference to an ordered collection of documents.

    The resolved container keeps the original id order; ids without a
    matching document are left out, so it may be shorter than the raw list.
    """

    def __init__(
        self,
        state: Unresolved | Resolved[Any],
        datastore: ReferenceFetcher | None = None,
        target: type | None = None,
        default_collection: str | None = None,
        container: Callable[[list[Any]], Any] = list,
    ) -> None:
        super().__init__(state, datastore, target, default_collection)
        self._container = container

    @classmethod
    def unresolved(
        cls,
        datastore: ReferenceFetcher | None,
        target: type | None,
        default_collection: str | None,
        raw_ids: Iterable[Any] | None,
        container: Callable[[list[Any]], Any] = list,
    ) -> CollectionReference:
        ids = list(raw_ids or [])
        state = Unresolved(ids=ids, collections=collate(ids, default_collection))
        return cls(state, datastore, target, default_collection, container)

    def _load(self, state: Unresolved) -> Any:
        found = self._fetch_collated(state) if state.collections else {}
        values = []
        for raw in state.ids:
            if raw is None:
                continue
            instance = found.get(self._lookup_key(raw))
            if instance is not None:
                values.append(instance)
        return self._container(values)


class MapReference(DocumentReference[dict[Any, Any]]):
    """Reference to a keyed mapping of documents.

    Keys keep their original order; keys whose document is missing are
    omitted from the resolved mapping.
    """

    @classmethod
    def unresolved(
        cls,
        datastore: ReferenceFetcher | None,
        target: type | None,
        default_collection: str | None,
        raw_ids: Mapping[Any, Any] | None,
    ) -> MapReference:
        ids = dict(raw_ids or {})
        state = Unresolved(ids=ids, collections=collate(ids.values(), default_collection))
        return cls(state, datastore, target, default_collection)

    def _load(self, state: Unresolved) -> dict[Any, Any]:
        found = self._fetch_collated(state) if state.collections else {}
        values: dict[Any, Any] = {}
        for key, raw in state.ids.items():
            if raw is None:
                continue
            instance = found.get(self._lookup_key(raw))
            if instance is not None:
                values[key] = instance
        return values
