"""Datastore - entry point for mapped persistence.

The Datastore resolves collections through the MappingRegistry, converts
with the DocumentCodec, executes through the adapter, and wraps raw result
streams in MappedCursors.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from doc_mapper.core.connection import StoreConfig, StoreManager
from doc_mapper.core.cursor import MappedCursor
from doc_mapper.core.registry import MappingRegistry
from doc_mapper.mapping.annotations import ID_KEY, Key
from doc_mapper.mapping.cache import IdentityCache
from doc_mapper.mapping.codec import DocumentCodec
from doc_mapper.mapping.descriptor import TypeDescriptor
from doc_mapper.mapping.options import MapperOptions
from doc_mapper.mapping.reference import DocumentReference

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Datastore:
    """Synchronous mapped datastore.

    Store failures surface as StoreIOFailure from the adapter and are never
    retried here.
    """

    def __init__(
        self,
        store_manager: StoreManager,
        registry: MappingRegistry | None = None,
        options: MapperOptions | None = None,
    ) -> None:
        self._store_manager = store_manager
        self._registry = registry if registry is not None else MappingRegistry()
        self._codec = DocumentCodec(self._registry, self, options)

    @classmethod
    def from_config(
        cls,
        config: StoreConfig,
        registry: MappingRegistry | None = None,
        options: MapperOptions | None = None,
    ) -> Datastore:
        """Create a Datastore from a StoreConfig.

        Args:
            config: StoreConfig instance
            registry: Optional shared MappingRegistry
            options: Optional MapperOptions

        Returns:
            Datastore instance
        """
        return cls(StoreManager(config), registry, options)

    @property
    def registry(self) -> MappingRegistry:
        return self._registry

    @property
    def codec(self) -> DocumentCodec:
        return self._codec

    @property
    def store_manager(self) -> StoreManager:
        return self._store_manager

    @property
    def _adapter(self) -> Any:
        return self._store_manager.adapter

    def map(self, *classes: type) -> None:
        """Validate and register mapped classes up front."""
        self._registry.map(*classes)

    def wrap(
        self,
        raw: Any,
        cls: type[T],
        cache: IdentityCache | None = None,
    ) -> MappedCursor[T]:
        """Wrap a raw document stream in a decoding cursor."""
        return MappedCursor(raw, self._codec, cls, cache)

    def find(self, cls: type[T], filter: dict[str, Any] | None = None) -> MappedCursor[T]:
        """Query the collection of ``cls``. The filter is passed to the store as-is."""
        collection = self._registry.collection_name(cls)
        raw = self._adapter.execute_query(self._store_manager.handle, collection, filter)
        return self.wrap(raw, cls)

    def find_one(self, cls: type[T], filter: dict[str, Any] | None = None) -> T | None:
        """Return the first match, or None."""
        with self.find(cls, filter) as cursor:
            return cursor.try_next()

    def fetch_by_ids(
        self,
        cls: type[T],
        collection: str,
        ids: list[Any],
        cache: IdentityCache,
    ) -> MappedCursor[T]:
        """Open a cursor over documents of ``collection`` with ``_id`` in ``ids``."""
        raw = self._adapter.find_by_ids_in(self._store_manager.handle, collection, ids)
        return self.wrap(raw, cls, cache)

    def get(self, cls: type[T], identity: Any) -> T | None:
        """Load one entity by identity, or None if it does not exist."""
        encoded = self._encode_identity(cls, identity)
        collection = self._registry.collection_name(cls)
        with self.fetch_by_ids(cls, collection, [encoded], IdentityCache()) as cursor:
            return cursor.try_next()

    def get_by_ids(self, cls: type[T], identities: Iterable[Any]) -> list[T]:
        """Load the entities that exist among ``identities``, in store order."""
        encoded = [self._encode_identity(cls, identity) for identity in identities]
        collection = self._registry.collection_name(cls)
        return self.fetch_by_ids(cls, collection, encoded, IdentityCache()).to_list()

    def save(self, entity: Any) -> Key:
        """Insert or replace ``entity``.

        Increments the version field, if any, and assigns the store-generated
        identity to entities saved without one. The version is rolled back
        when encoding or the store write fails.
        """
        cls = type(entity)
        descriptor = self._registry.get(cls)
        collection = self._registry.collection_name(cls)

        version = descriptor.version_field
        previous = version.get_value(entity) if version is not None else None
        if version is not None:
            version.set_value(entity, (previous or 0) + 1)

        try:
            document = self._codec.encode(entity, descriptor)
            self._carry_unloaded_references(entity, descriptor, document)
            identity = self._adapter.save(self._store_manager.handle, collection, document)
        except Exception:
            if version is not None:
                version.set_value(entity, previous)
            raise

        id_field = descriptor.id_field
        if id_field is not None and id_field.get_value(entity) is None:
            id_field.set_value(entity, self._codec.decode_value(identity, id_field.concrete_type))
        logger.debug("Saved %s %r to '%s'", cls.__qualname__, identity, collection)
        return Key(collection, identity)

    def _carry_unloaded_references(
        self,
        entity: Any,
        descriptor: TypeDescriptor,
        document: dict[str, Any],
    ) -> None:
        """Copy the stored ids of never-loaded references into ``document``.

        The codec leaves them out, and saving replaces the whole document.
        """
        for fd in descriptor.fields:
            value = fd.get_value(entity)
            if not isinstance(value, DocumentReference) or value.is_resolved():
                continue
            raw = self._codec.encode_retained_ids(fd, value)
            if raw is None or (isinstance(raw, (list, dict)) and not raw):
                continue
            document[fd.storage_name] = raw

    def save_all(self, entities: Iterable[Any]) -> list[Key]:
        """Save each entity in order."""
        return [self.save(entity) for entity in entities]

    def delete(self, entity: Any) -> int:
        """Delete ``entity`` by its identity."""
        return self.delete_by_id(type(entity), self._registry.get_id(entity))

    def delete_by_id(self, cls: type, identity: Any) -> int:
        """Delete the entity of ``cls`` with ``identity``; return the deleted count."""
        collection = self._registry.collection_name(cls)
        filter = {ID_KEY: self._encode_identity(cls, identity)}
        return int(self._adapter.delete(self._store_manager.handle, collection, filter))

    def get_key(self, entity: Any) -> Key:
        """Typed reference to a saved entity."""
        return Key(self._registry.collection_name(type(entity)), self._codec.identity_of(entity))

    def _encode_identity(self, cls: type, identity: Any) -> Any:
        id_field = self._registry.get(cls).id_field
        declared = id_field.concrete_type if id_field is not None else None
        return self._codec.encode_value(identity, declared)

    def close(self) -> None:
        """Close the underlying store handle."""
        self._store_manager.close()

    def __enter__(self) -> Datastore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
