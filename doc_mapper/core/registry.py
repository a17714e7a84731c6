"""Mapping registry - builds and caches type descriptors.

One registry is created per application (or per Datastore) and passed to
the components that need class lookups; there is no module-level state.

    registry = MappingRegistry()
    registry.map(Person, Address)        # eager validation at startup
    registry.get(Person).collection_name # -> "people"
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from doc_mapper.core.exceptions import UnmappedCollectionError, UnmappedTypeError
from doc_mapper.mapping.builder import build_type_descriptor, is_mappable
from doc_mapper.mapping.descriptor import TypeDescriptor

logger = logging.getLogger(__name__)


class MappingRegistry:
    """Memoizing registry of TypeDescriptors.

    Descriptors are built on first use (or eagerly via :meth:`map`) and never
    rebuilt. Lookups by collection name and by stored ``className`` only see
    classes that have been mapped so far.
    """

    def __init__(self) -> None:
        self._descriptors: dict[type, TypeDescriptor] = {}
        self._by_collection: dict[str, type] = {}
        self._by_class_name: dict[str, type] = {}
        self._lock = threading.RLock()

    def map(self, *classes: type) -> list[TypeDescriptor]:
        """Build descriptors for ``classes`` now, failing fast on bad declarations."""
        return [self.get(cls) for cls in classes]

    def get(self, cls: type) -> TypeDescriptor:
        """Return the descriptor of ``cls``, building it on first use.

        Raises:
            UnmappedTypeError: If ``cls`` is not a mappable class.
            MappingDeclarationError: If the class mapping is malformed.
        """
        descriptor = self._descriptors.get(cls)
        if descriptor is not None:
            return descriptor

        if not is_mappable(cls):
            raise UnmappedTypeError(getattr(cls, "__qualname__", repr(cls)))

        with self._lock:
            descriptor = self._descriptors.get(cls)
            if descriptor is None:
                descriptor = build_type_descriptor(cls)
                self._register(descriptor)
        return descriptor

    def _register(self, descriptor: TypeDescriptor) -> None:
        cls = descriptor.type
        self._descriptors[cls] = descriptor
        self._by_class_name[descriptor.class_name] = cls

        collection = descriptor.collection_name
        if collection is None:
            return
        existing = self._by_collection.get(collection)
        if existing is None or issubclass(existing, cls):
            # Base classes win so polymorphic reads start from the root type
            self._by_collection[collection] = cls
        elif not issubclass(cls, existing):
            logger.warning(
                "Collection '%s' is mapped by both %s and %s; keeping %s",
                collection,
                existing.__qualname__,
                cls.__qualname__,
                existing.__qualname__,
            )

    def is_mapped(self, cls: type) -> bool:
        """Check if a descriptor for ``cls`` has been built."""
        return cls in self._descriptors

    def is_mappable(self, cls: Any) -> bool:
        return is_mappable(cls)

    def class_for_collection(self, collection: str) -> type:
        """Class registered for a storage collection.

        Raises:
            UnmappedCollectionError: If no mapped class uses the collection.
        """
        try:
            return self._by_collection[collection]
        except KeyError:
            raise UnmappedCollectionError(collection) from None

    def class_for_name(self, class_name: str) -> type | None:
        """Class registered under a stored ``className`` discriminator."""
        return self._by_class_name.get(class_name)

    def collection_name(self, cls: type) -> str:
        """Storage collection of an entity class.

        Raises:
            UnmappedTypeError: If ``cls`` is not an entity.
        """
        collection = self.get(cls).collection_name
        if collection is None:
            raise UnmappedTypeError(f"{cls.__qualname__} (not an @Entity)")
        return collection

    def get_subtypes(self, descriptor: TypeDescriptor) -> list[TypeDescriptor]:
        """Mapped strict subclasses of ``descriptor.type``, in mapping order."""
        return [
            other
            for cls, other in self._descriptors.items()
            if cls is not descriptor.type and issubclass(cls, descriptor.type)
        ]

    def get_id(self, instance: Any) -> Any:
        """In-memory identity value of a mapped instance."""
        return self.get(type(instance)).get_id(instance)

    @property
    def mapped_classes(self) -> list[type]:
        return list(self._descriptors)

    def __len__(self) -> int:
        """Number of mapped classes."""
        return len(self._descriptors)
