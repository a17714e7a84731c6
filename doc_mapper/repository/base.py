"""Repository base class.

Thin wrapper over Datastore for DDD-oriented usage.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from doc_mapper.core.cursor import MappedCursor
from doc_mapper.core.datastore import Datastore
from doc_mapper.mapping.annotations import Key

T = TypeVar("T")


class Repository(Generic[T]):
    """Base repository for one entity class.

    Subclasses define concrete data access methods that delegate to
    the datastore.
    """

    def __init__(self, datastore: Datastore, entity_class: type[T]) -> None:
        self.datastore = datastore
        self.entity_class = entity_class
        # Fail fast on bad declarations
        self.descriptor = datastore.registry.get(entity_class)

    def get(self, identity: Any) -> T | None:
        return self.datastore.get(self.entity_class, identity)

    def find(self, filter: dict[str, Any] | None = None) -> MappedCursor[T]:
        return self.datastore.find(self.entity_class, filter)

    def find_one(self, filter: dict[str, Any] | None = None) -> T | None:
        return self.datastore.find_one(self.entity_class, filter)

    def list(self, filter: dict[str, Any] | None = None) -> list[T]:
        return self.find(filter).to_list()

    def save(self, entity: T) -> Key:
        return self.datastore.save(entity)

    def delete(self, entity: T) -> int:
        return self.datastore.delete(entity)
