"""DocMapper - object-document mapping with lazy reference resolution."""

from __future__ import annotations

from doc_mapper.core.connection import StoreConfig, StoreManager
from doc_mapper.core.cursor import MappedCursor
from doc_mapper.core.datastore import Datastore
from doc_mapper.core.enums import ContainerKind, StoreBackend
from doc_mapper.core.exceptions import (
    AdapterLoadError,
    ConversionError,
    CursorError,
    DetachedReferenceError,
    DocMapperError,
    ExhaustedIteration,
    MappingDeclarationError,
    MappingError,
    StoreError,
    StoreIOFailure,
    UnmappedCollectionError,
    UnmappedTypeError,
    UnsavedReferenceError,
)
from doc_mapper.core.registry import MappingRegistry
from doc_mapper.mapping.annotations import (
    Embedded,
    Id,
    Key,
    NotSaved,
    Property,
    Reference,
    Serialized,
    Transient,
    Version,
    embedded,
    entity,
)
from doc_mapper.mapping.cache import IdentityCache
from doc_mapper.mapping.codec import DocumentCodec
from doc_mapper.mapping.options import MapperOptions
from doc_mapper.mapping.reference import (
    CollectionReference,
    DocumentReference,
    MapReference,
    SingleReference,
)

__all__ = [
    # Store
    "StoreConfig",
    "StoreManager",
    "Datastore",
    "MappedCursor",
    # Registry
    "MappingRegistry",
    # Mapping
    "DocumentCodec",
    "MapperOptions",
    "IdentityCache",
    "Id",
    "Property",
    "Reference",
    "Embedded",
    "Serialized",
    "Version",
    "Transient",
    "NotSaved",
    "Key",
    "entity",
    "embedded",
    # References
    "DocumentReference",
    "SingleReference",
    "CollectionReference",
    "MapReference",
    # Enums
    "ContainerKind",
    "StoreBackend",
    # Exceptions
    "DocMapperError",
    "MappingError",
    "MappingDeclarationError",
    "UnmappedTypeError",
    "UnmappedCollectionError",
    "UnsavedReferenceError",
    "DetachedReferenceError",
    "ConversionError",
    "CursorError",
    "ExhaustedIteration",
    "StoreError",
    "StoreIOFailure",
    "AdapterLoadError",
]
