"""Mapping layer - descriptors, codec, references, identity cache."""

from __future__ import annotations

from doc_mapper.mapping.annotations import (
    CLASS_NAME_KEY,
    ID_KEY,
    IGNORED_FIELDNAME,
    Embedded,
    Entity,
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
from doc_mapper.mapping.builder import build_type_descriptor
from doc_mapper.mapping.cache import IdentityCache
from doc_mapper.mapping.codec import DocumentCodec
from doc_mapper.mapping.descriptor import FieldDescriptor, TypeDescriptor
from doc_mapper.mapping.options import MapperOptions
from doc_mapper.mapping.reference import (
    CollectionReference,
    DocumentReference,
    MapReference,
    Resolved,
    SingleReference,
    Unresolved,
)

__all__ = [
    # Markers
    "Id",
    "Property",
    "Reference",
    "Embedded",
    "Serialized",
    "Version",
    "Transient",
    "NotSaved",
    "Entity",
    "Key",
    "entity",
    "embedded",
    "ID_KEY",
    "CLASS_NAME_KEY",
    "IGNORED_FIELDNAME",
    # Descriptors
    "FieldDescriptor",
    "TypeDescriptor",
    "build_type_descriptor",
    # Codec
    "DocumentCodec",
    "MapperOptions",
    "IdentityCache",
    # References
    "DocumentReference",
    "SingleReference",
    "CollectionReference",
    "MapReference",
    "Unresolved",
    "Resolved",
]
