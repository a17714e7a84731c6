"""Mapping descriptor data classes.

Frozen dataclasses representing compiled, validated class mappings.
Built once per class by the builder and shared read-only afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from doc_mapper.core.enums import ContainerKind
from doc_mapper.mapping.annotations import Embedded, Entity, Reference

M = TypeVar("M")


@dataclass(frozen=True)
class FieldDescriptor:
    """Mapping of one declared property."""

    name: str  # attribute name on the class
    declared_type: Any  # annotation without markers and Optional
    concrete_type: Any  # substitute class, or the declared origin type
    kind: ContainerKind
    storage_name: str  # key in the document
    element_type: Any = None  # T in list[T], tuple[T, ...], set[T], dict[K, T]
    key_type: Any = None  # K in dict[K, T]
    is_id: bool = False
    is_reference: bool = False
    is_transient: bool = False
    is_not_saved: bool = False
    is_version: bool = False
    is_serialized: bool = False
    markers: tuple[Any, ...] = ()
    default_factory: Callable[[], Any] | None = None

    @property
    def is_single_value(self) -> bool:
        return self.kind is ContainerKind.SINGLE

    @property
    def is_multiple_values(self) -> bool:
        return self.kind is not ContainerKind.SINGLE

    @property
    def is_map(self) -> bool:
        return self.kind is ContainerKind.MAP

    @property
    def is_set(self) -> bool:
        return self.kind is ContainerKind.SET

    @property
    def is_array(self) -> bool:
        return self.kind is ContainerKind.ARRAY

    @property
    def value_type(self) -> Any:
        """Type of the stored values: element type for containers."""
        return self.concrete_type if self.is_single_value else self.element_type

    def get_marker(self, marker_type: type[M]) -> M | None:
        for marker in self.markers:
            if isinstance(marker, marker_type):
                return marker
        return None

    def has_marker(self, marker_type: type) -> bool:
        return self.get_marker(marker_type) is not None

    @property
    def reference(self) -> Reference | None:
        return self.get_marker(Reference)

    def get_value(self, instance: Any) -> Any:
        return getattr(instance, self.name, None)

    def set_value(self, instance: Any, value: Any) -> None:
        # Bypasses frozen dataclasses and validate_assignment
        object.__setattr__(instance, self.name, value)

    def default(self) -> Any:
        return self.default_factory() if self.default_factory is not None else None


@dataclass(frozen=True)
class TypeDescriptor:
    """Compiled, validated mapping of one class."""

    type: type
    fields: tuple[FieldDescriptor, ...]
    id_field: FieldDescriptor | None = None
    collection_name: str | None = None  # None for embedded-only classes
    entity: Entity | None = None
    embedded: Embedded | None = None
    supertype: type | None = None  # nearest mapped base class

    @property
    def class_name(self) -> str:
        """Discriminator written under ``className``."""
        return f"{self.type.__module__}.{self.type.__qualname__}"

    @property
    def is_entity(self) -> bool:
        return self.entity is not None

    @property
    def stores_class_name(self) -> bool:
        return self.entity is None or not self.entity.no_classname_stored

    @property
    def version_field(self) -> FieldDescriptor | None:
        for fd in self.fields:
            if fd.is_version:
                return fd
        return None

    def get_field(self, name: str) -> FieldDescriptor | None:
        """Look up a field by attribute name or storage name."""
        for fd in self.fields:
            if fd.name == name or fd.storage_name == name:
                return fd
        return None

    def get_id(self, instance: Any) -> Any:
        """Identity value of ``instance`` as held in memory."""
        if self.id_field is None:
            return None
        return self.id_field.get_value(instance)
