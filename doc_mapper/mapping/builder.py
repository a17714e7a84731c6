"""Type descriptor builder.

Reads a class's declared properties and mapping markers once and compiles
them into an immutable TypeDescriptor.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import inspect
import logging
import types
import typing
from typing import Any, Callable, ClassVar, Union, get_args, get_origin

from doc_mapper.core.enums import ContainerKind
from doc_mapper.core.exceptions import MappingDeclarationError, UnmappedTypeError
from doc_mapper.mapping.annotations import (
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
    class_markers,
)
from doc_mapper.mapping.descriptor import FieldDescriptor, TypeDescriptor

logger = logging.getLogger(__name__)

_FIELD_MARKERS = (Id, Property, Reference, Embedded, Serialized, Version, Transient, NotSaved)

# Storage name precedence after Id, which always wins
_NAMED_MARKERS = (Property, Reference, Embedded, Serialized, Version)


def _is_pydantic_model(cls: type) -> bool:
    """Check if a class is a Pydantic BaseModel."""
    try:
        from pydantic import BaseModel

        return issubclass(cls, BaseModel)
    except ImportError:
        return False


def is_mappable(cls: Any) -> bool:
    """True for classes the codec can turn into documents."""
    if not isinstance(cls, type) or cls is object:
        return False
    if any("__mapping_markers__" in klass.__dict__ for klass in cls.__mro__):
        return True
    return dataclasses.is_dataclass(cls) or _is_pydantic_model(cls)


def unwrap_type(hint: Any) -> tuple[Any, tuple[Any, ...]]:
    """Strip Annotated and Optional layers, collecting mapping markers."""
    markers: list[Any] = []
    while True:
        origin = get_origin(hint)
        if origin is typing.Annotated:
            markers.extend(m for m in hint.__metadata__ if isinstance(m, _FIELD_MARKERS))
            hint = get_args(hint)[0]
        elif origin is Union or origin is types.UnionType:
            non_null = [a for a in get_args(hint) if a is not type(None)]
            if len(non_null) != 1:
                return hint, tuple(markers)
            hint = non_null[0]
        else:
            return hint, tuple(markers)


def classify_type(hint: Any) -> tuple[ContainerKind, Any, Any, Any]:
    """Return (kind, origin type, element type, key type).

    Checked in order: array, ordered sequence, set, keyed mapping, single value.
    """
    origin = get_origin(hint) or hint
    args = get_args(hint)
    if not isinstance(origin, type):
        return ContainerKind.SINGLE, hint, None, None

    if issubclass(origin, tuple) and not hasattr(origin, "_fields"):
        if len(args) == 2 and args[1] is Ellipsis:
            element = args[0]
        elif args and len(set(args)) == 1:
            element = args[0]
        else:
            element = Any
        return ContainerKind.ARRAY, origin, unwrap_type(element)[0], None
    if issubclass(origin, (str, bytes, bytearray)):
        return ContainerKind.SINGLE, origin, None, None
    if issubclass(origin, collections.abc.Sequence):
        return ContainerKind.LIST, origin, unwrap_type(args[0])[0] if args else Any, None
    if issubclass(origin, collections.abc.Set):
        return ContainerKind.SET, origin, unwrap_type(args[0])[0] if args else Any, None
    if issubclass(origin, collections.abc.Mapping):
        key_type = unwrap_type(args[0])[0] if args else str
        element = unwrap_type(args[1])[0] if len(args) > 1 else Any
        return ContainerKind.MAP, origin, element, key_type
    return ContainerKind.SINGLE, origin, None, None


def _storage_name(name: str, markers: tuple[Any, ...]) -> str:
    if any(isinstance(m, Id) for m in markers):
        return ID_KEY
    for marker_type in _NAMED_MARKERS:
        for marker in markers:
            if isinstance(marker, marker_type) and marker.name != IGNORED_FIELDNAME:
                return marker.name
    return name


def _concrete_type(origin: Any, markers: tuple[Any, ...]) -> Any:
    for marker_type in (Embedded, Property):
        for marker in markers:
            if isinstance(marker, marker_type) and marker.concrete_class is not None:
                return marker.concrete_class
    return origin


def _default_factories(cls: type) -> dict[str, Callable[[], Any]]:
    """Extract per-field default factories (dataclass, Pydantic, or plain)."""
    factories: dict[str, Callable[[], Any]] = {}

    # Pydantic model
    if _is_pydantic_model(cls):
        for name, info in cls.model_fields.items():  # type: ignore[attr-defined]
            if not info.is_required():
                factories[name] = lambda info=info: info.get_default(call_default_factory=True)
        return factories

    # Dataclass
    if dataclasses.is_dataclass(cls):
        for f in dataclasses.fields(cls):
            if f.default_factory is not dataclasses.MISSING:
                factories[f.name] = f.default_factory
            elif f.default is not dataclasses.MISSING:
                factories[f.name] = lambda value=f.default: value
        return factories

    # Plain class - class-level attribute values
    for klass in reversed(cls.__mro__):
        for name, value in vars(klass).items():
            if not name.startswith("_") and not callable(value):
                factories[name] = lambda value=value: value
    return factories


def _declared_properties(cls: type) -> dict[str, Any]:
    """Annotated attributes of cls and its bases, base classes first."""
    hints: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object or klass.__module__.split(".")[0] in ("pydantic", "typing"):
            continue
        try:
            hints.update(
                inspect.get_annotations(
                    klass,
                    eval_str=True,
                    locals={cls.__name__: cls, klass.__name__: klass},
                )
            )
        except NameError as e:
            raise MappingDeclarationError(cls.__name__, [f"unresolvable annotation: {e}"]) from e
    return {
        name: hint
        for name, hint in hints.items()
        if not name.startswith("_") and get_origin(hint) is not ClassVar and hint is not ClassVar
    }


def _find_entity(cls: type) -> tuple[Entity | None, type | None]:
    """Entity marker declared on cls or inherited from a base, with its owner."""
    for klass in cls.__mro__:
        for marker in class_markers(klass):
            if isinstance(marker, Entity):
                return marker, klass
    return None, None


def _build_field(
    name: str,
    hint: Any,
    default_factory: Callable[[], Any] | None,
) -> FieldDescriptor:
    declared, markers = unwrap_type(hint)
    kind, origin, element_type, key_type = classify_type(declared)
    concrete = _concrete_type(origin, markers)

    value_type = concrete if kind is ContainerKind.SINGLE else element_type
    is_reference = any(isinstance(m, Reference) for m in markers) or value_type is Key

    return FieldDescriptor(
        name=name,
        declared_type=declared,
        concrete_type=concrete,
        kind=kind,
        storage_name=_storage_name(name, markers),
        element_type=element_type,
        key_type=key_type,
        is_id=any(isinstance(m, Id) for m in markers),
        is_reference=is_reference,
        is_transient=any(isinstance(m, Transient) for m in markers),
        is_not_saved=any(isinstance(m, NotSaved) for m in markers),
        is_version=any(isinstance(m, Version) for m in markers),
        is_serialized=any(isinstance(m, Serialized) for m in markers),
        markers=markers,
        default_factory=default_factory,
    )


def _validate(
    cls: type,
    fields: list[FieldDescriptor],
    entity_marker: Entity | None,
) -> list[str]:
    """Collect every declaration violation of a class."""
    violations: list[str] = []

    for marker in class_markers(cls):
        if isinstance(marker, Embedded) and marker.name != IGNORED_FIELDNAME:
            violations.append(
                "@Embedded classes cannot specify a field name; this is only applicable on fields"
            )
        if isinstance(marker, Id):
            violations.append("@Id can only be placed on a field, not on a class")

    id_fields = [fd.name for fd in fields if fd.is_id]
    if len(id_fields) > 1:
        violations.append(f"more than one @Id field: {id_fields}")
    if entity_marker is not None and not id_fields:
        violations.append("@Entity classes must declare an @Id field")

    seen: dict[str, str] = {}
    for fd in fields:
        if fd.is_transient:
            continue
        if fd.storage_name in seen:
            violations.append(
                f"fields '{seen[fd.storage_name]}' and '{fd.name}' both map to "
                f"'{fd.storage_name}'"
            )
        else:
            seen[fd.storage_name] = fd.name

        if fd.has_marker(Reference) and fd.has_marker(Embedded):
            violations.append(f"field '{fd.name}' cannot be both @Reference and @Embedded")
        if fd.is_version and fd.concrete_type is not int:
            violations.append(f"@Version field '{fd.name}' must be an int")

        reference = fd.reference
        if reference is not None and reference.id_only and not _is_entity_type(fd.value_type):
            # Bare ids carry no collection, so the target type must name one
            violations.append(
                f"@Reference(id_only=True) field '{fd.name}' must target an @Entity class"
            )
        if _has_nested_markers(fd.declared_type):
            violations.append(
                f"field '{fd.name}' has mapping markers inside its type arguments; "
                "annotate the field itself"
            )

    return violations


def _is_entity_type(value_type: Any) -> bool:
    return isinstance(value_type, type) and _find_entity(value_type)[0] is not None


def _has_nested_markers(hint: Any) -> bool:
    for arg in get_args(hint):
        if get_origin(arg) is typing.Annotated and any(
            isinstance(m, _FIELD_MARKERS) for m in arg.__metadata__
        ):
            return True
        if _has_nested_markers(arg):
            return True
    return False


def build_type_descriptor(cls: type) -> TypeDescriptor:
    """Compile and validate the mapping of ``cls``.

    Raises:
        UnmappedTypeError: If ``cls`` is not a class.
        MappingDeclarationError: If the class carries malformed declarations.
    """
    if not isinstance(cls, type):
        raise UnmappedTypeError(repr(cls))

    defaults = _default_factories(cls)
    fields = [
        _build_field(name, hint, defaults.get(name))
        for name, hint in _declared_properties(cls).items()
    ]

    entity_marker, entity_owner = _find_entity(cls)
    violations = _validate(cls, fields, entity_marker)
    if violations:
        raise MappingDeclarationError(cls.__name__, violations)

    embedded_marker = next(
        (m for m in class_markers(cls) if isinstance(m, Embedded)),
        None,
    )
    collection_name = None
    if entity_marker is not None and entity_owner is not None:
        collection_name = entity_marker.collection or entity_owner.__name__

    supertype = next((base for base in cls.__mro__[1:] if is_mappable(base)), None)

    descriptor = TypeDescriptor(
        type=cls,
        fields=tuple(fields),
        id_field=next((fd for fd in fields if fd.is_id), None),
        collection_name=collection_name,
        entity=entity_marker,
        embedded=embedded_marker,
        supertype=supertype,
    )
    logger.debug(
        "Built descriptor for %s: %d fields, collection=%s",
        cls.__qualname__,
        len(fields),
        collection_name,
    )
    return descriptor
