"""Document codec.

Converts mapped instances to documents and back using TypeDescriptors.
Decoding never touches the store: reference fields become unresolved
reference objects that load on first access.
"""

from __future__ import annotations

import importlib
import inspect
import pickle
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, get_origin

from doc_mapper.core.enums import ContainerKind
from doc_mapper.core.exceptions import ConversionError, UnsavedReferenceError
from doc_mapper.mapping.annotations import CLASS_NAME_KEY, ID_KEY, Key
from doc_mapper.mapping.builder import classify_type, is_mappable, unwrap_type
from doc_mapper.mapping.cache import IdentityCache
from doc_mapper.mapping.descriptor import FieldDescriptor, TypeDescriptor
from doc_mapper.mapping.options import MapperOptions
from doc_mapper.mapping.reference import (
    CollectionReference,
    DocumentReference,
    MapReference,
    ReferenceFetcher,
    SingleReference,
    Unresolved,
)

if TYPE_CHECKING:
    from doc_mapper.core.registry import MappingRegistry

_MISSING = object()


def _instantiate(cls: type) -> Any:
    """Create an empty instance without running validation or __init__."""
    if hasattr(cls, "model_construct"):
        return cls.model_construct()
    return cls.__new__(cls)


def _is_empty(value: Any) -> bool:
    return isinstance(value, (list, dict)) and not value


def _import_class(class_name: str) -> type | None:
    module_name, _, qualname = class_name.rpartition(".")
    if not module_name:
        return None
    try:
        target: Any = importlib.import_module(module_name)
        for part in qualname.split("."):
            target = getattr(target, part)
    except (ImportError, AttributeError):
        return None
    return target if isinstance(target, type) else None


def _container_factory(kind: ContainerKind, concrete: Any) -> Callable[[list[Any]], Any]:
    """Constructor building the declared container from a list of values."""
    instantiable = isinstance(concrete, type) and not inspect.isabstract(concrete)
    if kind is ContainerKind.ARRAY:
        return tuple
    if kind is ContainerKind.SET:
        return concrete if instantiable else set
    if kind is ContainerKind.MAP:
        return concrete if instantiable else dict
    return concrete if instantiable else list


def _element_type(declared_type: Any) -> Any:
    """Element type of a generic container annotation, else None."""
    if get_origin(declared_type) is None:
        return None
    return classify_type(declared_type)[2]


class DocumentCodec:
    """Encodes instances to documents and decodes documents to instances.

    Args:
        registry: Registry supplying the TypeDescriptors.
        datastore: Owner handed to decoded references for later resolution.
            Without one, decoded references cannot load.
        options: Write options.
    """

    def __init__(
        self,
        registry: MappingRegistry,
        datastore: ReferenceFetcher | None = None,
        options: MapperOptions | None = None,
    ) -> None:
        self._registry = registry
        self._datastore = datastore
        self._options = options or MapperOptions()

    @property
    def registry(self) -> MappingRegistry:
        return self._registry

    @property
    def options(self) -> MapperOptions:
        return self._options

    # --- Encoding ---

    def encode(self, instance: Any, descriptor: TypeDescriptor | None = None) -> dict[str, Any]:
        """Encode a mapped instance to a document."""
        descriptor = descriptor or self._registry.get(type(instance))
        return self._encode_document(instance, descriptor, descriptor.stores_class_name)

    def _encode_document(
        self,
        instance: Any,
        descriptor: TypeDescriptor,
        write_class_name: bool,
    ) -> dict[str, Any]:
        document: dict[str, Any] = {}
        if descriptor.id_field is not None:
            identity = self.identity_of(instance, descriptor)
            if identity is not None:
                document[ID_KEY] = identity
        if write_class_name:
            document[CLASS_NAME_KEY] = descriptor.class_name

        for fd in descriptor.fields:
            if fd.is_id or fd.is_transient or fd.is_not_saved:
                continue
            value = fd.get_value(instance)
            if isinstance(value, DocumentReference) and not value.is_resolved():
                # Never loaded, so nothing changed: leave the stored ids alone
                continue
            encoded = self._encode_field(fd, value)
            if encoded is None and not self._options.store_nulls:
                continue
            if _is_empty(encoded) and not self._options.store_empties:
                continue
            document[fd.storage_name] = encoded
        return document

    def _encode_field(self, fd: FieldDescriptor, value: Any) -> Any:
        if value is None:
            return None
        if fd.is_serialized:
            return pickle.dumps(value)
        if fd.is_reference:
            if isinstance(value, DocumentReference):
                return value.encode(self, fd)
            return self.encode_reference(fd, value)
        if fd.is_map:
            return {
                self._encode_map_key(k): self.encode_value(v, fd.element_type)
                for k, v in value.items()
            }
        if fd.is_multiple_values:
            return [self.encode_value(v, fd.element_type) for v in value]
        return self.encode_value(value, fd.concrete_type)

    def encode_value(self, value: Any, declared_type: Any = None) -> Any:
        """Encode one value by its runtime type."""
        if value is None or isinstance(value, Key):
            return value
        if isinstance(value, Enum):
            return value.name
        if is_mappable(type(value)):
            descriptor = self._registry.get(type(value))
            # Subtypes of the declared type carry a discriminator
            return self._encode_document(value, descriptor, type(value) is not declared_type)
        element = _element_type(declared_type)
        if isinstance(value, Mapping):
            return {
                self._encode_map_key(k): self.encode_value(v, element) for k, v in value.items()
            }
        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.encode_value(v, element) for v in value]
        return value

    def _encode_map_key(self, key: Any) -> str:
        if isinstance(key, Enum):
            return key.name
        return key if isinstance(key, str) else str(key)

    def encode_reference(self, fd: FieldDescriptor, value: Any) -> Any:
        """Raw identities of a referenced entity, list, or mapping of entities."""
        if value is None:
            return None
        if fd.is_map:
            return {self._encode_map_key(k): self.wrap_reference(fd, v) for k, v in value.items()}
        if fd.is_multiple_values:
            return [self.wrap_reference(fd, v) for v in value]
        return self.wrap_reference(fd, value)

    def encode_retained_ids(self, fd: FieldDescriptor, reference: DocumentReference[Any]) -> Any:
        """Stored form of the raw ids held by a never-loaded reference."""
        state = reference.state
        if not isinstance(state, Unresolved):
            return None
        if fd.is_map and isinstance(state.ids, Mapping):
            return {self._encode_map_key(k): v for k, v in state.ids.items()}
        return state.ids

    def wrap_reference(self, fd: FieldDescriptor, entity: Any) -> Any:
        """Key (or bare id for ``id_only`` references) pointing at ``entity``.

        Raises:
            UnsavedReferenceError: If ``entity`` has no identity yet.
        """
        if entity is None or isinstance(entity, Key):
            return entity
        identity = self.identity_of(entity)
        if identity is None:
            raise UnsavedReferenceError(type(entity).__name__, fd.name)
        marker = fd.reference
        if marker is not None and marker.id_only:
            return identity
        return Key(self._registry.collection_name(type(entity)), identity)

    def identity_of(self, instance: Any, descriptor: TypeDescriptor | None = None) -> Any:
        """Encoded identity of ``instance``, as stored under ``_id``."""
        descriptor = descriptor or self._registry.get(type(instance))
        if descriptor.id_field is None:
            return None
        return self.encode_value(
            descriptor.id_field.get_value(instance),
            descriptor.id_field.concrete_type,
        )

    # --- Decoding ---

    def decode(
        self,
        document: Mapping[str, Any],
        cls: type,
        cache: IdentityCache | None = None,
    ) -> Any:
        """Decode a document into an instance of ``cls`` (or a mapped subclass).

        An instance already decoded for the same identity in ``cache`` is
        returned as-is. New instances are cached before their fields are
        populated, so cycles resolve to the in-progress instance.
        """
        cache = cache if cache is not None else IdentityCache()
        descriptor = self._registry.get(self._concrete_class(document, cls))

        identity = document.get(ID_KEY) if descriptor.id_field is not None else None
        if identity is not None:
            cached = cache.get(descriptor.type, identity)
            if cached is not None:
                return cached

        instance = _instantiate(descriptor.type)
        if identity is not None:
            cache.put(descriptor.type, identity, instance)

        for fd in descriptor.fields:
            self._populate(instance, fd, document, cache)
        return instance

    def _concrete_class(self, document: Mapping[str, Any], cls: type) -> type:
        class_name = document.get(CLASS_NAME_KEY)
        if not isinstance(class_name, str):
            return cls
        candidate = self._registry.class_for_name(class_name) or _import_class(class_name)
        if candidate is not None and issubclass(candidate, cls):
            return candidate
        return cls

    def _populate(
        self,
        instance: Any,
        fd: FieldDescriptor,
        document: Mapping[str, Any],
        cache: IdentityCache,
    ) -> None:
        if fd.is_transient:
            fd.set_value(instance, fd.default())
            return

        raw = document.get(fd.storage_name, _MISSING)
        if fd.is_reference and fd.value_type is not Key:
            fd.set_value(instance, self._decode_reference(fd, None if raw is _MISSING else raw))
            return
        if raw is _MISSING:
            fd.set_value(instance, fd.default())
            return
        fd.set_value(instance, self._decode_field(fd, raw, cache))

    def _decode_reference(self, fd: FieldDescriptor, raw: Any) -> DocumentReference[Any]:
        target = fd.value_type if is_mappable(fd.value_type) else None
        collection = self._registry.get(target).collection_name if target is not None else None
        if fd.is_map:
            if isinstance(raw, Mapping):
                try:
                    raw = {self._decode_map_key(k, fd.key_type): v for k, v in raw.items()}
                except (KeyError, ValueError) as e:
                    raise ConversionError(fd.name, str(e)) from e
            return MapReference.unresolved(self._datastore, target, collection, raw)
        if fd.is_multiple_values:
            container = _container_factory(fd.kind, fd.concrete_type)
            return CollectionReference.unresolved(
                self._datastore, target, collection, raw, container=container
            )
        return SingleReference.unresolved(self._datastore, target, collection, raw)

    def _decode_field(self, fd: FieldDescriptor, raw: Any, cache: IdentityCache) -> Any:
        if raw is None:
            return None
        if fd.is_serialized:
            try:
                return pickle.loads(raw)
            except (pickle.UnpicklingError, TypeError, ValueError, EOFError, AttributeError) as e:
                raise ConversionError(fd.name, str(e)) from e
        try:
            if fd.is_multiple_values:
                return self._decode_container(
                    raw, fd.kind, fd.concrete_type, fd.element_type, fd.key_type, cache
                )
            return self.decode_value(raw, fd.concrete_type, cache)
        except (KeyError, ValueError) as e:
            raise ConversionError(fd.name, str(e)) from e

    def _decode_container(
        self,
        raw: Any,
        kind: ContainerKind,
        concrete: Any,
        element_type: Any,
        key_type: Any,
        cache: IdentityCache | None,
    ) -> Any:
        factory = _container_factory(kind, concrete)
        if kind is ContainerKind.MAP:
            if not isinstance(raw, Mapping):
                return raw
            return factory(
                [
                    (self._decode_map_key(k, key_type), self.decode_value(v, element_type, cache))
                    for k, v in raw.items()
                ]
            )
        if not isinstance(raw, list):
            return raw
        return factory([self.decode_value(v, element_type, cache) for v in raw])

    def _decode_map_key(self, key: Any, key_type: Any) -> Any:
        if not isinstance(key_type, type) or key_type is str or isinstance(key, key_type):
            return key
        if issubclass(key_type, Enum):
            return key_type[key]
        return key_type(key)

    def decode_value(self, raw: Any, value_type: Any, cache: IdentityCache | None = None) -> Any:
        """Decode one stored value into ``value_type``.

        Generic containers are decoded element-wise. Without a usable type,
        mappings carrying a ``className`` decode into that class.
        """
        if raw is None:
            return None
        value_type = unwrap_type(value_type)[0]
        if get_origin(value_type) is not None:
            kind, origin, element_type, key_type = classify_type(value_type)
            if kind is not ContainerKind.SINGLE:
                return self._decode_container(raw, kind, origin, element_type, key_type, cache)
            value_type = origin
        if value_type is Any or value_type is object or not isinstance(value_type, type):
            return self._decode_untyped(raw, cache)
        if issubclass(value_type, Enum):
            return raw if isinstance(raw, value_type) else value_type[raw]
        if is_mappable(value_type) and isinstance(raw, Mapping):
            return self.decode(raw, value_type, cache)
        return raw

    def _decode_untyped(self, raw: Any, cache: IdentityCache | None) -> Any:
        if isinstance(raw, Mapping):
            class_name = raw.get(CLASS_NAME_KEY)
            if isinstance(class_name, str):
                cls = self._registry.class_for_name(class_name) or _import_class(class_name)
                if cls is not None and is_mappable(cls):
                    return self.decode(raw, cls, cache)
            return {k: self._decode_untyped(v, cache) for k, v in raw.items()}
        if isinstance(raw, list):
            return [self._decode_untyped(v, cache) for v in raw]
        return raw
