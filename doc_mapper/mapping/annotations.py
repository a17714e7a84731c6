"""Mapping markers.

Field markers are attached with ``typing.Annotated``::

    @entity("people")
    @dataclass
    class Person:
        id: Annotated[int | None, Id()] = None
        name: Annotated[str, Property("n")] = ""
        friends: Annotated[list[Person], Reference()] = field(default_factory=list)

Class markers are attached with the :func:`entity` and :func:`embedded`
decorators and stored in ``__mapping_markers__``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, TypeVar

C = TypeVar("C", bound=type)

ID_KEY = "_id"
CLASS_NAME_KEY = "className"

# Sentinel meaning "no explicit name given"
IGNORED_FIELDNAME = "."


@dataclass(frozen=True)
class Id:
    """Marks the identity field. Always stored under ``_id``."""


@dataclass(frozen=True)
class Property:
    """Explicit storage name and/or concrete implementation class."""

    name: str = IGNORED_FIELDNAME
    concrete_class: type | None = None


@dataclass(frozen=True)
class Reference:
    """Marks a field that points at documents in other collections.

    With ``id_only`` the bare identity is stored instead of a :class:`Key`,
    which loses the target collection for heterogeneous containers.
    """

    name: str = IGNORED_FIELDNAME
    id_only: bool = False


@dataclass(frozen=True)
class Embedded:
    """Marks a nested document. On a class it may not declare a name."""

    name: str = IGNORED_FIELDNAME
    concrete_class: type | None = None


@dataclass(frozen=True)
class Serialized:
    """Stores the value as pickled bytes."""

    name: str = IGNORED_FIELDNAME


@dataclass(frozen=True)
class Version:
    """Integer field incremented on every save."""

    name: str = IGNORED_FIELDNAME


@dataclass(frozen=True)
class Transient:
    """Field is neither saved nor loaded."""


@dataclass(frozen=True)
class NotSaved:
    """Field is loaded but never saved."""


@dataclass(frozen=True)
class Entity:
    """Top-level document class stored in its own collection."""

    collection: str | None = None
    no_classname_stored: bool = False


@dataclass(frozen=True)
class Key:
    """Typed reference to a document: target collection plus identity."""

    collection: str
    id: Any


def _add_class_marker(cls: C, marker: Any) -> C:
    # Only markers declared on cls itself, not inherited ones
    own = cls.__dict__.get("__mapping_markers__", ())
    cls.__mapping_markers__ = (*own, marker)  # type: ignore[attr-defined]
    return cls


def entity(
    collection: str | None = None, *, no_classname_stored: bool = False
) -> Callable[[C], C]:
    """Class decorator declaring a top-level entity.

    Args:
        collection: Storage collection name. Defaults to the class name.
        no_classname_stored: Skip writing the ``className`` discriminator.
    """

    def decorate(cls: C) -> C:
        return _add_class_marker(
            cls, Entity(collection=collection, no_classname_stored=no_classname_stored)
        )

    return decorate


def embedded(name: str = IGNORED_FIELDNAME) -> Callable[[C], C]:
    """Class decorator declaring an embeddable value class.

    Passing ``name`` is a declaration error reported when the class is mapped:
    storage names belong on fields.
    """

    def decorate(cls: C) -> C:
        return _add_class_marker(cls, Embedded(name=name))

    return decorate


def class_markers(cls: type) -> tuple[Any, ...]:
    """Markers declared directly on ``cls``."""
    return tuple(cls.__dict__.get("__mapping_markers__", ()))
