"""Unit tests for DocumentCodec."""

from __future__ import annotations

import pickle
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any

import pytest

from doc_mapper.core.exceptions import ConversionError, UnsavedReferenceError
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
    MapReference,
    SingleReference,
    Unresolved,
)


class Color(Enum):
    RED = 1
    GREEN = 2


@embedded()
@dataclass
class Shape:
    sides: int = 0


@embedded()
@dataclass
class Circle(Shape):
    radius: float = 0.0


@embedded()
@dataclass
class Address:
    street: str = ""
    city: str = ""


@entity("authors")
@dataclass
class Author:
    id: Annotated[int | None, Id()] = None
    name: str = ""


@entity("books", no_classname_stored=True)
@dataclass
class Book:
    id: Annotated[int | None, Id()] = None
    title: Annotated[str, Property("t")] = ""
    color: Color = Color.RED
    palette: dict[Color, int] = field(default_factory=dict)
    pages: dict[int, str] = field(default_factory=dict)
    tags: set[str] = field(default_factory=set)
    dims: tuple[int, ...] = ()
    shape: Shape | None = None
    shapes: list[Shape] = field(default_factory=list)
    address: Annotated[Address | None, Embedded("addr")] = None
    author: Annotated[Author | None, Reference()] = None
    coauthors: Annotated[list[Author], Reference()] = field(default_factory=list)
    by_role: Annotated[dict[str, Author], Reference()] = field(default_factory=dict)
    editor_id: Annotated[Author | None, Reference(id_only=True)] = None
    publisher: Key | None = None
    extra: Annotated[dict | None, Serialized()] = None
    cached: Annotated[str, Transient()] = "fresh"
    derived: Annotated[str, NotSaved()] = ""
    revision: Annotated[int, Version()] = 0
    note: str | None = None


@embedded()
@dataclass
class Point:
    x: int = 0
    y: int = 0


@entity("sketches")
@dataclass
class Sketch:
    id: Annotated[int | None, Id()] = None
    rings: list[list[Point]] = field(default_factory=list)
    layers: dict[str, list[Point]] = field(default_factory=dict)
    anything: Any = None
    loose: list[Any] = field(default_factory=list)
    meta: dict = field(default_factory=dict)


@entity("nodes")
@dataclass
class Node:
    id: Annotated[str | None, Id()] = None
    child: Node | None = None


@pytest.fixture
def codec(registry: MappingRegistry) -> DocumentCodec:
    registry.map(Author, Book, Shape, Circle)
    return DocumentCodec(registry)


class TestEncode:
    def test_id_and_property_names(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, title="Dune"))
        assert doc["_id"] == 1
        assert doc["t"] == "Dune"
        assert "title" not in doc

    def test_class_name_written(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Author(id=1, name="a"))
        assert doc["className"] == codec.registry.get(Author).class_name

    def test_no_classname_stored(self, codec: DocumentCodec) -> None:
        assert "className" not in codec.encode(Book(id=1))

    def test_enum_by_name(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, color=Color.GREEN, palette={Color.RED: 3}))
        assert doc["color"] == "GREEN"
        assert doc["palette"] == {"RED": 3}

    def test_map_keys_stringified(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, pages={1: "intro"}))
        assert doc["pages"] == {"1": "intro"}

    def test_set_and_tuple_as_lists(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, tags={"a"}, dims=(2, 3)))
        assert doc["tags"] == ["a"]
        assert doc["dims"] == [2, 3]

    def test_embedded_without_discriminator(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, address=Address("Main", "Oslo")))
        assert doc["addr"] == {"street": "Main", "city": "Oslo"}

    def test_embedded_subtype_gets_discriminator(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, shape=Circle(sides=0, radius=2.0)))
        assert doc["shape"]["className"] == codec.registry.get(Circle).class_name
        assert doc["shape"]["radius"] == 2.0

    def test_transient_and_not_saved_skipped(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, cached="x", derived="y"))
        assert "cached" not in doc
        assert "derived" not in doc

    def test_serialized(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, extra={"k": [1, 2]}))
        assert pickle.loads(doc["extra"]) == {"k": [1, 2]}

    def test_nulls_and_empties_skipped_by_default(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1))
        assert "note" not in doc
        assert "pages" not in doc
        assert "coauthors" not in doc

    def test_store_nulls_and_empties(self, registry: MappingRegistry) -> None:
        codec = DocumentCodec(registry, options=MapperOptions(store_nulls=True, store_empties=True))
        doc = codec.encode(Book(id=1))
        assert doc["note"] is None
        assert doc["pages"] == {}
        assert doc["coauthors"] == []

    def test_references_as_keys(self, codec: DocumentCodec) -> None:
        a, b = Author(id=1), Author(id=2)
        doc = codec.encode(Book(id=1, author=a, coauthors=[a, b], by_role={"lead": b}))
        assert doc["author"] == Key("authors", 1)
        assert doc["coauthors"] == [Key("authors", 1), Key("authors", 2)]
        assert doc["by_role"] == {"lead": Key("authors", 2)}

    def test_id_only_reference(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, editor_id=Author(id=9)))
        assert doc["editor_id"] == 9

    def test_key_field_passthrough(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Book(id=1, publisher=Key("publishers", "p1")))
        assert doc["publisher"] == Key("publishers", "p1")

    def test_unsaved_reference(self, codec: DocumentCodec) -> None:
        with pytest.raises(UnsavedReferenceError, match="author"):
            codec.encode(Book(id=1, author=Author(name="anon")))

    def test_unresolved_reference_skipped(self, codec: DocumentCodec) -> None:
        book = Book(id=1)
        book.author = SingleReference.unresolved(None, Author, "authors", 5)  # type: ignore[assignment]
        assert "author" not in codec.encode(book)

    def test_resolved_reference_encoded(self, codec: DocumentCodec) -> None:
        book = Book(id=1)
        book.coauthors = CollectionReference.wrap([Author(id=4)])  # type: ignore[assignment]
        assert codec.encode(book)["coauthors"] == [Key("authors", 4)]

    def test_identity_of(self, codec: DocumentCodec) -> None:
        assert codec.identity_of(Author(id=3)) == 3
        assert codec.identity_of(Address()) is None


class TestDecode:
    def test_round_trip_values(self, codec: DocumentCodec) -> None:
        book = Book(
            id=1,
            title="Dune",
            color=Color.GREEN,
            palette={Color.RED: 1},
            pages={3: "three"},
            tags={"x", "y"},
            dims=(1, 2),
            address=Address("Main", "Oslo"),
            shapes=[Shape(3), Circle(0, 1.5)],
            extra={"a": 1},
        )
        decoded = codec.decode(codec.encode(book), Book)
        assert decoded.title == "Dune"
        assert decoded.color is Color.GREEN
        assert decoded.palette == {Color.RED: 1}
        assert decoded.pages == {3: "three"}
        assert decoded.tags == {"x", "y"}
        assert decoded.dims == (1, 2)
        assert decoded.address == Address("Main", "Oslo")
        assert type(decoded.shapes[1]) is Circle
        assert decoded.shapes[1].radius == 1.5
        assert decoded.extra == {"a": 1}

    def test_missing_fields_get_defaults(self, codec: DocumentCodec) -> None:
        decoded = codec.decode({"_id": 1}, Book)
        assert decoded.title == ""
        assert decoded.pages == {}
        assert decoded.note is None

    def test_transient_reset_to_default(self, codec: DocumentCodec) -> None:
        decoded = codec.decode({"_id": 1, "cached": "stale"}, Book)
        assert decoded.cached == "fresh"

    def test_not_saved_is_loaded(self, codec: DocumentCodec) -> None:
        assert codec.decode({"_id": 1, "derived": "d"}, Book).derived == "d"

    def test_references_stay_unresolved(self, codec: DocumentCodec) -> None:
        doc = {
            "_id": 1,
            "author": Key("authors", 2),
            "coauthors": [Key("authors", 3)],
            "by_role": {"lead": Key("authors", 4)},
        }
        decoded = codec.decode(doc, Book)
        assert isinstance(decoded.author, SingleReference)
        assert isinstance(decoded.coauthors, CollectionReference)
        assert isinstance(decoded.by_role, MapReference)
        assert not decoded.author.is_resolved()
        assert decoded.coauthors.state == Unresolved(
            ids=[Key("authors", 3)], collections={"authors": (3,)}
        )

    def test_absent_reference_still_wrapped(self, codec: DocumentCodec) -> None:
        decoded = codec.decode({"_id": 1}, Book)
        assert isinstance(decoded.coauthors, CollectionReference)
        assert decoded.coauthors.get() == []
        assert decoded.author.get() is None

    def test_key_field_decoded_as_key(self, codec: DocumentCodec) -> None:
        decoded = codec.decode({"_id": 1, "publisher": Key("publishers", "p")}, Book)
        assert decoded.publisher == Key("publishers", "p")

    def test_discriminator_selects_subclass(self, codec: DocumentCodec) -> None:
        raw = {"sides": 0, "radius": 2.0, "className": codec.registry.get(Circle).class_name}
        assert type(codec.decode_value(raw, Shape)) is Circle

    def test_unrelated_discriminator_ignored(self, codec: DocumentCodec) -> None:
        raw = {"sides": 4, "className": codec.registry.get(Address).class_name}
        assert type(codec.decode_value(raw, Shape)) is Shape

    def test_discriminator_imported_when_unmapped(self, registry: MappingRegistry) -> None:
        codec = DocumentCodec(registry)
        raw = {"radius": 1.0, "className": f"{__name__}.Circle"}
        assert type(codec.decode(raw, Shape)) is Circle

    def test_bad_enum_name(self, codec: DocumentCodec) -> None:
        with pytest.raises(ConversionError, match="color"):
            codec.decode({"_id": 1, "color": "PURPLE"}, Book)

    def test_bad_map_key(self, codec: DocumentCodec) -> None:
        with pytest.raises(ConversionError, match="pages"):
            codec.decode({"_id": 1, "pages": {"one": "x"}}, Book)

    def test_bad_pickle(self, codec: DocumentCodec) -> None:
        with pytest.raises(ConversionError, match="extra"):
            codec.decode({"_id": 1, "extra": b"not a pickle"}, Book)

    def test_cache_returns_same_instance(self, codec: DocumentCodec) -> None:
        cache = IdentityCache()
        first = codec.decode({"_id": 1, "name": "a"}, Author, cache)
        second = codec.decode({"_id": 1, "name": "changed"}, Author, cache)
        assert first is second
        assert second.name == "a"

    def test_without_cache_instances_differ(self, codec: DocumentCodec) -> None:
        first = codec.decode({"_id": 1}, Author)
        assert codec.decode({"_id": 1}, Author) is not first

    def test_self_embedding_cycle(self, codec: DocumentCodec) -> None:
        doc = {"_id": "n1", "child": {"_id": "n1"}}
        node = codec.decode(doc, Node)
        assert node.child is node


class TestNestedValues:
    def test_nested_lists(self, codec: DocumentCodec) -> None:
        sketch = Sketch(id=1, rings=[[Point(0, 0), Point(1, 0)], [Point(2, 2)]])
        doc = codec.encode(sketch)
        assert doc["rings"] == [[{"x": 0, "y": 0}, {"x": 1, "y": 0}], [{"x": 2, "y": 2}]]
        decoded = codec.decode(doc, Sketch)
        assert decoded.rings == sketch.rings
        assert type(decoded.rings[1][0]) is Point

    def test_map_of_lists(self, codec: DocumentCodec) -> None:
        sketch = Sketch(id=1, layers={"top": [Point(1, 2)], "bottom": []})
        decoded = codec.decode(codec.encode(sketch), Sketch)
        assert decoded.layers == {"top": [Point(1, 2)], "bottom": []}

    def test_any_field_keeps_mapped_type(self, codec: DocumentCodec) -> None:
        doc = codec.encode(Sketch(id=1, anything=Point(3, 4)))
        assert doc["anything"]["className"] == codec.registry.get(Point).class_name
        decoded = codec.decode(doc, Sketch)
        assert decoded.anything == Point(3, 4)

    def test_untyped_containers(self, codec: DocumentCodec) -> None:
        sketch = Sketch(
            id=1,
            loose=[Point(1, 1), "label", 3],
            meta={"origin": Point(0, 0), "tags": ["a"]},
        )
        decoded = codec.decode(codec.encode(sketch), Sketch)
        assert decoded.loose == [Point(1, 1), "label", 3]
        assert decoded.meta == {"origin": Point(0, 0), "tags": ["a"]}

    def test_untyped_dict_without_discriminator_stays_dict(self, codec: DocumentCodec) -> None:
        decoded = codec.decode({"_id": 1, "anything": {"x": 1}}, Sketch)
        assert decoded.anything == {"x": 1}

    def test_unknown_discriminator_stays_dict(self, codec: DocumentCodec) -> None:
        raw = {"_id": 1, "anything": {"className": "nowhere.Missing", "x": 1}}
        assert codec.decode(raw, Sketch).anything == {"className": "nowhere.Missing", "x": 1}
