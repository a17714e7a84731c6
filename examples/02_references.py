"""
Example 02: Lazy References

This example stores references between collections and shows that they are
only loaded on first access, with one query per target collection.
"""

from dataclasses import dataclass, field
from typing import Annotated, Any

from doc_mapper import Datastore, Id, Reference, StoreConfig, entity


@entity("authors")
@dataclass
class Author:
    id: Annotated[int | None, Id()] = None
    name: str = ""


@entity("publishers")
@dataclass
class Publisher:
    id: Annotated[int | None, Id()] = None
    name: str = ""


@entity("books")
@dataclass
class Book:
    id: Annotated[int | None, Id()] = None
    title: str = ""
    authors: Annotated[list[Author], Reference()] = field(default_factory=list)
    roles: Annotated[dict[str, Author], Reference()] = field(default_factory=dict)
    # Mixed targets: each element carries its own collection
    credits: Annotated[list[Any], Reference()] = field(default_factory=list)


def main():
    config = StoreConfig(driver="memory", database="example")

    with Datastore.from_config(config) as datastore:
        datastore.map(Author, Publisher, Book)

        ann, bob = Author(name="Ann"), Author(name="Bob")
        acme = Publisher(name="Acme")
        datastore.save_all([ann, bob, acme])

        datastore.save(
            Book(
                title="Dune",
                authors=[bob, ann],
                roles={"lead": ann},
                credits=[acme, ann],
            )
        )

        print("=== Lazy References ===\n")

        book = datastore.find_one(Book)
        print(f"Before access: {book.authors!r}")
        print(f"authors: {[a.name for a in book.authors.get()]}")
        roles = {role: author.name for role, author in book.roles.get().items()}
        print(f"roles: {roles}")
        print(f"credits: {[c.name for c in book.credits.get()]}\n")

        # A deleted target is dropped from the resolved value
        datastore.delete(bob)
        book = datastore.find_one(Book)
        print(f"authors after deleting Bob: {[a.name for a in book.authors.get()]}")


if __name__ == "__main__":
    main()
