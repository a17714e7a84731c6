"""
Example 01: Basic Mapping

This example maps a dataclass to a collection, saves it and reads it back
through the in-memory store.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated

from doc_mapper import Datastore, Embedded, Id, Property, StoreConfig, Version, embedded, entity


class Status(Enum):
    ACTIVE = 1
    RETIRED = 2


@embedded()
@dataclass
class Address:
    street: str = ""
    city: str = ""


@entity("users")
@dataclass
class User:
    id: Annotated[int | None, Id()] = None
    name: Annotated[str, Property("n")] = ""
    status: Status = Status.ACTIVE
    tags: list[str] = field(default_factory=list)
    address: Annotated[Address | None, Embedded()] = None
    version: Annotated[int, Version()] = 0


def main():
    config = StoreConfig(driver="memory", database="example")

    with Datastore.from_config(config) as datastore:
        # Validate the mapping up front
        datastore.map(User)

        print("=== Basic Mapping ===\n")

        alice = User(name="Alice", tags=["admin"], address=Address("Main St", "Oslo"))
        key = datastore.save(alice)
        print(f"Saved: {key}")
        print(f"Encoded document: {datastore.codec.encode(alice)}\n")

        datastore.save(User(name="Bob", status=Status.RETIRED))

        # get: load by identity
        user = datastore.get(User, alice.id)
        print(f"get result: {user}\n")

        # find: stream matches through a cursor
        with datastore.find(User, {"status": "RETIRED"}) as cursor:
            for user in cursor:
                print(f"  - retired: {user.name}")
        print()

        # Saving again bumps the version
        datastore.save(alice)
        print(f"Version after second save: {alice.version}")


if __name__ == "__main__":
    main()
