"""
Example 03: Repository Pattern

This example wraps data access for one entity class in a Repository subclass.
"""

from dataclasses import dataclass
from typing import Annotated

from doc_mapper import Datastore, Id, StoreConfig, entity
from doc_mapper.repository import Repository


@entity("products")
@dataclass
class Product:
    id: Annotated[int | None, Id()] = None
    sku: str = ""
    price: float = 0.0


class ProductRepository(Repository[Product]):
    def by_sku(self, sku: str) -> Product | None:
        return self.find_one({"sku": sku})

    def in_skus(self, skus: list[str]) -> list[Product]:
        return self.list({"sku": {"$in": skus}})


def main():
    config = StoreConfig(driver="memory", database="example")

    with Datastore.from_config(config) as datastore:
        repo = ProductRepository(datastore, Product)

        for sku, price in [("A-1", 9.5), ("B-2", 12.0), ("C-3", 3.25)]:
            repo.save(Product(sku=sku, price=price))

        print("=== Repository Pattern ===\n")
        print(f"by_sku: {repo.by_sku('B-2')}")
        print(f"in_skus: {[p.sku for p in repo.in_skus(['A-1', 'C-3'])]}")

        repo.delete(repo.by_sku("A-1"))
        print(f"remaining: {[p.sku for p in repo.list()]}")


if __name__ == "__main__":
    main()
