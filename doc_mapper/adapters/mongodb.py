"""MongoDB adapter - pymongo (v4+).

Typed references are stored as ``DBRef`` and surface as ``Key`` on reads.
Driver failures are wrapped in StoreIOFailure.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from doc_mapper.core.connection import StoreConfig
from doc_mapper.core.exceptions import StoreIOFailure
from doc_mapper.mapping.annotations import ID_KEY, Key


def _to_bson(value: Any) -> Any:
    """Replace Key values with DBRef, recursively."""
    from bson import DBRef

    if isinstance(value, Key):
        return DBRef(value.collection, _to_bson(value.id))
    if isinstance(value, dict):
        return {k: _to_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_bson(v) for v in value]
    return value


def _from_bson(value: Any) -> Any:
    """Replace DBRef values with Key, recursively."""
    from bson import DBRef

    if isinstance(value, DBRef):
        return Key(value.collection, _from_bson(value.id))
    if isinstance(value, dict):
        return {k: _from_bson(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_bson(v) for v in value]
    return value


class MongoCursor:
    """Raw cursor over a pymongo cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    def __iter__(self) -> MongoCursor:
        return self

    def __next__(self) -> dict[str, Any]:
        from pymongo.errors import PyMongoError

        try:
            document = next(self._cursor)
        except PyMongoError as e:
            raise StoreIOFailure(str(e)) from e
        return _from_bson(dict(document))

    def close(self) -> None:
        self._cursor.close()


class MongoAdapter:
    """Document adapter using pymongo."""

    def connect(self, config: StoreConfig) -> Any:
        import pymongo

        client = pymongo.MongoClient(
            host=config.host,
            port=config.port,
            username=config.user,
            password=config.password,
            **config.extra,
        )
        return client[config.database]

    def close(self, handle: Any) -> None:
        handle.client.close()

    def execute_query(
        self,
        handle: Any,
        collection: str,
        filter: dict[str, Any] | None = None,
    ) -> MongoCursor:
        from pymongo.errors import PyMongoError

        try:
            return MongoCursor(handle[collection].find(_to_bson(filter or {})))
        except PyMongoError as e:
            raise StoreIOFailure(str(e)) from e

    def find_by_ids_in(self, handle: Any, collection: str, ids: Iterable[Any]) -> MongoCursor:
        return self.execute_query(handle, collection, {ID_KEY: {"$in": list(ids)}})

    def save(self, handle: Any, collection: str, document: dict[str, Any]) -> Any:
        from pymongo.errors import PyMongoError

        document = _to_bson(document)
        try:
            if document.get(ID_KEY) is None:
                document.pop(ID_KEY, None)
                return handle[collection].insert_one(document).inserted_id
            handle[collection].replace_one({ID_KEY: document[ID_KEY]}, document, upsert=True)
        except PyMongoError as e:
            raise StoreIOFailure(str(e)) from e
        return document[ID_KEY]

    def delete(self, handle: Any, collection: str, filter: dict[str, Any]) -> int:
        from pymongo.errors import PyMongoError

        try:
            return int(handle[collection].delete_many(_to_bson(filter)).deleted_count)
        except PyMongoError as e:
            raise StoreIOFailure(str(e)) from e
