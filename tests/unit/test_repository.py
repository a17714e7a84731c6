"""Unit tests for the Repository base class."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated
from unittest.mock import MagicMock

import pytest

from doc_mapper.core.exceptions import MappingDeclarationError
from doc_mapper.core.registry import MappingRegistry
from doc_mapper.mapping.annotations import Id, entity
from doc_mapper.repository.base import Repository


@entity("users")
@dataclass
class User:
    id: Annotated[int | None, Id()] = None
    name: str = ""


@entity()
@dataclass
class Anonymous:
    name: str = ""


@pytest.fixture
def datastore(registry: MappingRegistry) -> MagicMock:
    datastore = MagicMock()
    datastore.registry = registry
    return datastore


class TestRepository:
    def test_attributes(self, datastore: MagicMock) -> None:
        repo = Repository(datastore, User)
        assert repo.datastore is datastore
        assert repo.entity_class is User
        assert repo.descriptor.collection_name == "users"

    def test_invalid_mapping_fails_fast(self, datastore: MagicMock) -> None:
        with pytest.raises(MappingDeclarationError):
            Repository(datastore, Anonymous)

    def test_get_delegates(self, datastore: MagicMock) -> None:
        datastore.get.return_value = User(id=1)
        repo = Repository(datastore, User)
        assert repo.get(1) == User(id=1)
        datastore.get.assert_called_once_with(User, 1)

    def test_find_delegates(self, datastore: MagicMock) -> None:
        repo = Repository(datastore, User)
        repo.find({"name": "a"})
        datastore.find.assert_called_once_with(User, {"name": "a"})

    def test_list_drains_cursor(self, datastore: MagicMock) -> None:
        datastore.find.return_value.to_list.return_value = [User(id=1), User(id=2)]
        repo = Repository(datastore, User)
        assert len(repo.list()) == 2
        datastore.find.assert_called_once_with(User, None)

    def test_save_and_delete(self, datastore: MagicMock) -> None:
        repo = Repository(datastore, User)
        user = User(id=1)
        repo.save(user)
        repo.delete(user)
        datastore.save.assert_called_once_with(user)
        datastore.delete.assert_called_once_with(user)

    def test_subclass_query_methods(self, datastore: MagicMock) -> None:
        class UserRepo(Repository[User]):
            def by_name(self, name: str) -> User | None:
                return self.find_one({"name": name})

        repo = UserRepo(datastore, User)
        repo.by_name("alice")
        datastore.find_one.assert_called_once_with(User, {"name": "alice"})
