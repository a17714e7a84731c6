"""Unit tests for StoreConfig, StoreManager and MapperOptions."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from doc_mapper.adapters.memory import MemoryAdapter, MemoryStore
from doc_mapper.core.connection import StoreConfig, StoreManager, _load_adapter
from doc_mapper.core.enums import StoreBackend
from doc_mapper.core.exceptions import AdapterLoadError
from doc_mapper.mapping.options import MapperOptions


class TestStoreConfig:
    def test_minimal(self) -> None:
        config = StoreConfig(driver="memory", database="app")
        assert config.host is None
        assert config.extra == {}

    def test_database_required(self) -> None:
        with pytest.raises(ValidationError):
            StoreConfig(driver="memory")  # type: ignore[call-arg]

    def test_port_coerced(self) -> None:
        config = StoreConfig(driver="mongodb", database="app", host="db", port="27017")  # type: ignore[arg-type]
        assert config.port == 27017

    def test_backend_values_match_drivers(self) -> None:
        assert {b.value for b in StoreBackend} == {"memory", "mongodb"}


class TestLoadAdapter:
    def test_memory(self) -> None:
        assert isinstance(_load_adapter("memory"), MemoryAdapter)

    def test_case_insensitive(self) -> None:
        assert isinstance(_load_adapter("MEMORY"), MemoryAdapter)

    def test_unsupported_driver(self) -> None:
        with pytest.raises(AdapterLoadError, match="Unsupported store driver"):
            _load_adapter("couchdb")


class TestStoreManager:
    def test_lazy_open(self, memory_config: StoreConfig) -> None:
        adapter = MagicMock()
        manager = StoreManager(memory_config, adapter=adapter)
        adapter.connect.assert_not_called()
        handle = manager.handle
        assert manager.handle is handle
        adapter.connect.assert_called_once_with(memory_config)

    def test_close(self, memory_config: StoreConfig) -> None:
        manager = StoreManager(memory_config)
        store = manager.open()
        assert isinstance(store, MemoryStore)
        manager.close()
        assert store.closed
        assert manager.open() is not store

    def test_close_without_open(self, memory_config: StoreConfig) -> None:
        adapter = MagicMock()
        StoreManager(memory_config, adapter=adapter).close()
        adapter.close.assert_not_called()

    def test_session(self, memory_config: StoreConfig) -> None:
        manager = StoreManager(memory_config)
        with manager.session() as store:
            assert not store.closed
        assert store.closed


class TestMapperOptions:
    def test_defaults(self) -> None:
        options = MapperOptions()
        assert options.store_nulls is False
        assert options.store_empties is False

    def test_frozen(self) -> None:
        options = MapperOptions()
        with pytest.raises(ValidationError):
            options.store_nulls = True  # type: ignore[misc]
