"""Store configuration and management.

StoreConfig is a Pydantic model for type-safe store config.
StoreManager uses the adapter protocol for the store handle lifecycle.
"""

from __future__ import annotations

import importlib
import logging
from contextlib import contextmanager
from typing import Any

from pydantic import BaseModel

from doc_mapper.core.enums import StoreBackend
from doc_mapper.core.exceptions import AdapterLoadError

logger = logging.getLogger(__name__)


class StoreConfig(BaseModel):
    """Configuration for document store connections."""

    driver: str
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str
    extra: dict[str, Any] = {}


# Adapter module mapping: backend → (module_path, class_name)
_ADAPTER_MAP: dict[StoreBackend, tuple[str, str]] = {
    StoreBackend.MEMORY: ("doc_mapper.adapters.memory", "MemoryAdapter"),
    StoreBackend.MONGODB: ("doc_mapper.adapters.mongodb", "MongoAdapter"),
}


def _load_adapter(driver: str) -> Any:
    """Load an adapter by driver name."""
    try:
        backend = StoreBackend(driver.lower())
    except ValueError:
        raise AdapterLoadError(f"Unsupported store driver: {driver}") from None

    module_path, cls_name = _ADAPTER_MAP[backend]
    try:
        module = importlib.import_module(module_path)
        return getattr(module, cls_name)()
    except (ImportError, AttributeError) as e:
        raise AdapterLoadError(f"Failed to load adapter for '{driver}': {e}") from e


class StoreManager:
    """Owns the adapter and the lazily opened store handle."""

    def __init__(self, config: StoreConfig, adapter: Any | None = None) -> None:
        self.config = config
        self._adapter = adapter if adapter is not None else _load_adapter(config.driver)
        self._handle: Any = None

    @property
    def adapter(self) -> Any:
        return self._adapter

    def open(self) -> Any:
        """Open the store handle if not already open."""
        if self._handle is None:
            self._handle = self._adapter.connect(self.config)
            logger.debug("Opened %s store '%s'", self.config.driver, self.config.database)
        return self._handle

    @property
    def handle(self) -> Any:
        return self.open()

    @contextmanager
    def session(self):  # type: ignore[no-untyped-def]
        """Yield the handle, closing it on exit."""
        handle = self.open()
        try:
            yield handle
        finally:
            self.close()

    def close(self) -> None:
        """Close the store handle."""
        if self._handle is not None:
            self._adapter.close(self._handle)
            self._handle = None
