"""Mapping and backend enumerations."""

from __future__ import annotations

from enum import Enum


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    MONGODB = "mongodb"


class ContainerKind(Enum):
    """Semantic container kind of a mapped field."""

    SINGLE = "single"
    ARRAY = "array"
    LIST = "list"
    SET = "set"
    MAP = "map"
