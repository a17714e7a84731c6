"""Mapper options."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class MapperOptions(BaseModel):
    """Controls how the codec writes documents.

    Attributes:
        store_nulls: Write ``None`` values instead of omitting the key.
        store_empties: Write empty lists and dicts instead of omitting the key.
    """

    model_config = ConfigDict(frozen=True)

    store_nulls: bool = False
    store_empties: bool = False
