"""DocMapper exception hierarchy.

All exceptions are DocMapper-specific. Raw driver exceptions are never
exposed to callers; adapters wrap them in StoreIOFailure.
"""

from __future__ import annotations


class DocMapperError(Exception):
    """Base exception for all DocMapper errors."""


# --- Mapping ---


class MappingError(DocMapperError):
    """Base for mapping errors."""


class MappingDeclarationError(MappingError):
    """Raised when a class carries malformed mapping declarations.

    Collects every violation found for the class so they can be fixed
    in one pass.
    """

    def __init__(self, class_name: str, violations: list[str]) -> None:
        self.class_name = class_name
        self.violations = violations
        super().__init__(f"Invalid mapping for {class_name}: {'; '.join(violations)}")


class UnmappedTypeError(MappingError):
    """Raised when a class cannot be mapped to documents."""

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Type is not mappable: '{type_name}'")


class UnmappedCollectionError(MappingError):
    """Raised when a collection name has no registered class."""

    def __init__(self, collection: str) -> None:
        self.collection = collection
        super().__init__(f"Collection '{collection}' is not mapped to a class")


class UnsavedReferenceError(MappingError):
    """Raised when encoding a reference to an entity that has no identity yet."""

    def __init__(self, class_name: str, field_name: str) -> None:
        self.class_name = class_name
        self.field_name = field_name
        super().__init__(
            f"Cannot reference an unsaved {class_name} from field '{field_name}' (identity is None)"
        )


class DetachedReferenceError(MappingError):
    """Raised when an unresolved reference has no datastore to resolve against."""


class ConversionError(MappingError):
    """Raised when a stored value cannot be converted to the declared type."""

    def __init__(self, field_name: str, detail: str) -> None:
        self.field_name = field_name
        super().__init__(f"Cannot convert value of '{field_name}': {detail}")


# --- Cursor ---


class CursorError(DocMapperError):
    """Base for cursor errors."""


class ExhaustedIteration(CursorError):
    """Raised when advancing a cursor past its end or after close()."""

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name
        super().__init__(f"Cursor over {type_name} has no more elements")


# --- Store ---


class StoreError(DocMapperError):
    """Base for store adapter errors."""


class StoreIOFailure(StoreError):
    """Raised on network or protocol failures from the document store."""


class AdapterLoadError(StoreError):
    """Raised when a store adapter cannot be loaded."""
