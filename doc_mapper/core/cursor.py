"""Mapped cursor - lazy, single-pass decoding of a raw document stream."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from doc_mapper.core.exceptions import ExhaustedIteration
from doc_mapper.mapping.cache import IdentityCache

if TYPE_CHECKING:
    from doc_mapper.adapters.protocol import RawCursor
    from doc_mapper.mapping.codec import DocumentCodec

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMPTY = object()


class MappedCursor(Generic[T]):
    """Forward-only cursor that decodes each raw document into ``target_class``.

    One IdentityCache is shared by every document the cursor yields, so
    repeated identities in one result share instances. The raw stream is
    closed on exhaustion, on :meth:`close`, and when decoding raises.

    Usage::

        with datastore.find(Person, {"name": "alice"}) as cursor:
            for person in cursor:
                ...
    """

    def __init__(
        self,
        raw: RawCursor,
        codec: DocumentCodec,
        target_class: type[T],
        cache: IdentityCache | None = None,
    ) -> None:
        self._raw = raw
        self._codec = codec
        self._target_class = target_class
        self._cache = cache if cache is not None else IdentityCache()
        self._buffered: Any = _EMPTY
        self._closed = False

    @property
    def cache(self) -> IdentityCache:
        return self._cache

    @property
    def closed(self) -> bool:
        return self._closed

    def has_next(self) -> bool:
        """Check whether another document is available, pulling one if needed."""
        if self._closed:
            return False
        if self._buffered is _EMPTY:
            try:
                self._buffered = next(self._raw)
            except StopIteration:
                self.close()
                return False
            except BaseException:
                self.close()
                raise
        return True

    def next(self) -> T:
        """Decode and return the next document.

        Raises:
            ExhaustedIteration: If the cursor is exhausted or closed.
        """
        if not self.has_next():
            raise ExhaustedIteration(self._target_class.__name__)
        document: Mapping[str, Any] = self._buffered
        self._buffered = _EMPTY
        try:
            return self._codec.decode(document, self._target_class, self._cache)  # type: ignore[no-any-return]
        except BaseException:
            self.close()
            raise

    def try_next(self) -> T | None:
        """Return the next instance, or None when exhausted."""
        return self.next() if self.has_next() else None

    def to_list(self) -> list[T]:
        """Drain the cursor into a list."""
        with self:
            return list(self)

    def close(self) -> None:
        """Release the underlying stream. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffered = _EMPTY
        try:
            self._raw.close()
        finally:
            logger.debug(
                "Closed cursor over %s (cached entities: %d)",
                self._target_class.__name__,
                len(self._cache),
            )

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        if not self.has_next():
            raise StopIteration
        return self.next()

    def __enter__(self) -> MappedCursor[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()
