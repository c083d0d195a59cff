"""Cursor views over collection records.

Cursors never own records, they only read them and forward commands to
the owning collection. A cursor keeps its position in plain instance
state, so one instance must be used by one caller at a time; create a
separate cursor for each concurrent iteration.
"""

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from fileserver.apps.files.exceptions import FilesNotFoundError
from fileserver.apps.files.infrastructure.store import FindOptions, Selector
from fileserver.apps.files.logic.hooks import Callback, deliver
from fileserver.apps.files.models import FileRecord

if TYPE_CHECKING:
    from fileserver.apps.files.logic.collection import FilesCollection

_ResultT = TypeVar('_ResultT')

_NO_SUCH_FILE = 'No such file'


class FileCursor:
    """Commands against exactly one record of a collection."""

    def __init__(
        self,
        record: FileRecord | None,
        collection: 'FilesCollection',
    ) -> None:
        """Initialize cursor.

        Args:
            record: Wrapped record, None when the lookup found nothing.
            collection: Owning collection.
        """
        self.record = record
        self.collection = collection

    def remove(self, callback: Callback | None = None) -> int | None:
        """Delete the record and every stored version.

        Args:
            callback: Optional error-first callback.

        Returns:
            Number of removed records.

        Raises:
            FilesNotFoundError: If the cursor wraps no record.
        """
        return deliver(callback, self._remove)

    async def aremove(self) -> int:
        """Async version of :meth:`remove`."""
        record = self._require_record()
        return await self.collection.aremove(record.id)

    def link(
        self,
        version: str = 'original',
        uri_base: str | None = None,
        callback: Callback | None = None,
    ) -> str | None:
        """Build a URL for one version of the record.

        Args:
            version: Version name.
            uri_base: Scheme and host for the URL.
            callback: Optional error-first callback.

        Returns:
            Absolute URL string.

        Raises:
            FilesNotFoundError: If the cursor wraps no record.
        """
        return deliver(callback, self._link, version, uri_base)

    def get(self, field: str | None = None) -> Any:
        """Return the record, or one of its fields."""
        if field is None or self.record is None:
            return self.record
        return getattr(self.record, field)

    def fetch(self) -> list[FileRecord]:
        """Return the record wrapped in a list, empty when absent."""
        return [] if self.record is None else [self.record]

    def _remove(self) -> int:
        return self.collection.remove(self._require_record().id)

    def _link(self, version: str, uri_base: str | None) -> str:
        return self.collection.link(self._require_record(), version, uri_base)

    def _require_record(self) -> FileRecord:
        if self.record is None:
            raise FilesNotFoundError(_NO_SUCH_FILE)
        return self.record


class FilesCursor:  # noqa: WPS214
    """Position-tracked navigation over the records matching a query.

    ``_current`` starts before the first record (-1). Only ``next`` and
    ``previous`` move it. Every other method reads the query fresh and
    leaves the position alone.
    """

    def __init__(
        self,
        selector: Selector,
        options: FindOptions | None,
        collection: 'FilesCollection',
    ) -> None:
        """Initialize cursor.

        Args:
            selector: Identifier or mapping of field lookups.
            options: Optional ``sort``, ``skip`` and ``limit``.
            collection: Owning collection.
        """
        self.selector = selector
        self.options = options or {}
        self.collection = collection
        self.cursor = collection.store.find(selector, self.options)
        self._current = -1

    def get(self) -> list[FileRecord]:
        """Return all matching records."""
        return list(self.cursor.all())

    async def aget(self) -> list[FileRecord]:
        """Async version of :meth:`get`."""
        return [record async for record in self.cursor.all()]

    def has_next(self) -> bool:
        """Whether a record exists after the current position."""
        return self._current + 1 < self.cursor.count()

    async def ahas_next(self) -> bool:
        """Async version of :meth:`has_next`."""
        return self._current + 1 < await self.cursor.acount()

    def next(self) -> FileRecord | None:  # noqa: A003
        """Move forward and return the record there, None past the end."""
        self._current += 1
        return self._record_at(self._current)

    async def anext(self) -> FileRecord | None:
        """Async version of :meth:`next`."""
        self._current += 1
        return await self._arecord_at(self._current)

    def has_previous(self) -> bool:
        """Whether a record exists before the current position."""
        return self._current > 0

    def previous(self) -> FileRecord | None:
        """Move back and return the record there."""
        self._current -= 1
        return self._record_at(self._current)

    async def aprevious(self) -> FileRecord | None:
        """Async version of :meth:`previous`."""
        self._current -= 1
        return await self._arecord_at(self._current)

    def fetch(self) -> list[FileRecord]:
        """Return matching records in order; never None."""
        return self.get() or []

    async def afetch(self) -> list[FileRecord]:
        """Async version of :meth:`fetch`."""
        return await self.aget() or []

    def first(self) -> FileRecord | None:
        return self.cursor.first()

    async def afirst(self) -> FileRecord | None:
        return await self.cursor.afirst()

    def last(self) -> FileRecord | None:
        if self.cursor.query.is_sliced:
            records = self.fetch()
            return records[-1] if records else None
        return self.cursor.last()

    async def alast(self) -> FileRecord | None:
        if self.cursor.query.is_sliced:
            records = await self.afetch()
            return records[-1] if records else None
        return await self.cursor.alast()

    def count(self) -> int:
        return self.cursor.count()

    async def acount(self) -> int:
        return await self.cursor.acount()

    def remove(self, callback: Callback | None = None) -> int | None:
        """Remove every record matching the query with its stored files.

        Args:
            callback: Optional error-first callback.

        Returns:
            Number of removed records.
        """
        return deliver(callback, self.collection.remove, self.selector)

    async def aremove(self) -> int:
        """Async version of :meth:`remove`."""
        return await self.collection.aremove(self.selector)

    def for_each(self, callback: Callable[[FileRecord, int], Any]) -> None:
        """Call ``callback(record, index)`` for every match in order."""
        for index, record in enumerate(self.cursor.all()):
            callback(record, index)

    async def afor_each(
        self,
        callback: Callable[[FileRecord, int], Awaitable[Any] | Any],
    ) -> None:
        """Async version of :meth:`for_each`; awaits async callbacks."""
        index = 0
        async for record in self.cursor.all():
            outcome = callback(record, index)
            if isinstance(outcome, Awaitable):
                await outcome
            index += 1

    def each(self) -> list[FileCursor]:
        """Wrap every match in a :class:`FileCursor`."""
        return [FileCursor(record, self.collection) for record in self.get()]

    def map(  # noqa: A003
        self,
        callback: Callable[[FileRecord, int], _ResultT],
    ) -> list[_ResultT]:
        """Collect ``callback(record, index)`` for every match."""
        return [
            callback(record, index)
            for index, record in enumerate(self.cursor.all())
        ]

    def _record_at(self, index: int) -> FileRecord | None:
        if index < 0:
            return None
        return next(iter(self.cursor.all()[index:index + 1]), None)

    async def _arecord_at(self, index: int) -> FileRecord | None:
        if index < 0:
            return None
        async for record in self.cursor.all()[index:index + 1]:
            return record
        return None
