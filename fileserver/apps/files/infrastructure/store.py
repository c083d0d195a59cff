"""Metadata store adapter over the Django ORM.

Upload, download and cursor logic only talk to :class:`MetadataStore`,
never to model managers directly. A store is bound to one model and one
collection name; every query it builds is scoped to that collection.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Generic, TypedDict, TypeVar

from django.db import models
from django.db.models import QuerySet

logger = logging.getLogger(__name__)

ModelT = TypeVar('ModelT', bound=models.Model)

#: Either an identifier or a mapping of Django field lookups
Selector = str | Mapping[str, Any] | None


class FindOptions(TypedDict, total=False):
    """Options accepted by :meth:`MetadataStore.find`."""

    sort: Sequence[str]
    skip: int
    limit: int


class MetadataStore(Generic[ModelT]):  # noqa: WPS214
    """Narrow CRUD-plus-cursor interface over one Django model."""

    def __init__(
        self,
        model: type[ModelT],
        collection_name: str,
        id_field: str = 'id',
    ) -> None:
        """Initialize store.

        Args:
            model: Model class holding the documents.
            collection_name: Value of ``collection_name`` for this store.
            id_field: Field that string selectors are matched against.
        """
        self.model = model
        self.collection_name = collection_name
        self.id_field = id_field

    def find(
        self,
        selector: Selector = None,
        options: FindOptions | None = None,
    ) -> QuerySet[ModelT]:
        """Build a lazy query for matching documents.

        Args:
            selector: Identifier or mapping of field lookups.
            options: Optional ``sort``, ``skip`` and ``limit``.

        Returns:
            Unevaluated QuerySet scoped to the collection.
        """
        queryset = self.model.objects.filter(
            collection_name=self.collection_name,
            **self._lookups(selector),
        )
        options = options or {}
        if options.get('sort'):
            queryset = queryset.order_by(*options['sort'])
        skip = options.get('skip', 0)
        limit = options.get('limit')
        if skip or limit is not None:
            stop = skip + limit if limit is not None else None
            queryset = queryset[skip:stop]
        return queryset

    def find_one(
        self,
        selector: Selector = None,
        options: FindOptions | None = None,
    ) -> ModelT | None:
        """Get the first matching document.

        Args:
            selector: Identifier or mapping of field lookups.
            options: Optional ``sort`` and ``skip``.

        Returns:
            Model instance, or None if nothing matches.
        """
        return next(iter(self._first(selector, options)), None)

    def insert(self, record: ModelT) -> str:
        """Persist a new document.

        Args:
            record: Unsaved model instance.

        Returns:
            Identifier of the inserted document.

        Raises:
            django.db.IntegrityError: If the identifier already exists.
        """
        record.collection_name = self.collection_name
        record.save(force_insert=True)
        record_id = getattr(record, self.id_field)
        logger.debug('Inserted %s: %s', self.model.__name__, record_id)
        return record_id

    def update(self, selector: Selector, changes: Mapping[str, Any]) -> int:
        """Apply field changes to all matching documents.

        Args:
            selector: Identifier or mapping of field lookups.
            changes: Field values to set.

        Returns:
            Number of updated documents.
        """
        return self.find(selector).update(**changes)

    def remove(self, selector: Selector) -> int:
        """Delete all matching documents.

        Args:
            selector: Identifier or mapping of field lookups.

        Returns:
            Number of deleted documents.
        """
        deleted, _ = self.find(selector).delete()
        logger.debug('Removed %d %s documents', deleted, self.model.__name__)
        return deleted

    async def afind_one(
        self,
        selector: Selector = None,
        options: FindOptions | None = None,
    ) -> ModelT | None:
        """Async version of :meth:`find_one`."""
        async for record in self._first(selector, options):
            return record
        return None

    async def ainsert(self, record: ModelT) -> str:
        """Async version of :meth:`insert`."""
        record.collection_name = self.collection_name
        await record.asave(force_insert=True)
        record_id = getattr(record, self.id_field)
        logger.debug('Inserted %s: %s', self.model.__name__, record_id)
        return record_id

    async def aupdate(
        self,
        selector: Selector,
        changes: Mapping[str, Any],
    ) -> int:
        """Async version of :meth:`update`."""
        return await self.find(selector).aupdate(**changes)

    async def aremove(self, selector: Selector) -> int:
        """Async version of :meth:`remove`."""
        deleted, _ = await self.find(selector).adelete()
        logger.debug('Removed %d %s documents', deleted, self.model.__name__)
        return deleted

    def _first(
        self,
        selector: Selector,
        options: FindOptions | None,
    ) -> QuerySet[ModelT]:
        options = dict(options or {})
        options['limit'] = 1
        return self.find(selector, options)  # type: ignore[arg-type]

    def _lookups(self, selector: Selector) -> dict[str, Any]:
        if selector is None:
            return {}
        if isinstance(selector, str):
            return {self.id_field: selector}
        return dict(selector)
