"""Business logic for removing files and their records."""

import logging
from typing import TYPE_CHECKING, Any, Final

from asgiref.sync import sync_to_async

from fileserver.apps.files.exceptions import FilesNotFoundError, FilesStorageError
from fileserver.apps.files.infrastructure.storage import FileStorage
from fileserver.apps.files.infrastructure.store import Selector
from fileserver.apps.files.models import FileRecord

if TYPE_CHECKING:
    from fileserver.apps.files.logic.collection import FilesCollection

logger = logging.getLogger(__name__)

_STAGED_SUFFIX: Final = '.removing'


def remove(collection: 'FilesCollection', selector: Selector) -> int:
    """Delete matching records and their stored bytes.

    Bytes go first. A record whose bytes could not be deleted stays in
    the store so it can be retried; the rest are deleted and
    ``on_after_remove`` is notified with them.

    Args:
        collection: Owning collection.
        selector: Identifier or mapping of field lookups.

    Returns:
        Number of removed records.

    Raises:
        FilesNotFoundError: If nothing matches ``selector``.
        FilesStorageError: If some stored files could not be deleted.
    """
    records = list(collection.store.find(selector))
    if not records:
        raise FilesNotFoundError('Cursor is empty, no files is removed')

    removed, failed = [], []
    for record in records:
        try:
            unlink(collection, record)
        except OSError:
            failed.append(record.id)
        else:
            removed.append(record)

    deleted = 0
    if removed:
        deleted = collection.store.remove(
            {'id__in': [record.id for record in removed]},
        )
        collection.on_after_remove.notify(removed)
    _report_outcome(collection, deleted, failed)
    return deleted


async def aremove(collection: 'FilesCollection', selector: Selector) -> int:
    """Async version of :func:`remove`."""
    records = [record async for record in collection.store.find(selector)]
    if not records:
        raise FilesNotFoundError('Cursor is empty, no files is removed')

    removed, failed = [], []
    for record in records:
        try:
            await aunlink(collection, record)
        except OSError:
            failed.append(record.id)
        else:
            removed.append(record)

    deleted = 0
    if removed:
        deleted = await collection.store.aremove(
            {'id__in': [record.id for record in removed]},
        )
        await collection.on_after_remove.anotify(removed)
    _report_outcome(collection, deleted, failed)
    return deleted


def unlink(
    collection: 'FilesCollection',
    record: FileRecord,
    version: str | None = None,
) -> None:
    """Delete stored bytes of a record, keeping the record itself.

    Every version file is first moved aside. If any move fails, the
    files already moved are put back and nothing is deleted, so the
    record keeps describing bytes that exist. Once all are moved aside
    they are deleted; a file left behind then is only logged.

    Args:
        collection: Owning collection.
        record: Record whose bytes are deleted.
        version: Only this version; all versions when omitted.

    Raises:
        OSError: If a stored file exists but cannot be moved aside.
    """
    storage = collection.storage
    for staged_path in _stage(storage, _version_paths(record, version)):
        try:
            storage.delete(staged_path)
        except OSError:
            logger.exception('Orphaned file left in storage: %s', staged_path)


async def aunlink(
    collection: 'FilesCollection',
    record: FileRecord,
    version: str | None = None,
) -> None:
    """Async version of :func:`unlink`."""
    await sync_to_async(unlink, thread_sensitive=False)(
        collection,
        record,
        version,
    )


def _stage(storage: FileStorage, paths: list[str]) -> list[str]:
    """Move existing files aside, all of them or none."""
    staged: list[tuple[str, str]] = []
    try:
        for path in paths:
            if not storage.exists(path):
                logger.warning('Stored file already missing: %s', path)
                continue
            staged_path = f'{path}{_STAGED_SUFFIX}'
            storage.move(path, staged_path)
            staged.append((path, staged_path))
    except OSError:
        for path, staged_path in reversed(staged):
            _restore(storage, staged_path, path)
        raise
    return [staged_path for _, staged_path in staged]


def _restore(storage: FileStorage, staged_path: str, path: str) -> None:
    try:
        storage.move(staged_path, path)
    except OSError:
        logger.exception('Could not restore %s from %s', path, staged_path)


def _version_paths(record: FileRecord, version: str | None) -> list[str]:
    versions: dict[str, Any] = record.versions or {}
    if version is not None:
        version_ref = versions.get(version) or {}
        return [version_ref['path']] if version_ref.get('path') else []
    paths = [
        version_ref['path']
        for version_ref in versions.values()
        if isinstance(version_ref, dict) and version_ref.get('path')
    ]
    if not paths and record.path:
        paths.append(record.path)
    return list(dict.fromkeys(paths))


def _report_outcome(
    collection: 'FilesCollection',
    deleted: int,
    failed: list[str],
) -> None:
    logger.info(
        '[%s] Removed %d files',
        collection.collection_name,
        deleted,
    )
    if failed:
        logger.error(
            '[%s] Could not delete stored files, records kept: %s',
            collection.collection_name,
            ', '.join(failed),
        )
        raise FilesStorageError(
            f'Could not delete stored files: {", ".join(failed)}',
        )
