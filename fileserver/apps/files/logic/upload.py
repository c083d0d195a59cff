"""Business logic for uploads.

Three ways bytes become a :class:`FileRecord`:

- the session protocol: ``prepare_upload`` negotiates names and paths,
  ``start_upload`` opens a pending session, ``write_chunk`` stores
  bytes, ``complete_upload``/``finish_upload`` commit the record;
- ``add_file`` adopts a file that already exists on local disk;
- ``write`` stores an in-memory buffer.

Every operation has an ``a``-prefixed async twin. Twins share the
descriptor building and hook interpretation helpers, so both forms give
equal results for equal inputs and equal hook outcomes.
"""

import copy
import logging
import os
from typing import TYPE_CHECKING, Any, NamedTuple

from asgiref.sync import sync_to_async

from fileserver.apps.files.exceptions import (
    FilesNotFoundError,
    FilesPermissionError,
    FilesValidationError,
)
from fileserver.apps.files.infrastructure.metadata import (
    detect_mime_type,
    extract_filename,
    generate_file_id,
    get_file_extension,
    sanitize_file_name,
    sanitize_storage_name,
)
from fileserver.apps.files.logic.hooks import ensure_upload_allowed
from fileserver.apps.files.logic.locks import KeyedLock
from fileserver.apps.files.models import FileRecord, PendingUpload

if TYPE_CHECKING:
    from fileserver.apps.files.logic.collection import FilesCollection

logger = logging.getLogger(__name__)

# Two finishes for the same file id must never interleave
_finish_locks = KeyedLock()


class PreparedUpload(NamedTuple):
    """Outcome of ``prepare_upload``.

    ``result`` holds the negotiated session data and the record schema,
    ``opts`` is the caller's descriptor enriched with the same
    decisions.
    """

    result: dict[str, Any]
    opts: dict[str, Any]


def prepare_upload(
    collection: 'FilesCollection',
    descriptor: dict[str, Any],
    user_id: str | None = None,
    transport: str = 'http',
) -> PreparedUpload:
    """Negotiate file id, storage name and path for an upload.

    Calls the naming hook once and ``on_before_upload`` once. Never
    calls ``on_initiate_upload``: that happens in :func:`start_upload`
    when the transport begins receiving bytes.

    Args:
        collection: Target collection.
        descriptor: ``{'file': {'name', 'type', 'size', 'meta'},
            'file_id', 'chunk_size'}``; ``file_id`` is optional.
        user_id: Uploading user, if any.
        transport: Transport name, used for logging.

    Returns:
        PreparedUpload with ``result`` and ``opts``.

    Raises:
        HookRejectedError: If ``on_before_upload`` refuses the upload.
    """
    opts, result = _describe_upload(collection, descriptor, user_id)
    logger.debug(
        '[%s] [%s] Preparing upload: %s',
        collection.collection_name,
        transport,
        result['name'],
    )

    storage_name = None
    if collection.naming_function:
        storage_name = collection.naming_function.call(opts)
    _assign_storage_path(collection, opts, result, storage_name)

    if collection.on_before_upload:
        ensure_upload_allowed(collection.on_before_upload.call(result))
    return PreparedUpload(result, opts)


async def aprepare_upload(
    collection: 'FilesCollection',
    descriptor: dict[str, Any],
    user_id: str | None = None,
    transport: str = 'http',
) -> PreparedUpload:
    """Async version of :func:`prepare_upload`."""
    opts, result = _describe_upload(collection, descriptor, user_id)
    logger.debug(
        '[%s] [%s] Preparing upload: %s',
        collection.collection_name,
        transport,
        result['name'],
    )

    storage_name = None
    if collection.naming_function:
        storage_name = await collection.naming_function.acall(opts)
    _assign_storage_path(collection, opts, result, storage_name)

    if collection.on_before_upload:
        ensure_upload_allowed(await collection.on_before_upload.acall(result))
    return PreparedUpload(result, opts)


def finish_upload(
    collection: 'FilesCollection',
    result: dict[str, Any],
    opts: dict[str, Any],
) -> FileRecord:
    """Commit an uploaded file.

    Steps run in order and the first failure aborts the rest, its error
    propagating unchanged: set permissions on the stored file, insert
    the record, mark the pending upload finished. Only when all succeed
    is ``on_after_upload`` notified.

    Args:
        collection: Target collection.
        result: ``result`` from :func:`prepare_upload`.
        opts: ``opts`` from :func:`prepare_upload`.

    Returns:
        Committed FileRecord.
    """
    record = _build_record(collection, result, opts)
    with _finish_locks.hold(record.id):
        collection.storage.chmod(record.path, collection.permissions)
        collection.store.insert(record)
        collection.pending_store.update(record.id, {'is_finished': True})

    logger.info(
        '[%s] Upload finished: %s (ID: %s)',
        collection.collection_name,
        record.path,
        record.id,
    )
    collection.on_after_upload.notify(record)
    return record


async def afinish_upload(
    collection: 'FilesCollection',
    result: dict[str, Any],
    opts: dict[str, Any],
) -> FileRecord:
    """Async version of :func:`finish_upload`."""
    record = _build_record(collection, result, opts)
    async with _finish_locks.ahold(record.id):
        await collection.storage.achmod(record.path, collection.permissions)
        await collection.store.ainsert(record)
        await collection.pending_store.aupdate(
            record.id,
            {'is_finished': True},
        )

    logger.info(
        '[%s] Upload finished: %s (ID: %s)',
        collection.collection_name,
        record.path,
        record.id,
    )
    await collection.on_after_upload.anotify(record)
    return record


def start_upload(
    collection: 'FilesCollection',
    descriptor: dict[str, Any],
    user_id: str | None = None,
    transport: str = 'http',
) -> PreparedUpload:
    """Open an upload session that is about to receive bytes.

    Prepares the upload, creates the target directory, stores the
    pending-upload marker and then calls ``on_initiate_upload``.

    Args:
        collection: Target collection.
        descriptor: Upload descriptor, see :func:`prepare_upload`.
        user_id: Uploading user, if any.
        transport: Transport name, used for logging.

    Returns:
        PreparedUpload for the session.
    """
    prepared = prepare_upload(collection, descriptor, user_id, transport)
    collection.storage.ensure_directory(
        os.path.dirname(prepared.result['path']),
        collection.parent_dir_permissions,
    )
    collection.pending_store.insert(_pending_marker(prepared))
    logger.info(
        '[%s] Upload started: %s (ID: %s)',
        collection.collection_name,
        prepared.result['name'],
        prepared.result['id'],
    )
    if collection.on_initiate_upload:
        collection.on_initiate_upload.call(prepared.result)
    return prepared


async def astart_upload(
    collection: 'FilesCollection',
    descriptor: dict[str, Any],
    user_id: str | None = None,
    transport: str = 'http',
) -> PreparedUpload:
    """Async version of :func:`start_upload`."""
    prepared = await aprepare_upload(collection, descriptor, user_id, transport)
    await collection.storage.aensure_directory(
        os.path.dirname(prepared.result['path']),
        collection.parent_dir_permissions,
    )
    await collection.pending_store.ainsert(_pending_marker(prepared))
    logger.info(
        '[%s] Upload started: %s (ID: %s)',
        collection.collection_name,
        prepared.result['name'],
        prepared.result['id'],
    )
    if collection.on_initiate_upload:
        await collection.on_initiate_upload.acall(prepared.result)
    return prepared


def write_chunk(
    collection: 'FilesCollection',
    file_id: str,
    chunk_id: int,
    content: bytes,
) -> int:
    """Store one chunk of an open upload session.

    Args:
        collection: Target collection.
        file_id: Upload session file id.
        chunk_id: 1-based chunk number.
        content: Chunk bytes.

    Returns:
        Number of bytes written.

    Raises:
        FilesNotFoundError: If no open session exists for ``file_id``.
        FilesValidationError: If ``chunk_id`` is below 1.
    """
    pending = collection.pending_store.find_one(_open_session(file_id))
    offset = _chunk_offset(pending, file_id, chunk_id)
    return collection.storage.write_chunk(pending.path, offset, content)


async def awrite_chunk(
    collection: 'FilesCollection',
    file_id: str,
    chunk_id: int,
    content: bytes,
) -> int:
    """Async version of :func:`write_chunk`."""
    pending = await collection.pending_store.afind_one(_open_session(file_id))
    offset = _chunk_offset(pending, file_id, chunk_id)
    return await collection.storage.awrite_chunk(pending.path, offset, content)


def complete_upload(collection: 'FilesCollection', file_id: str) -> FileRecord:
    """Finish an open upload session once all chunks are written.

    The committed size is the number of bytes actually on disk.

    Args:
        collection: Target collection.
        file_id: Upload session file id.

    Returns:
        Committed FileRecord.

    Raises:
        FilesNotFoundError: If no open session exists for ``file_id``.
    """
    pending = collection.pending_store.find_one(_open_session(file_id))
    if pending is None:
        raise FilesNotFoundError(f'No upload in progress: {file_id}')
    stats = collection.storage.stat(pending.path)
    result = _with_size(pending.result, stats.st_size)
    return finish_upload(collection, result, pending.opts)


async def acomplete_upload(
    collection: 'FilesCollection',
    file_id: str,
) -> FileRecord:
    """Async version of :func:`complete_upload`."""
    pending = await collection.pending_store.afind_one(_open_session(file_id))
    if pending is None:
        raise FilesNotFoundError(f'No upload in progress: {file_id}')
    stats = await collection.storage.astat(pending.path)
    result = _with_size(pending.result, stats.st_size)
    return await afinish_upload(collection, result, pending.opts)


def add_file(
    collection: 'FilesCollection',
    path: str,
    opts: dict[str, Any] | None = None,
    proceed_after_upload: bool = False,
) -> FileRecord:
    """Register a file that already exists on local disk.

    Args:
        collection: Target collection.
        path: Absolute path of the existing file.
        opts: Optional ``name``, ``type``, ``meta``, ``user_id``,
            ``file_id``.
        proceed_after_upload: Whether to notify ``on_after_upload``.

    Returns:
        Inserted FileRecord with a single ``original`` version.

    Raises:
        FilesPermissionError: If the collection is public.
        FilesValidationError: If ``path`` is missing, unreadable or
            not a regular file.
    """
    _ensure_not_public(collection)
    path = os.path.abspath(path)
    size = _inspect_source(collection, path)
    record = _adopted_record(collection, path, size, opts or {})
    collection.store.insert(record)
    logger.info(
        '[%s] File added: %s (ID: %s)',
        collection.collection_name,
        path,
        record.id,
    )
    if proceed_after_upload:
        collection.on_after_upload.notify(record)
    return record


async def aadd_file(
    collection: 'FilesCollection',
    path: str,
    opts: dict[str, Any] | None = None,
    proceed_after_upload: bool = False,
) -> FileRecord:
    """Async version of :func:`add_file`."""
    _ensure_not_public(collection)
    path = os.path.abspath(path)
    size = await sync_to_async(
        _inspect_source,
        thread_sensitive=False,
    )(collection, path)
    record = _adopted_record(collection, path, size, opts or {})
    await collection.store.ainsert(record)
    logger.info(
        '[%s] File added: %s (ID: %s)',
        collection.collection_name,
        path,
        record.id,
    )
    if proceed_after_upload:
        await collection.on_after_upload.anotify(record)
    return record


def write(
    collection: 'FilesCollection',
    content: bytes,
    opts: dict[str, Any] | None = None,
    proceed_after_upload: bool = False,
) -> FileRecord:
    """Store an in-memory buffer as a new file.

    Args:
        collection: Target collection.
        content: File bytes.
        opts: Optional ``name``, ``type``, ``meta``, ``user_id``,
            ``file_id``.
        proceed_after_upload: Whether to notify ``on_after_upload``.

    Returns:
        Inserted FileRecord.
    """
    opts = dict(opts or {})
    opts.setdefault('file_id', generate_file_id())
    storage_name = None
    if collection.naming_function:
        storage_name = collection.naming_function.call(opts)
    path = collection.storage.write(
        _buffer_path(collection, opts, storage_name),
        content,
    )
    collection.storage.chmod(path, collection.permissions)

    record = _adopted_record(collection, path, len(content), opts)
    collection.store.insert(record)
    if proceed_after_upload:
        collection.on_after_upload.notify(record)
    return record


async def awrite(
    collection: 'FilesCollection',
    content: bytes,
    opts: dict[str, Any] | None = None,
    proceed_after_upload: bool = False,
) -> FileRecord:
    """Async version of :func:`write`."""
    opts = dict(opts or {})
    opts.setdefault('file_id', generate_file_id())
    storage_name = None
    if collection.naming_function:
        storage_name = await collection.naming_function.acall(opts)
    path = await collection.storage.awrite(
        _buffer_path(collection, opts, storage_name),
        content,
    )
    await collection.storage.achmod(path, collection.permissions)

    record = _adopted_record(collection, path, len(content), opts)
    await collection.store.ainsert(record)
    if proceed_after_upload:
        await collection.on_after_upload.anotify(record)
    return record


def _describe_upload(
    collection: 'FilesCollection',
    descriptor: dict[str, Any],
    user_id: str | None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Build ``opts`` and the record schema part of ``result``."""
    opts = copy.deepcopy(descriptor)
    file_data = opts.get('file')
    if not isinstance(file_data, dict):
        file_data = {}
    if not isinstance(file_data.get('meta'), dict):
        file_data['meta'] = {}

    file_name = sanitize_file_name(file_data.get('name'))
    extension = get_file_extension(file_name)
    mime_type = detect_mime_type(file_name, file_data.get('type'))
    file_data.update(
        name=file_name,
        type=mime_type,
        extension=extension.extension,
    )
    opts['file'] = file_data
    opts['file_id'] = opts.get('file_id') or generate_file_id()
    opts['chunk_size'] = _as_int(
        opts.get('chunk_size') or collection.chunk_size,
        'chunk_size',
        minimum=1,
    )

    result = {
        'id': opts['file_id'],
        'name': file_name,
        'type': mime_type,
        'size': _as_int(file_data.get('size') or 0, 'size'),
        'extension': extension.extension,
        'extension_with_dot': extension.extension_with_dot,
        'meta': copy.deepcopy(file_data['meta']),
        'user_id': user_id,
        'public': collection.public,
        'download_route': collection.download_route,
        'collection_name': collection.collection_name,
    }
    return opts, result


def _assign_storage_path(
    collection: 'FilesCollection',
    opts: dict[str, Any],
    result: dict[str, Any],
    storage_name: Any,
) -> None:
    """Resolve the on-disk name and path from the naming hook output."""
    if not isinstance(storage_name, str) or not storage_name:
        storage_name = opts['file_id']
    opts['fs_name'] = sanitize_storage_name(storage_name)

    path = os.path.join(
        collection.storage_directory(result),
        f'{opts["fs_name"]}{result["extension_with_dot"]}',
    )
    result['path'] = path
    result['versions'] = {
        'original': _version(
            path,
            result['size'],
            result['type'],
            result['extension'],
        ),
    }


def _build_record(
    collection: 'FilesCollection',
    result: dict[str, Any],
    opts: dict[str, Any],
) -> FileRecord:
    """Turn a prepared upload into an unsaved FileRecord."""
    file_data = opts.get('file') or {}
    name = result.get('name') or sanitize_file_name(file_data.get('name'))
    extension = get_file_extension(name)
    mime_type = detect_mime_type(name, result.get('type') or file_data.get('type'))
    size = int(result.get('size') or file_data.get('size') or 0)
    path = result['path']
    versions = result.get('versions') or {
        'original': _version(path, size, mime_type, extension.extension),
    }
    return FileRecord(
        id=result.get('id') or opts.get('file_id') or generate_file_id(),
        collection_name=collection.collection_name,
        name=name,
        type=mime_type,
        size=size,
        extension=extension.extension,
        extension_with_dot=extension.extension_with_dot,
        path=path,
        user_id=result.get('user_id'),
        meta=result.get('meta') or file_data.get('meta') or {},
        versions=versions,
        public=collection.public,
        download_route=collection.download_route,
    )


def _adopted_record(
    collection: 'FilesCollection',
    path: str,
    size: int,
    opts: dict[str, Any],
) -> FileRecord:
    """Build an unsaved FileRecord for bytes already at ``path``."""
    name = sanitize_file_name(opts.get('name') or extract_filename(path))
    extension = get_file_extension(name)
    mime_type = detect_mime_type(name, opts.get('type'))
    return FileRecord(
        id=opts.get('file_id') or generate_file_id(),
        collection_name=collection.collection_name,
        name=name,
        type=mime_type,
        size=size,
        extension=extension.extension,
        extension_with_dot=extension.extension_with_dot,
        path=path,
        user_id=opts.get('user_id'),
        meta=opts.get('meta') or {},
        versions={
            'original': _version(path, size, mime_type, extension.extension),
        },
        public=collection.public,
        download_route=collection.download_route,
    )


def _buffer_path(
    collection: 'FilesCollection',
    opts: dict[str, Any],
    storage_name: Any,
) -> str:
    """Storage path for a buffer written with :func:`write`."""
    if not isinstance(storage_name, str) or not storage_name:
        storage_name = opts['file_id']
    storage_name = sanitize_storage_name(storage_name)
    opts.setdefault('name', storage_name)
    extension = get_file_extension(sanitize_file_name(opts['name']))
    directory = collection.storage_directory(opts)
    return os.path.join(
        directory,
        f'{storage_name}{extension.extension_with_dot}',
    )


def _version(
    path: str,
    size: int,
    mime_type: str,
    extension: str,
) -> dict[str, Any]:
    return {
        'path': path,
        'size': size,
        'type': mime_type,
        'extension': extension,
    }


def _with_size(result: dict[str, Any], size: int) -> dict[str, Any]:
    """Copy of ``result`` whose original version reports ``size``."""
    result = copy.deepcopy(result)
    result['size'] = size
    original = result.get('versions', {}).get('original')
    if original is not None:
        original['size'] = size
    return result


def _pending_marker(prepared: PreparedUpload) -> PendingUpload:
    result, opts = prepared
    return PendingUpload(
        file_id=result['id'],
        file_name=result['name'],
        path=result['path'],
        size=result['size'],
        chunk_size=opts['chunk_size'],
        user_id=result['user_id'],
        result=result,
        opts=opts,
    )


def _as_int(value: Any, field_name: str, minimum: int = 0) -> int:
    """Coerce a client-supplied number, rejecting anything else."""
    number = None
    if not isinstance(value, bool):
        try:
            number = int(value)
        except (TypeError, ValueError):
            number = None
    if number is None or number < minimum:
        raise FilesValidationError(f'Invalid "{field_name}": {value!r}')
    return number


def _open_session(file_id: str) -> dict[str, Any]:
    return {'file_id': file_id, 'is_finished': False}


def _chunk_offset(
    pending: PendingUpload | None,
    file_id: str,
    chunk_id: int,
) -> int:
    if pending is None:
        raise FilesNotFoundError(f'No upload in progress: {file_id}')
    if chunk_id < 1:
        raise FilesValidationError(f'Invalid chunk id: {chunk_id}')
    return (chunk_id - 1) * pending.chunk_size


def _ensure_not_public(collection: 'FilesCollection') -> None:
    if collection.public:
        raise FilesPermissionError(
            'Can not run [add_file] on public collection! '
            'Just move file to the public storage directory.',
        )


def _inspect_source(collection: 'FilesCollection', path: str) -> int:
    """Validate a local source file and return its size.

    Raises:
        FilesValidationError: If the path is missing, not a regular
            file or not readable.
    """
    try:
        stats = collection.storage.stat(path)
    except OSError as error:
        raise FilesValidationError(
            f'File "{path}" does not exist or is not accessible',
        ) from error
    if not collection.storage.is_regular_file(stats):
        raise FilesValidationError(f'Path "{path}" is not a file')
    if not collection.storage.is_readable(path):
        raise FilesValidationError(f'File "{path}" is not readable')
    return stats.st_size
