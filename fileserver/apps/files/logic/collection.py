"""Application-facing file collection.

A :class:`FilesCollection` bundles the configuration of one named
collection (storage location, permissions, routes and hooks) with the
stores it reads and writes. Its methods forward to the upload, download
and removal logic. Synchronous methods accept an optional error-first
``callback``; ``a``-prefixed methods are coroutines that raise.
"""

import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from fileserver.apps.files.exceptions import FilesNotFoundError
from fileserver.apps.files.infrastructure.storage import FileStorage
from fileserver.apps.files.infrastructure.store import (
    FindOptions,
    MetadataStore,
    Selector,
)
from fileserver.apps.files.logic import download, removal, upload
from fileserver.apps.files.logic.cursor import FileCursor, FilesCursor
from fileserver.apps.files.logic.download import HttpContext
from fileserver.apps.files.logic.hooks import Callback, Hook, deliver
from fileserver.apps.files.models import FileRecord, PendingUpload

logger = logging.getLogger(__name__)

StoragePath = str | Callable[[Mapping[str, Any]], str]
ResponseHeaders = Callable[..., Mapping[str, str] | None]

_HOOK_NAMES = (
    'naming_function',
    'on_before_upload',
    'on_initiate_upload',
    'on_after_upload',
    'on_after_remove',
    'download_callback',
    'intercept_download',
)

_registry: dict[str, 'FilesCollection'] = {}


def get_collection(collection_name: str) -> 'FilesCollection':
    """Look up a registered collection.

    Args:
        collection_name: Name the collection was created with.

    Returns:
        The registered FilesCollection.

    Raises:
        FilesNotFoundError: If no collection has that name.
    """
    try:
        return _registry[collection_name]
    except KeyError:
        raise FilesNotFoundError(
            f'No such collection: {collection_name}',
        ) from None


class FilesCollection:  # noqa: WPS214
    """One named collection of stored files and their records.

    Hooks are passed as keyword arguments, each in a sync form
    (``on_before_upload=...``) and/or an async form
    (``on_before_upload_async=...``). Either form serves both the sync
    and the async call paths.

    Example:
        images = FilesCollection(
            'images',
            on_before_upload=lambda data: data['size'] < 10 * 1024 * 1024,
        )
    """

    naming_function: Hook
    on_before_upload: Hook
    on_initiate_upload: Hook
    on_after_upload: Hook
    on_after_remove: Hook
    download_callback: Hook
    intercept_download: Hook

    def __init__(  # noqa: WPS211
        self,
        collection_name: str,
        *,
        storage_path: StoragePath | None = None,
        public: bool = False,
        permissions: int | None = None,
        parent_dir_permissions: int | None = None,
        download_route: str | None = None,
        cache_control: str | None = None,
        chunk_size: int | None = None,
        stream_chunk_size: int | None = None,
        response_headers: ResponseHeaders | None = None,
        storage: FileStorage | None = None,
        **hooks: Callable[..., Any] | Callable[..., Awaitable[Any]] | None,
    ) -> None:
        """Initialize and register the collection.

        Args:
            collection_name: Unique collection name.
            storage_path: Storage directory, or a callable receiving the
                file data and returning one.
            public: Whether files are served from a fixed public root.
            permissions: Permission bits for stored files.
            parent_dir_permissions: Permission bits for directories.
            download_route: URL prefix for downloads.
            cache_control: ``Cache-Control`` value for downloads.
            chunk_size: Default upload chunk size in bytes.
            stream_chunk_size: Download read buffer in bytes.
            response_headers: Callable adding download headers.
            storage: Storage backend, local disk by default.
            hooks: Hook implementations, see ``_HOOK_NAMES``.

        Raises:
            ImproperlyConfigured: For a public collection without an
                explicit ``storage_path`` and ``download_route``, or an
                unknown hook name.
        """
        if public and (storage_path is None or download_route is None):
            raise ImproperlyConfigured(
                f'Public collection "{collection_name}" needs explicit '
                '"storage_path" and "download_route"',
            )

        self.collection_name = collection_name
        self.public = public
        self.storage_path = storage_path or os.path.join(
            settings.FILES_STORAGE_PATH,
            collection_name,
        )
        self.permissions = _pick(permissions, settings.FILES_PERMISSIONS)
        self.parent_dir_permissions = _pick(
            parent_dir_permissions,
            settings.FILES_PARENT_DIR_PERMISSIONS,
        )
        self.download_route = _pick(
            download_route,
            settings.FILES_DOWNLOAD_ROUTE,
        ).rstrip('/')
        self.cache_control = _pick(cache_control, settings.FILES_CACHE_CONTROL)
        self.chunk_size = _pick(chunk_size, settings.FILES_CHUNK_SIZE)
        self.stream_chunk_size = _pick(
            stream_chunk_size,
            settings.FILES_STREAM_CHUNK_SIZE,
        )
        self.response_headers = response_headers

        self.storage = storage or FileStorage(
            file_permissions_mode=self.permissions,
            directory_permissions_mode=self.parent_dir_permissions,
        )
        self.store: MetadataStore[FileRecord] = MetadataStore(
            FileRecord,
            collection_name,
        )
        self.pending_store: MetadataStore[PendingUpload] = MetadataStore(
            PendingUpload,
            collection_name,
            id_field='file_id',
        )
        self._init_hooks(hooks)

        if collection_name in _registry:
            logger.warning('Replacing collection: %s', collection_name)
        _registry[collection_name] = self

    def __repr__(self) -> str:
        """Return the collection name for debugging."""
        return f'<FilesCollection: {self.collection_name}>'

    def storage_directory(self, file_data: Mapping[str, Any]) -> str:
        """Resolve the directory a file is stored in.

        Args:
            file_data: Prepared upload data or write options.

        Returns:
            Absolute directory path.
        """
        if callable(self.storage_path):
            return os.path.abspath(self.storage_path(file_data))
        return os.path.abspath(self.storage_path)

    def prepare_upload(
        self,
        descriptor: dict[str, Any],
        user_id: str | None = None,
        transport: str = 'http',
        callback: Callback | None = None,
    ) -> upload.PreparedUpload | None:
        """Negotiate an upload, see :func:`upload.prepare_upload`."""
        return deliver(
            callback,
            upload.prepare_upload,
            self,
            descriptor,
            user_id,
            transport,
        )

    async def aprepare_upload(
        self,
        descriptor: dict[str, Any],
        user_id: str | None = None,
        transport: str = 'http',
    ) -> upload.PreparedUpload:
        return await upload.aprepare_upload(self, descriptor, user_id, transport)

    def finish_upload(
        self,
        result: dict[str, Any],
        opts: dict[str, Any],
        callback: Callback | None = None,
    ) -> FileRecord | None:
        """Commit an upload, see :func:`upload.finish_upload`."""
        return deliver(callback, upload.finish_upload, self, result, opts)

    async def afinish_upload(
        self,
        result: dict[str, Any],
        opts: dict[str, Any],
    ) -> FileRecord:
        return await upload.afinish_upload(self, result, opts)

    def start_upload(
        self,
        descriptor: dict[str, Any],
        user_id: str | None = None,
        transport: str = 'http',
        callback: Callback | None = None,
    ) -> upload.PreparedUpload | None:
        """Open a chunked upload session."""
        return deliver(
            callback,
            upload.start_upload,
            self,
            descriptor,
            user_id,
            transport,
        )

    async def astart_upload(
        self,
        descriptor: dict[str, Any],
        user_id: str | None = None,
        transport: str = 'http',
    ) -> upload.PreparedUpload:
        return await upload.astart_upload(self, descriptor, user_id, transport)

    def write_chunk(
        self,
        file_id: str,
        chunk_id: int,
        content: bytes,
        callback: Callback | None = None,
    ) -> int | None:
        """Store one chunk of an open upload session."""
        return deliver(
            callback,
            upload.write_chunk,
            self,
            file_id,
            chunk_id,
            content,
        )

    async def awrite_chunk(
        self,
        file_id: str,
        chunk_id: int,
        content: bytes,
    ) -> int:
        return await upload.awrite_chunk(self, file_id, chunk_id, content)

    def complete_upload(
        self,
        file_id: str,
        callback: Callback | None = None,
    ) -> FileRecord | None:
        """Commit an upload session once every chunk is written."""
        return deliver(callback, upload.complete_upload, self, file_id)

    async def acomplete_upload(self, file_id: str) -> FileRecord:
        return await upload.acomplete_upload(self, file_id)

    def add_file(
        self,
        path: str,
        opts: dict[str, Any] | None = None,
        proceed_after_upload: bool = False,
        callback: Callback | None = None,
    ) -> FileRecord | None:
        """Register an existing local file, see :func:`upload.add_file`."""
        return deliver(
            callback,
            upload.add_file,
            self,
            path,
            opts,
            proceed_after_upload,
        )

    async def aadd_file(
        self,
        path: str,
        opts: dict[str, Any] | None = None,
        proceed_after_upload: bool = False,
    ) -> FileRecord:
        return await upload.aadd_file(self, path, opts, proceed_after_upload)

    def write(
        self,
        content: bytes,
        opts: dict[str, Any] | None = None,
        proceed_after_upload: bool = False,
        callback: Callback | None = None,
    ) -> FileRecord | None:
        """Store an in-memory buffer as a new file."""
        return deliver(
            callback,
            upload.write,
            self,
            content,
            opts,
            proceed_after_upload,
        )

    async def awrite(
        self,
        content: bytes,
        opts: dict[str, Any] | None = None,
        proceed_after_upload: bool = False,
    ) -> FileRecord:
        return await upload.awrite(self, content, opts, proceed_after_upload)

    def download(
        self,
        http: HttpContext,
        version: str = 'original',
        record: FileRecord | None = None,
    ) -> None:
        """Write the download response for a record into ``http``."""
        download.download(self, http, version, record)

    async def adownload(
        self,
        http: HttpContext,
        version: str = 'original',
        record: FileRecord | None = None,
    ) -> None:
        await download.adownload(self, http, version, record)

    def serve(
        self,
        http: HttpContext,
        record: FileRecord,
        version_ref: Mapping[str, Any],
        version: str = 'original',
    ) -> None:
        """Stream stored bytes; override to serve from elsewhere."""
        download.serve(self, http, record, version_ref, version)

    async def aserve(
        self,
        http: HttpContext,
        record: FileRecord,
        version_ref: Mapping[str, Any],
        version: str = 'original',
    ) -> None:
        await download.aserve(self, http, record, version_ref, version)

    def respond_404(self, http: HttpContext) -> None:
        download.respond_404(http)

    def link(
        self,
        record: FileRecord,
        version: str = 'original',
        uri_base: str | None = None,
    ) -> str:
        """Build a download URL, see :func:`download.link`."""
        return download.link(self, record, version, uri_base)

    def find(
        self,
        selector: Selector = None,
        options: FindOptions | None = None,
    ) -> FilesCursor:
        """Cursor over the records matching ``selector``."""
        return FilesCursor(selector, options, self)

    def find_one(
        self,
        selector: Selector = None,
        options: FindOptions | None = None,
    ) -> FileCursor:
        """Cursor over the first record matching ``selector``."""
        return FileCursor(self.store.find_one(selector, options), self)

    async def afind_one(
        self,
        selector: Selector = None,
        options: FindOptions | None = None,
    ) -> FileCursor:
        return FileCursor(await self.store.afind_one(selector, options), self)

    def remove(
        self,
        selector: Selector,
        callback: Callback | None = None,
    ) -> int | None:
        """Delete matching records and their files."""
        return deliver(callback, removal.remove, self, selector)

    async def aremove(self, selector: Selector) -> int:
        return await removal.aremove(self, selector)

    def unlink(
        self,
        record: FileRecord,
        version: str | None = None,
        callback: Callback | None = None,
    ) -> None:
        """Delete stored bytes of a record, keeping the record."""
        deliver(callback, removal.unlink, self, record, version)

    async def aunlink(
        self,
        record: FileRecord,
        version: str | None = None,
    ) -> None:
        await removal.aunlink(self, record, version)

    def _init_hooks(self, hooks: dict[str, Any]) -> None:
        known = set(_HOOK_NAMES)
        known.update(f'{name}_async' for name in _HOOK_NAMES)
        unknown = set(hooks) - known
        if unknown:
            raise ImproperlyConfigured(
                f'Unknown hooks: {", ".join(sorted(unknown))}',
            )
        for name in _HOOK_NAMES:
            setattr(
                self,
                name,
                Hook(name, hooks.get(name), hooks.get(f'{name}_async')),
            )


def _pick(explicit: Any, default: Any) -> Any:
    return default if explicit is None else explicit
