"""Local disk storage backend for collection files."""

import logging
import os
import stat as stat_module
from collections.abc import AsyncIterator, Iterator
from typing import Final, final, override

import aiofiles
import aiofiles.os
from asgiref.sync import sync_to_async
from django.core.files.base import ContentFile
from django.core.files.move import file_move_safe
from django.core.files.storage import FileSystemStorage

logger = logging.getLogger(__name__)

_DEFAULT_READ_CHUNK: Final = 65536


@final
class FileStorage(FileSystemStorage):
    """Filesystem storage addressed by absolute paths.

    Extends Django's FileSystemStorage rooted at the filesystem root, so
    every name is an absolute path, with:
    - Error logging around every mutation
    - Stat, chmod and offset chunk writes used by upload sessions
    - Range reads for streamed downloads

    Blocking primitives have ``a``-prefixed twins: file reads go through
    aiofiles, the rest runs in a worker thread.
    """

    def __init__(
        self,
        file_permissions_mode: int | None = None,
        directory_permissions_mode: int | None = None,
    ) -> None:
        """Initialize the storage.

        Args:
            file_permissions_mode: Permission bits for saved files.
            directory_permissions_mode: Permission bits for directories.
        """
        super().__init__(
            location=os.sep,
            file_permissions_mode=file_permissions_mode,
            directory_permissions_mode=directory_permissions_mode,
        )

    @override
    def delete(self, name: str) -> None:
        """Delete a stored file with logging.

        A file that is already gone is only reported with a warning.

        Args:
            name: Absolute storage path.

        Raises:
            OSError: If the file exists but cannot be deleted.
        """
        if not self.exists(name):
            logger.warning(
                'File not found in storage (already deleted?): %s',
                name,
            )
            return
        try:
            logger.info('Deleting file from storage: %s', name)
            super().delete(name)
            logger.info('Successfully deleted file: %s', name)
        except OSError:
            logger.exception('Failed to delete file from storage: %s', name)
            raise

    def move(self, source: str, destination: str) -> None:
        """Rename a stored file, replacing ``destination`` if it exists.

        Args:
            source: Absolute source path.
            destination: Absolute destination path.

        Raises:
            OSError: If the file cannot be moved.
        """
        try:
            logger.debug('Moving file: %s -> %s', source, destination)
            file_move_safe(
                self.path(source),
                self.path(destination),
                allow_overwrite=True,
            )
        except OSError:
            logger.exception('Move failed: %s -> %s', source, destination)
            raise

    def stat(self, path: str) -> os.stat_result:
        """Stat a stored path.

        Args:
            path: Absolute storage path.

        Returns:
            Result of ``os.stat``.

        Raises:
            OSError: If the path cannot be stat'ed.
        """
        return os.stat(self.path(path))

    @staticmethod
    def is_regular_file(stats: os.stat_result) -> bool:
        """Check whether a stat result describes a regular file."""
        return stat_module.S_ISREG(stats.st_mode)

    def is_readable(self, path: str) -> bool:
        """Check whether the current process may read a stored path."""
        return os.access(self.path(path), os.R_OK)

    def chmod(self, path: str, mode: int) -> None:
        """Set permission bits on a stored file.

        Args:
            path: Absolute storage path.
            mode: Permission bits (e.g., 0o644).

        Raises:
            OSError: If permissions cannot be changed.
        """
        try:
            os.chmod(self.path(path), mode)
        except OSError:
            logger.exception('Failed to chmod %o: %s', mode, path)
            raise
        logger.debug('Permissions set to %o: %s', mode, path)

    def ensure_directory(self, directory: str, mode: int | None = None) -> None:
        """Create a storage directory and its parents if missing.

        Args:
            directory: Absolute directory path.
            mode: Permission bits for created directories, the storage
                ``directory_permissions_mode`` when omitted.
        """
        if mode is None:
            mode = self.directory_permissions_mode
        os.makedirs(self.path(directory), mode=mode or 0o777, exist_ok=True)

    def write(self, path: str, content: bytes) -> str:
        """Save a whole file.

        Missing directories are created; an existing file is never
        overwritten, Django picks a free name next to it instead.

        Args:
            path: Absolute storage path.
            content: Bytes to store.

        Returns:
            Absolute path the bytes were saved to.

        Raises:
            OSError: If the file cannot be written.
        """
        try:
            logger.info('Writing %d bytes to storage: %s', len(content), path)
            saved_name = self.save(
                os.path.relpath(self.path(path), self.location),
                ContentFile(content),
            )
        except OSError:
            logger.exception('Failed to write file to storage: %s', path)
            raise
        return self.path(saved_name)

    def write_chunk(self, path: str, offset: int, content: bytes) -> int:
        """Write a chunk at an offset, creating the file if needed.

        Args:
            path: Absolute storage path.
            offset: Byte offset of the chunk.
            content: Chunk bytes.

        Returns:
            Number of bytes written.

        Raises:
            OSError: If the chunk cannot be written.
        """
        try:
            descriptor = os.open(self.path(path), os.O_RDWR | os.O_CREAT)
            with os.fdopen(descriptor, 'r+b') as handle:
                handle.seek(offset)
                written = handle.write(content)
        except OSError:
            logger.exception(
                'Failed to write chunk at offset %d: %s',
                offset,
                path,
            )
            raise
        logger.debug('Wrote %d bytes at offset %d: %s', written, offset, path)
        return written

    def iter_range(
        self,
        path: str,
        start: int,
        end: int,
        chunk_size: int = _DEFAULT_READ_CHUNK,
    ) -> Iterator[bytes]:
        """Stream bytes ``start..end`` (inclusive) of a stored file.

        Reads at most ``chunk_size`` bytes at a time; the consumer pulls
        the next chunk only after handling the previous one.

        Args:
            path: Absolute storage path.
            start: First byte offset.
            end: Last byte offset, inclusive.
            chunk_size: Maximum bytes per yielded chunk.

        Yields:
            Consecutive byte chunks.
        """
        remaining = end - start + 1
        with self.open(path, 'rb') as handle:
            handle.seek(start)
            while remaining > 0:
                chunk = handle.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk

    async def astat(self, path: str) -> os.stat_result:
        """Async version of :meth:`stat`."""
        return await aiofiles.os.stat(self.path(path))

    async def achmod(self, path: str, mode: int) -> None:
        """Async version of :meth:`chmod`."""
        await sync_to_async(self.chmod, thread_sensitive=False)(path, mode)

    async def aensure_directory(
        self,
        directory: str,
        mode: int | None = None,
    ) -> None:
        """Async version of :meth:`ensure_directory`."""
        await sync_to_async(
            self.ensure_directory,
            thread_sensitive=False,
        )(directory, mode)

    async def awrite(self, path: str, content: bytes) -> str:
        """Async version of :meth:`write`."""
        return await sync_to_async(
            self.write,
            thread_sensitive=False,
        )(path, content)

    async def awrite_chunk(self, path: str, offset: int, content: bytes) -> int:
        """Async version of :meth:`write_chunk`."""
        return await sync_to_async(
            self.write_chunk,
            thread_sensitive=False,
        )(path, offset, content)

    async def aiter_range(
        self,
        path: str,
        start: int,
        end: int,
        chunk_size: int = _DEFAULT_READ_CHUNK,
    ) -> AsyncIterator[bytes]:
        """Async version of :meth:`iter_range`."""
        remaining = end - start + 1
        async with aiofiles.open(self.path(path), 'rb') as handle:
            await handle.seek(start)
            while remaining > 0:
                chunk = await handle.read(min(chunk_size, remaining))
                if not chunk:
                    break
                remaining -= len(chunk)
                yield chunk
