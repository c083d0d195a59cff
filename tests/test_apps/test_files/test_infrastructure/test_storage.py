"""Tests for local disk storage."""

import os
import stat
from unittest.mock import patch

import pytest

from fileserver.apps.files.infrastructure.storage import FileStorage


@pytest.fixture
def storage():
    """Storage backend under test.

    Returns:
        FileStorage instance.
    """
    return FileStorage()


class TestFileStorage:
    """Tests for synchronous storage primitives."""

    def test_write_and_iter_range(self, storage, tmp_path):
        """Test written bytes stream back in bounded chunks."""
        path = str(tmp_path / 'data.bin')
        storage.write(path, b'0123456789')

        chunks = list(storage.iter_range(path, 2, 7, chunk_size=4))

        assert chunks == [b'2345', b'67']

    def test_iter_range_stops_at_end_of_file(self, storage, tmp_path):
        """Test a range past the end yields only existing bytes."""
        path = str(tmp_path / 'short.bin')
        storage.write(path, b'abc')

        assert b''.join(storage.iter_range(path, 1, 10)) == b'bc'

    def test_write_chunk_at_offset(self, storage, tmp_path):
        """Test chunks land at their offsets regardless of order."""
        path = str(tmp_path / 'chunked.bin')

        storage.write_chunk(path, 4, b'efgh')
        storage.write_chunk(path, 0, b'abcd')

        with open(path, 'rb') as handle:
            assert handle.read() == b'abcdefgh'

    def test_chmod(self, storage, tmp_path):
        """Test permission bits are applied."""
        path = str(tmp_path / 'perm.txt')
        storage.write(path, b'x')

        storage.chmod(path, 0o600)

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_chmod_missing_file_raises(self, storage, tmp_path):
        """Test chmod errors propagate unchanged."""
        with pytest.raises(FileNotFoundError):
            storage.chmod(str(tmp_path / 'missing.txt'), 0o644)

    def test_delete(self, storage, tmp_path):
        """Test delete removes the file."""
        path = str(tmp_path / 'gone.txt')
        storage.write(path, b'x')

        storage.delete(path)

        assert not storage.exists(path)

    def test_delete_missing_file(self, storage, tmp_path):
        """Test deleting a missing file is tolerated."""
        storage.delete(str(tmp_path / 'missing.txt'))

    def test_delete_failure_propagates(self, storage, tmp_path):
        """Test delete errors are logged and re-raised."""
        path = str(tmp_path / 'locked.txt')
        storage.write(path, b'x')

        with (
            patch('os.remove', side_effect=PermissionError(path)),
            pytest.raises(PermissionError),
        ):
            storage.delete(path)

        assert os.path.exists(path)

    def test_write_keeps_existing_file(self, storage, tmp_path):
        """Test writing over an existing name saves under a free name."""
        path = str(tmp_path / 'taken.txt')
        storage.write(path, b'first')

        saved_path = storage.write(path, b'second')

        assert saved_path != path
        assert os.path.dirname(saved_path) == str(tmp_path)
        with open(path, 'rb') as handle:
            assert handle.read() == b'first'
        with open(saved_path, 'rb') as handle:
            assert handle.read() == b'second'

    def test_write_applies_permissions(self, tmp_path):
        """Test saved files and directories get the configured modes."""
        storage = FileStorage(
            file_permissions_mode=0o640,
            directory_permissions_mode=0o750,
        )
        path = str(tmp_path / 'nested' / 'perm.txt')

        storage.write(path, b'x')

        assert stat.S_IMODE(os.stat(path).st_mode) == 0o640
        assert stat.S_IMODE(os.stat(tmp_path / 'nested').st_mode) == 0o750

    def test_move(self, storage, tmp_path):
        """Test move renames the file."""
        source = str(tmp_path / 'from.txt')
        destination = str(tmp_path / 'to.txt')
        storage.write(source, b'moved')

        storage.move(source, destination)

        assert not os.path.exists(source)
        with open(destination, 'rb') as handle:
            assert handle.read() == b'moved'

    def test_is_regular_file(self, storage, tmp_path):
        """Test directories are not regular files."""
        path = str(tmp_path / 'file.txt')
        storage.write(path, b'x')

        assert storage.is_regular_file(storage.stat(path)) is True
        assert storage.is_regular_file(storage.stat(str(tmp_path))) is False

    def test_ensure_directory(self, storage, tmp_path):
        """Test nested directories are created and reuse is allowed."""
        directory = str(tmp_path / 'a' / 'b')

        storage.ensure_directory(directory, 0o755)
        storage.ensure_directory(directory)

        assert os.path.isdir(directory)


class TestAsyncFileStorage:
    """Tests for asynchronous storage primitives."""

    @pytest.mark.asyncio
    async def test_awrite_and_aiter_range(self, storage, tmp_path):
        """Test async twins read back what they wrote."""
        path = str(tmp_path / 'async.bin')
        await storage.awrite(path, b'hello world')

        chunks = [
            chunk
            async for chunk in storage.aiter_range(path, 6, 10, chunk_size=2)
        ]

        assert chunks == [b'wo', b'rl', b'd']

    @pytest.mark.asyncio
    async def test_astat(self, storage, tmp_path):
        """Test async stat reports the stored size."""
        path = str(tmp_path / 'async.txt')
        await storage.awrite(path, b'1234')

        stats = await storage.astat(path)

        assert stats.st_size == 4
