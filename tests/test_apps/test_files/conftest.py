"""Shared fixtures for files app tests."""

import pytest

from fileserver.apps.files.logic.collection import FilesCollection
from fileserver.apps.files.models import FileRecord


@pytest.fixture
def storage_root(tmp_path):
    """Directory collections store files under.

    Returns:
        Absolute path string.
    """
    root = tmp_path / 'storage'
    root.mkdir()
    return str(root)


@pytest.fixture
def collection(storage_root):
    """Private collection storing under ``storage_root``.

    Returns:
        FilesCollection named 'test-files'.
    """
    return FilesCollection('test-files', storage_path=storage_root)


@pytest.fixture
def sample_file(tmp_path):
    """Four byte text file outside the storage root.

    Returns:
        Absolute path string of 'x.txt'.
    """
    path = tmp_path / 'x.txt'
    path.write_bytes(b'test')
    return str(path)


@pytest.fixture
def upload_descriptor():
    """Descriptor a client sends when starting an upload.

    Returns:
        Dict with file data, file id and chunk size.
    """
    return {
        'file': {
            'name': 'report.txt',
            'type': 'text/plain',
            'size': 4,
            'meta': {'owner': 'qa'},
        },
        'file_id': 'abc123',
        'chunk_size': 1024,
    }


@pytest.fixture
def unsaved_record(sample_file):
    """Record pointing at ``sample_file``, not stored in the database.

    Returns:
        FileRecord with a single original version.
    """
    return FileRecord(
        id='file1',
        collection_name='test-files',
        name='x.txt',
        type='text/plain',
        size=4,
        extension='txt',
        extension_with_dot='.txt',
        path=sample_file,
        versions={
            'original': {
                'path': sample_file,
                'size': 4,
                'type': 'text/plain',
                'extension': 'txt',
            },
        },
    )
