"""Tests for the HTTP upload and download endpoints."""

import json

import pytest
from django.http import HttpResponse

from fileserver.apps.files.logic.collection import FilesCollection
from fileserver.apps.files.models import FileRecord, PendingUpload

_UPLOAD_URL = '/cdn/storage/test-files/__upload'


def _start(client, descriptor):
    return client.post(
        _UPLOAD_URL,
        data=json.dumps(descriptor),
        content_type='application/json',
        headers={'x-start': '1'},
    )


def _chunk(client, file_id, chunk_id, content):
    return client.post(
        _UPLOAD_URL,
        data=content,
        content_type='application/octet-stream',
        headers={'x-fileid': file_id, 'x-chunkid': str(chunk_id)},
    )


@pytest.mark.django_db
class TestUploadView:
    """Tests for the chunked upload endpoint."""

    def test_full_upload(self, client, collection):
        """Test start, chunks and end of file commit a record."""
        started = _start(client, {
            'file': {'name': 'notes.txt', 'size': 6, 'meta': {'k': 'v'}},
            'chunk_size': 4,
        })
        assert started.status_code == 200
        file_id = started.json()['file_id']
        assert started.json()['chunk_size'] == 4

        assert _chunk(client, file_id, 1, b'abcd').json()['written'] == 4
        assert _chunk(client, file_id, 2, b'ef').json()['written'] == 2

        finished = client.post(
            _UPLOAD_URL,
            headers={'x-fileid': file_id, 'x-eof': '1'},
        )

        assert finished.status_code == 201
        body = finished.json()
        assert body['id'] == file_id
        assert body['size'] == 6
        assert body['meta'] == {'k': 'v'}
        assert body['link'].endswith(f'/test-files/{file_id}/original/{file_id}.txt')
        assert FileRecord.objects.get(id=file_id).size == 6

    def test_rejected_upload(self, client, storage_root):
        """Test hook rejections become JSON errors."""
        FilesCollection(
            'test-files',
            storage_path=storage_root,
            on_before_upload=lambda data: 'Only images allowed',
        )

        response = _start(client, {'file': {'name': 'notes.txt'}})

        assert response.status_code == 403
        assert response.json() == {
            'error': 403,
            'reason': 'Only images allowed',
        }

    def test_invalid_descriptor(self, client, collection):
        """Test a non-JSON start body is a 400."""
        response = client.post(
            _UPLOAD_URL,
            data=b'not json',
            content_type='application/json',
            headers={'x-start': '1'},
        )

        assert response.status_code == 400

    def test_invalid_size(self, client, collection):
        """Test a non-numeric file size is a 400, not a server error."""
        response = _start(client, {'file': {'name': 'a.txt', 'size': 'abc'}})

        assert response.status_code == 400
        assert response.json()['error'] == 400
        assert 'size' in response.json()['reason']
        assert not PendingUpload.objects.exists()

    def test_invalid_chunk_id(self, client, collection):
        """Test a non-numeric chunk id is a 400."""
        response = _chunk(client, 'file1', 'first', b'data')

        assert response.status_code == 400
        assert 'x-chunkid' in response.json()['reason']

    def test_missing_file_id(self, client, collection):
        """Test chunks without a file id are refused."""
        response = client.post(
            _UPLOAD_URL,
            data=b'data',
            content_type='application/octet-stream',
        )

        assert response.status_code == 400

    def test_unknown_session(self, client, collection):
        """Test chunks for unknown uploads are a 404."""
        assert _chunk(client, 'missing', 1, b'data').status_code == 404

    def test_unknown_collection(self, client):
        """Test uploads to unknown collections are a 404."""
        response = client.post(
            '/cdn/storage/never-created/__upload',
            data='{}',
            content_type='application/json',
            headers={'x-start': '1'},
        )

        assert response.status_code == 404
        assert response.json()['error'] == 404

    def test_get_not_allowed(self, client, collection):
        """Test the upload endpoint only accepts POST."""
        assert client.get(_UPLOAD_URL).status_code == 405


@pytest.mark.django_db
class TestDownloadView:
    """Tests for the download endpoint."""

    def test_download(self, client, collection):
        """Test a stored file is streamed back."""
        record = collection.write(b'hello', {'name': 'hello.txt'})

        response = client.get(
            f'/cdn/storage/test-files/{record.id}/original/hello.txt',
        )

        assert response.status_code == 200
        assert b''.join(response.streaming_content) == b'hello'
        assert response['Content-Type'] == 'text/plain'

    def test_range_download(self, client, collection):
        """Test range requests reach the engine."""
        record = collection.write(b'hello', {'name': 'hello.txt'})

        response = client.get(
            f'/cdn/storage/test-files/{record.id}/original/hello.txt',
            headers={'range': 'bytes=1-3'},
        )

        assert response.status_code == 206
        assert b''.join(response.streaming_content) == b'ell'

    def test_unknown_record(self, client, collection):
        """Test unknown ids are a 404."""
        response = client.get('/cdn/storage/test-files/nope/original/a.txt')

        assert response.status_code == 404

    def test_unknown_collection(self, client):
        """Test unknown collections are a 404."""
        response = client.get('/cdn/storage/never-created/x/original/a.txt')

        assert response.status_code == 404

    def test_intercepted_download(self, client, storage_root):
        """Test an intercepting hook supplies the response."""
        def intercept(http, record, version):
            http.response = HttpResponse('redirected elsewhere')
            return True

        collection = FilesCollection(
            'test-files',
            storage_path=storage_root,
            intercept_download=intercept,
        )
        record = collection.write(b'hello', {'name': 'hello.txt'})

        response = client.get(
            f'/cdn/storage/test-files/{record.id}/original/hello.txt',
        )

        assert response.content == b'redirected elsewhere'
