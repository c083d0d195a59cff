"""Tests for download business logic."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fileserver.apps.files.logic.collection import FilesCollection
from fileserver.apps.files.logic.download import HttpContext, parse_range


def _body(response):
    return b''.join(response.streaming_content)


async def _abody(response):
    return b''.join([chunk async for chunk in response.streaming_content])


class TestDownloadFlow:
    """Tests for the order of checks before serving."""

    def test_missing_record(self, collection, rf):
        """Test an absent record is a 404."""
        http = HttpContext(rf.get('/file'))

        collection.download(http, 'original', None)

        assert http.response.status_code == 404

    def test_missing_version(self, collection, rf, unsaved_record):
        """Test an unknown version is a 404."""
        http = HttpContext(rf.get('/file'))

        with patch.object(collection, 'serve') as serve:
            collection.download(http, 'thumbnail', unsaved_record)

        assert http.response.status_code == 404
        serve.assert_not_called()

    def test_stat_failure(self, collection, rf, unsaved_record):
        """Test a failing stat is a 404 and nothing is served."""
        http = HttpContext(rf.get('/file'))

        with (
            patch.object(
                collection.storage,
                'stat',
                side_effect=FileNotFoundError,
            ),
            patch.object(collection, 'serve') as serve,
        ):
            collection.download(http, 'original', unsaved_record)

        assert http.response.status_code == 404
        assert http.response.content == b'File Not Found :('
        serve.assert_not_called()

    def test_not_a_regular_file(self, collection, rf, unsaved_record, tmp_path):
        """Test a directory at the stored path is a 404."""
        unsaved_record.versions['original']['path'] = str(tmp_path)
        http = HttpContext(rf.get('/file'))

        with patch.object(collection, 'serve') as serve:
            collection.download(http, 'original', unsaved_record)

        assert http.response.status_code == 404
        serve.assert_not_called()

    def test_download_callback_refuses(self, collection, rf, unsaved_record):
        """Test a falsy download callback is a 404."""
        download_callback = MagicMock(return_value=False)
        collection.download_callback.func = download_callback
        http = HttpContext(rf.get('/file'))

        with patch.object(collection, 'serve') as serve:
            collection.download(http, 'original', unsaved_record)

        download_callback.assert_called_once_with(http, unsaved_record)
        assert http.response.status_code == 404
        serve.assert_not_called()

    def test_download_callback_failure(self, collection, rf, unsaved_record):
        """Test a raising hook ends in a 404, not an exception."""
        collection.download_callback.func = MagicMock(
            side_effect=RuntimeError('boom'),
        )
        http = HttpContext(rf.get('/file'))

        collection.download(http, 'original', unsaved_record)

        assert http.response.status_code == 404

    def test_intercepted(self, collection, rf, unsaved_record):
        """Test an intercepting hook skips stat, callback and serve."""
        intercept = MagicMock(return_value=True)
        download_callback = MagicMock(return_value=True)
        collection.intercept_download.func = intercept
        collection.download_callback.func = download_callback
        http = HttpContext(rf.get('/file'))

        with (
            patch.object(collection.storage, 'stat') as stat,
            patch.object(collection, 'serve') as serve,
        ):
            collection.download(http, 'original', unsaved_record)

        intercept.assert_called_once_with(http, unsaved_record, 'original')
        stat.assert_not_called()
        download_callback.assert_not_called()
        serve.assert_not_called()
        assert http.response is None

    def test_not_intercepted(self, collection, rf, unsaved_record):
        """Test a False intercept continues to stat and serve."""
        collection.intercept_download.func = MagicMock(return_value=False)
        http = HttpContext(rf.get('/file'))

        with (
            patch.object(
                collection.storage,
                'stat',
                wraps=collection.storage.stat,
            ) as stat,
            patch.object(collection, 'serve') as serve,
        ):
            collection.download(http, 'original', unsaved_record)

        stat.assert_called_once_with(unsaved_record.path)
        serve.assert_called_once()

    def test_stat_size_wins(self, collection, rf, unsaved_record):
        """Test the served size is the size on disk."""
        unsaved_record.versions['original']['size'] = 999
        http = HttpContext(rf.get('/file'))

        with patch.object(collection, 'serve') as serve:
            collection.download(http, 'original', unsaved_record)

        version_ref = serve.call_args.args[2]
        assert version_ref['size'] == 4


class TestServe:
    """Tests for the streamed response."""

    def test_full_body(self, collection, rf, unsaved_record):
        """Test a plain request streams everything with 200."""
        http = HttpContext(rf.get('/file'))

        collection.download(http, 'original', unsaved_record)

        response = http.response
        assert response.status_code == 200
        assert _body(response) == b'test'
        assert response['Content-Length'] == '4'
        assert response['Content-Type'] == 'text/plain'
        assert response['Accept-Ranges'] == 'bytes'
        assert response['Content-Disposition'] == 'inline; filename="x.txt"'
        assert response['Cache-Control'] == collection.cache_control

    def test_single_range(self, collection, rf, unsaved_record):
        """Test a single range is answered with 206."""
        http = HttpContext(rf.get('/file', HTTP_RANGE='bytes=1-2'))

        collection.download(http, 'original', unsaved_record)

        response = http.response
        assert response.status_code == 206
        assert _body(response) == b'es'
        assert response['Content-Range'] == 'bytes 1-2/4'
        assert response['Content-Length'] == '2'

    def test_open_ended_range_is_clamped(self, collection, rf, unsaved_record):
        """Test a range past the end stops at the last byte."""
        http = HttpContext(rf.get('/file', HTTP_RANGE='bytes=2-100'))

        collection.download(http, 'original', unsaved_record)

        assert http.response.status_code == 206
        assert _body(http.response) == b'st'
        assert http.response['Content-Range'] == 'bytes 2-3/4'

    @pytest.mark.parametrize('range_header', [
        'bytes=0-1,2-3',
        'items=0-1',
        'bytes=3-1',
        'bytes=10-',
        'bytes=-',
    ])
    def test_unusable_range_serves_everything(
        self,
        collection,
        rf,
        unsaved_record,
        range_header,
    ):
        """Test multiple or invalid ranges degrade to a full 200."""
        http = HttpContext(rf.get('/file', HTTP_RANGE=range_header))

        collection.download(http, 'original', unsaved_record)

        assert http.response.status_code == 200
        assert _body(http.response) == b'test'
        assert not http.response.has_header('Content-Range')

    def test_attachment(self, collection, rf, unsaved_record):
        """Test ?download=true asks the browser to save the file."""
        http = HttpContext(rf.get('/file', {'download': 'true'}))

        collection.download(http, 'original', unsaved_record)

        assert http.response['Content-Disposition'] == (
            'attachment; filename="x.txt"'
        )

    def test_response_headers_hook(self, storage_root, rf, unsaved_record):
        """Test the response headers hook adds headers."""
        response_headers = MagicMock(return_value={'X-Served-By': 'files'})
        collection = FilesCollection(
            'decorated',
            storage_path=storage_root,
            cache_control='no-store',
            response_headers=response_headers,
        )
        http = HttpContext(rf.get('/file'))

        collection.download(http, 'original', unsaved_record)

        response_headers.assert_called_once_with(
            200,
            unsaved_record,
            'original',
            http,
        )
        assert http.response['X-Served-By'] == 'files'
        assert http.response['Cache-Control'] == 'no-store'

    def test_response_headers_hook_failure(
        self,
        storage_root,
        rf,
        unsaved_record,
    ):
        """Test a raising headers hook ends in a 404, not an exception."""
        collection = FilesCollection(
            'decorated-failing',
            storage_path=storage_root,
            response_headers=MagicMock(side_effect=RuntimeError('boom')),
        )
        http = HttpContext(rf.get('/file'))

        collection.download(http, 'original', unsaved_record)

        assert http.response.status_code == 404
        assert http.response.content == b'File Not Found :('


class TestAsyncDownload:
    """Tests for adownload."""

    @pytest.mark.asyncio
    async def test_stat_failure(self, collection, rf, unsaved_record):
        """Test a failing async stat is a 404."""
        http = HttpContext(rf.get('/file'))
        aserve = AsyncMock()

        with (
            patch.object(
                collection.storage,
                'astat',
                new=AsyncMock(side_effect=PermissionError),
            ),
            patch.object(collection, 'aserve', new=aserve),
        ):
            await collection.adownload(http, 'original', unsaved_record)

        assert http.response.status_code == 404
        aserve.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_intercepted(self, collection, rf, unsaved_record):
        """Test an async intercept skips everything else."""
        collection.intercept_download.async_func = AsyncMock(return_value=True)
        download_callback = AsyncMock(return_value=True)
        collection.download_callback.async_func = download_callback
        http = HttpContext(rf.get('/file'))
        astat = AsyncMock()

        with patch.object(collection.storage, 'astat', new=astat):
            await collection.adownload(http, 'original', unsaved_record)

        astat.assert_not_awaited()
        download_callback.assert_not_awaited()
        assert http.response is None

    @pytest.mark.asyncio
    async def test_sync_callback_refuses(self, collection, rf, unsaved_record):
        """Test a sync download callback also guards the async form."""
        collection.download_callback.func = lambda http, record: False
        http = HttpContext(rf.get('/file'))

        await collection.adownload(http, 'original', unsaved_record)

        assert http.response.status_code == 404

    @pytest.mark.asyncio
    async def test_streams_range(self, collection, rf, unsaved_record):
        """Test the async body honours a single range."""
        http = HttpContext(rf.get('/file', HTTP_RANGE='bytes=-3'))

        await collection.adownload(http, 'original', unsaved_record)

        assert http.response.status_code == 206
        assert await _abody(http.response) == b'est'
        assert http.response['Content-Range'] == 'bytes 1-3/4'

    @pytest.mark.asyncio
    async def test_streams_full_body(self, collection, rf, unsaved_record):
        """Test an async download without a range streams everything."""
        http = HttpContext(rf.get('/file', HTTP_RANGE='bytes=10-'))

        await collection.adownload(http, 'original', unsaved_record)

        assert http.response.status_code == 200
        assert await _abody(http.response) == b'test'

    @pytest.mark.asyncio
    async def test_serve_failure(self, storage_root, rf, unsaved_record):
        """Test a raising headers hook ends the async form in a 404."""
        collection = FilesCollection(
            'async-decorated-failing',
            storage_path=storage_root,
            response_headers=MagicMock(side_effect=RuntimeError('boom')),
        )
        http = HttpContext(rf.get('/file'))

        await collection.adownload(http, 'original', unsaved_record)

        assert http.response.status_code == 404


@pytest.mark.parametrize(('header', 'size', 'expected'), [
    ('bytes=0-0', 4, (0, 0)),
    ('bytes=1-2', 4, (1, 2)),
    ('bytes=2-100', 4, (2, 3)),
    ('bytes=0-', 4, (0, 3)),
    ('bytes=-2', 4, (2, 3)),
    ('bytes=-10', 4, (0, 3)),
    ('bytes=-0', 4, None),
    ('bytes=10-', 4, None),
    ('bytes=4-5', 4, None),
    ('bytes=1-2', 0, None),
    (None, 4, None),
])
def test_parse_range(header, size, expected):
    """Test single range parsing and clamping."""
    assert parse_range(header, size) == expected


class TestLink:
    """Tests for download URLs."""

    def test_private_link(self, collection, unsaved_record):
        """Test private records link through the collection route."""
        url = collection.link(
            unsaved_record,
            uri_base='https://files.example.com/',
        )

        assert url == (
            'https://files.example.com/cdn/storage/test-files/'
            'file1/original/file1.txt'
        )

    def test_public_link(self, storage_root, unsaved_record):
        """Test public records link straight to the file."""
        public = FilesCollection(
            'public-links',
            public=True,
            storage_path=storage_root,
            download_route='/public',
        )
        unsaved_record.public = True
        unsaved_record.download_route = '/public'
        unsaved_record.versions['thumbnail'] = {
            'path': '/storage/thumb.png',
            'extension': 'png',
        }

        base = 'https://files.example.com'

        assert public.link(unsaved_record, uri_base=base) == (
            'https://files.example.com/public/file1.txt'
        )
        assert public.link(unsaved_record, 'thumbnail', base) == (
            'https://files.example.com/public/thumbnail-file1.png'
        )
