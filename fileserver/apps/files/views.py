"""HTTP transport for file collections.

Downloads are plain GET requests resolved to a record and handed to the
collection. Uploads speak a small chunk protocol on one POST endpoint,
driven by request headers:

- ``x-start: 1`` with a JSON descriptor body opens a session;
- ``x-fileid`` and ``x-chunkid`` with raw bytes store one chunk;
- ``x-fileid`` and ``x-eof: 1`` commits the upload.
"""

import json
import logging
from typing import Any, override

from django.http import HttpRequest, JsonResponse
from django.http.response import HttpResponseBase
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from fileserver.apps.files.exceptions import FilesError, FilesValidationError
from fileserver.apps.files.logic.collection import FilesCollection, get_collection
from fileserver.apps.files.logic.download import HttpContext, respond_404
from fileserver.apps.files.models import FileRecord

logger = logging.getLogger(__name__)


def download_view(
    request: HttpRequest,
    collection_name: str,
    file_id: str,
    version: str,
    name: str,
) -> HttpResponseBase:
    """Serve one version of a stored file.

    Args:
        request: HTTP request.
        collection_name: Registered collection name.
        file_id: Record identifier.
        version: Version name.
        name: File name, only used to make URLs readable.

    Returns:
        Streaming file response, or 404.
    """
    http = HttpContext(
        request,
        params={
            'collection_name': collection_name,
            'file_id': file_id,
            'version': version,
            'name': name,
        },
    )
    try:
        collection = get_collection(collection_name)
    except FilesError:
        respond_404(http)
        return http.response  # type: ignore[return-value]

    collection.download(http, version, collection.store.find_one(file_id))
    if http.response is None:
        logger.error(
            '[%s] Download hook returned without a response: %s',
            collection_name,
            file_id,
        )
        collection.respond_404(http)
    return http.response  # type: ignore[return-value]


@method_decorator(csrf_exempt, name='dispatch')
class UploadView(View):
    """Chunked upload endpoint of a collection."""

    http_method_names = ['post']

    @override
    def dispatch(
        self,
        request: HttpRequest,
        *args: Any,
        **kwargs: Any,
    ) -> HttpResponseBase:
        """Turn file collection errors into JSON responses."""
        try:
            return super().dispatch(request, *args, **kwargs)
        except FilesError as error:
            logger.info(
                'Upload request failed: %s [%d]',
                error.reason,
                error.code,
            )
            return JsonResponse(
                {'error': error.code, 'reason': error.reason},
                status=error.code,
            )

    def post(self, request: HttpRequest, collection_name: str) -> JsonResponse:
        """Handle one step of the upload protocol.

        Args:
            request: HTTP request.
            collection_name: Registered collection name.

        Returns:
            JSON describing the session, the chunk or the record.
        """
        collection = get_collection(collection_name)
        if request.headers.get('x-start') == '1':
            return self._start(request, collection)

        file_id = request.headers.get('x-fileid')
        if not file_id:
            raise FilesValidationError('Missing "x-fileid" header')
        if request.headers.get('x-eof') == '1':
            record = collection.complete_upload(file_id)
            return JsonResponse(_describe(collection, record), status=201)

        written = collection.write_chunk(
            file_id,
            _chunk_id(request.headers.get('x-chunkid')),
            request.body,
        )
        return JsonResponse({'file_id': file_id, 'written': written})

    def _start(
        self,
        request: HttpRequest,
        collection: FilesCollection,
    ) -> JsonResponse:
        try:
            descriptor = json.loads(request.body or b'{}')
        except ValueError as error:
            raise FilesValidationError('Upload descriptor is not JSON') from error
        if not isinstance(descriptor, dict):
            raise FilesValidationError('Upload descriptor must be an object')

        prepared = collection.start_upload(
            descriptor,
            user_id=_user_id(request),
            transport='http',
        )
        return JsonResponse({
            'file_id': prepared.result['id'],
            'chunk_size': prepared.opts['chunk_size'],
        })


def _chunk_id(raw_value: str | None) -> int:
    try:
        return int(raw_value or '')
    except ValueError as error:
        raise FilesValidationError(
            f'Invalid "x-chunkid" header: {raw_value}',
        ) from error


def _user_id(request: HttpRequest) -> str | None:
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None
    return str(user.pk)


def _describe(collection: FilesCollection, record: FileRecord) -> dict[str, Any]:
    return {
        'id': record.id,
        'name': record.name,
        'type': record.type,
        'size': record.size,
        'extension': record.extension,
        'meta': record.meta,
        'link': collection.link(record),
    }
