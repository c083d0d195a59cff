"""Business logic for serving stored files over HTTP.

The engine never raises past its boundary: every failure ends in a 404
response written to the :class:`HttpContext`.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final

from django.conf import settings
from django.http import HttpRequest, HttpResponseNotFound, StreamingHttpResponse
from django.http.response import HttpResponseBase
from django.utils.http import content_disposition_header, http_date
from wsgidav.dav_error import DAVError
from wsgidav.util import obtain_content_ranges

from fileserver.apps.files.logic.hooks import (
    is_download_allowed,
    is_download_intercepted,
)
from fileserver.apps.files.models import FileRecord

if TYPE_CHECKING:
    from fileserver.apps.files.logic.collection import FilesCollection

logger = logging.getLogger(__name__)

_NOT_FOUND_BODY: Final = 'File Not Found :('
_SINGLE_RANGE: Final = re.compile(r'^\s*bytes=(\d*)-(\d*)\s*$', re.IGNORECASE)


@dataclass
class HttpContext:
    """Request being served and the response produced for it.

    Hooks receive the context and may set ``response`` themselves
    (``intercept_download`` must, when it returns True).
    """

    request: HttpRequest
    response: HttpResponseBase | None = None
    params: dict[str, str] = field(default_factory=dict)

    @property
    def user(self) -> Any:
        """User attached to the request by auth middleware, if any."""
        return getattr(self.request, 'user', None)


def download(
    collection: 'FilesCollection',
    http: HttpContext,
    version: str = 'original',
    record: FileRecord | None = None,
) -> None:
    """Serve one version of a record, or a 404.

    Order: ``intercept_download`` (True ends here), version lookup,
    stat of the stored path, ``download_callback`` (falsy means 404),
    then :meth:`FilesCollection.serve`.

    Args:
        collection: Owning collection.
        http: Request/response context; ``http.response`` is set.
        version: Version name.
        record: Record to serve; None means not found.
    """
    if record is None:
        collection.respond_404(http)
        return
    try:
        if collection.intercept_download and is_download_intercepted(
            collection.intercept_download.call(http, record, version),
        ):
            logger.debug('Download intercepted: %s/%s', record.id, version)
            return

        version_ref = _version_ref(record, version)
        if version_ref is None:
            collection.respond_404(http)
            return

        size = _stored_size(collection, version_ref['path'])
        if size is None:
            collection.respond_404(http)
            return

        if collection.download_callback and not is_download_allowed(
            collection.download_callback.call(http, record),
        ):
            collection.respond_404(http)
            return
    except Exception:
        logger.exception('Download failed: %s/%s', record.id, version)
        collection.respond_404(http)
        return

    try:
        collection.serve(http, record, {**version_ref, 'size': size}, version)
    except Exception:
        logger.exception('Serving failed: %s/%s', record.id, version)
        collection.respond_404(http)


async def adownload(
    collection: 'FilesCollection',
    http: HttpContext,
    version: str = 'original',
    record: FileRecord | None = None,
) -> None:
    """Async version of :func:`download`."""
    if record is None:
        collection.respond_404(http)
        return
    try:
        if collection.intercept_download and is_download_intercepted(
            await collection.intercept_download.acall(http, record, version),
        ):
            logger.debug('Download intercepted: %s/%s', record.id, version)
            return

        version_ref = _version_ref(record, version)
        if version_ref is None:
            collection.respond_404(http)
            return

        size = await _astored_size(collection, version_ref['path'])
        if size is None:
            collection.respond_404(http)
            return

        if collection.download_callback and not is_download_allowed(
            await collection.download_callback.acall(http, record),
        ):
            collection.respond_404(http)
            return
    except Exception:
        logger.exception('Download failed: %s/%s', record.id, version)
        collection.respond_404(http)
        return

    try:
        await collection.aserve(
            http,
            record,
            {**version_ref, 'size': size},
            version,
        )
    except Exception:
        logger.exception('Serving failed: %s/%s', record.id, version)
        collection.respond_404(http)


def serve(
    collection: 'FilesCollection',
    http: HttpContext,
    record: FileRecord,
    version_ref: Mapping[str, Any],
    version: str = 'original',
) -> None:
    """Stream a stored version into ``http.response``.

    A single satisfiable ``Range`` is answered with 206 and only the
    requested bytes; anything else gets the full body with 200.

    Args:
        collection: Owning collection.
        http: Request/response context.
        record: Record being served.
        version_ref: Version info with the actual ``size``.
        version: Version name.
    """
    size, start, end, status = _plan_response(http, version_ref)
    response = StreamingHttpResponse(
        collection.storage.iter_range(
            version_ref['path'],
            start,
            end,
            collection.stream_chunk_size,
        ),
        status=status,
        content_type=version_ref.get('type') or record.type,
    )
    _decorate(collection, http, response, record, version, size, start, end)
    http.response = response


async def aserve(
    collection: 'FilesCollection',
    http: HttpContext,
    record: FileRecord,
    version_ref: Mapping[str, Any],
    version: str = 'original',
) -> None:
    """Async version of :func:`serve`; the body is an async iterator."""
    size, start, end, status = _plan_response(http, version_ref)
    response = StreamingHttpResponse(
        collection.storage.aiter_range(
            version_ref['path'],
            start,
            end,
            collection.stream_chunk_size,
        ),
        status=status,
        content_type=version_ref.get('type') or record.type,
    )
    _decorate(collection, http, response, record, version, size, start, end)
    http.response = response


def respond_404(http: HttpContext) -> None:
    """Write a terminal 404 response.

    Args:
        http: Request/response context.
    """
    logger.debug('Responding 404: %s', http.request.path)
    http.response = HttpResponseNotFound(
        _NOT_FOUND_BODY,
        content_type='text/plain; charset=utf-8',
    )


def parse_range(header: str | None, size: int) -> tuple[int, int] | None:
    """Parse a single-range ``Range`` header against a file size.

    Args:
        header: Raw ``Range`` header value.
        size: File size in bytes.

    Returns:
        Inclusive ``(start, end)`` clamped to the file, or None when the
        header is absent, malformed, lists several ranges or cannot be
        satisfied.
    """
    if not header or size <= 0:
        return None
    match = _SINGLE_RANGE.match(header)
    if match is None:
        return None
    first, last = match.groups()
    if not first and not last:
        return None
    if first and last and int(last) < int(first):
        return None

    try:
        ranges, _ = obtain_content_ranges(header, size)
    except DAVError:
        return None
    if len(ranges) != 1:
        return None
    start, end, _ = ranges[0]
    if start < 0 or end < start or end >= size:
        return None
    return start, end


def link(
    collection: 'FilesCollection',
    record: FileRecord,
    version: str = 'original',
    uri_base: str | None = None,
) -> str:
    """Build a fetchable URL for one version of a record.

    Args:
        collection: Owning collection.
        record: Record to link to.
        version: Version name.
        uri_base: Scheme and host, ``FILES_ROOT_URL`` when omitted.

    Returns:
        Absolute URL string.
    """
    root = (uri_base or settings.FILES_ROOT_URL).rstrip('/')
    version_ref = (record.versions or {}).get(version) or {}
    extension = version_ref.get('extension', record.extension) or ''
    suffix = f'.{extension.lstrip(".")}' if extension else ''
    route = record.download_route or collection.download_route

    if record.public:
        name = record.id if version == 'original' else f'{version}-{record.id}'
        return f'{root}{route}/{name}{suffix}'
    return (
        f'{root}{route}/{record.collection_name}/{record.id}/'
        f'{version}/{record.id}{suffix}'
    )


def _version_ref(record: FileRecord, version: str) -> dict[str, Any] | None:
    version_ref = (record.versions or {}).get(version)
    if not isinstance(version_ref, dict) or not version_ref.get('path'):
        logger.debug('Version not found: %s/%s', record.id, version)
        return None
    return version_ref


def _stored_size(collection: 'FilesCollection', path: str) -> int | None:
    """Size of a stored regular file, None when it is not servable."""
    try:
        stats = collection.storage.stat(path)
    except OSError:
        logger.warning('Stored file is not accessible: %s', path)
        return None
    if not collection.storage.is_regular_file(stats):
        logger.warning('Stored path is not a file: %s', path)
        return None
    return stats.st_size


async def _astored_size(collection: 'FilesCollection', path: str) -> int | None:
    try:
        stats = await collection.storage.astat(path)
    except OSError:
        logger.warning('Stored file is not accessible: %s', path)
        return None
    if not collection.storage.is_regular_file(stats):
        logger.warning('Stored path is not a file: %s', path)
        return None
    return stats.st_size


def _plan_response(
    http: HttpContext,
    version_ref: Mapping[str, Any],
) -> tuple[int, int, int, int]:
    """Return ``(size, start, end, status)`` for the response."""
    size = int(version_ref.get('size') or 0)
    byte_range = parse_range(http.request.headers.get('Range'), size)
    if byte_range is None:
        return size, 0, size - 1, 200
    start, end = byte_range
    return size, start, end, 206


def _decorate(  # noqa: WPS211
    collection: 'FilesCollection',
    http: HttpContext,
    response: StreamingHttpResponse,
    record: FileRecord,
    version: str,
    size: int,
    start: int,
    end: int,
) -> None:
    """Set length, range, caching and disposition headers."""
    response['Content-Length'] = str(end - start + 1)
    response['Accept-Ranges'] = 'bytes'
    if response.status_code == 206:
        response['Content-Range'] = f'bytes {start}-{end}/{size}'

    as_attachment = http.request.GET.get('download') == 'true'
    disposition = content_disposition_header(as_attachment, record.name)
    if disposition:
        response['Content-Disposition'] = disposition
    if collection.cache_control:
        response['Cache-Control'] = collection.cache_control
    if record.updated_at is not None:
        response['Last-Modified'] = http_date(record.updated_at.timestamp())

    if collection.response_headers is not None:
        extra_headers = collection.response_headers(
            response.status_code,
            record,
            version,
            http,
        )
        for header, header_value in (extra_headers or {}).items():
            response[header] = header_value
