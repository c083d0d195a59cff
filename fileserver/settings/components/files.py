"""File collection settings.

Defaults applied to every ``FilesCollection`` unless the collection
passes its own value to the constructor.
"""

from fileserver.settings.components import BASE_DIR, config

# Root directory; each collection stores under <root>/<collection_name>
FILES_STORAGE_PATH = config(
    'FILES_STORAGE_PATH',
    default=str(BASE_DIR.joinpath('assets', 'app', 'uploads')),
)

# Permission bits for stored files and their parent directories
FILES_PERMISSIONS = config(
    'FILES_PERMISSIONS',
    cast=lambda mode: int(mode, 8),
    default='644',
)
FILES_PARENT_DIR_PERMISSIONS = config(
    'FILES_PARENT_DIR_PERMISSIONS',
    cast=lambda mode: int(mode, 8),
    default='755',
)

# URL prefix for uploads and downloads
FILES_DOWNLOAD_ROUTE = config('FILES_DOWNLOAD_ROUTE', default='/cdn/storage')
FILES_ROOT_URL = config('FILES_ROOT_URL', default='http://localhost:8000')
FILES_CACHE_CONTROL = config(
    'FILES_CACHE_CONTROL',
    default='public, max-age=31536000, s-maxage=31536000',
)

# Upload chunk size and download streaming buffer, in bytes
FILES_CHUNK_SIZE = config('FILES_CHUNK_SIZE', cast=int, default=524288)
FILES_STREAM_CHUNK_SIZE = config(
    'FILES_STREAM_CHUNK_SIZE',
    cast=int,
    default=65536,
)

# Unfinished uploads older than this (seconds) are purged
FILES_UPLOAD_TTL = config('FILES_UPLOAD_TTL', cast=int, default=10800)
