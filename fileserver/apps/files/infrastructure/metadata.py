"""Metadata extraction utilities for files."""

import mimetypes
import re
from pathlib import Path
from typing import Final, NamedTuple

from django.utils.crypto import get_random_string

_DEFAULT_MIME_TYPE: Final = 'application/octet-stream'
_EXTENSION_MAX_LENGTH: Final = 20
_FILE_ID_LENGTH: Final = 17

_LEADING_DOTS: Final = re.compile(r'^\.\.+')
_REPEATED_DOTS: Final = re.compile(r'\.{2,}')
_EXTENSION_UNSAFE: Final = re.compile(r'[^a-z0-9\-_.]+')
_STORAGE_NAME_UNSAFE: Final = re.compile(r'[^a-z0-9\-_]+', re.IGNORECASE)


class Extension(NamedTuple):
    """File extension with and without the leading dot."""

    extension: str
    extension_with_dot: str


def generate_file_id() -> str:
    """Generate an opaque identifier for a new file.

    Returns:
        Random 17 character alphanumeric string.
    """
    return get_random_string(_FILE_ID_LENGTH)


def sanitize_file_name(file_name: str | None) -> str:
    """Make a client supplied file name safe to display and store.

    Strips leading ``..``, collapses runs of dots and drops slashes.

    Args:
        file_name: Candidate name (e.g., '../../etc/passwd').

    Returns:
        Sanitized name (e.g., '.etcpasswd'), empty string for no name.
    """
    if not file_name:
        return ''
    file_name = _LEADING_DOTS.sub('', file_name)
    file_name = _REPEATED_DOTS.sub('.', file_name)
    return file_name.replace('/', '')


def sanitize_storage_name(name: str) -> str:
    """Replace characters unsafe for on-disk names with dashes.

    Args:
        name: Naming function output or file id.

    Returns:
        Name containing only letters, digits, dashes and underscores.
    """
    return _STORAGE_NAME_UNSAFE.sub('-', name)


def get_file_extension(file_name: str) -> Extension:
    """Get file extension from filename.

    Args:
        file_name: Filename (e.g., 'document.PDF?v=2').

    Returns:
        Lowercase extension limited to 20 characters (e.g., 'pdf'),
        empty strings if the name has no usable extension.
    """
    if '.' not in file_name:
        return Extension('', '')

    extension = file_name.rsplit('.', 1)[-1].split('?', 1)[0].lower()
    extension = _EXTENSION_UNSAFE.sub('', extension)[:_EXTENSION_MAX_LENGTH]
    if not extension:
        return Extension('', '')
    return Extension(extension, f'.{extension}')


def detect_mime_type(file_name: str, declared_type: str | None = None) -> str:
    """Detect MIME type for a file.

    A type declared by the client wins. Otherwise the type is guessed
    from the filename extension with Python's mimetypes module.

    Args:
        file_name: Filename with extension.
        declared_type: MIME type supplied with the upload, if any.

    Returns:
        MIME type string (e.g., 'image/jpeg', 'application/pdf').
        Returns 'application/octet-stream' if type cannot be determined.
    """
    if declared_type:
        return declared_type
    mime_type, _ = mimetypes.guess_type(file_name)
    if mime_type is None:
        return _DEFAULT_MIME_TYPE
    return mime_type


def extract_filename(storage_path: str) -> str:
    """Extract filename from storage path.

    Args:
        storage_path: Full path (e.g., '/data/uploads/images/file.png').

    Returns:
        Filename (e.g., 'file.png').
    """
    return Path(storage_path).name
