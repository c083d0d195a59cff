"""Exceptions for files app.

Every error carries an HTTP-style numeric ``code`` and a ``reason``
so views can turn it into a response without inspecting its type.
"""

from typing import ClassVar


class FilesError(Exception):
    """Base class for file collection errors."""

    default_code: ClassVar[int] = 500
    default_reason: ClassVar[str] = 'Internal server error'

    def __init__(
        self,
        reason: str | None = None,
        code: int | None = None,
    ) -> None:
        """Initialize FilesError.

        Args:
            reason: Human-readable reason, class default when omitted.
            code: HTTP-style status code, class default when omitted.
        """
        self.reason = reason if reason is not None else self.default_reason
        self.code = code if code is not None else self.default_code
        super().__init__(f'{self.reason} [{self.code}]')


class FilesValidationError(FilesError):
    """Raised for invalid input, e.g. a missing or unreadable source path."""

    default_code = 400
    default_reason = 'Bad request'


class FilesPermissionError(FilesError):
    """Raised when an operation is forbidden for the collection."""

    default_code = 403
    default_reason = 'Forbidden'


class FilesNotFoundError(FilesError):
    """Raised when a file, version or cursor target does not exist."""

    default_code = 404
    default_reason = 'No such file'


class HookRejectedError(FilesError):
    """Raised when ``on_before_upload`` refuses an upload."""

    default_code = 403
    default_reason = 'Forbidden'


class FilesStorageError(FilesError):
    """Raised when stored bytes cannot be written, read or removed."""

    default_code = 500
    default_reason = 'Storage failure'
