"""Database models for files app."""

from typing import ClassVar, Final, final, override

from django.db import models

# Constants for field max lengths
_ID_MAX_LENGTH: Final = 64
_NAME_MAX_LENGTH: Final = 255
_PATH_MAX_LENGTH: Final = 1024
_MIME_TYPE_MAX_LENGTH: Final = 255
_EXTENSION_MAX_LENGTH: Final = 21  # 20 chars plus leading dot
_USER_ID_MAX_LENGTH: Final = 64
_ROUTE_MAX_LENGTH: Final = 255


@final
class FileRecord(models.Model):
    """Metadata for one logical file stored by a collection.

    The record itself never holds bytes. ``versions`` maps a version
    name to ``{path, size, type, extension}`` describing stored bytes,
    and always contains ``original`` once the record exists.
    """

    id = models.CharField(
        primary_key=True,
        max_length=_ID_MAX_LENGTH,
        help_text='Opaque file identifier',
    )

    collection_name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        db_index=True,
    )

    name = models.CharField(max_length=_NAME_MAX_LENGTH)

    type = models.CharField(
        max_length=_MIME_TYPE_MAX_LENGTH,
        default='application/octet-stream',
        help_text='Declared or detected MIME type',
    )

    size = models.BigIntegerField(
        default=0,
        help_text='File size in bytes',
    )

    extension = models.CharField(
        max_length=_EXTENSION_MAX_LENGTH,
        blank=True,
        default='',
    )

    extension_with_dot = models.CharField(
        max_length=_EXTENSION_MAX_LENGTH,
        blank=True,
        default='',
    )

    path = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        help_text='Storage path of the original version',
    )

    user_id = models.CharField(
        max_length=_USER_ID_MAX_LENGTH,
        null=True,
        blank=True,
        db_index=True,
    )

    meta = models.JSONField(default=dict, blank=True)

    versions = models.JSONField(
        default=dict,
        help_text='Version name -> {path, size, type, extension}',
    )

    public = models.BooleanField(default=False)

    download_route = models.CharField(
        max_length=_ROUTE_MAX_LENGTH,
        blank=True,
        default='',
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'File record'  # type: ignore[mutable-override]
        verbose_name_plural = 'File records'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['created_at', 'id']

        indexes: ClassVar[list[models.Index]] = [
            models.Index(
                fields=['collection_name', 'created_at'],
                name='files_collection_recent_idx',
            ),
        ]

    @override
    def __str__(self) -> str:
        """String representation."""
        return f'{self.collection_name}:{self.name} ({self.id})'

    @property
    def is_image(self) -> bool:
        """Whether the MIME type is an image type."""
        return self.type.lower().startswith('image/')

    @property
    def is_video(self) -> bool:
        """Whether the MIME type is a video type."""
        return self.type.lower().startswith('video/')

    @property
    def is_audio(self) -> bool:
        """Whether the MIME type is an audio type."""
        return self.type.lower().startswith('audio/')

    @property
    def is_text(self) -> bool:
        """Whether the MIME type is a text type."""
        return self.type.lower().startswith('text/')

    @property
    def is_json(self) -> bool:
        """Whether the MIME type is ``application/json``."""
        return self.type.lower() == 'application/json'

    @property
    def is_pdf(self) -> bool:
        """Whether the MIME type is a PDF type."""
        return self.type.lower() in {'application/pdf', 'application/x-pdf'}


@final
class PendingUpload(models.Model):
    """Marker for an upload session that is receiving bytes.

    Created when the transport starts an upload and flipped to finished
    by ``finish_upload``. Stale markers are purged by the
    ``cleanup_uploads`` management command.
    """

    file_id = models.CharField(
        max_length=_ID_MAX_LENGTH,
        unique=True,
    )

    collection_name = models.CharField(
        max_length=_NAME_MAX_LENGTH,
        db_index=True,
    )

    file_name = models.CharField(max_length=_NAME_MAX_LENGTH)

    path = models.CharField(
        max_length=_PATH_MAX_LENGTH,
        help_text='Target storage path of the upload',
    )

    size = models.BigIntegerField(
        default=0,
        help_text='Declared total size in bytes',
    )

    chunk_size = models.PositiveIntegerField(
        help_text='Chunk size negotiated for this upload',
    )

    user_id = models.CharField(
        max_length=_USER_ID_MAX_LENGTH,
        null=True,
        blank=True,
    )

    is_finished = models.BooleanField(default=False, db_index=True)

    result = models.JSONField(
        default=dict,
        help_text='Prepared upload result snapshot',
    )

    opts = models.JSONField(
        default=dict,
        help_text='Prepared upload options snapshot',
    )

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        """Model metadata."""

        verbose_name = 'Pending upload'  # type: ignore[mutable-override]
        verbose_name_plural = 'Pending uploads'  # type: ignore[mutable-override]
        ordering: ClassVar[list[str]] = ['created_at']

    @override
    def __str__(self) -> str:
        """String representation."""
        state = 'finished' if self.is_finished else 'pending'
        return f'{self.collection_name}:{self.file_name} ({state})'
