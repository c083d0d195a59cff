"""Django admin configuration for files app."""

from django.contrib import admin

from fileserver.apps.files.models import FileRecord, PendingUpload

_KIB = 1024


def _format_bytes(size_bytes: int) -> str:
    """Format bytes in human-readable format.

    Args:
        size_bytes: Size in bytes.

    Returns:
        Formatted size string (e.g., '1.5 MB', '234 KB').
    """
    if size_bytes < _KIB:
        return f'{size_bytes} B'
    if size_bytes < _KIB * _KIB:  # noqa: WPS531
        return f'{size_bytes / _KIB:.1f} KB'
    if size_bytes < _KIB * _KIB * _KIB:  # noqa: WPS531
        return f'{size_bytes / (_KIB * _KIB):.1f} MB'
    return f'{size_bytes / (_KIB * _KIB * _KIB):.1f} GB'


@admin.register(FileRecord)
class FileRecordAdmin(admin.ModelAdmin):
    """Admin interface for FileRecord model."""

    list_display = [
        'name',
        'collection_name',
        'size_display',
        'type',
        'user_id',
        'created_at',
    ]

    list_filter = [
        'collection_name',
        'type',
        'public',
    ]

    search_fields = [
        'id',
        'name',
        'user_id',
    ]

    readonly_fields = [
        'id',
        'collection_name',
        'path',
        'size',
        'versions',
        'created_at',
        'updated_at',
    ]

    fieldsets = (
        ('File Information', {
            'fields': ('id', 'collection_name', 'name', 'user_id'),
        }),
        ('Storage', {
            'fields': ('path', 'size', 'type', 'versions', 'public'),
        }),
        ('Metadata', {
            'fields': ('meta',),
        }),
        ('Timestamps', {
            'fields': ('created_at', 'updated_at'),
        }),
    )

    def size_display(self, obj: FileRecord) -> str:
        """Display file size in human-readable format.

        Args:
            obj: FileRecord instance.

        Returns:
            Formatted size string.
        """
        return _format_bytes(obj.size)
    size_display.short_description = 'Size'  # type: ignore[attr-defined]


@admin.register(PendingUpload)
class PendingUploadAdmin(admin.ModelAdmin):
    """Admin interface for PendingUpload model."""

    list_display = [
        'file_name',
        'collection_name',
        'file_id',
        'is_finished',
        'created_at',
    ]

    list_filter = [
        'collection_name',
        'is_finished',
    ]

    search_fields = [
        'file_id',
        'file_name',
    ]

    readonly_fields = [
        'file_id',
        'path',
        'result',
        'opts',
        'created_at',
    ]
