"""Django app configuration for files app."""

from typing import override

from django.apps import AppConfig
from django.utils.module_loading import autodiscover_modules


class FilesConfig(AppConfig):
    """Configuration for files app."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'fileserver.apps.files'
    label = 'files'
    verbose_name = 'Files'

    @override
    def ready(self) -> None:
        """Register collections declared in ``<app>.collections`` modules."""
        autodiscover_modules('collections')
