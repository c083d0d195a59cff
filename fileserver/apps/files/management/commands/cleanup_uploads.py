"""Management command to clean up stale upload sessions."""

import logging
from datetime import timedelta
from typing import Any, Final

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from fileserver.apps.files.infrastructure.storage import FileStorage
from fileserver.apps.files.models import PendingUpload

_DEFAULT_BATCH_SIZE: Final = 1000

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """Delete upload markers older than ``FILES_UPLOAD_TTL``.

    Unfinished uploads also lose their partially written bytes.
    """

    help = 'Clean up stale upload sessions and their partial files'

    def add_arguments(self, parser: Any) -> None:
        """Add command line arguments.

        Args:
            parser: Argument parser.
        """
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without deleting',
        )
        parser.add_argument(
            '--ttl',
            type=int,
            default=None,
            help='Max session age in seconds (default: FILES_UPLOAD_TTL)',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=_DEFAULT_BATCH_SIZE,
            help=f'Max sessions to process (default: {_DEFAULT_BATCH_SIZE})',
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the cleanup command.

        Args:
            args: Positional arguments (unused).
            options: Command options.
        """
        dry_run = options['dry_run']
        ttl = options['ttl']
        if ttl is None:
            ttl = settings.FILES_UPLOAD_TTL

        cutoff = timezone.now() - timedelta(seconds=ttl)
        self.stdout.write(
            f'Looking for upload sessions started before {cutoff} '
            f'(older than {ttl} seconds)',
        )

        stale_uploads = PendingUpload.objects.filter(
            created_at__lte=cutoff,
        ).order_by('created_at')[:options['batch_size']]

        storage = FileStorage()
        count = 0
        failed = 0

        for pending in stale_uploads:
            if dry_run:
                state = 'finished' if pending.is_finished else 'unfinished'
                self.stdout.write(
                    f'Would delete: {pending.file_name} '
                    f'(collection: {pending.collection_name}, {state}, '
                    f'started: {pending.created_at})',
                )
                count += 1
                continue

            try:
                if not pending.is_finished:
                    storage.delete(pending.path)
                pending.delete()
            except Exception as exc:
                self.stderr.write(
                    f'Failed to clean up {pending.file_id}: {exc}',
                )
                logger.exception(
                    'Failed to clean up upload session: %s',
                    pending.file_id,
                )
                failed += 1
                continue
            count += 1
            logger.info(
                'Purged upload session: %s (ID: %s)',
                pending.file_name,
                pending.file_id,
            )

        if dry_run:
            self.stdout.write(
                self.style.SUCCESS(f'Would purge {count} upload sessions'),
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(
                    f'Purged {count} upload sessions, {failed} failed',
                ),
            )
