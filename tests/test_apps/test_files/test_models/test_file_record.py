"""Tests for FileRecord and PendingUpload models."""

import pytest

from fileserver.apps.files.models import FileRecord, PendingUpload


@pytest.mark.django_db
def test_file_record_str():
    """Test FileRecord __str__ method."""
    record = FileRecord.objects.create(
        id='abc',
        collection_name='docs',
        name='report.pdf',
        path='/storage/abc.pdf',
    )

    assert str(record) == 'docs:report.pdf (abc)'


@pytest.mark.django_db
def test_file_record_defaults():
    """Test defaults for optional fields."""
    record = FileRecord.objects.create(
        id='abc',
        collection_name='docs',
        name='blob',
        path='/storage/abc',
    )

    assert record.type == 'application/octet-stream'
    assert record.size == 0
    assert record.meta == {}
    assert record.versions == {}
    assert record.public is False
    assert record.created_at is not None


@pytest.mark.parametrize(('mime_type', 'flag'), [
    ('image/png', 'is_image'),
    ('video/mp4', 'is_video'),
    ('audio/mpeg', 'is_audio'),
    ('text/plain', 'is_text'),
    ('application/json', 'is_json'),
    ('application/pdf', 'is_pdf'),
    ('application/x-pdf', 'is_pdf'),
])
def test_type_flags(mime_type, flag):
    """Test derived type flags."""
    flags = ('is_image', 'is_video', 'is_audio', 'is_text', 'is_json', 'is_pdf')
    record = FileRecord(type=mime_type)

    assert getattr(record, flag) is True
    assert [
        other for other in flags if other != flag and getattr(record, other)
    ] == []


@pytest.mark.django_db
def test_pending_upload_defaults():
    """Test a new pending upload is unfinished."""
    pending = PendingUpload.objects.create(
        file_id='f1',
        collection_name='docs',
        file_name='a.txt',
        path='/storage/f1.txt',
        chunk_size=1024,
    )

    assert pending.is_finished is False
    assert pending.result == {}
