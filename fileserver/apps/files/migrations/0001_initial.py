from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='FileRecord',
            fields=[
                ('id', models.CharField(help_text='Opaque file identifier', max_length=64, primary_key=True, serialize=False)),
                ('collection_name', models.CharField(db_index=True, max_length=255)),
                ('name', models.CharField(max_length=255)),
                ('type', models.CharField(default='application/octet-stream', help_text='Declared or detected MIME type', max_length=255)),
                ('size', models.BigIntegerField(default=0, help_text='File size in bytes')),
                ('extension', models.CharField(blank=True, default='', max_length=21)),
                ('extension_with_dot', models.CharField(blank=True, default='', max_length=21)),
                ('path', models.CharField(help_text='Storage path of the original version', max_length=1024)),
                ('user_id', models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ('meta', models.JSONField(blank=True, default=dict)),
                ('versions', models.JSONField(default=dict, help_text='Version name -> {path, size, type, extension}')),
                ('public', models.BooleanField(default=False)),
                ('download_route', models.CharField(blank=True, default='', max_length=255)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'verbose_name': 'File record',
                'verbose_name_plural': 'File records',
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['collection_name', 'created_at'], name='files_collection_recent_idx')],
            },
        ),
        migrations.CreateModel(
            name='PendingUpload',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('file_id', models.CharField(max_length=64, unique=True)),
                ('collection_name', models.CharField(db_index=True, max_length=255)),
                ('file_name', models.CharField(max_length=255)),
                ('path', models.CharField(help_text='Target storage path of the upload', max_length=1024)),
                ('size', models.BigIntegerField(default=0, help_text='Declared total size in bytes')),
                ('chunk_size', models.PositiveIntegerField(help_text='Chunk size negotiated for this upload')),
                ('user_id', models.CharField(blank=True, max_length=64, null=True)),
                ('is_finished', models.BooleanField(db_index=True, default=False)),
                ('result', models.JSONField(default=dict, help_text='Prepared upload result snapshot')),
                ('opts', models.JSONField(default=dict, help_text='Prepared upload options snapshot')),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True)),
            ],
            options={
                'verbose_name': 'Pending upload',
                'verbose_name_plural': 'Pending uploads',
                'ordering': ['created_at'],
            },
        ),
    ]
