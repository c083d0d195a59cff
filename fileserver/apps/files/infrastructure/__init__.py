"""Infrastructure layer for files app.

This package contains integrations with external systems:
- Local disk storage on Django FileSystemStorage (chmod, chunk writes, ranged reads)
- The metadata document store adapter over the Django ORM
- Metadata helpers (file names, extensions, MIME types)

Keep infrastructure concerns separate from business logic.
"""
