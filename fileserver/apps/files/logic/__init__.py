"""Business logic for file collections: uploads, downloads and cursors."""
