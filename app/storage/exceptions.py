class FileStoreError(Exception):
    """Raised when a derivative file cannot be staged, promoted or removed."""
