"""Image storage for comment attachments."""

from chirper.storage.service import (
    FileTooLargeError,
    FirebaseImageStore,
    ImageStore,
    InMemoryImageStore,
    InvalidContentTypeError,
    StorageError,
    StorageNotConfiguredError,
    StorageUploadError,
    StorageValidationError,
)


__all__ = [
    "FileTooLargeError",
    "FirebaseImageStore",
    "ImageStore",
    "InMemoryImageStore",
    "InvalidContentTypeError",
    "StorageError",
    "StorageNotConfiguredError",
    "StorageUploadError",
    "StorageValidationError",
]
