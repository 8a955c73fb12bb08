"""Image storage for comment attachments.

``ImageStore.upload`` takes raw image bytes and returns the public URL of the
stored file. Every upload is validated first:

- size limit (``upload_max_file_size_mb``)
- declared Content-Type in ``upload_allowed_image_types``
- magic bytes must match an allowed image type

Backends:

- ``FirebaseImageStore``: Firebase Storage via firebase-admin
- ``InMemoryImageStore``: keeps bytes in a dict, for development and tests
"""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote
from uuid import uuid4

import structlog

from chirper.config.settings import Settings
from chirper.utils.magic_bytes import check_image


if TYPE_CHECKING:
    from google.cloud.storage import Bucket


logger = structlog.get_logger(__name__)


class StorageError(Exception):
    """Base error for storage operations."""

    def __init__(self, message: str, code: str = "storage_error") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class StorageNotConfiguredError(StorageError):
    """Error when Firebase Storage is not configured."""

    def __init__(self, message: str = "Firebase Storage is not configured") -> None:
        super().__init__(message, "storage_not_configured")


class StorageUploadError(StorageError):
    """Error during file upload."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "upload_error")


class StorageValidationError(StorageError):
    """Error during file validation."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "validation_error")


class FileTooLargeError(StorageError):
    """Error when file exceeds size limit."""

    def __init__(self, size: int, max_size: int) -> None:
        message = (
            f"File size ({size / 1024 / 1024:.2f} MB) exceeds "
            f"maximum allowed ({max_size / 1024 / 1024:.2f} MB)"
        )
        super().__init__(message, "file_too_large")


class InvalidContentTypeError(StorageError):
    """Error when content type is not allowed."""

    def __init__(self, content_type: str, allowed: list[str]) -> None:
        message = f"Content type '{content_type}' is not allowed. Allowed: {', '.join(allowed)}"
        super().__init__(message, "invalid_content_type")


EXTENSION_MAP: dict[str, str] = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
    "image/avif": ".avif",
    "image/heic": ".heic",
}


class ImageStore(Protocol):
    """Uploads an image and returns its public URL."""

    async def upload(
        self, content: bytes, content_type: str, filename: str | None = None
    ) -> str: ...


class _ValidatingImageStore:
    """Shared validation and path building."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    @property
    def max_file_size(self) -> int:
        """Maximum file size in bytes."""
        return self.settings.upload_max_file_size_mb * 1024 * 1024

    @property
    def allowed_types(self) -> list[str]:
        return self.settings.upload_allowed_image_types

    def validate(self, content: bytes, content_type: str) -> str:
        """Validate an upload and return its detected content type.

        Raises:
            FileTooLargeError: If file exceeds size limit.
            InvalidContentTypeError: If content type is not allowed.
            StorageValidationError: If magic bytes validation fails.
        """
        file_size = len(content)
        if file_size > self.max_file_size:
            raise FileTooLargeError(file_size, self.max_file_size)

        if content_type not in self.allowed_types:
            raise InvalidContentTypeError(content_type, self.allowed_types)

        result = check_image(content, content_type, frozenset(self.allowed_types))
        if not result.ok:
            logger.warning(
                "magic_bytes_validation_failed",
                declared_type=content_type,
                detected_type=result.detected_type,
                error=result.error,
            )
            raise StorageValidationError(result.error or "Invalid file content")

        return result.detected_type or content_type

    def build_storage_path(self, content_type: str, filename: str | None = None) -> str:
        """Build a unique storage path.

        Format: {upload_folder}/{uuid}{ext}
        """
        ext = EXTENSION_MAP.get(content_type, "")
        if not ext and filename:
            ext = Path(filename).suffix.lower()
        return f"{self.settings.upload_folder}/{uuid4()}{ext}"


# ==============================================================================
# Firebase
# ==============================================================================

# Firebase app singleton
_firebase_app = None
_storage_bucket: "Bucket | None" = None


def _init_firebase(settings: Settings) -> "Bucket":
    """Initialize Firebase Admin SDK and get storage bucket.

    Raises:
        StorageNotConfiguredError: If Firebase is not configured.
    """
    global _firebase_app, _storage_bucket  # noqa: PLW0603

    if _storage_bucket is not None:
        return _storage_bucket

    if not settings.firebase_configured:
        raise StorageNotConfiguredError

    # Lazy import to avoid loading Firebase SDK unless needed
    import firebase_admin  # noqa: PLC0415
    from firebase_admin import credentials, storage  # noqa: PLC0415

    creds_path = settings.firebase_credentials_path
    if not creds_path or not Path(creds_path).exists():
        raise StorageNotConfiguredError(
            f"Firebase credentials file not found: {creds_path}"
        )

    try:
        if _firebase_app is None:
            cred = credentials.Certificate(creds_path)
            _firebase_app = firebase_admin.initialize_app(
                cred,
                {
                    "storageBucket": settings.firebase_storage_bucket,
                    "projectId": settings.firebase_project_id,
                },
            )
            logger.info(
                "firebase_initialized",
                project_id=settings.firebase_project_id,
                bucket=settings.firebase_storage_bucket,
            )

        _storage_bucket = storage.bucket()
        return _storage_bucket

    except Exception as e:
        logger.exception("firebase_init_failed", error=str(e))
        raise StorageNotConfiguredError(f"Failed to initialize Firebase: {e}") from e


class FirebaseImageStore(_ValidatingImageStore):
    """Uploads comment images to Firebase Storage."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self._bucket: Bucket | None = None

    @property
    def is_configured(self) -> bool:
        return self.settings.firebase_configured

    def _get_bucket(self) -> "Bucket":
        if self._bucket is None:
            self._bucket = _init_firebase(self.settings)
        return self._bucket

    def _public_url(self, storage_path: str) -> str:
        bucket_name = self.settings.firebase_storage_bucket
        encoded_path = "/".join(
            quote(part, safe="") for part in storage_path.split("/")
        )
        return f"https://storage.googleapis.com/{bucket_name}/{encoded_path}"

    def _put(
        self, bucket: "Bucket", storage_path: str, content: bytes, content_type: str
    ) -> None:
        blob = bucket.blob(storage_path)
        # Paths are unique per upload, so the object never changes
        blob.cache_control = "public, max-age=31536000, immutable"
        blob.upload_from_string(content, content_type=content_type)
        blob.make_public()

    async def upload(
        self, content: bytes, content_type: str, filename: str | None = None
    ) -> str:
        """Upload one comment image.

        Returns:
            Public URL of the stored image.

        Raises:
            StorageNotConfiguredError: If Firebase is not configured.
            FileTooLargeError: If file exceeds size limit.
            InvalidContentTypeError: If content type is not allowed.
            StorageValidationError: If magic bytes validation fails.
            StorageUploadError: If upload fails.
        """
        if not self.is_configured:
            raise StorageNotConfiguredError

        actual_type = self.validate(content, content_type)
        storage_path = self.build_storage_path(actual_type, filename)
        # Resolved on the loop thread so concurrent first uploads share one init
        bucket = self._get_bucket()

        try:
            # firebase-admin is blocking
            await asyncio.to_thread(self._put, bucket, storage_path, content, actual_type)
        except Exception as e:
            logger.exception("upload_failed", storage_path=storage_path, error=str(e))
            raise StorageUploadError(f"Failed to upload file: {e}") from e

        logger.info(
            "image_uploaded",
            storage_path=storage_path,
            content_type=actual_type,
            file_size=len(content),
        )
        return self._public_url(storage_path)


# ==============================================================================
# In-memory
# ==============================================================================


class InMemoryImageStore(_ValidatingImageStore):
    """Keeps uploaded images in memory and returns ``memory://`` URLs."""

    def __init__(self, settings: Settings) -> None:
        super().__init__(settings)
        self.files: dict[str, tuple[bytes, str]] = {}

    async def upload(
        self, content: bytes, content_type: str, filename: str | None = None
    ) -> str:
        actual_type = self.validate(content, content_type)
        storage_path = self.build_storage_path(actual_type, filename)
        self.files[storage_path] = (content, actual_type)
        logger.debug("image_stored_in_memory", storage_path=storage_path)
        return f"memory://{storage_path}"
