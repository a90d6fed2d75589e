"""Receipt image store backed by MinIO / S3 object storage.

Each receipt owns exactly one image object. Objects are keyed by the owner's
identity and the upload time:

    <owner_id>/<YYYY-MM-DDTHH:MM:SSZ>.jpg

Two uploads by the same user within one second map to the same key; the later
upload overwrites the earlier one. This is a known limitation of the key
scheme.
"""

import io
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError as SchemaValidationError

from app.core.config import settings
from app.core.observability import log_outbound_call
from app.services.base import BaseService
from app.services.exceptions import (
    ImageNotFoundError,
    ImageSizeLimitError,
    ImageStorageError,
    ImageUploadError,
    InvalidImageError,
    ValidationError,
)
from app.schemas.image import BucketRefInput, ImageUploadInput

IMAGE_CONTENT_TYPE = "image/jpeg"
KEY_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_NOT_FOUND_CODES = ("NoSuchKey", "NoSuchObject", "NoSuchBucket", "NotFound")


def _is_not_found(error: Exception) -> bool:
    code = getattr(error, "code", None)
    if code in _NOT_FOUND_CODES:
        return True
    text = str(error)
    return "NoSuchKey" in text or "Not Found" in text


class ImageStore(BaseService):
    """Upload, resolve, replace and delete receipt images.

    The MinIO client is injected so the store can run against any object
    that exposes ``put_object``, ``stat_object``, ``presigned_get_object``
    and ``remove_object``.
    """

    def __init__(
        self,
        minio_client: Any,
        bucket: Optional[str] = None,
        correlation_id: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(correlation_id)
        if minio_client is None:
            raise ValidationError(
                field="minio_client",
                message="MinIO client is required for ImageStore",
                correlation_id=correlation_id
            )
        self.client = minio_client
        self.bucket = bucket or settings.MINIO_BUCKET
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _call(self, operation: str, target: str, call: Callable[[], Any]) -> Any:
        return log_outbound_call("minio", target, operation, self.correlation_id, call)

    def _validate_image(self, image_bytes: bytes, owner_id: str) -> ImageUploadInput:
        max_size = settings.MAX_IMAGE_SIZE_MB * 1024 * 1024
        if image_bytes and len(image_bytes) > max_size:
            raise ImageSizeLimitError(
                file_size=len(image_bytes),
                max_size=max_size,
                correlation_id=self.correlation_id
            )
        try:
            return ImageUploadInput(image_data=image_bytes, owner_id=owner_id)
        except SchemaValidationError as e:
            raise InvalidImageError(reason=str(e), correlation_id=self.correlation_id)

    def _validate_ref(self, bucket_ref: str) -> str:
        try:
            return BucketRefInput(bucket_ref=bucket_ref).bucket_ref
        except SchemaValidationError as e:
            raise ValidationError(
                field="bucket_ref",
                message=str(e),
                correlation_id=self.correlation_id
            )

    def _put(self, operation: str, key: str, image_bytes: bytes) -> None:
        self._call(
            operation,
            key,
            lambda: self.client.put_object(
                self.bucket,
                key,
                io.BytesIO(image_bytes),
                length=len(image_bytes),
                content_type=IMAGE_CONTENT_TYPE,
            ),
        )

    def upload(self, image_bytes: bytes, owner_id: str) -> str:
        """Store a new receipt image for ``owner_id``.

        Returns:
            The bucket reference (object key) of the stored image

        Raises:
            InvalidImageError: If the bytes are not an image
            ImageSizeLimitError: If the image is too large
            ImageUploadError: If storage rejects the write
        """
        upload = self._validate_image(image_bytes, owner_id)
        key = f"{upload.owner_id}/{self._clock().strftime(KEY_TIMESTAMP_FORMAT)}.jpg"
        self.log_operation("image_upload_attempt", owner_id=upload.owner_id, size=len(image_bytes))

        try:
            self._put("upload", key, upload.image_data)
        except Exception as storage_error:
            self.log_operation("image_upload_failed", bucket_ref=key, error_message=str(storage_error))
            raise ImageUploadError(
                owner_id=upload.owner_id,
                reason=str(storage_error),
                correlation_id=self.correlation_id
            )

        self.log_operation("image_upload_success", bucket_ref=key)
        return key

    def resolve_url(self, bucket_ref: str) -> str:
        """Return a time-limited download URL for the image.

        Raises:
            ImageNotFoundError: If no object exists at ``bucket_ref``
            ImageStorageError: If storage cannot be reached
        """
        key = self._validate_ref(bucket_ref)
        try:
            # Presigning does not check existence, so stat first
            self._call("stat", key, lambda: self.client.stat_object(self.bucket, key))
            return self._call(
                "presign",
                key,
                lambda: self.client.presigned_get_object(
                    self.bucket,
                    key,
                    expires=timedelta(minutes=settings.IMAGE_URL_EXPIRY_MINUTES),
                ),
            )
        except Exception as storage_error:
            if _is_not_found(storage_error):
                raise ImageNotFoundError(bucket_ref=key, correlation_id=self.correlation_id)
            raise ImageStorageError(
                operation="resolve_url",
                reason=str(storage_error),
                bucket_ref=key,
                correlation_id=self.correlation_id
            )

    def replace(self, image_bytes: bytes, bucket_ref: str) -> None:
        """Overwrite the image at an existing key; the key is reused."""
        key = self._validate_ref(bucket_ref)
        self._validate_image(image_bytes, key.split("/", 1)[0])
        try:
            self._put("replace", key, image_bytes)
        except Exception as storage_error:
            raise ImageStorageError(
                operation="replace",
                reason=str(storage_error),
                bucket_ref=key,
                correlation_id=self.correlation_id
            )
        self.log_operation("image_replace_success", bucket_ref=key)

    def delete(self, bucket_ref: str) -> None:
        """Remove the image. An already-missing object is not an error.

        Raises:
            ImageStorageError: For any other storage failure
        """
        key = self._validate_ref(bucket_ref)
        try:
            self._call("remove", key, lambda: self.client.remove_object(self.bucket, key))
        except Exception as storage_error:
            if _is_not_found(storage_error):
                self.log_operation("image_delete_missing", bucket_ref=key)
                return
            raise ImageStorageError(
                operation="delete",
                reason=str(storage_error),
                bucket_ref=key,
                correlation_id=self.correlation_id
            )
        self.log_operation("image_delete_success", bucket_ref=key)
