"""Receipt image schemas for input validation.

Images are validated before they reach object storage: the bytes must open as
an image with Pillow and stay under the configured size limit.
"""

import io
import re

from pydantic import BaseModel, Field, validator
from PIL import Image, UnidentifiedImageError


class ImageUploadInput(BaseModel):
    """Input validation for receipt image upload operations."""

    image_data: bytes = Field(..., description="Raw receipt image bytes")
    owner_id: str = Field(..., description="Identity the image belongs to")

    @validator('image_data')
    def validate_image_data(cls, v):
        """Validate the bytes decode as an image."""
        if not v:
            raise ValueError("Image data cannot be empty")
        try:
            with Image.open(io.BytesIO(v)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise ValueError(f"Image data is not a readable image ({e})")
        return v

    @validator('owner_id')
    def validate_owner_id(cls, v):
        """Owner id becomes the object prefix; keep it path-safe."""
        sanitized = re.sub(r'[^a-zA-Z0-9_-]', '_', (v or "").strip())
        if not sanitized:
            raise ValueError("Owner id cannot be empty")
        return sanitized


class BucketRefInput(BaseModel):
    """Input validation for operations on an existing image object."""

    bucket_ref: str = Field(..., description="Object key of the stored image")

    @validator('bucket_ref')
    def validate_bucket_ref(cls, v):
        """Reject empty keys and path traversal attempts."""
        if not v or not v.strip():
            raise ValueError("Bucket reference cannot be empty")
        if ".." in v or v.startswith("/"):
            raise ValueError("Bucket reference must be a relative object key")
        if len(v) > 512:
            raise ValueError("Bucket reference too long")
        return v.strip()
