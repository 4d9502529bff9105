"""Image host gateway entry points."""

from .client import (
    ImageHostClient,
    ImageUploadError,
    ImageUploader,
    UploadSource,
    upload_batch,
)

__all__ = [
    "ImageHostClient",
    "ImageUploadError",
    "ImageUploader",
    "UploadSource",
    "upload_batch",
]
