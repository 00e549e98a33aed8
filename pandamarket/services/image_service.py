"""
Image service — validates an upload and hands it to the storage backend.
"""
from fastapi import UploadFile

from pandamarket import storage
from pandamarket.config import settings
from pandamarket.errors import ValidationError

# MIME type -> stored extension
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}


async def store_upload(file: UploadFile | None) -> str:
    """Validate *file* and store it; returns the stored name."""
    if file is None:
        raise ValidationError("File is required")

    extension = ALLOWED_MIME_TYPES.get((file.content_type or "").lower())
    if extension is None:
        raise ValidationError("Only png, jpeg, and jpg are allowed")

    # One byte past the limit is enough to tell an oversized file apart.
    data = await file.read(settings.IMAGE_MAX_BYTES + 1)
    if not data:
        raise ValidationError("File is required")
    if len(data) > settings.IMAGE_MAX_BYTES:
        raise ValidationError(f"File exceeds {settings.IMAGE_MAX_BYTES} bytes")

    return storage.image_storage.save(data, extension)
