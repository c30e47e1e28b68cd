"""Media picker: turn an uploaded file into a MediaAsset."""
from fastapi import UploadFile

from app.capture.errors import MediaTooLargeError, UnsupportedMediaError
from app.capture.models import MediaAsset
from app.core.config import settings


async def media_from_upload(upload: UploadFile, max_bytes: int | None = None) -> MediaAsset:
    """Read one picked image. Each call yields a fresh asset identity, so re-picking the same file counts as a new selection."""
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if not content_type.startswith("image/"):
        raise UnsupportedMediaError(f"Only images can be uploaded (got {content_type or 'unknown type'}).")
    limit = max_bytes if max_bytes is not None else settings.max_upload_mb * 1024 * 1024
    # One byte past the limit is enough to tell an oversized file apart
    data = await upload.read(limit + 1)
    if not data:
        raise UnsupportedMediaError("The selected file is empty.")
    if len(data) > limit:
        raise MediaTooLargeError(f"Image is larger than {limit // (1024 * 1024)} MB.")
    return MediaAsset(name=upload.filename or "image", content_type=content_type, data=data)
