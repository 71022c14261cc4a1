"""Image uploads to Supabase storage (product images and company logos)."""
import uuid
from typing import Optional

from supabase import Client, create_client

from config import Settings
from exceptions import ImageUploadError, ImageValidationError
from logger import get_logger

logger = get_logger(__name__)


def validate_image(content_type: Optional[str], size: int, max_bytes: Optional[int] = None) -> None:
    """Reject non-image content and, when a limit applies, oversized files."""
    if not content_type or not content_type.startswith("image/"):
        raise ImageValidationError("Please select an image file.")
    if max_bytes is not None and size > max_bytes:
        limit_mb = max_bytes / (1024 * 1024)
        raise ImageValidationError(f"Image must be smaller than {limit_mb:g} MB.", status_code=413)


def object_path(filename: Optional[str], folder: str = "products") -> str:
    ext = ""
    if filename and "." in filename:
        ext = "." + filename.rsplit(".", 1)[1].lower()
    return f"{folder}/{uuid.uuid4()}{ext}"


class ImageUploader:
    """Stores image bytes and hands back a public URL."""

    def upload(self, data: bytes, filename: Optional[str], content_type: str) -> str:
        raise NotImplementedError

    def delete(self, url: str) -> bool:
        raise NotImplementedError


class SupabaseImageUploader(ImageUploader):
    def __init__(self, url: str, key: str, bucket: str = "product-images"):
        self.bucket = bucket
        self.client: Client = create_client(url, key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseImageUploader":
        if not settings.uploads_enabled:
            raise ImageUploadError("Image storage is not configured (SUPABASE_URL, SUPABASE_KEY)")
        return cls(settings.supabase_url, settings.supabase_key, settings.image_bucket)

    def upload(self, data: bytes, filename: Optional[str], content_type: str) -> str:
        path = object_path(filename)
        try:
            self.client.storage.from_(self.bucket).upload(path, data, {"content-type": content_type})
            url = self.client.storage.from_(self.bucket).get_public_url(path)
        except Exception as e:
            logger.warning("Upload of %s failed: %s", path, e)
            raise ImageUploadError(f"Failed to upload image: {e}") from e
        logger.info("Uploaded image %s", path)
        return url.rstrip("?")

    def delete(self, url: str) -> bool:
        marker = f"/{self.bucket}/"
        if marker not in url:
            return False
        path = url.split(marker, 1)[1].split("?", 1)[0]
        try:
            self.client.storage.from_(self.bucket).remove([path])
        except Exception as e:
            logger.warning("Could not delete image %s: %s", path, e)
            return False
        return True
