"""Runtime settings for the QuotePro backend."""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

MEGABYTE = 1024 * 1024


@dataclass
class Settings:
    """Settings read from the environment (and a local .env file)."""

    # Persistence
    storage_backend: str = "file"
    storage_path: str = "data/quotepro.json"
    database_url: Optional[str] = None
    database_name: str = "quotepro"

    # Image storage collaborator
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    image_bucket: str = "product-images"
    max_product_image_bytes: int = 5 * MEGABYTE

    # Document rendering
    remote_image_timeout: float = 10.0

    log_level: str = "INFO"
    port: int = 8000
    cors_origins: list = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            storage_backend=os.getenv("STORAGE_BACKEND", "file").lower(),
            storage_path=os.getenv("STORAGE_PATH", "data/quotepro.json"),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME", "quotepro"),
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_ANON_KEY"),
            image_bucket=os.getenv("IMAGE_BUCKET", "product-images"),
            max_product_image_bytes=int(os.getenv("MAX_PRODUCT_IMAGE_BYTES", 5 * MEGABYTE)),
            remote_image_timeout=float(os.getenv("REMOTE_IMAGE_TIMEOUT", 10)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=int(os.getenv("PORT", 8000)),
        )

    @property
    def uploads_enabled(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


settings = Settings.from_env()
