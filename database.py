"""
Key-value persistence for the QuotePro backend.

Every store reads and writes whole JSON documents under a string key, the same
way the browser build kept its state in localStorage. Backends only move text
around; serialisation is the stores' business.
"""
import json
import os
from pathlib import Path
from typing import Dict, Optional

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from config import Settings
from exceptions import StorageError
from logger import get_logger

logger = get_logger(__name__)

# Storage keys, kept compatible with the browser build
PRODUCTS_KEY = "quotation_products"
CATEGORIES_KEY = "product_categories"
COMPANY_KEY = "company_info"
CURRENCY_KEY = "selected_currency"
TEMPLATES_KEY = "quotation_templates"
QUOTATIONS_KEY = "saved_quotations"
AUTH_FLAG_KEY = "isAuthenticated"
CURRENT_USER_KEY = "currentUser"
USERS_KEY = "app_users"


class KeyValueStorage:
    """Minimal get/set-by-key interface injected into every store."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def ping(self) -> bool:
        return True


class MemoryStorage(KeyValueStorage):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """All keys in one JSON object on disk, rewritten on every change."""

    def __init__(self, path: str):
        self.path = Path(path)
        self._data: Dict[str, str] = {}
        if self.path.exists():
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    self._data = {str(k): v for k, v in loaded.items() if isinstance(v, str)}
                else:
                    logger.warning("Ignoring storage file %s: not a JSON object", self.path)
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable storage file %s: %s", self.path, e)

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"Could not write {self.path}: {e}") from e


class MongoStorage(KeyValueStorage):
    """One document per key in the ``kv`` collection."""

    def __init__(self, db, collection: str = "kv"):
        self.db = db
        self.collection = db[collection]

    def get(self, key: str) -> Optional[str]:
        try:
            doc = self.collection.find_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(str(e)) from e
        if not doc:
            return None
        return doc.get("value")

    def set(self, key: str, value: str) -> None:
        try:
            self.collection.update_one({"_id": key}, {"$set": {"value": value}}, upsert=True)
        except PyMongoError as e:
            raise StorageError(str(e)) from e

    def delete(self, key: str) -> None:
        try:
            self.collection.delete_one({"_id": key})
        except PyMongoError as e:
            raise StorageError(str(e)) from e

    def ping(self) -> bool:
        try:
            self.db.command("ping")
            return True
        except PyMongoError:
            return False


def create_storage(settings: Settings) -> KeyValueStorage:
    backend = settings.storage_backend
    if backend == "memory":
        return MemoryStorage()
    if backend == "mongo":
        if not settings.database_url:
            raise StorageError("DATABASE_URL is required for the mongo storage backend")
        client = MongoClient(settings.database_url)
        logger.info("Using MongoDB storage (db=%s)", settings.database_name)
        return MongoStorage(client[settings.database_name])
    if backend == "file":
        logger.info("Using JSON file storage at %s", settings.storage_path)
        return JsonFileStorage(settings.storage_path)
    raise StorageError(f"Unknown storage backend: {backend}")
