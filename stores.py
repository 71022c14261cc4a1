"""
Stores for catalog, categories, company profile, currency, templates and the
quotation archive.

Each store loads its key once, keeps the collection in memory and writes the
whole collection back after every mutation.
"""
import json
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, List, Optional, Sequence, Type

from bson import ObjectId
from pydantic import BaseModel, ValidationError

from currency import DEFAULT_CURRENCY, get_currency
from database import (
    CATEGORIES_KEY,
    COMPANY_KEY,
    CURRENCY_KEY,
    PRODUCTS_KEY,
    QUOTATIONS_KEY,
    TEMPLATES_KEY,
    KeyValueStorage,
)
from logger import get_logger
from quotation import filter_products
from schemas import (
    CompanyInfo,
    CompanyInfoUpdate,
    Product,
    ProductIn,
    ProductUpdate,
    QuotationDraft,
    QuotationTemplate,
    SavedQuotation,
    TemplateItem,
)

logger = get_logger(__name__)


def new_id() -> str:
    return str(ObjectId())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def load_json(storage: KeyValueStorage, key: str, default: Callable[[], Any]) -> Any:
    raw = storage.get(key)
    if raw is None:
        return default()
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding corrupt value under %r", key)
        return default()


def save_json(storage: KeyValueStorage, key: str, value: Any) -> None:
    storage.set(key, json.dumps(value, ensure_ascii=False))


class ModelCollection:
    """A persisted list of pydantic models under one storage key."""

    key: str = ""
    model: Type[BaseModel] = BaseModel

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        self._items: List = self._load()

    def _load(self) -> List:
        data = load_json(self.storage, self.key, list)
        if not isinstance(data, list):
            logger.warning("Discarding %r: expected a list", self.key)
            return []
        items = []
        for i, record in enumerate(data):
            try:
                items.append(self.model.model_validate(record))
            except ValidationError as e:
                logger.warning("Skipping invalid record %d under %r: %d error(s)", i, self.key, e.error_count())
        return items

    def _persist(self) -> None:
        save_json(self.storage, self.key, [item.model_dump(mode="json") for item in self._items])

    def list(self) -> List:
        return list(self._items)

    def get(self, item_id: str):
        return next((item for item in self._items if item.id == item_id), None)

    def delete(self, item_id: str) -> bool:
        remaining = [item for item in self._items if item.id != item_id]
        if len(remaining) == len(self._items):
            return False
        self._items = remaining
        self._persist()
        logger.info("Deleted %s %s", self.model.__name__, item_id)
        return True

    def __len__(self) -> int:
        return len(self._items)


# -----------------------------
# Catalog
# -----------------------------
class CatalogStore(ModelCollection):
    key = PRODUCTS_KEY
    model = Product

    def search(self, query: Optional[str] = None, category: Optional[str] = None) -> List[Product]:
        products = filter_products(self._items, query)
        if category:
            products = [p for p in products if p.category == category]
        return products

    def add(self, payload: ProductIn) -> Product:
        product = Product(**payload.model_dump(), id=new_id(), created_at=utcnow())
        self._items.append(product)
        self._persist()
        logger.info("Added product %s (%s)", product.id, product.name)
        return product

    def update(self, product_id: str, update: ProductUpdate) -> Optional[Product]:
        for i, product in enumerate(self._items):
            if product.id == product_id:
                updated = product.model_copy(update=update.changes())
                self._items[i] = updated
                self._persist()
                return updated
        logger.debug("Update ignored, no product %s", product_id)
        return None

    def clear_category(self, label: str) -> int:
        cleared = 0
        for i, product in enumerate(self._items):
            if product.category == label:
                self._items[i] = product.model_copy(update={"category": None})
                cleared += 1
        if cleared:
            self._persist()
        return cleared


# -----------------------------
# Categories
# -----------------------------
class CategoryStore:
    key = CATEGORIES_KEY

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        data = load_json(storage, self.key, list)
        self._labels: List[str] = [c for c in data if isinstance(c, str)] if isinstance(data, list) else []

    def list(self) -> List[str]:
        return list(self._labels)

    def add(self, label: str) -> bool:
        trimmed = (label or "").strip()
        if not trimmed or trimmed in self._labels:
            return False
        self._labels.append(trimmed)
        save_json(self.storage, self.key, self._labels)
        return True

    def remove(self, label: str) -> None:
        """Drop the label. Products referencing it are the caller's concern."""
        self._labels = [c for c in self._labels if c != label]
        save_json(self.storage, self.key, self._labels)

    def __contains__(self, label: str) -> bool:
        return label in self._labels


# -----------------------------
# Company profile / currency
# -----------------------------
class CompanyStore:
    key = COMPANY_KEY

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        data = load_json(storage, self.key, dict)
        try:
            self._info = CompanyInfo.model_validate(data)
        except ValidationError:
            logger.warning("Discarding corrupt company profile")
            self._info = CompanyInfo()

    def get(self) -> CompanyInfo:
        return self._info.model_copy()

    def update(self, update: CompanyInfoUpdate) -> CompanyInfo:
        self._info = self._info.model_copy(update=update.changes())
        save_json(self.storage, self.key, self._info.model_dump(mode="json"))
        return self.get()


class CurrencyStore:
    key = CURRENCY_KEY

    def __init__(self, storage: KeyValueStorage):
        self.storage = storage
        raw = storage.get(self.key)
        code = DEFAULT_CURRENCY
        if raw is not None:
            # Older builds stored the bare code without JSON quoting
            try:
                value = json.loads(raw)
            except ValueError:
                value = raw
            if isinstance(value, str) and get_currency(value):
                code = value.upper()
        self._code = code

    def get(self) -> str:
        return self._code

    def set(self, code: str) -> bool:
        currency = get_currency(code)
        if currency is None:
            return False
        self._code = currency.code
        save_json(self.storage, self.key, self._code)
        return True


# -----------------------------
# Templates
# -----------------------------
class TemplateStore(ModelCollection):
    key = TEMPLATES_KEY
    model = QuotationTemplate

    def save(self, name: str, discount: Decimal, items: Sequence[TemplateItem]) -> QuotationTemplate:
        template = QuotationTemplate(
            id=new_id(),
            name=name,
            discount=discount,
            items=list(items),
            created_at=utcnow(),
        )
        self._items.append(template)
        self._persist()
        logger.info("Saved template %s (%s, %d items)", template.id, template.name, len(template.items))
        return template


# -----------------------------
# Archive
# -----------------------------
class ArchiveStore(ModelCollection):
    """Saved quotations, newest first. Append and delete only."""

    key = QUOTATIONS_KEY
    model = SavedQuotation

    def save(self, draft: QuotationDraft) -> SavedQuotation:
        saved = SavedQuotation(**draft.model_dump(), id=new_id(), created_at=utcnow())
        self._items.insert(0, saved)
        self._persist()
        logger.info("Archived quotation %s for %s (total=%s)", saved.id, saved.customer_name, saved.total)
        return saved
