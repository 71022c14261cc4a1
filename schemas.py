"""
Data schemas for QuotePro

Each persisted collection is a list of these models serialised as JSON under its
own storage key. Saved quotations embed full Product copies, never references.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UnitType(str, Enum):
    PIECE = "piece"
    METER = "meter"
    BOX = "box"
    KG = "kg"
    LITER = "liter"
    SET = "set"
    PACK = "pack"
    ROLL = "roll"
    SQM = "sqm"


UNIT_LABELS = {
    UnitType.PIECE: "Piece",
    UnitType.METER: "Meter",
    UnitType.BOX: "Box",
    UnitType.KG: "Kilogram",
    UnitType.LITER: "Liter",
    UnitType.SET: "Set",
    UnitType.PACK: "Pack",
    UnitType.ROLL: "Roll",
    UnitType.SQM: "Square Meter",
}


# Catalog
class ProductIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    unit_price: Decimal = Field(..., ge=0)
    unit_type: UnitType = UnitType.PIECE
    category: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("category", "image_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class ProductUpdate(BaseModel):
    """Field-level partial update: only fields present in the payload are applied."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    unit_type: Optional[UnitType] = None
    category: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("name", "unit_price", "unit_type")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v

    @field_validator("category", "image_url")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def changes(self) -> dict:
        return {k: getattr(self, k) for k in self.model_fields_set}


class Product(ProductIn):
    id: str
    created_at: datetime


# Company profile
class CompanyInfo(BaseModel):
    name: str = "Your Company Name"
    address: str = "123 Business Street, City, Country"
    phone: str = "+1 (555) 123-4567"
    email: str = "contact@yourcompany.com"
    logo: Optional[str] = None


class CompanyInfoUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    logo: Optional[str] = None

    @field_validator("name", "address", "phone", "email")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("field cannot be null")
        return v

    @field_validator("logo")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def changes(self) -> dict:
        return {k: getattr(self, k) for k in self.model_fields_set}


class Currency(BaseModel):
    code: str
    symbol: str
    name: str


# Quotations
class QuotationItem(BaseModel):
    product: Product
    quantity: int = Field(1, ge=1)

    @property
    def line_total(self) -> Decimal:
        return self.product.unit_price * self.quantity


class Totals(BaseModel):
    subtotal: Decimal = Decimal(0)
    discount_amount: Decimal = Decimal(0)
    total: Decimal = Decimal(0)


class TemplateItem(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class TemplateIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200)
    discount: Decimal = Field(Decimal(0), ge=0, le=100)
    items: List[TemplateItem] = []


class QuotationTemplate(TemplateIn):
    id: str
    created_at: datetime


class QuotationDraft(BaseModel):
    """A priced quotation ready to be archived."""
    customer_name: str = Field(..., min_length=1)
    items: List[QuotationItem]
    discount: Decimal = Field(Decimal(0), ge=0, le=100)
    subtotal: Decimal
    total: Decimal
    currency: str = "USD"
    company_info: Optional[CompanyInfo] = None


class SavedQuotation(QuotationDraft):
    id: str
    created_at: datetime


# Authentication
class UserCredential(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str
    password: str = Field(..., alias="pass")
