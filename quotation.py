"""Quotation arithmetic and line-item helpers.

Everything here is pure: inputs are never mutated and nothing touches storage.
Amounts stay ``Decimal`` end to end and are not rounded; rounding is a display
concern handled by ``currency.format_price``.
"""
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence

from schemas import (
    CompanyInfo,
    Product,
    QuotationDraft,
    QuotationItem,
    QuotationTemplate,
    Totals,
)

HUNDRED = Decimal(100)


class DraftError(ValueError):
    """Raised when a draft cannot be turned into a saved quotation."""


def clamp_discount(value) -> Decimal:
    """Coerce a discount percentage into [0, 100]; unparseable input becomes 0."""
    try:
        pct = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal(0)
    if not pct.is_finite():
        return Decimal(0)
    return min(HUNDRED, max(Decimal(0), pct))


def compute_totals(items: Sequence[QuotationItem], discount: Decimal) -> Totals:
    subtotal = sum((item.product.unit_price * item.quantity for item in items), Decimal(0))
    discount_amount = subtotal * Decimal(discount) / HUNDRED
    return Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        total=subtotal - discount_amount,
    )


def merge_or_increment(items: Sequence[QuotationItem], products: Iterable[Product]) -> List[QuotationItem]:
    """Add products to a line-item list.

    A product already on the list gets its quantity bumped by one, anything
    else is appended with quantity 1. Existing lines keep their position.
    """
    merged = [item.model_copy() for item in items]
    for product in products:
        for i, item in enumerate(merged):
            if item.product.id == product.id:
                merged[i] = item.model_copy(update={"quantity": item.quantity + 1})
                break
        else:
            merged.append(QuotationItem(product=product, quantity=1))
    return merged


def load_from_template(template: QuotationTemplate, catalog: Sequence[Product]) -> List[QuotationItem]:
    """Resolve template entries against the current catalog, dropping unknown ids."""
    by_id = {p.id: p for p in catalog}
    items = []
    for entry in template.items:
        product = by_id.get(entry.product_id)
        if product is None:
            continue
        items.append(QuotationItem(product=product, quantity=entry.quantity))
    return items


def adjust_quantity(items: Sequence[QuotationItem], product_id: str, delta: int) -> List[QuotationItem]:
    return [
        item.model_copy(update={"quantity": max(1, item.quantity + delta)})
        if item.product.id == product_id else item
        for item in items
    ]


def set_quantity(items: Sequence[QuotationItem], product_id: str, quantity: int) -> List[QuotationItem]:
    if quantity < 1:
        return list(items)
    return [
        item.model_copy(update={"quantity": quantity}) if item.product.id == product_id else item
        for item in items
    ]


def remove_item(items: Sequence[QuotationItem], product_id: str) -> List[QuotationItem]:
    return [item for item in items if item.product.id != product_id]


def filter_products(products: Iterable[Product], query: Optional[str] = None) -> List[Product]:
    if not query:
        return list(products)
    needle = query.lower()
    return [p for p in products if needle in p.name.lower()]


def build_saved_quotation(
    customer_name: str,
    items: Sequence[QuotationItem],
    discount: Decimal,
    currency: str,
    company_info: Optional[CompanyInfo] = None,
) -> QuotationDraft:
    """Price a draft and freeze its product snapshots for the archive."""
    name = (customer_name or "").strip()
    if not name:
        raise DraftError("Customer name is required")
    if not items:
        raise DraftError("Add at least one product to the quotation")

    totals = compute_totals(items, discount)
    return QuotationDraft(
        customer_name=name,
        items=[
            QuotationItem(product=item.product.model_copy(deep=True), quantity=item.quantity)
            for item in items
        ],
        discount=discount,
        subtotal=totals.subtotal,
        total=totals.total,
        currency=currency,
        company_info=company_info.model_copy(deep=True) if company_info else None,
    )
