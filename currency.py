from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Union

from schemas import Currency, UNIT_LABELS, UnitType

DEFAULT_CURRENCY = "USD"

CURRENCIES: List[Currency] = [
    Currency(code="EGP", symbol="L.E", name="Egyptian Pound"),
    Currency(code="USD", symbol="$", name="US Dollar"),
    Currency(code="EUR", symbol="€", name="Euro"),
    Currency(code="GBP", symbol="£", name="British Pound"),
    Currency(code="JPY", symbol="¥", name="Japanese Yen"),
    Currency(code="CAD", symbol="C$", name="Canadian Dollar"),
    Currency(code="AUD", symbol="A$", name="Australian Dollar"),
    Currency(code="CHF", symbol="CHF", name="Swiss Franc"),
    Currency(code="CNY", symbol="¥", name="Chinese Yuan"),
    Currency(code="INR", symbol="₹", name="Indian Rupee"),
    Currency(code="PHP", symbol="₱", name="Philippine Peso"),
    Currency(code="SAR", symbol="ر.س", name="Saudi Riyal"),
    Currency(code="AED", symbol="د.إ", name="UAE Dirham"),
]

_BY_CODE: Dict[str, Currency] = {c.code: c for c in CURRENCIES}

# Currencies without a minor unit
ZERO_DECIMAL = {"JPY"}

# Printed prefixes where en-US display differs from the table symbol
DISPLAY_PREFIX = {
    "EGP": "EGP ",
    "CAD": "CA$",
    "CHF": "CHF ",
    "CNY": "CN¥",
    "SAR": "SAR ",
    "AED": "AED ",
}


def get_currency(code: Optional[str]) -> Optional[Currency]:
    if not code:
        return None
    return _BY_CODE.get(code.upper())


def format_price(amount: Union[Decimal, float, int], code: str = DEFAULT_CURRENCY) -> str:
    """Format a monetary amount for display, e.g. ``$1,234.50``.

    Unknown currency codes fall back to the plain number followed by the code.
    """
    value = Decimal(str(amount))
    currency = get_currency(code)
    if currency is None:
        return f"{value} {code}".strip()

    places = Decimal(1) if currency.code in ZERO_DECIMAL else Decimal("0.01")
    value = value.quantize(places, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,.0f}" if currency.code in ZERO_DECIMAL else f"{abs(value):,.2f}"
    prefix = DISPLAY_PREFIX.get(currency.code, currency.symbol)
    return f"{sign}{prefix}{digits}"


def unit_label(unit_type: Union[UnitType, str]) -> str:
    try:
        return UNIT_LABELS[UnitType(unit_type)]
    except ValueError:
        return str(unit_type)
