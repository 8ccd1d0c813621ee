"""ISO 4217 currency helpers: validation, precision and formatting."""

from decimal import ROUND_HALF_UP, Decimal

from .exceptions import CurrencyError

SUPPORTED_CURRENCIES = frozenset(
    {
        # Major world currencies
        "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD", "SEK", "NOK",
        "DKK", "PLN", "CZK", "HUF", "RUB",
        # Asia
        "CNY", "HKD", "SGD", "KRW", "THB", "MYR", "IDR", "PHP", "VND", "INR",
        "PKR", "BDT", "LKR", "NPR", "MMK", "LAK", "KHR", "BND", "TWD", "MOP",
        # Americas
        "BRL", "ARS", "CLP", "COP", "PEN", "MXN",
        # Africa
        "ZAR", "EGP", "MAD", "TND", "NGN", "KES", "GHS", "XOF", "XAF", "ETB",
        "UGX", "TZS", "RWF", "MWK", "ZMW", "BWP", "SZL", "LSL", "NAD", "MZN",
        "AOA",
        # Middle East
        "BHD", "IQD", "JOD", "KWD", "LYD", "OMR",
        # Special drawing rights and metals
        "XDR", "XAU", "XAG", "XPT", "XPD",
    }
)  # fmt: skip

ZERO_DECIMAL_CURRENCIES = frozenset(
    {"JPY", "KRW", "VND", "IDR", "CLP", "PYG", "UGX", "RWF", "KMF", "GNF", "MGA", "XOF", "XAF"}
)
THREE_DECIMAL_CURRENCIES = frozenset({"BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND"})

CURRENCY_SYMBOLS = {
    "VND": "₫",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "¥",
    "KRW": "₩",
    "THB": "฿",
    "INR": "₹",
    "PHP": "₱",
    "SGD": "S$",
    "AUD": "A$",
    "CAD": "C$",
}


def normalize_currency_code(code: str) -> str:
    return code.strip().upper()


def validate_currency_code(code: str | None) -> bool:
    """Check that a code is a 3-letter ISO 4217 code we support."""
    if code is None:
        return False
    normalized = normalize_currency_code(code)
    if len(normalized) != 3:
        return False
    return normalized in SUPPORTED_CURRENCIES


def decimal_places(code: str) -> int:
    """
    Number of decimal places used by a currency's minor unit.

    Raises:
        CurrencyError: If the currency is not supported
    """
    if not validate_currency_code(code):
        raise CurrencyError(f"Unsupported currency code: {code!r}")

    normalized = normalize_currency_code(code)
    if normalized in ZERO_DECIMAL_CURRENCIES:
        return 0
    if normalized in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_minor_units(amount: Decimal, code: str) -> int:
    """
    Convert a major-unit Decimal amount to integer minor units.
    Uses ROUND_HALF_UP for consistency.

    Example:
        to_minor_units(Decimal("12.345"), "USD") -> 1235
        to_minor_units(Decimal("150000"), "VND") -> 150000
    """
    scaled = amount * (Decimal(10) ** decimal_places(code))
    return int(scaled.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, code: str) -> Decimal:
    """Convert integer minor units back to a major-unit Decimal."""
    places = decimal_places(code)
    return Decimal(amount).scaleb(-places)


def format_amount(amount: int, code: str, show_sign: bool = False) -> str:
    """
    Format a minor-unit amount with its currency symbol.

    Examples:
        format_amount(150000, "VND") -> "₫150,000"
        format_amount(-1250, "USD", show_sign=True) -> "-$12.50"
    """
    places = decimal_places(code)
    normalized = normalize_currency_code(code)
    symbol = CURRENCY_SYMBOLS.get(normalized, f"{normalized} ")

    major = from_minor_units(abs(amount), normalized)
    body = f"{symbol}{major:,.{places}f}"

    if show_sign and amount > 0:
        return f"+{body}"
    if amount < 0:
        return f"-{body}"
    return body
