"""
currency.py — Supported currencies and minor-unit conversion.

All balance arithmetic happens in integer minor units (cents, fils, or whole
yen for zero-decimal currencies). Decimal major-unit amounts only exist at
the edges: request payloads, DB columns and API responses.

No Flask imports. No DB access.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


# ISO 4217 codes whose minor unit equals the major unit.
ZERO_DECIMAL_CURRENCIES = frozenset({
    "BIF", "CLP", "DJF", "GNF", "ISK", "JPY", "KMF",
    "KRW", "PYG", "RWF", "UGX", "VND", "XOF", "XPF",
})

# ISO 4217 codes with three fractional digits.
THREE_DECIMAL_CURRENCIES = frozenset({
    "BHD", "IQD", "JOD", "KWD", "LYD", "OMR", "TND",
})

SUPPORTED_CURRENCIES = frozenset({
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "BAM",
    "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL", "BSD",
    "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLP", "CNY", "COP",
    "CRC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD", "EGP", "ETB",
    "EUR", "FJD", "GBP", "GEL", "GHS", "GMD", "GNF", "GTQ", "GYD", "HKD",
    "HNL", "HTG", "HUF", "IDR", "ILS", "INR", "IQD", "IRR", "ISK", "JMD",
    "JOD", "JPY", "KES", "KHR", "KMF", "KRW", "KWD", "KYD", "KZT", "LAK",
    "LBP", "LKR", "LRD", "LSL", "LYD", "MAD", "MDL", "MGA", "MKD", "MMK",
    "MOP", "MRU", "MUR", "MVR", "MWK", "MXN", "MYR", "MZN", "NAD", "NGN",
    "NIO", "NOK", "NPR", "NZD", "OMR", "PAB", "PEN", "PGK", "PHP", "PKR",
    "PLN", "PYG", "QAR", "RON", "RSD", "RUB", "RWF", "SAR", "SBD", "SCR",
    "SDG", "SEK", "SGD", "SHP", "SOS", "SRD", "STN", "SZL", "THB", "TJS",
    "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX", "USD",
    "UYU", "UZS", "VES", "VND", "XCD", "XOF", "XPF", "YER", "ZAR", "ZMW",
})


class UnsupportedCurrencyError(ValueError):
    """Raised when a currency code is not in SUPPORTED_CURRENCIES."""


class AmountPrecisionError(ValueError):
    """Raised by strict conversion when an amount has too many fractional digits."""


def is_supported(code: str | None) -> bool:
    return isinstance(code, str) and code in SUPPORTED_CURRENCIES


def minor_unit_exponent(code: str) -> int:
    """
    Returns the number of fractional digits for `code`.

    Raises UnsupportedCurrencyError for unknown codes.
    """
    if not is_supported(code):
        raise UnsupportedCurrencyError(f"Unsupported currency: {code!r}")
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def as_decimal(amount) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    if isinstance(amount, float):
        # Legacy float inputs: go through str() so 33.33 stays 33.33.
        return Decimal(str(amount))
    try:
        return Decimal(amount)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a monetary amount: {amount!r}") from exc


def has_valid_precision(amount, code: str) -> bool:
    """True if `amount` has no more fractional digits than `code` allows."""
    value = as_decimal(amount)
    scaled = value.scaleb(minor_unit_exponent(code))
    return scaled == scaled.to_integral_value()


def to_minor_units(amount, code: str, *, strict: bool = False) -> int:
    """
    Converts a major-unit amount to integer minor units.

    Excess precision is rounded half-up unless `strict` is set, in which case
    AmountPrecisionError is raised instead.

        to_minor_units(Decimal("33.34"), "USD") == 3334
        to_minor_units(Decimal("1000"), "JPY")  == 1000
    """
    value = as_decimal(amount)
    scaled = value.scaleb(minor_unit_exponent(code))
    integral = scaled.to_integral_value(rounding=ROUND_HALF_UP)
    if strict and integral != scaled:
        raise AmountPrecisionError(
            f"{value} has more fractional digits than {code} allows."
        )
    return int(integral)


def from_minor_units(units: int, code: str) -> Decimal:
    """
    Converts integer minor units back to a major-unit Decimal with exactly the
    currency's number of fractional digits.

        from_minor_units(3334, "USD") == Decimal("33.34")
        from_minor_units(0, "USD")    -> Decimal("0.00")
    """
    return Decimal(int(units)).scaleb(-minor_unit_exponent(code))


def normalize_amount(amount, code: str) -> Decimal:
    """Rounds an amount to the currency's minor unit (half-up)."""
    return from_minor_units(to_minor_units(amount, code), code)


def format_amount(amount, code: str) -> str:
    """String form used in API responses, e.g. "33.30" for USD, "500" for JPY."""
    return str(normalize_amount(amount, code))
