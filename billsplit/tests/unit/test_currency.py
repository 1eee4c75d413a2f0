"""
tests/unit/test_currency.py — Unit tests for app/currency.py.

What this file proves:
  - Minor-unit exponents: 2 by default, 0 for JPY-style, 3 for KWD-style
  - Codes are exact uppercase ISO 4217; anything else is unsupported
  - to_minor_units rounds half-up (or refuses, when strict)
  - from_minor_units / format_amount always carry the currency's digits

No database, no Flask.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from billsplit.app.currency import (
    AmountPrecisionError,
    UnsupportedCurrencyError,
    as_decimal,
    format_amount,
    from_minor_units,
    has_valid_precision,
    is_supported,
    minor_unit_exponent,
    normalize_amount,
    to_minor_units,
)


# ── Supported codes ────────────────────────────────────────────────────────

@pytest.mark.parametrize("code", ["USD", "EUR", "JPY", "KWD", "INR"])
def test_common_codes_are_supported(code):
    assert is_supported(code)


@pytest.mark.parametrize("code", ["usd", "US", "XXX", "", None, 840])
def test_unknown_or_malformed_codes_are_rejected(code):
    assert not is_supported(code)


def test_minor_unit_exponent_per_currency_class():
    assert minor_unit_exponent("USD") == 2
    assert minor_unit_exponent("JPY") == 0
    assert minor_unit_exponent("KRW") == 0
    assert minor_unit_exponent("KWD") == 3
    assert minor_unit_exponent("BHD") == 3


def test_minor_unit_exponent_raises_for_unsupported_code():
    with pytest.raises(UnsupportedCurrencyError):
        minor_unit_exponent("ABC")


# ── Precision ──────────────────────────────────────────────────────────────

def test_has_valid_precision_respects_currency_digits():
    assert has_valid_precision(Decimal("10.5"), "USD")
    assert has_valid_precision(Decimal("10.50"), "USD")
    assert not has_valid_precision(Decimal("10.505"), "USD")

    assert has_valid_precision(Decimal("100"), "JPY")
    assert has_valid_precision(Decimal("100.00"), "JPY")
    assert not has_valid_precision(Decimal("100.5"), "JPY")

    assert has_valid_precision(Decimal("1.234"), "KWD")
    assert not has_valid_precision(Decimal("1.2345"), "KWD")


# ── Conversion ─────────────────────────────────────────────────────────────

def test_to_minor_units_basic():
    assert to_minor_units(Decimal("33.34"), "USD") == 3334
    assert to_minor_units(Decimal("1000"), "JPY") == 1000
    assert to_minor_units(Decimal("3.334"), "KWD") == 3334


def test_to_minor_units_rounds_half_up():
    assert to_minor_units(Decimal("0.005"), "USD") == 1
    assert to_minor_units(Decimal("0.004"), "USD") == 0
    assert to_minor_units(Decimal("-0.005"), "USD") == -1


def test_to_minor_units_strict_refuses_excess_precision():
    with pytest.raises(AmountPrecisionError):
        to_minor_units(Decimal("1.005"), "USD", strict=True)
    assert to_minor_units(Decimal("1.000"), "USD", strict=True) == 100


def test_float_input_goes_through_str():
    # Decimal(33.33) would be 33.3299999...; the str() route keeps it exact.
    assert to_minor_units(33.33, "USD") == 3333


def test_as_decimal_rejects_garbage():
    with pytest.raises(ValueError):
        as_decimal("abc")
    with pytest.raises(ValueError):
        as_decimal(None)


def test_from_minor_units_carries_currency_digits():
    assert str(from_minor_units(3334, "USD")) == "33.34"
    assert str(from_minor_units(0, "USD")) == "0.00"
    assert str(from_minor_units(-150, "USD")) == "-1.50"
    assert str(from_minor_units(500, "JPY")) == "500"
    assert str(from_minor_units(1500, "KWD")) == "1.500"


def test_normalize_amount_rounds_to_minor_unit():
    assert normalize_amount(Decimal("10.005"), "USD") == Decimal("10.01")
    assert normalize_amount(Decimal("10"), "USD") == Decimal("10.00")


def test_format_amount_for_api_responses():
    assert format_amount(Decimal("33.3"), "USD") == "33.30"
    # Numeric(15, 3) columns come back with three digits.
    assert format_amount(Decimal("33.340"), "USD") == "33.34"
    assert format_amount(Decimal("500.000"), "JPY") == "500"
    assert format_amount(Decimal("1.5"), "KWD") == "1.500"
