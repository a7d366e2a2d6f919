# Overview: Conversions between API units (kg, currency) and stored units (grams, cents).

"""
Quantities are sold by weight. Storage uses integers so that ledger replay is
exact:

- weight / quantity: integer grams (kg with 3 decimals)
- money: integer cents (2 decimals)
- discount: integer basis points (percent with 2 decimals)

Arithmetic on money stays in Decimal at full precision; values are rounded to
cents only when they are persisted or rendered.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

GRAMS_PER_KG = 1000
CENTS = Decimal("0.01")
KG_STEP = Decimal("0.001")


class UnitError(ValueError):
    """Raised when a raw value cannot be read as a decimal quantity."""


def to_decimal(value) -> Decimal:
    """
    Read a JSON number or numeric string as a Decimal.

    Floats go through str() so 0.1 stays 0.1. Booleans are rejected.
    """
    if value is None or isinstance(value, bool):
        raise UnitError("must be a number")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, int):
        d = Decimal(value)
    elif isinstance(value, float):
        d = Decimal(str(value))
    elif isinstance(value, str):
        try:
            d = Decimal(value.strip())
        except InvalidOperation:
            raise UnitError("must be a number")
    else:
        raise UnitError("must be a number")
    if not d.is_finite():
        raise UnitError("must be a finite number")
    return d


def _check_places(d: Decimal, step: Decimal, places: int) -> None:
    try:
        exact = d == d.quantize(step)
    except InvalidOperation:
        # More digits than the decimal context can hold
        raise UnitError("is out of range")
    if not exact:
        raise UnitError(f"must have at most {places} decimal places")


def kg_to_grams(value) -> int:
    """kg (at most 3 decimals) -> grams."""
    d = to_decimal(value)
    _check_places(d, KG_STEP, 3)
    return int(d * GRAMS_PER_KG)


def grams_to_kg(grams: int) -> Decimal:
    return (Decimal(grams) / GRAMS_PER_KG).quantize(KG_STEP)


def money_to_cents(value) -> int:
    """Currency amount (at most 2 decimals) -> cents."""
    d = to_decimal(value)
    _check_places(d, CENTS, 2)
    return int(d * 100)


def cents_to_money(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENTS)


def percent_to_bps(value) -> int:
    d = to_decimal(value)
    _check_places(d, CENTS, 2)
    return int(d * 100)


def bps_to_percent(bps: int) -> Decimal:
    return (Decimal(bps) / 100).quantize(CENTS)


def line_amount(quantity_grams: int, price_per_kg_cents: int) -> Decimal:
    """Exact line value in currency units, unrounded."""
    return Decimal(quantity_grams) * Decimal(price_per_kg_cents) / (GRAMS_PER_KG * 100)


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def round_to_cents(amount: Decimal) -> int:
    return int(round_money(amount) * 100)


def as_json_number(d: Decimal) -> float:
    """Render a Decimal for JSON output (display boundary only)."""
    return float(d)
