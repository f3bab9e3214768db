"""
Module: workload_kernel.db.types
Responsibility: The sanctioned Decimal coercion and rounding helpers for
    production quantities, money and per-unit rates.
Architecture position: Kernel > DB.  May be imported by models/, selectors/,
    services/ and by workload_engines.  MUST NOT import from those layers.

Invariants enforced:
    - Amounts round half-up to MONEY_DECIMAL_PLACES (2).
    - Per-unit rates round half-up to RATE_DECIMAL_PLACES (4).
    - No floats: every quantity crossing this module is a Decimal.
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
RATE_DECIMAL_PLACES = 4

ZERO = Decimal("0")


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    """Coerce a numeric input to Decimal without going through binary float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def _quantize(value: Decimal, places: int) -> Decimal:
    exponent = Decimal(1).scaleb(-places)
    return value.quantize(exponent, rounding=ROUND_HALF_UP)


def round_money(value: Decimal | int | float | str) -> Decimal:
    """Round a monetary amount half-up to 2 decimal places."""
    return _quantize(to_decimal(value), MONEY_DECIMAL_PLACES)


def round_rate(value: Decimal | int | float | str) -> Decimal:
    """Round a per-unit rate half-up to 4 decimal places."""
    return _quantize(to_decimal(value), RATE_DECIMAL_PLACES)
