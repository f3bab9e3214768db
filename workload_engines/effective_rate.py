"""
Module: workload_engines.effective_rate
Responsibility:
    Per-stitch rate of a work item built from the time-effective base rate
    plus the rate elements selected for the work item, and the billing
    amount of a quantity of stitches at that rate.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    The caller loads the base rate effective on the billing date and the
    selected element rates; this module only does the arithmetic.

Invariants enforced:
    - effective_rate == base_rate + sum(element_rates), unrounded.
    - total_amount == round_money(stitches * effective_rate).
    - The base rate is positive; element rates and stitches are
      non-negative.  Every input is a finite number.

Failure modes:
    - InvalidRateInputError naming the offending input.

Usage:
    from workload_engines.effective_rate import calculate_billing_amount

    billed = calculate_billing_amount(
        Decimal("0.05"), [Decimal("0.01"), Decimal("0.002")], Decimal("10000")
    )
    billed.effective_rate   # Decimal("0.062")
    billed.total_amount     # Decimal("620.00")
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from workload_engines.tracer import traced_engine
from workload_kernel.db.types import ZERO, round_money, to_decimal
from workload_kernel.exceptions import InvalidRateInputError

ENGINE_VERSION = "1.0"

EFFECTIVE_RATE = "EFFECTIVE_RATE"


@dataclass(frozen=True)
class EffectiveRate:
    base_rate: Decimal
    element_rates: Decimal
    effective_rate: Decimal


@dataclass(frozen=True)
class BillingAmount:
    """Breakdown stored on a billing record."""

    base_rate: Decimal
    element_rates: Decimal
    effective_rate: Decimal
    stitches: Decimal
    total_amount: Decimal


def _finite(name: str, value) -> Decimal:
    try:
        amount = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRateInputError(EFFECTIVE_RATE, name, "is not a number") from None
    if not amount.is_finite():
        raise InvalidRateInputError(EFFECTIVE_RATE, name, "must be a finite number")
    return amount


def _non_negative(name: str, value) -> Decimal:
    amount = _finite(name, value)
    if amount < ZERO:
        raise InvalidRateInputError(EFFECTIVE_RATE, name, "must not be negative")
    return amount


def calculate_effective_rate(
    base_rate: Decimal,
    element_rates: Iterable[Decimal] = (),
) -> EffectiveRate:
    return _effective_rate(base_rate, tuple(element_rates))


@traced_engine("effective_rate", ENGINE_VERSION, fingerprint_fields=("base_rate", "element_rates"))
def _effective_rate(base_rate: Decimal, element_rates: tuple[Decimal, ...]) -> EffectiveRate:
    base = _finite("base_rate", base_rate)
    if base <= ZERO:
        raise InvalidRateInputError(EFFECTIVE_RATE, "base_rate", "must be positive")
    elements = sum(
        (_non_negative("element_rate", rate) for rate in element_rates),
        ZERO,
    )
    return EffectiveRate(
        base_rate=base,
        element_rates=elements,
        effective_rate=base + elements,
    )


def calculate_billing_amount(
    base_rate: Decimal,
    element_rates: Iterable[Decimal],
    stitches: Decimal,
) -> BillingAmount:
    """
    Bill ``stitches`` at the effective rate.

    Raises:
        InvalidRateInputError for a non-positive base rate, a negative
        element rate or negative stitches.
    """
    quantity = _non_negative("stitches", stitches)
    rate = calculate_effective_rate(base_rate, element_rates)
    return BillingAmount(
        base_rate=rate.base_rate,
        element_rates=rate.element_rates,
        effective_rate=rate.effective_rate,
        stitches=quantity,
        total_amount=round_money(quantity * rate.effective_rate),
    )
