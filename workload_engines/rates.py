"""
Module: workload_engines.rates
Responsibility:
    Compute the monetary amount of a billing line from its quantity inputs
    and a rate-type selector, together with the formula snapshot that is
    stored with the line as its permanent audit record.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import workload_kernel exceptions, logging and db.types
    rounding helpers.

Invariants enforced:
    - RateType is closed: HDS, SHEET, FUSING, YARD_BASED.  Anything else
      raises UnknownRateTypeError.
    - Each rate type is its own formula variant owning its required inputs;
      there is no generic formula string.
    - Amounts round half-up to 2 places, per-unit rates to 4.
    - Purity: no clock access, no I/O.  Identical inputs always produce an
      identical snapshot (no timestamps are embedded).

Failure modes:
    - InvalidRateInputError on a missing rate, non-positive rate, missing or
      non-positive stitches where the formula needs them, negative
      quantities, or a non-numeric or non-finite (NaN, Infinity) input.
    - UnknownRateTypeError on an unsupported rate type.

Formulas:
    HDS         stitches * rate * 0.1
    SHEET       stitches * rate * 0.277
    FUSING      100 * rate                       (stitches ignored)
    YARD_BASED  yards * rate_per_yard
                  yards         = explicit yards, else
                                  (machine_gazana / d_stitch) * stitches_done
                  rate_per_yard = round4((d_stitch / 1000) * 2.77 * rate)
                fallback when no yard inputs exist:
                  (stitches / 1000) * rate * 100  ("YARD_BASED/HDS_FALLBACK")

Usage:
    from workload_engines.rates import RateInputs, RateType, calculate_amount

    result = calculate_amount(
        RateInputs(stitches=Decimal("1000"), rate=Decimal("10")),
        RateType.SHEET,
    )
    result.amount              # Decimal("2770.00")
    result.snapshot.to_dict()  # stored in BillItem.formula_details
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from workload_engines.tracer import traced_engine
from workload_kernel.db.types import ZERO, round_money, round_rate, to_decimal
from workload_kernel.exceptions import InvalidRateInputError, UnknownRateTypeError
from workload_kernel.logging_config import get_logger

logger = get_logger("engines.rates")

ENGINE_VERSION = "1.0"

HDS_FACTOR = Decimal("0.1")
SHEET_FACTOR = Decimal("0.277")
FUSING_BASE = Decimal("100")
DEFAULT_D_STITCH = Decimal("104")
DEFAULT_YARD_RATE_FACTOR = Decimal("2.77")

FALLBACK_FORMULA = "YARD_BASED/HDS_FALLBACK"


class RateType(str, Enum):
    """Closed set of billing formulas."""

    HDS = "HDS"
    SHEET = "SHEET"
    FUSING = "FUSING"
    YARD_BASED = "YARD_BASED"

    @classmethod
    def parse(cls, value: RateType | str) -> RateType:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise UnknownRateTypeError(str(value)) from None


@dataclass(frozen=True)
class RateInputs:
    """
    Quantity inputs of a billing line.

    Contract:
        All fields are optional at construction; each formula validates the
        subset it needs.  A client-supplied amount is not an input and is
        never read.
    """

    rate: Decimal | None = None
    stitches: Decimal | None = None
    yards: Decimal | None = None
    repeats: Decimal | None = None
    pieces: Decimal | None = None
    d_stitch: Decimal | None = None
    machine_gazana: Decimal | None = None
    stitches_done: Decimal | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], rate_type: str = "") -> RateInputs:
        """Build inputs from a loose mapping (request payload, ORM row values)."""
        values: dict[str, Decimal | None] = {}
        for f in fields(cls):
            raw = data.get(f.name)
            if raw is None or raw == "":
                values[f.name] = None
                continue
            try:
                values[f.name] = to_decimal(raw)
            except (InvalidOperation, TypeError, ValueError):
                raise InvalidRateInputError(rate_type, f.name, "is not a number") from None
        inputs = cls(**values)
        inputs.require_finite(rate_type)
        return inputs

    def require_finite(self, rate_type: str = "") -> None:
        """NaN, sNaN and Infinity are never valid quantities."""
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and not value.is_finite():
                raise InvalidRateInputError(rate_type, f.name, "must be a finite number")

    def used(self, *names: str) -> dict[str, str]:
        return {
            name: str(getattr(self, name))
            for name in names
            if getattr(self, name) is not None
        }


@dataclass(frozen=True)
class RateSettings:
    """Configurable constants of the yard-based formula."""

    default_d_stitch: Decimal = DEFAULT_D_STITCH
    yard_rate_factor: Decimal = DEFAULT_YARD_RATE_FACTOR


@dataclass(frozen=True)
class FormulaSnapshot:
    """
    Point-in-time record of how an amount was produced.

    Contract:
        Serialized with to_dict() into BillItem.formula_details and never
        regenerated from current formula code.  Every value is a string so
        the stored form is exact.
    """

    formula: str
    rate_type: str
    expression: str
    calculation: str
    inputs: dict[str, str] = field(default_factory=dict)
    intermediates: dict[str, str] = field(default_factory=dict)
    result: str = "0.00"
    engine_version: str = ENGINE_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "formula": self.formula,
            "rate_type": self.rate_type,
            "expression": self.expression,
            "calculation": self.calculation,
            "inputs": dict(self.inputs),
            "intermediates": dict(self.intermediates),
            "result": self.result,
            "engine_version": self.engine_version,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FormulaSnapshot:
        return cls(
            formula=data["formula"],
            rate_type=data["rate_type"],
            expression=data["expression"],
            calculation=data.get("calculation", ""),
            inputs=dict(data.get("inputs", {})),
            intermediates=dict(data.get("intermediates", {})),
            result=data["result"],
            engine_version=data.get("engine_version", ENGINE_VERSION),
        )

    @property
    def amount(self) -> Decimal:
        return Decimal(self.result)


@dataclass(frozen=True)
class FormulaResult:
    amount: Decimal
    snapshot: FormulaSnapshot

    @property
    def formula_details(self) -> dict[str, Any]:
        return self.snapshot.to_dict()


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def calculate_fabric_yards(
    machine_gazana: Decimal,
    d_stitch: Decimal,
    stitches_done: Decimal,
) -> Decimal:
    """(machine_gazana / d_stitch) * stitches_done; 0 when d_stitch is 0. Unrounded."""
    if d_stitch == ZERO:
        return ZERO
    return (machine_gazana / d_stitch) * stitches_done


def calculate_rate_per_yard(
    d_stitch: Decimal,
    rate: Decimal,
    factor: Decimal = DEFAULT_YARD_RATE_FACTOR,
) -> Decimal:
    """round4((d_stitch / 1000) * factor * rate)."""
    return round_rate((d_stitch / Decimal("1000")) * factor * rate)


def calculate_rate_per_repeat(rate: Decimal, stitches_per_repeat: Decimal) -> Decimal:
    """round4(rate * stitches_per_repeat)."""
    return round_rate(rate * stitches_per_repeat)


def _require_positive(rate_type: RateType, name: str, value: Decimal | None) -> Decimal:
    if value is None:
        raise InvalidRateInputError(rate_type.value, name, "is required")
    if value <= ZERO:
        raise InvalidRateInputError(rate_type.value, name, "must be positive")
    return value


def _require_non_negative(rate_type: RateType, inputs: RateInputs, *names: str) -> None:
    for name in names:
        value = getattr(inputs, name)
        if value is not None and value < ZERO:
            raise InvalidRateInputError(rate_type.value, name, "must not be negative")


# ---------------------------------------------------------------------------
# Formula variants
# ---------------------------------------------------------------------------


class RateFormula:
    """One billing formula: owns its required inputs and its arithmetic."""

    rate_type: RateType

    def compute(self, inputs: RateInputs, settings: RateSettings) -> FormulaResult:
        raise NotImplementedError


class _StitchFactorFormula(RateFormula):
    factor: Decimal

    def compute(self, inputs: RateInputs, settings: RateSettings) -> FormulaResult:
        rate = _require_positive(self.rate_type, "rate", inputs.rate)
        stitches = _require_positive(self.rate_type, "stitches", inputs.stitches)
        amount = round_money(stitches * rate * self.factor)
        snapshot = FormulaSnapshot(
            formula=self.rate_type.value,
            rate_type=self.rate_type.value,
            expression=f"stitches * rate * {self.factor}",
            calculation=f"{stitches} * {rate} * {self.factor}",
            inputs=inputs.used("stitches", "rate"),
            result=str(amount),
        )
        return FormulaResult(amount=amount, snapshot=snapshot)


class HdsFormula(_StitchFactorFormula):
    rate_type = RateType.HDS
    factor = HDS_FACTOR


class SheetFormula(_StitchFactorFormula):
    rate_type = RateType.SHEET
    factor = SHEET_FACTOR


class FusingFormula(RateFormula):
    """Flat rate: 100 * rate.  Stitches are not an input."""

    rate_type = RateType.FUSING

    def compute(self, inputs: RateInputs, settings: RateSettings) -> FormulaResult:
        rate = _require_positive(self.rate_type, "rate", inputs.rate)
        amount = round_money(FUSING_BASE * rate)
        snapshot = FormulaSnapshot(
            formula=self.rate_type.value,
            rate_type=self.rate_type.value,
            expression=f"{FUSING_BASE} * rate",
            calculation=f"{FUSING_BASE} * {rate}",
            inputs=inputs.used("rate"),
            result=str(amount),
        )
        return FormulaResult(amount=amount, snapshot=snapshot)


class YardBasedFormula(RateFormula):
    """Fabric/yard billing; falls back to the per-thousand-stitch formula."""

    rate_type = RateType.YARD_BASED

    def compute(self, inputs: RateInputs, settings: RateSettings) -> FormulaResult:
        rate = _require_positive(self.rate_type, "rate", inputs.rate)
        _require_non_negative(
            self.rate_type, inputs, "yards", "d_stitch", "machine_gazana", "stitches_done"
        )

        if inputs.yards is not None:
            return self._from_yards(inputs, rate, settings, inputs.yards, None)

        if inputs.machine_gazana is not None and inputs.stitches_done is not None:
            d_stitch = self._d_stitch(inputs, settings)
            fabric_yards = calculate_fabric_yards(
                inputs.machine_gazana, d_stitch, inputs.stitches_done
            )
            return self._from_yards(inputs, rate, settings, fabric_yards, fabric_yards)

        return self._fallback(inputs, rate)

    @staticmethod
    def _d_stitch(inputs: RateInputs, settings: RateSettings) -> Decimal:
        return inputs.d_stitch if inputs.d_stitch is not None else settings.default_d_stitch

    def _from_yards(
        self,
        inputs: RateInputs,
        rate: Decimal,
        settings: RateSettings,
        yards: Decimal,
        fabric_yards: Decimal | None,
    ) -> FormulaResult:
        d_stitch = self._d_stitch(inputs, settings)
        rate_per_yard = calculate_rate_per_yard(d_stitch, rate, settings.yard_rate_factor)
        amount = round_money(yards * rate_per_yard)

        used = inputs.used("rate", "yards", "machine_gazana", "stitches_done")
        used["d_stitch"] = str(d_stitch)
        intermediates = {"rate_per_yard": str(rate_per_yard)}
        if fabric_yards is not None:
            intermediates["fabric_yards"] = str(round_rate(fabric_yards))
            expression = (
                "((machine_gazana / d_stitch) * stitches_done) * "
                f"round4((d_stitch / 1000) * {settings.yard_rate_factor} * rate)"
            )
        else:
            expression = f"yards * round4((d_stitch / 1000) * {settings.yard_rate_factor} * rate)"

        snapshot = FormulaSnapshot(
            formula=self.rate_type.value,
            rate_type=self.rate_type.value,
            expression=expression,
            calculation=f"{round_rate(yards)} * {rate_per_yard}",
            inputs=used,
            intermediates=intermediates,
            result=str(amount),
        )
        return FormulaResult(amount=amount, snapshot=snapshot)

    def _fallback(self, inputs: RateInputs, rate: Decimal) -> FormulaResult:
        if inputs.stitches is None:
            raise InvalidRateInputError(
                self.rate_type.value,
                "stitches",
                "is required when neither yards nor machine_gazana/stitches_done are given",
            )
        stitches = _require_positive(self.rate_type, "stitches", inputs.stitches)
        amount = round_money((stitches / Decimal("1000")) * rate * Decimal("100"))
        logger.debug(
            "yard_formula_fallback",
            extra={"stitches": str(stitches), "rate": str(rate)},
        )
        snapshot = FormulaSnapshot(
            formula=FALLBACK_FORMULA,
            rate_type=self.rate_type.value,
            expression="(stitches / 1000) * rate * 100",
            calculation=f"({stitches} / 1000) * {rate} * 100",
            inputs=inputs.used("stitches", "rate"),
            result=str(amount),
        )
        return FormulaResult(amount=amount, snapshot=snapshot)


FORMULAS: dict[RateType, RateFormula] = {
    RateType.HDS: HdsFormula(),
    RateType.SHEET: SheetFormula(),
    RateType.FUSING: FusingFormula(),
    RateType.YARD_BASED: YardBasedFormula(),
}


@traced_engine("rates", ENGINE_VERSION, fingerprint_fields=("inputs", "rate_type"))
def calculate_amount(
    inputs: RateInputs | Mapping[str, Any],
    rate_type: RateType | str,
    settings: RateSettings | None = None,
) -> FormulaResult:
    """
    Compute the amount of one billing line.

    Preconditions:
        ``inputs`` carries the quantities the selected formula needs.
    Postconditions:
        ``result.amount`` is rounded to 2 places and equals
        ``Decimal(result.snapshot.result)``.
    Raises:
        UnknownRateTypeError, InvalidRateInputError.
    """
    selected = RateType.parse(rate_type)
    if not isinstance(inputs, RateInputs):
        inputs = RateInputs.from_mapping(inputs, selected.value)
    else:
        inputs.require_finite(selected.value)
    return FORMULAS[selected].compute(inputs, settings or RateSettings())
