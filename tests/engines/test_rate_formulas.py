"""
Tests for the rate formula engine (workload_engines/rates.py).

Covers the four formulas, the yard-based fallback, half-up rounding, the
formula snapshot and input validation.
"""

from decimal import Decimal

import pytest

from workload_engines.rates import (
    FALLBACK_FORMULA,
    FormulaSnapshot,
    RateInputs,
    RateSettings,
    RateType,
    calculate_amount,
    calculate_fabric_yards,
    calculate_rate_per_repeat,
    calculate_rate_per_yard,
)
from workload_kernel.exceptions import InvalidRateInputError, UnknownRateTypeError


class TestStitchFormulas:
    def test_hds(self):
        result = calculate_amount(
            RateInputs(stitches=Decimal("1000"), rate=Decimal("10")), RateType.HDS
        )
        assert result.amount == Decimal("1000.00")
        assert result.snapshot.formula == "HDS"

    def test_sheet(self):
        result = calculate_amount(
            RateInputs(stitches=Decimal("1000"), rate=Decimal("10")), RateType.SHEET
        )
        assert result.amount == Decimal("2770.00")
        assert result.snapshot.expression == "stitches * rate * 0.277"

    def test_fusing_ignores_stitches(self):
        with_stitches = calculate_amount(
            RateInputs(stitches=Decimal("999999"), rate=Decimal("2.5")), RateType.FUSING
        )
        without_stitches = calculate_amount(RateInputs(rate=Decimal("2.5")), RateType.FUSING)

        assert with_stitches.amount == Decimal("250.00")
        assert without_stitches.amount == Decimal("250.00")
        assert "stitches" not in with_stitches.snapshot.inputs

    def test_rounds_half_up(self):
        # 1 * 0.05 * 0.1 = 0.005 -> 0.01 (banker's rounding would give 0.00)
        result = calculate_amount(
            RateInputs(stitches=Decimal("1"), rate=Decimal("0.05")), RateType.HDS
        )
        assert result.amount == Decimal("0.01")

    def test_amount_is_two_places(self):
        result = calculate_amount(
            RateInputs(stitches=Decimal("333"), rate=Decimal("0.333")), RateType.SHEET
        )
        assert result.amount.as_tuple().exponent == -2

    def test_missing_stitches_rejected(self):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount(RateInputs(rate=Decimal("10")), RateType.HDS)
        assert exc_info.value.field == "stitches"
        assert exc_info.value.code == "INVALID_RATE_INPUT"

    def test_zero_stitches_rejected(self):
        with pytest.raises(InvalidRateInputError):
            calculate_amount(RateInputs(stitches=Decimal("0"), rate=Decimal("10")), RateType.SHEET)

    @pytest.mark.parametrize("rate", [None, Decimal("0"), Decimal("-1")])
    def test_non_positive_rate_rejected(self, rate):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount(RateInputs(stitches=Decimal("100"), rate=rate), RateType.HDS)
        assert exc_info.value.field == "rate"


class TestYardBasedFormula:
    def test_explicit_yards(self):
        result = calculate_amount(
            RateInputs(yards=Decimal("100"), rate=Decimal("0.02")), RateType.YARD_BASED
        )
        # round4(104 / 1000 * 2.77 * 0.02) = round4(0.0057616) = 0.0058
        assert result.snapshot.intermediates["rate_per_yard"] == "0.0058"
        assert result.amount == Decimal("0.58")

    def test_fabric_yards_from_machine_gazana(self):
        result = calculate_amount(
            RateInputs(
                machine_gazana=Decimal("40"),
                d_stitch=Decimal("104"),
                stitches_done=Decimal("5000"),
                rate=Decimal("0.02"),
            ),
            RateType.YARD_BASED,
        )
        # (40 / 104) * 5000 = 1923.0769...; * 0.0058 = 11.1538...
        assert result.snapshot.intermediates["fabric_yards"] == "1923.0769"
        assert result.snapshot.intermediates["rate_per_yard"] == "0.0058"
        assert result.amount == Decimal("11.15")

    def test_explicit_yards_take_precedence(self):
        result = calculate_amount(
            RateInputs(
                yards=Decimal("100"),
                machine_gazana=Decimal("40"),
                stitches_done=Decimal("5000"),
                rate=Decimal("0.02"),
            ),
            RateType.YARD_BASED,
        )
        assert result.amount == Decimal("0.58")
        assert "fabric_yards" not in result.snapshot.intermediates

    def test_default_d_stitch_applied(self):
        result = calculate_amount(
            RateInputs(yards=Decimal("100"), rate=Decimal("0.02")), RateType.YARD_BASED
        )
        assert result.snapshot.inputs["d_stitch"] == "104"

    def test_configured_settings(self):
        settings = RateSettings(default_d_stitch=Decimal("100"), yard_rate_factor=Decimal("3"))
        result = calculate_amount(
            RateInputs(yards=Decimal("10"), rate=Decimal("1")), RateType.YARD_BASED, settings
        )
        # round4(100 / 1000 * 3 * 1) = 0.3000
        assert result.amount == Decimal("3.00")

    def test_fallback_without_yard_inputs(self):
        result = calculate_amount(
            RateInputs(stitches=Decimal("5000"), rate=Decimal("2")), RateType.YARD_BASED
        )
        assert result.amount == Decimal("1000.00")
        assert result.snapshot.formula == FALLBACK_FORMULA
        assert result.snapshot.rate_type == "YARD_BASED"

    def test_fallback_requires_stitches(self):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount(RateInputs(rate=Decimal("2")), RateType.YARD_BASED)
        assert exc_info.value.field == "stitches"

    def test_negative_yards_rejected(self):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount(
                RateInputs(yards=Decimal("-1"), rate=Decimal("2")), RateType.YARD_BASED
            )
        assert exc_info.value.field == "yards"


class TestHelpers:
    def test_fabric_yards_zero_d_stitch(self):
        assert calculate_fabric_yards(Decimal("40"), Decimal("0"), Decimal("5000")) == Decimal("0")

    def test_rate_per_yard(self):
        assert calculate_rate_per_yard(Decimal("104"), Decimal("0.02")) == Decimal("0.0058")

    def test_rate_per_repeat(self):
        assert calculate_rate_per_repeat(Decimal("0.12345"), Decimal("1")) == Decimal("0.1235")


class TestRateTypeSelection:
    def test_parse_is_case_insensitive(self):
        assert RateType.parse("sheet") is RateType.SHEET
        assert RateType.parse(" yard_based ") is RateType.YARD_BASED

    def test_unknown_rate_type(self):
        with pytest.raises(UnknownRateTypeError) as exc_info:
            calculate_amount({"stitches": "100", "rate": "1"}, "EMBOSS")
        assert exc_info.value.rate_type == "EMBOSS"
        assert exc_info.value.code == "UNKNOWN_RATE_TYPE"


class TestInputsFromMapping:
    def test_client_amount_is_ignored(self):
        result = calculate_amount(
            {"stitches": "1000", "rate": "10", "amount": "999999"}, "HDS"
        )
        assert result.amount == Decimal("1000.00")

    def test_non_numeric_input_rejected(self):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount({"stitches": "lots", "rate": "10"}, "HDS")
        assert exc_info.value.field == "stitches"

    def test_blank_values_are_missing(self):
        inputs = RateInputs.from_mapping({"stitches": "", "rate": 5})
        assert inputs.stitches is None
        assert inputs.rate == Decimal("5")

    def test_float_input_does_not_leak_binary_noise(self):
        inputs = RateInputs.from_mapping({"rate": 0.1})
        assert inputs.rate == Decimal("0.1")


class TestNonFiniteInputs:
    @pytest.mark.parametrize("rate", ["NaN", "Infinity", "-Infinity", "sNaN"])
    @pytest.mark.parametrize("rate_type", ["HDS", "FUSING", "YARD_BASED"])
    def test_non_finite_rate_rejected(self, rate, rate_type):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount({"stitches": "1000", "rate": rate, "yards": "10"}, rate_type)
        assert exc_info.value.field == "rate"
        assert exc_info.value.code == "INVALID_RATE_INPUT"

    @pytest.mark.parametrize("value", [Decimal("NaN"), Decimal("Infinity"), Decimal("sNaN")])
    def test_non_finite_dataclass_inputs_rejected(self, value):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount(RateInputs(rate=Decimal("10"), stitches=value), RateType.SHEET)
        assert exc_info.value.field == "stitches"

    def test_non_finite_unused_field_still_rejected(self):
        with pytest.raises(InvalidRateInputError) as exc_info:
            calculate_amount(
                RateInputs(rate=Decimal("2"), machine_gazana=Decimal("Infinity")),
                RateType.FUSING,
            )
        assert exc_info.value.field == "machine_gazana"


class TestFormulaSnapshot:
    def test_snapshot_records_inputs_and_result(self):
        result = calculate_amount(
            RateInputs(stitches=Decimal("1000"), rate=Decimal("10")), RateType.SHEET
        )
        details = result.formula_details

        assert details["formula"] == "SHEET"
        assert details["inputs"] == {"stitches": "1000", "rate": "10"}
        assert details["result"] == "2770.00"
        assert details["engine_version"] == "1.0"
        assert Decimal(details["result"]) == result.amount

    def test_snapshot_is_deterministic(self):
        inputs = RateInputs(machine_gazana=Decimal("40"), stitches_done=Decimal("5000"), rate=Decimal("0.02"))
        first = calculate_amount(inputs, RateType.YARD_BASED).formula_details
        second = calculate_amount(inputs, RateType.YARD_BASED).formula_details
        assert first == second

    def test_stored_snapshot_reads_back(self):
        result = calculate_amount(RateInputs(rate=Decimal("2.5")), RateType.FUSING)
        restored = FormulaSnapshot.from_dict(result.formula_details)
        assert restored == result.snapshot
        assert restored.amount == Decimal("250.00")


class TestEngineTrace:
    def test_trace_record_emitted(self, captured_logs):
        calculate_amount(RateInputs(rate=Decimal("1")), RateType.FUSING)

        traces = [r for r in captured_logs() if r["message"] == "WORKLOAD_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "rates"
        assert len(traces[-1]["input_fingerprint"]) == 16
