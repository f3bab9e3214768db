"""Tests for the allocation total check (workload_engines/allocation.py)."""

from decimal import Decimal

from workload_engines.allocation import AllocationValidator, WorkItemPlan


class TestWorkItemPlan:
    def test_expected_total_uses_repeats(self):
        assert WorkItemPlan(Decimal("1000"), Decimal("3")).expected_total == Decimal("3000")

    def test_missing_or_zero_repeats_count_as_one(self):
        assert WorkItemPlan(Decimal("1000")).expected_total == Decimal("1000")
        assert WorkItemPlan(Decimal("1000"), Decimal("0")).expected_total == Decimal("1000")


class TestAllocationValidator:
    def test_exact_split_is_valid(self):
        result = AllocationValidator().validate(
            WorkItemPlan(Decimal("1000"), Decimal("2")),
            [Decimal("1200"), Decimal("800")],
        )
        assert result.valid
        assert result.assigned_total == Decimal("2000")
        assert result.difference == Decimal("0")

    def test_within_tolerance_is_valid(self):
        result = AllocationValidator().validate(
            WorkItemPlan(Decimal("1000")), [Decimal("999.995")]
        )
        assert result.valid

    def test_tolerance_is_strict(self):
        result = AllocationValidator(tolerance=Decimal("0.01")).validate(
            WorkItemPlan(Decimal("1000")), [Decimal("999.99")]
        )
        assert not result.valid

    def test_under_allocation_reports_difference(self):
        result = AllocationValidator().validate(
            WorkItemPlan(Decimal("1000"), Decimal("3")), [Decimal("1000")]
        )
        assert not result.valid
        assert result.expected_total == Decimal("3000")
        assert result.difference == Decimal("-2000")

    def test_no_assignments(self):
        result = AllocationValidator().validate(WorkItemPlan(Decimal("500")), [])
        assert not result.valid
        assert result.assigned_total == Decimal("0")

    def test_generator_input_is_consumed_once(self):
        assigned = (Decimal(v) for v in ("600", "400"))
        result = AllocationValidator().validate(WorkItemPlan(Decimal("1000")), assigned)
        assert result.valid
        assert result.assigned_total == Decimal("1000")


class TestValidatorTrace:
    def _fingerprints(self, captured_logs):
        return [
            r["input_fingerprint"]
            for r in captured_logs()
            if r["message"] == "WORKLOAD_ENGINE_TRACE"
            and r["engine_name"] == "allocation_validator"
        ]

    def test_fingerprint_independent_of_iterable_type(self, captured_logs):
        plan = WorkItemPlan(Decimal("1000"), Decimal("2"))
        validator = AllocationValidator()

        validator.validate(plan, [Decimal("1200"), Decimal("800")])
        validator.validate(plan, (v for v in [Decimal("1200"), Decimal("800")]))
        validator.validate(plan, iter([Decimal("1200"), Decimal("800")]))

        fingerprints = self._fingerprints(captured_logs)
        assert len(fingerprints) == 3
        assert len(set(fingerprints)) == 1

    def test_fingerprint_changes_with_assignments(self, captured_logs):
        plan = WorkItemPlan(Decimal("1000"))
        validator = AllocationValidator()

        validator.validate(plan, [Decimal("1000")])
        validator.validate(plan, [Decimal("999")])

        first, second = self._fingerprints(captured_logs)
        assert first != second
