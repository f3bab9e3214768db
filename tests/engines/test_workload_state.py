"""
Tests for workload state derivation (workload_engines/workload.py) and the
schedule helpers it shares with the selectors.
"""

from datetime import date
from decimal import Decimal

import pytest

from workload_engines.workload import (
    actual_days_used,
    days_left,
    derive_workload_state,
    on_time_status,
)
from workload_kernel.domain.values import AllocationStatus, OnTimeStatus

D1 = date(2024, 3, 1)
D5 = date(2024, 3, 5)


class TestPendingStitches:
    def test_no_production(self):
        state = derive_workload_state(Decimal("1000"), Decimal("0"), None, None)

        assert state.pending_stitches == Decimal("1000")
        assert state.status is AllocationStatus.OPEN
        assert state.completed_at is None
        assert state.actual_days == 0

    def test_partial_production(self):
        state = derive_workload_state(Decimal("1000"), Decimal("400"), D1, D5)

        assert state.pending_stitches == Decimal("600")
        assert state.completed_stitches == Decimal("400")
        assert state.status is AllocationStatus.OPEN

    def test_overproduction_is_not_clamped(self):
        state = derive_workload_state(Decimal("1000"), Decimal("1200"), D1, D5)

        assert state.pending_stitches == Decimal("-200")
        assert state.status is AllocationStatus.OVERPRODUCED
        assert state.completed_at == D5

    def test_zero_assignment_without_production_stays_open(self):
        state = derive_workload_state(Decimal("0"), Decimal("0"), None, None)
        assert state.status is AllocationStatus.OPEN


class TestCompletionStatus:
    def test_completed_on_time(self):
        state = derive_workload_state(
            Decimal("1000"), Decimal("1000"), D1, D5, estimated_days=Decimal("5")
        )
        assert state.status is AllocationStatus.COMPLETED
        assert state.completed_at == D5
        assert state.actual_days == 5

    def test_completed_late_is_delayed(self):
        state = derive_workload_state(
            Decimal("1000"), Decimal("1000"), D1, D5, estimated_days=Decimal("4")
        )
        assert state.status is AllocationStatus.DELAYED
        assert state.completed_at == D5

    def test_no_estimate_is_completed(self):
        state = derive_workload_state(Decimal("1000"), Decimal("1000"), D1, D5)
        assert state.status is AllocationStatus.COMPLETED

    def test_zero_estimate_is_completed(self):
        state = derive_workload_state(
            Decimal("1000"), Decimal("1000"), D1, D5, estimated_days=Decimal("0")
        )
        assert state.status is AllocationStatus.COMPLETED

    def test_single_production_day_counts_as_one(self):
        state = derive_workload_state(
            Decimal("500"), Decimal("500"), D1, D1, estimated_days=Decimal("1")
        )
        assert state.actual_days == 1
        assert state.status is AllocationStatus.COMPLETED
        assert state.completed_at == D1

    def test_overproduced_wins_over_delay(self):
        state = derive_workload_state(
            Decimal("1000"), Decimal("1001"), D1, D5, estimated_days=Decimal("1")
        )
        assert state.status is AllocationStatus.OVERPRODUCED


class TestScheduleHelpers:
    def test_actual_days_used(self):
        assert actual_days_used(D1, D5) == 5
        assert actual_days_used(D1, D1) == 1
        assert actual_days_used(None, D5) == 0

    @pytest.mark.parametrize(
        "estimated, actual, expected",
        [
            (Decimal("5"), 5, OnTimeStatus.ON_TIME),
            (Decimal("5"), 6, OnTimeStatus.DELAYED),
            (Decimal("0"), 6, OnTimeStatus.ON_TIME),
            (None, 6, OnTimeStatus.ON_TIME),
        ],
    )
    def test_on_time_status(self, estimated, actual, expected):
        assert on_time_status(estimated, actual) is expected

    def test_days_left(self):
        assert days_left(Decimal("4.2"), 2) == 3
        assert days_left(Decimal("3"), 5) == 0
        assert days_left(None, 2) is None
        assert days_left(Decimal("0"), 2) is None
