"""
Module: workload_engines.allocation
Responsibility:
    Check that the stitches assigned across machines for one work item add
    up to the item's planned total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - expected_total = stitch_per_unit * max(repeats, 1).
    - valid iff |assigned_total - expected_total| < tolerance (strict).

Failure modes:
    - None.  A mismatch is a result, not an exception: saving a partially
      allocated work item stays possible, the caller only logs the mismatch.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from workload_engines.tracer import traced_engine
from workload_kernel.db.types import ZERO

DEFAULT_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class WorkItemPlan:
    """Planning inputs of a work item."""

    stitch_per_unit: Decimal
    repeats: Decimal | None = None

    @property
    def expected_total(self) -> Decimal:
        repeats = self.repeats if self.repeats is not None else ZERO
        return self.stitch_per_unit * max(repeats, Decimal("1"))


@dataclass(frozen=True)
class AllocationValidation:
    valid: bool
    assigned_total: Decimal
    expected_total: Decimal
    difference: Decimal


class AllocationValidator:
    """
    Compare assigned stitches with the planned total.

    Contract:
        Pure; never raises on a mismatch.
    """

    def __init__(self, tolerance: Decimal = DEFAULT_TOLERANCE):
        self.tolerance = tolerance

    def validate(
        self,
        plan: WorkItemPlan,
        assigned: Iterable[Decimal],
    ) -> AllocationValidation:
        return self._validate(plan, tuple(assigned))

    @traced_engine("allocation_validator", "1.0", fingerprint_fields=("plan", "assigned"))
    def _validate(
        self,
        plan: WorkItemPlan,
        assigned: tuple[Decimal, ...],
    ) -> AllocationValidation:
        assigned_total = sum(assigned, ZERO)
        expected_total = plan.expected_total
        difference = assigned_total - expected_total
        return AllocationValidation(
            valid=abs(difference) < self.tolerance,
            assigned_total=assigned_total,
            expected_total=expected_total,
            difference=difference,
        )
