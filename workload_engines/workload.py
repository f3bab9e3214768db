"""
Module: workload_engines.workload
Responsibility:
    Derive an allocation's workload state (pending stitches, status,
    completion date, days used) from its assigned stitches and the
    production totals read from the ledger.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The reconciliation
    service is the only writer of the state this module derives.

Invariants enforced:
    - pending = assigned - produced, exactly.  Never clamped at zero.
    - actual_days = (last_date - first_date).days + 1 when both dates
      exist, else 0.  A single production day counts as 1.
    - Status priority:
        pending < 0                      -> Overproduced, completed_at = last_date
        pending == 0 and produced > 0    -> Delayed when estimated_days > 0 and
                                            actual_days > estimated_days, else
                                            Completed; completed_at = last_date
        otherwise                        -> Open, completed_at = None
    - Purity: no clock; dates come from the production events.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from workload_engines.tracer import traced_engine
from workload_kernel.db.types import ZERO
from workload_kernel.domain.schedule import (
    actual_days_used,
    days_left,
    is_behind_schedule,
    on_time_status,
)
from workload_kernel.domain.values import AllocationStatus

__all__ = [
    "WorkloadState",
    "actual_days_used",
    "days_left",
    "derive_workload_state",
    "on_time_status",
]


@dataclass(frozen=True)
class WorkloadState:
    """Derived state of one allocation after a full recomputation."""

    assigned_stitches: Decimal
    produced_stitches: Decimal
    pending_stitches: Decimal
    status: AllocationStatus
    completed_at: date | None
    actual_days: int
    first_date: date | None = None
    last_date: date | None = None

    @property
    def completed_stitches(self) -> Decimal:
        return self.assigned_stitches - self.pending_stitches


@traced_engine(
    "workload",
    "1.0",
    fingerprint_fields=("assigned_stitches", "produced_stitches", "first_date", "last_date", "estimated_days"),
)
def derive_workload_state(
    assigned_stitches: Decimal,
    produced_stitches: Decimal,
    first_date: date | None,
    last_date: date | None,
    estimated_days: Decimal | None = None,
) -> WorkloadState:
    pending = assigned_stitches - produced_stitches
    actual_days = actual_days_used(first_date, last_date)

    if pending < ZERO:
        status = AllocationStatus.OVERPRODUCED
        completed_at = last_date
    elif pending == ZERO and produced_stitches > ZERO:
        if is_behind_schedule(estimated_days, actual_days):
            status = AllocationStatus.DELAYED
        else:
            status = AllocationStatus.COMPLETED
        completed_at = last_date
    else:
        status = AllocationStatus.OPEN
        completed_at = None

    return WorkloadState(
        assigned_stitches=assigned_stitches,
        produced_stitches=produced_stitches,
        pending_stitches=pending,
        status=status,
        completed_at=completed_at,
        actual_days=actual_days,
        first_date=first_date,
        last_date=last_date,
    )
