"""
Integration entrypoint for the host application (route handlers, jobs).

Each hook runs inside the caller's session and transaction; none of them
commits.  Callers wrap a request in ``session_scope()``:

    from workload_kernel.db.engine import session_scope
    from workload_services.integration import on_production_event_changed

    with session_scope() as session:
        ...write a production event...
        on_production_event_changed(session, work_item_id, machine_id)

Hooks:
    on_production_event_changed  recalculate one (work item, machine) key
    on_allocation_saved          persist a work item's machine assignments
    on_bill_item_saved           compute and persist one bill item
    allocation_view              read the derived state of one allocation
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from workload_config import WorkloadConfig
from workload_engines.workload import WorkloadState
from workload_kernel.db.types import to_decimal
from workload_kernel.domain.clock import Clock
from workload_kernel.models.billing import BillItem
from workload_kernel.selectors.workload_selector import AllocationView, WorkloadSelector
from workload_services.allocation_service import (
    AllocationSaveResult,
    AllocationService,
    MachineAssignment,
)
from workload_services.billing_service import BillingService
from workload_services.reconciliation_service import ReconciliationService

_OPTIONAL_DECIMALS = ("avg_stitches_per_day", "repeats", "estimated_days")


def _as_assignment(value: MachineAssignment | Mapping[str, Any]) -> MachineAssignment:
    if isinstance(value, MachineAssignment):
        return value
    optional = {
        name: to_decimal(value[name]) if value.get(name) not in (None, "") else None
        for name in _OPTIONAL_DECIMALS
    }
    return MachineAssignment(
        machine_id=value["machine_id"],
        assigned_stitches=to_decimal(value["assigned_stitches"]),
        **optional,
    )


def on_production_event_changed(
    session: Session,
    work_item_id: UUID | None,
    machine_id: UUID,
    clock: Clock | None = None,
) -> WorkloadState | None:
    """Recalculate after any production source changed for this key."""
    if work_item_id is None:
        return None
    return ReconciliationService(session, clock=clock).recalculate(work_item_id, machine_id)


def on_allocation_saved(
    session: Session,
    work_item_id: UUID,
    assignments: Sequence[MachineAssignment | Mapping[str, Any]],
    clock: Clock | None = None,
    config: WorkloadConfig | None = None,
) -> AllocationSaveResult:
    service = AllocationService(session, clock=clock, config=config)
    return service.save_allocations(work_item_id, [_as_assignment(a) for a in assignments])


def on_bill_item_saved(
    session: Session,
    bill_id: UUID,
    item: Mapping[str, Any],
    item_id: UUID | None = None,
    clock: Clock | None = None,
    config: WorkloadConfig | None = None,
) -> BillItem:
    """Create (no ``item_id``) or update a bill item; any ``amount`` in ``item`` is discarded."""
    service = BillingService(session, clock=clock, config=config)
    if item_id is None:
        return service.add_item(bill_id, item)
    return service.update_item(item_id, item)


def allocation_view(
    session: Session,
    work_item_id: UUID,
    machine_id: UUID,
) -> AllocationView | None:
    return WorkloadSelector(session).allocation_view(work_item_id, machine_id)
