"""
Module: workload_kernel.selectors.workload_selector
Responsibility: Read interfaces over allocation state: the per-allocation
    view, the per-machine detail list and the machine workload summary.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - completed_stitches = assigned - pending (as persisted by the last
      recalculation).
    - on_time_status is Delayed iff estimated_days > 0 and
      actual_days_used > estimated_days.
    - Machine produced total = assigned - pending, summed per machine.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, select

from workload_kernel.db.types import ZERO, to_decimal
from workload_kernel.domain.schedule import actual_days_used, days_left, on_time_status
from workload_kernel.domain.values import AllocationStatus, OnTimeStatus
from workload_kernel.models.allocation import AllocationRecord
from workload_kernel.models.machine import Machine
from workload_kernel.models.work_item import WorkItem
from workload_kernel.selectors.base import BaseSelector
from workload_kernel.selectors.production_ledger import ProductionLedger


@dataclass(frozen=True)
class AllocationView:
    work_item_id: UUID
    machine_id: UUID
    assigned_stitches: Decimal
    pending_stitches: Decimal
    completed_stitches: Decimal
    avg_stitches_per_day: Decimal | None
    estimated_days: Decimal | None
    actual_days_used: int
    days_left: int | None
    status: AllocationStatus
    on_time_status: OnTimeStatus
    completed_at: date | None
    first_production_date: date | None
    last_production_date: date | None


@dataclass(frozen=True)
class MachineDetail:
    """One allocation on a machine, with the work item it belongs to."""

    contract_no: str
    design_no: str | None
    collection: str | None
    description: str | None
    allocation: AllocationView


@dataclass(frozen=True)
class MachineWorkloadSummary:
    machine_id: UUID
    machine_number: int
    allocation_count: int
    work_item_count: int
    total_assigned: Decimal
    total_pending: Decimal
    total_produced: Decimal
    has_delays: bool


class WorkloadSelector(BaseSelector):
    """Per-allocation and per-machine read models."""

    def __init__(self, session, ledger: ProductionLedger | None = None):
        super().__init__(session)
        self.ledger = ledger or ProductionLedger(session)

    def _view(self, record: AllocationRecord) -> AllocationView:
        totals = self.ledger.total_produced(record.work_item_id, record.machine_id)

        actual_days = actual_days_used(totals.first_date, totals.last_date)
        estimated = record.estimated_days

        return AllocationView(
            work_item_id=record.work_item_id,
            machine_id=record.machine_id,
            assigned_stitches=record.assigned_stitches,
            pending_stitches=record.pending_stitches,
            completed_stitches=record.assigned_stitches - record.pending_stitches,
            avg_stitches_per_day=record.avg_stitches_per_day,
            estimated_days=estimated,
            actual_days_used=actual_days,
            days_left=days_left(estimated, actual_days),
            status=AllocationStatus(record.status),
            on_time_status=on_time_status(estimated, actual_days),
            completed_at=record.completed_at,
            first_production_date=totals.first_date,
            last_production_date=totals.last_date,
        )

    def allocation_view(self, work_item_id: UUID, machine_id: UUID) -> AllocationView | None:
        record = self.session.execute(
            select(AllocationRecord).where(
                AllocationRecord.work_item_id == work_item_id,
                AllocationRecord.machine_id == machine_id,
            )
        ).scalar_one_or_none()
        if record is None:
            return None
        return self._view(record)

    def machine_detail(self, machine_id: UUID) -> list[MachineDetail]:
        rows = self.session.execute(
            select(AllocationRecord, WorkItem)
            .join(WorkItem, AllocationRecord.work_item_id == WorkItem.id)
            .where(AllocationRecord.machine_id == machine_id)
            .order_by(WorkItem.contract_no, WorkItem.design_no)
        ).all()
        return [
            MachineDetail(
                contract_no=item.contract_no,
                design_no=item.design_no,
                collection=item.collection,
                description=item.description,
                allocation=self._view(record),
            )
            for record, item in rows
        ]

    def machine_workload_summary(self) -> list[MachineWorkloadSummary]:
        delayed = func.sum(
            case((AllocationRecord.status == AllocationStatus.DELAYED.value, 1), else_=0)
        )
        rows = self.session.execute(
            select(
                Machine.id,
                Machine.machine_number,
                func.count(AllocationRecord.id),
                func.count(func.distinct(AllocationRecord.work_item_id)),
                func.sum(AllocationRecord.assigned_stitches),
                func.sum(AllocationRecord.pending_stitches),
                delayed,
            )
            .join(AllocationRecord, AllocationRecord.machine_id == Machine.id)
            .group_by(Machine.id, Machine.machine_number)
            .order_by(Machine.machine_number)
        ).all()

        summaries = []
        for machine_id, number, count, items, assigned, pending, delayed_count in rows:
            assigned = to_decimal(assigned) if assigned is not None else ZERO
            pending = to_decimal(pending) if pending is not None else ZERO
            summaries.append(
                MachineWorkloadSummary(
                    machine_id=machine_id,
                    machine_number=number,
                    allocation_count=count,
                    work_item_count=items,
                    total_assigned=assigned,
                    total_pending=pending,
                    total_produced=assigned - pending,
                    has_delays=bool(delayed_count),
                )
            )
        return summaries
