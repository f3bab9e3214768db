"""
AllocationService -- save and remove machine assignments for a work item.

Responsibility:
    Persists the split of a work item's planned stitches across machines.
    Validates the split against the planned total (non-blocking), upserts
    one allocation row per machine, removes rows for machines that are no
    longer assigned and recalculates every kept row so rows assigned to a
    machine that already produced for the item start out consistent.

Architecture position:
    Services -- imperative shell.  Consumes AllocationValidator (engine)
    and ReconciliationService.

Invariants enforced:
    - A new row starts with pending_stitches = assigned_stitches and status
      Open, then is recalculated in the same transaction.
    - A total mismatch is logged at WARNING and never blocks the save.
    - estimated_days defaults to round(assigned / avg_stitches_per_day, 2)
      when not supplied and avg_stitches_per_day > 0.

Failure modes:
    - WorkItemNotFoundError / MachineNotFoundError for unknown IDs.
    - InvalidAssignmentError for negative stitches or a machine listed twice.
    - AllocationNotFoundError when removing an assignment that doesn't exist.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workload_config import WorkloadConfig, get_active_config
from workload_engines.allocation import (
    AllocationValidation,
    AllocationValidator,
    WorkItemPlan,
)
from workload_kernel.db.types import ZERO, round_money
from workload_kernel.domain.clock import Clock
from workload_kernel.domain.values import AllocationStatus
from workload_kernel.exceptions import (
    AllocationNotFoundError,
    InvalidAssignmentError,
    MachineNotFoundError,
    WorkItemNotFoundError,
)
from workload_kernel.logging_config import LogContext, get_logger
from workload_kernel.models.allocation import AllocationRecord
from workload_kernel.models.machine import Machine
from workload_kernel.models.work_item import WorkItem
from workload_kernel.services.base import BaseService
from workload_services.reconciliation_service import ReconciliationService

logger = get_logger("services.allocation")


@dataclass(frozen=True)
class MachineAssignment:
    machine_id: UUID
    assigned_stitches: Decimal
    avg_stitches_per_day: Decimal | None = None
    repeats: Decimal | None = None
    estimated_days: Decimal | None = None


@dataclass(frozen=True)
class AllocationSaveResult:
    validation: AllocationValidation
    allocations: tuple[AllocationRecord, ...]
    removed_machine_ids: tuple[UUID, ...]


def default_estimated_days(
    assigned_stitches: Decimal,
    avg_stitches_per_day: Decimal | None,
) -> Decimal | None:
    if avg_stitches_per_day is None or avg_stitches_per_day <= ZERO:
        return None
    return round_money(assigned_stitches / avg_stitches_per_day)


class AllocationService(BaseService):
    """
    Saves machine assignments.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT reject a split that doesn't add up to the planned total.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkloadConfig | None = None,
        reconciliation: ReconciliationService | None = None,
    ):
        super().__init__(session, clock)
        config = config or get_active_config()
        self.validator = AllocationValidator(tolerance=config.allocation.tolerance)
        self.reconciliation = reconciliation or ReconciliationService(session, clock=self.clock)

    def _check_assignments(
        self,
        work_item_id: UUID,
        assignments: Sequence[MachineAssignment],
    ) -> None:
        seen: set[UUID] = set()
        for assignment in assignments:
            if assignment.machine_id in seen:
                raise InvalidAssignmentError(
                    str(work_item_id), str(assignment.machine_id), "machine listed twice"
                )
            seen.add(assignment.machine_id)
            if assignment.assigned_stitches < ZERO:
                raise InvalidAssignmentError(
                    str(work_item_id),
                    str(assignment.machine_id),
                    "assigned stitches must not be negative",
                )
            if self.session.get(Machine, assignment.machine_id) is None:
                raise MachineNotFoundError(str(assignment.machine_id))

    def save_allocations(
        self,
        work_item_id: UUID,
        assignments: Sequence[MachineAssignment],
    ) -> AllocationSaveResult:
        with LogContext.bind(work_item_id=work_item_id):
            work_item = self.session.get(WorkItem, work_item_id)
            if work_item is None:
                raise WorkItemNotFoundError(str(work_item_id))

            self._check_assignments(work_item_id, assignments)

            validation = self.validator.validate(
                WorkItemPlan(work_item.stitch_per_unit, work_item.repeats),
                [a.assigned_stitches for a in assignments],
            )
            if not validation.valid:
                logger.warning(
                    "allocation_total_mismatch",
                    extra={
                        "assigned_total": str(validation.assigned_total),
                        "expected_total": str(validation.expected_total),
                        "difference": str(validation.difference),
                    },
                )

            existing = {
                record.machine_id: record
                for record in self.session.execute(
                    select(AllocationRecord)
                    .where(AllocationRecord.work_item_id == work_item_id)
                    .with_for_update()
                ).scalars()
            }

            kept: list[AllocationRecord] = []
            for assignment in assignments:
                estimated = assignment.estimated_days
                if estimated is None:
                    estimated = default_estimated_days(
                        assignment.assigned_stitches, assignment.avg_stitches_per_day
                    )

                record = existing.pop(assignment.machine_id, None)
                if record is None:
                    record = AllocationRecord(
                        work_item_id=work_item_id,
                        machine_id=assignment.machine_id,
                        assigned_stitches=assignment.assigned_stitches,
                        pending_stitches=assignment.assigned_stitches,
                        status=AllocationStatus.OPEN.value,
                    )
                    self.session.add(record)
                else:
                    record.assigned_stitches = assignment.assigned_stitches
                record.avg_stitches_per_day = assignment.avg_stitches_per_day
                record.repeats = assignment.repeats
                record.estimated_days = estimated
                kept.append(record)

            removed = tuple(existing.keys())
            for record in existing.values():
                self.session.delete(record)
            self.session.flush()

            for record in kept:
                self.reconciliation.recalculate(work_item_id, record.machine_id)

            logger.info(
                "allocations_saved",
                extra={
                    "allocation_count": len(kept),
                    "removed_count": len(removed),
                    "valid": validation.valid,
                },
            )
            return AllocationSaveResult(
                validation=validation,
                allocations=tuple(kept),
                removed_machine_ids=removed,
            )

    def remove_allocation(self, work_item_id: UUID, machine_id: UUID) -> None:
        record = self.session.execute(
            select(AllocationRecord)
            .where(
                AllocationRecord.work_item_id == work_item_id,
                AllocationRecord.machine_id == machine_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if record is None:
            raise AllocationNotFoundError(str(work_item_id), str(machine_id))
        self.session.delete(record)
        self.session.flush()
        logger.info(
            "allocation_removed",
            extra={"work_item_id": str(work_item_id), "machine_id": str(machine_id)},
        )
