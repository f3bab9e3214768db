"""
ReconciliationService -- recompute an allocation's derived workload state.

Responsibility:
    Loads and locks the allocation row for a (work item, machine) pair,
    reads the production totals from the ProductionLedger, derives the new
    state with the pure workload engine and persists pending_stitches,
    status and completed_at in one flush.

Architecture position:
    Services -- imperative shell.  Consumes ProductionLedger (kernel
    selector) and derive_workload_state (engine).  Knows nothing about the
    concrete production sources.

Invariants enforced:
    - pending_stitches == assigned_stitches - total produced, immediately
      after every recalculation.  This service is the only writer of the
      derived columns.
    - Full recomputation: state is re-derived from all events every time;
      nothing is incremented or decremented.
    - The allocation row is locked (``SELECT ... FOR UPDATE``) before the
      ledger is read, so concurrent recalculations of the same key
      serialize and the last committer writes totals it read itself.
    - Idempotent: a second call without production changes writes the
      same values.

Failure modes:
    - No allocation row: nothing to reconcile, returns None.  With
      ``require_allocation=True`` raises AllocationNotFoundError.
    - Data-layer errors propagate and abort the caller's transaction; a
      recalculation is never silently skipped.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from workload_engines.workload import WorkloadState, derive_workload_state
from workload_kernel.domain.clock import Clock
from workload_kernel.exceptions import AllocationNotFoundError
from workload_kernel.logging_config import LogContext, get_logger
from workload_kernel.models.allocation import AllocationRecord
from workload_kernel.selectors.production_ledger import ProductionLedger
from workload_kernel.services.base import BaseService

logger = get_logger("services.reconciliation")


class ReconciliationService(BaseService):
    """
    Recalculates allocation state from the production ledger.

    Contract:
        ``recalculate(work_item_id, machine_id)`` brings the allocation row
        for that key in line with the current production events.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
        - Does NOT retry on lock or serialization failures.
    """

    def __init__(
        self,
        session: Session,
        ledger: ProductionLedger | None = None,
        clock: Clock | None = None,
    ):
        super().__init__(session, clock)
        self.ledger = ledger or ProductionLedger(session)

    def _lock_allocation(self, work_item_id: UUID, machine_id: UUID) -> AllocationRecord | None:
        return self.session.execute(
            select(AllocationRecord)
            .where(
                AllocationRecord.work_item_id == work_item_id,
                AllocationRecord.machine_id == machine_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def recalculate(
        self,
        work_item_id: UUID,
        machine_id: UUID,
        *,
        require_allocation: bool = False,
    ) -> WorkloadState | None:
        with LogContext.bind(work_item_id=work_item_id, machine_id=machine_id):
            record = self._lock_allocation(work_item_id, machine_id)
            if record is None:
                if require_allocation:
                    raise AllocationNotFoundError(str(work_item_id), str(machine_id))
                logger.debug("recalculation_skipped_no_allocation")
                return None

            produced = self.ledger.total_produced(work_item_id, machine_id)
            state = derive_workload_state(
                assigned_stitches=record.assigned_stitches,
                produced_stitches=produced.stitches,
                first_date=produced.first_date,
                last_date=produced.last_date,
                estimated_days=record.estimated_days,
            )

            previous_status = getattr(record.status, "value", record.status)
            record.pending_stitches = state.pending_stitches
            record.status = state.status.value
            record.completed_at = state.completed_at
            self.session.flush()

            logger.info(
                "allocation_recalculated",
                extra={
                    "assigned_stitches": str(state.assigned_stitches),
                    "produced_stitches": str(state.produced_stitches),
                    "pending_stitches": str(state.pending_stitches),
                    "status": state.status.value,
                    "previous_status": previous_status,
                    "actual_days": state.actual_days,
                },
            )
            return state

    def recalculate_keys(self, keys) -> int:
        """Recalculate each distinct (work_item_id, machine_id) once; returns rows touched."""
        seen: set[tuple[UUID, UUID]] = set()
        touched = 0
        for work_item_id, machine_id in keys:
            if work_item_id is None or (work_item_id, machine_id) in seen:
                continue
            seen.add((work_item_id, machine_id))
            if self.recalculate(work_item_id, machine_id) is not None:
                touched += 1
        return touched

    def _keys(self, *criteria) -> list[tuple[UUID, UUID]]:
        stmt = select(AllocationRecord.work_item_id, AllocationRecord.machine_id)
        if criteria:
            stmt = stmt.where(*criteria)
        return [tuple(row) for row in self.session.execute(stmt).all()]

    def recalculate_work_item(self, work_item_id: UUID) -> int:
        return self.recalculate_keys(self._keys(AllocationRecord.work_item_id == work_item_id))

    def recalculate_machine(self, machine_id: UUID) -> int:
        return self.recalculate_keys(self._keys(AllocationRecord.machine_id == machine_id))

    def recalculate_all(self) -> int:
        """Resync sweep over every allocation."""
        touched = self.recalculate_keys(self._keys())
        logger.info("allocation_resync_completed", extra={"allocations": touched})
        return touched
