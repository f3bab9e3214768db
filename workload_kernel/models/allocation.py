"""
Module: workload_kernel.models.allocation
Responsibility: ORM persistence for the per-(work item, machine) allocation
    record and its derived workload state.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One row per (work_item_id, machine_id) (uq_allocation_key).
    - pending_stitches == assigned_stitches - total produced, immediately
      after every recalculation.  Only the reconciliation service writes
      pending_stitches, status and completed_at; nothing increments or
      decrements them.
    - pending_stitches may be negative (overproduction); never clamped.

Failure modes:
    - IntegrityError on duplicate (work_item_id, machine_id).
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workload_kernel.db.base import TimestampedBase
from workload_kernel.domain.values import AllocationStatus


class AllocationRecord(TimestampedBase):
    """
    Assignment of part of a work item's planned stitches to one machine.

    Contract:
        assigned_stitches and the planning inputs (avg_stitches_per_day,
        repeats, estimated_days) are user-set.  pending_stitches, status
        and completed_at are derived by recalculation only.

    Non-goals:
        - Does NOT know about production sources; the ledger does.
    """

    __tablename__ = "machine_allocations"

    __table_args__ = (
        UniqueConstraint("work_item_id", "machine_id", name="uq_allocation_key"),
        Index("idx_allocation_machine", "machine_id"),
        Index("idx_allocation_status", "status"),
    )

    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    machine_id: Mapped[UUID] = mapped_column(
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )

    assigned_stitches: Mapped[Decimal] = mapped_column(nullable=False)

    # Derived
    pending_stitches: Mapped[Decimal] = mapped_column(nullable=False)

    avg_stitches_per_day: Mapped[Decimal | None] = mapped_column(nullable=True)
    repeats: Mapped[Decimal | None] = mapped_column(nullable=True)
    estimated_days: Mapped[Decimal | None] = mapped_column(nullable=True)

    # Derived
    status: Mapped[AllocationStatus] = mapped_column(
        String(20),
        nullable=False,
        default=AllocationStatus.OPEN,
    )

    # Derived: date of the last production event once the work is done
    completed_at: Mapped[date | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<AllocationRecord {self.work_item_id}@{self.machine_id} "
            f"assigned={self.assigned_stitches} pending={self.pending_stitches} "
            f"{self.status}>"
        )
