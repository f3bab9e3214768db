"""
Module: workload_kernel.models.outsourcing
Responsibility: ORM persistence for outsourced ("clipping") work sent to
    a vendor and received back.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity_received never exceeds quantity_sent (checked by the
      outsourcing service before the row is flushed).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from workload_kernel.db.base import TimestampedBase


class OutsourcingStatus(str, Enum):
    SENT = "Sent"
    PARTIALLY_RECEIVED = "Partially Received"
    COMPLETED = "Completed"


class OutsourcedWorkItem(TimestampedBase):
    """Quantity of a work item sent to a vendor for finishing."""

    __tablename__ = "outsourced_work_items"

    __table_args__ = (
        Index("idx_outsourced_work_item", "work_item_id"),
    )

    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    quantity_sent: Mapped[Decimal] = mapped_column(nullable=False)
    quantity_received: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    date_sent: Mapped[date] = mapped_column(nullable=False)
    last_received_date: Mapped[date | None] = mapped_column(nullable=True)
    status: Mapped[OutsourcingStatus] = mapped_column(
        String(30),
        nullable=False,
        default=OutsourcingStatus.SENT,
    )

    @property
    def quantity_outstanding(self) -> Decimal:
        return self.quantity_sent - self.quantity_received
