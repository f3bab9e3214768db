"""
Module: workload_kernel.models.work_item
Responsibility: ORM persistence for contract line items ("work items"),
    the unit of planned production that gets split across machines.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from workload_kernel.db.base import TimestampedBase


class WorkItem(TimestampedBase):
    """
    A contract line item with a planned stitch total.

    Contract:
        planned_stitches = stitch_per_unit * max(repeats, 1).  A work item
        with no repeats recorded is still planned for one unit.
    """

    __tablename__ = "work_items"

    __table_args__ = (
        Index("idx_work_item_contract", "contract_no"),
    )

    contract_no: Mapped[str] = mapped_column(String(50), nullable=False)

    design_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    collection: Mapped[str | None] = mapped_column(String(100), nullable=True)
    component: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Stitches per repeat
    stitch_per_unit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    repeats: Mapped[Decimal | None] = mapped_column(nullable=True)
    pieces: Mapped[Decimal | None] = mapped_column(nullable=True)
    yards: Mapped[Decimal | None] = mapped_column(nullable=True)

    @property
    def planned_stitches(self) -> Decimal:
        repeats = self.repeats if self.repeats is not None else Decimal("0")
        return self.stitch_per_unit * max(repeats, Decimal("1"))

    def __repr__(self) -> str:
        return f"<WorkItem {self.contract_no}/{self.design_no}>"
