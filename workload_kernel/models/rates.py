"""
Module: workload_kernel.models.rates
Responsibility: ORM persistence for the per-stitch rate schedule: dated
    base rates, named rate elements, the elements selected per work item,
    and the billing records priced from them.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Rate element names are unique (uq_rate_element_name).
    - One element selection row per (work item, element).
    - One billing record per (work item, machine, date, shift).
    - An approved billing record's priced fields are frozen; the ORM
      listeners in db/immutability.py reject the change.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workload_kernel.db.base import TimestampedBase


class BaseRate(TimestampedBase):
    """
    Per-stitch base rate valid from effective_from through effective_to.

    effective_to is inclusive; NULL means open-ended.
    """

    __tablename__ = "base_rates"

    __table_args__ = (
        Index("idx_base_rate_effective", "effective_from"),
    )

    rate_per_stitch: Mapped[Decimal] = mapped_column(nullable=False)
    effective_from: Mapped[date] = mapped_column(nullable=False)
    effective_to: Mapped[date | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<BaseRate {self.rate_per_stitch} from {self.effective_from}>"


class RateElement(TimestampedBase):
    """Named surcharge added per stitch when selected for a work item."""

    __tablename__ = "rate_elements"

    __table_args__ = (
        UniqueConstraint("name", name="uq_rate_element_name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    rate_per_stitch: Mapped[Decimal] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)


class WorkItemRateElement(TimestampedBase):
    __tablename__ = "work_item_rate_elements"

    __table_args__ = (
        UniqueConstraint(
            "work_item_id",
            "rate_element_id",
            name="uq_work_item_rate_element",
        ),
    )

    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    rate_element_id: Mapped[UUID] = mapped_column(
        ForeignKey("rate_elements.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_selected: Mapped[bool] = mapped_column(nullable=False, default=True)

    element: Mapped[RateElement] = relationship(lazy="joined")


class BillingRateRecord(TimestampedBase):
    """
    Stitches of one machine shift billed at the work item's effective rate.

    The base rate, element total and effective rate are copied onto the
    row so later schedule changes never alter a priced record.
    """

    __tablename__ = "billing_rate_records"

    __table_args__ = (
        UniqueConstraint(
            "work_item_id",
            "machine_id",
            "billing_date",
            "shift",
            name="uq_billing_rate_record_key",
        ),
    )

    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    machine_id: Mapped[UUID] = mapped_column(
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )
    billing_date: Mapped[date] = mapped_column(nullable=False)
    shift: Mapped[str] = mapped_column(String(10), nullable=False)
    total_stitches: Mapped[Decimal] = mapped_column(nullable=False)
    base_rate: Mapped[Decimal] = mapped_column(nullable=False)
    element_rates: Mapped[Decimal] = mapped_column(nullable=False)
    effective_rate: Mapped[Decimal] = mapped_column(nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    is_approved: Mapped[bool] = mapped_column(nullable=False, default=False)
    approved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
