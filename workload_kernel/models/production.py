"""
Module: workload_kernel.models.production
Responsibility: ORM persistence for the three independent production
    logging sources.  Each source is summed by its own ledger adapter;
    none of them is the canonical table.
Architecture position: Kernel > Models.  May import from db/ only.

Sources:
    shift_production_entries     legacy per-shift entries
    daily_production_entries     daily aggregate per machine / work item
    daily_billing_shift_records  production implied by saved daily billing
                                 lines (machine and date on the header)

Failure modes:
    - IntegrityError on a duplicate daily aggregate for the same
      machine, work item and date (uq_daily_production_key).
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workload_kernel.db.base import TimestampedBase


class Shift(str, Enum):
    DAY = "day"
    NIGHT = "night"


class ShiftProductionEntry(TimestampedBase):
    """Legacy per-shift production entry."""

    __tablename__ = "shift_production_entries"

    __table_args__ = (
        Index("idx_shift_production_key", "work_item_id", "machine_id"),
    )

    work_item_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_items.id", ondelete="CASCADE"),
        nullable=False,
    )
    machine_id: Mapped[UUID] = mapped_column(
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )
    production_date: Mapped[date] = mapped_column(nullable=False)
    shift: Mapped[Shift] = mapped_column(String(10), nullable=False, default=Shift.DAY)
    stitches: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    repeats: Mapped[Decimal | None] = mapped_column(nullable=True)
    operator_name: Mapped[str | None] = mapped_column(String(255), nullable=True)


class DailyProductionEntry(TimestampedBase):
    """
    Daily aggregate production for one machine.

    work_item_id is nullable: a machine may log idle/unassigned output,
    which counts for no allocation.
    """

    __tablename__ = "daily_production_entries"

    __table_args__ = (
        UniqueConstraint(
            "machine_id",
            "work_item_id",
            "production_date",
            name="uq_daily_production_key",
        ),
        Index("idx_daily_production_key", "work_item_id", "machine_id"),
    )

    machine_id: Mapped[UUID] = mapped_column(
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("work_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    production_date: Mapped[date] = mapped_column(nullable=False)
    day_shift_stitches: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    night_shift_stitches: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_stitches: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)


class DailyBillingRecord(TimestampedBase):
    """Header of a machine's daily yard-based billing sheet."""

    __tablename__ = "daily_billing_records"

    __table_args__ = (
        Index("idx_daily_billing_machine_date", "machine_id", "billing_date"),
    )

    machine_id: Mapped[UUID] = mapped_column(
        ForeignKey("machines.id", ondelete="CASCADE"),
        nullable=False,
    )
    billing_date: Mapped[date] = mapped_column(nullable=False)
    party_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    lines: Mapped[list["DailyBillingShiftRecord"]] = relationship(
        back_populates="record",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class DailyBillingShiftRecord(TimestampedBase):
    """One billed line of a daily billing sheet; its stitches count as production."""

    __tablename__ = "daily_billing_shift_records"

    __table_args__ = (
        Index("idx_daily_billing_line_item", "work_item_id"),
    )

    daily_billing_id: Mapped[UUID] = mapped_column(
        ForeignKey("daily_billing_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("work_items.id", ondelete="SET NULL"),
        nullable=True,
    )
    shift: Mapped[Shift] = mapped_column(String(10), nullable=False, default=Shift.DAY)
    stitches_done: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    d_stitch: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    fabric_yards: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    rate_per_yard: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    formula_details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    record: Mapped[DailyBillingRecord] = relationship(back_populates="lines")
