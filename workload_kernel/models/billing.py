"""
Module: workload_kernel.models.billing
Responsibility: ORM persistence for bills, bill items and the append-only
    formula snapshot history.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - bill_number is unique (uq_bill_number).
    - Bill.total_amount equals the SQL sum of its items' amounts after
      every item change (maintained by the billing service).
    - Deleting a bill deletes its items (ORM cascade + ON DELETE CASCADE).
    - BillItemSnapshot rows are never updated or deleted (ORM listeners in
      db/immutability.py).  They carry no foreign key so history survives
      deletion of the item or the bill.

Failure modes:
    - IntegrityError on duplicate bill_number.
    - ImmutabilityViolationError on UPDATE/DELETE of a snapshot row, or on
      an in-place rewrite of BillItem.formula_details.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workload_kernel.db.base import Base, TimestampedBase, UUIDString


class BillingMode(str, Enum):
    """Numbering scope of a bill: per day (standard) or per year (optimized)."""

    STANDARD = "standard"
    OPTIMIZED = "optimized"


class Bill(TimestampedBase):
    """A customer bill grouping bill items."""

    __tablename__ = "bills"

    __table_args__ = (
        UniqueConstraint("bill_number", name="uq_bill_number"),
        Index("idx_bill_date", "bill_date"),
    )

    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    billing_mode: Mapped[BillingMode] = mapped_column(
        String(20),
        nullable=False,
        default=BillingMode.STANDARD,
    )
    bill_date: Mapped[date] = mapped_column(nullable=False)
    party_name: Mapped[str] = mapped_column(String(255), nullable=False)
    po_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    items: Mapped[list["BillItem"]] = relationship(
        back_populates="bill",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BillItem.created_at",
    )

    def __repr__(self) -> str:
        return f"<Bill {self.bill_number} total={self.total_amount}>"


class BillItem(TimestampedBase):
    """
    A monetary line on a bill.

    Contract:
        amount and formula_details are always produced by the rate engine;
        client-supplied amounts are discarded.  formula_details is replaced
        only together with a snapshot_revision bump, and every revision is
        also appended to bill_item_snapshots.
    """

    __tablename__ = "bill_items"

    __table_args__ = (
        Index("idx_bill_item_bill", "bill_id"),
    )

    bill_id: Mapped[UUID] = mapped_column(
        ForeignKey("bills.id", ondelete="CASCADE"),
        nullable=False,
    )

    design_no: Mapped[str | None] = mapped_column(String(100), nullable=True)
    collection: Mapped[str | None] = mapped_column(String(100), nullable=True)
    component: Mapped[str | None] = mapped_column(String(100), nullable=True)
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Quantity inputs
    stitches: Mapped[Decimal | None] = mapped_column(nullable=True)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    yards: Mapped[Decimal | None] = mapped_column(nullable=True)
    repeats: Mapped[Decimal | None] = mapped_column(nullable=True)
    pieces: Mapped[Decimal | None] = mapped_column(nullable=True)
    d_stitch: Mapped[Decimal | None] = mapped_column(nullable=True)
    machine_gazana: Mapped[Decimal | None] = mapped_column(nullable=True)
    stitches_done: Mapped[Decimal | None] = mapped_column(nullable=True)

    rate_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Computed
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    formula_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    snapshot_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    bill: Mapped[Bill] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<BillItem {self.rate_type} amount={self.amount} rev={self.snapshot_revision}>"


class BillItemSnapshot(Base):
    """
    Append-only history of every formula snapshot written for a bill item.

    Contract:
        One row per (bill_item_id, revision).  Never updated, never deleted.
    """

    __tablename__ = "bill_item_snapshots"

    __table_args__ = (
        UniqueConstraint("bill_item_id", "revision", name="uq_bill_item_snapshot_revision"),
        Index("idx_bill_item_snapshot_bill", "bill_number"),
    )

    bill_item_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    bill_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    bill_number: Mapped[str] = mapped_column(String(50), nullable=False)
    revision: Mapped[int] = mapped_column(Integer, nullable=False)
    rate_type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    formula_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<BillItemSnapshot {self.bill_item_id} rev={self.revision}>"
