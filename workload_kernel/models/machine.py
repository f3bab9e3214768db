"""
Module: workload_kernel.models.machine
Responsibility: ORM persistence for embroidery machines.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - machine_number is unique (uq_machine_number).

Failure modes:
    - IntegrityError on duplicate machine_number.
"""

from decimal import Decimal

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from workload_kernel.db.base import TimestampedBase


class Machine(TimestampedBase):
    """
    A production machine that work items are allocated to.

    ``gazana`` is the machine's fabric width factor; the yard-based rate
    formula reads it when billing the machine's daily output.
    """

    __tablename__ = "machines"

    __table_args__ = (
        UniqueConstraint("machine_number", name="uq_machine_number"),
    )

    machine_number: Mapped[int] = mapped_column(Integer, nullable=False)

    master_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    gazana: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Machine {self.machine_number}: {self.master_name}>"
