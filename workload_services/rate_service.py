"""
RateService -- per-stitch rate schedule and approved billing records.

Responsibility:
    Maintains the dated base rates and the named rate elements, records
    which elements apply to a work item, and prices machine shifts into
    billing records at the work item's effective rate.

Architecture position:
    Services -- imperative shell.  Loads the schedule and hands the
    arithmetic to workload_engines.effective_rate.

Invariants enforced:
    - The base rate used for a billing record is the one effective on the
      record's billing date: active, effective_from <= date and
      effective_to NULL or >= date; the latest effective_from wins.
    - Adding an open-ended base rate closes every open-ended rate that
      started earlier on the day before the new rate starts.
    - effective_rate = base rate + selected active element rates.
    - An approved billing record is never recalculated, re-approved or
      deleted.

Failure modes:
    - BaseRateNotFoundError when no base rate covers the date.
    - RateElementNotFoundError / WorkItemNotFoundError /
      MachineNotFoundError / BillingRecordNotFoundError for unknown IDs.
    - InvalidRateElementError for a blank element name or a negative or
      non-finite rate.
    - BillingRecordApprovedError for a change to an approved record.
    - InvalidRateInputError from the engine for negative stitches.
    - ValueError for an unknown shift.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select

from workload_engines.effective_rate import (
    BillingAmount,
    EffectiveRate,
    calculate_billing_amount,
    calculate_effective_rate,
)
from workload_kernel.db.types import ZERO, to_decimal
from workload_kernel.exceptions import (
    BaseRateNotFoundError,
    BillingRecordApprovedError,
    BillingRecordNotFoundError,
    InvalidRateElementError,
    MachineNotFoundError,
    RateElementNotFoundError,
    WorkItemNotFoundError,
)
from workload_kernel.logging_config import LogContext, get_logger
from workload_kernel.models.machine import Machine
from workload_kernel.models.production import Shift
from workload_kernel.models.rates import (
    BaseRate,
    BillingRateRecord,
    RateElement,
    WorkItemRateElement,
)
from workload_kernel.models.work_item import WorkItem
from workload_kernel.services.base import BaseService

logger = get_logger("services.rates")


def _rate(field: str, value: Any, *, positive: bool = False) -> Decimal:
    try:
        amount = to_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRateElementError(field, "is not a number") from None
    if not amount.is_finite():
        raise InvalidRateElementError(field, "must be a finite number")
    if positive and amount <= ZERO:
        raise InvalidRateElementError(field, "must be positive")
    if amount < ZERO:
        raise InvalidRateElementError(field, "must not be negative")
    return amount


class RateService(BaseService):
    """
    Base rates, rate elements and billing records.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
    """

    # ------------------------------------------------------------------
    # Base rates
    # ------------------------------------------------------------------

    def set_base_rate(
        self,
        rate_per_stitch: Decimal,
        effective_from: date,
        effective_to: date | None = None,
        created_by: str | None = None,
    ) -> BaseRate:
        rate = _rate("rate_per_stitch", rate_per_stitch, positive=True)
        if effective_to is not None and effective_to < effective_from:
            raise InvalidRateElementError("effective_to", "is before effective_from")

        if effective_to is None:
            open_rates = self.session.execute(
                select(BaseRate).where(
                    BaseRate.is_active.is_(True),
                    BaseRate.effective_to.is_(None),
                    BaseRate.effective_from < effective_from,
                )
            ).scalars().all()
            for previous in open_rates:
                previous.effective_to = effective_from - timedelta(days=1)
                logger.info(
                    "base_rate_closed",
                    extra={
                        "base_rate_id": str(previous.id),
                        "effective_to": previous.effective_to.isoformat(),
                    },
                )

        base_rate = BaseRate(
            rate_per_stitch=rate,
            effective_from=effective_from,
            effective_to=effective_to,
            is_active=True,
            created_by=created_by,
        )
        self.session.add(base_rate)
        self.session.flush()
        logger.info(
            "base_rate_set",
            extra={
                "base_rate_id": str(base_rate.id),
                "rate_per_stitch": str(rate),
                "effective_from": effective_from.isoformat(),
            },
        )
        return base_rate

    def get_current_base_rate(self, on_date: date | None = None) -> BaseRate:
        """The active base rate effective on ``on_date`` (default: today)."""
        on_date = on_date or self.clock.today()
        base_rate = self.session.execute(
            select(BaseRate)
            .where(
                BaseRate.is_active.is_(True),
                BaseRate.effective_from <= on_date,
                or_(BaseRate.effective_to.is_(None), BaseRate.effective_to >= on_date),
            )
            .order_by(BaseRate.effective_from.desc(), BaseRate.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        if base_rate is None:
            raise BaseRateNotFoundError(on_date.isoformat())
        return base_rate

    # ------------------------------------------------------------------
    # Rate elements
    # ------------------------------------------------------------------

    def list_rate_elements(self) -> list[RateElement]:
        return list(
            self.session.execute(
                select(RateElement)
                .where(RateElement.is_active.is_(True))
                .order_by(RateElement.name)
            ).scalars()
        )

    def upsert_rate_element(
        self,
        name: str,
        rate_per_stitch: Decimal,
        description: str | None = None,
        is_active: bool = True,
        element_id: UUID | None = None,
    ) -> RateElement:
        """
        Create or update a rate element.

        With ``element_id`` the element is updated (and may be renamed);
        otherwise the element with the same name is updated, or a new one
        created.
        """
        name = (name or "").strip()
        if not name:
            raise InvalidRateElementError("name", "is required")
        rate = _rate("rate_per_stitch", rate_per_stitch)

        if element_id is not None:
            element = self.session.get(RateElement, element_id)
            if element is None:
                raise RateElementNotFoundError(str(element_id))
        else:
            element = self.session.execute(
                select(RateElement).where(RateElement.name == name)
            ).scalar_one_or_none()

        created = element is None
        if created:
            element = RateElement(name=name)
            self.session.add(element)
        element.name = name
        element.description = description
        element.rate_per_stitch = rate
        element.is_active = is_active
        self.session.flush()

        logger.info(
            "rate_element_created" if created else "rate_element_updated",
            extra={
                "rate_element_id": str(element.id),
                "name": name,
                "rate_per_stitch": str(rate),
                "is_active": is_active,
            },
        )
        return element

    def select_rate_elements(
        self,
        work_item_id: UUID,
        element_ids: Iterable[UUID],
    ) -> list[WorkItemRateElement]:
        """Make ``element_ids`` the selected elements of the work item."""
        if self.session.get(WorkItem, work_item_id) is None:
            raise WorkItemNotFoundError(str(work_item_id))
        wanted = set(element_ids)
        for element_id in wanted:
            if self.session.get(RateElement, element_id) is None:
                raise RateElementNotFoundError(str(element_id))

        existing = {
            row.rate_element_id: row
            for row in self.session.execute(
                select(WorkItemRateElement).where(
                    WorkItemRateElement.work_item_id == work_item_id
                )
            ).scalars()
        }
        for element_id, row in existing.items():
            row.is_selected = element_id in wanted
        for element_id in wanted - set(existing):
            row = WorkItemRateElement(
                work_item_id=work_item_id,
                rate_element_id=element_id,
                is_selected=True,
            )
            self.session.add(row)
            existing[element_id] = row
        self.session.flush()

        logger.info(
            "rate_elements_selected",
            extra={"work_item_id": str(work_item_id), "selected": len(wanted)},
        )
        return [row for row in existing.values() if row.is_selected]

    def selected_element_rates(self, work_item_id: UUID) -> list[Decimal]:
        return list(
            self.session.execute(
                select(RateElement.rate_per_stitch)
                .join(
                    WorkItemRateElement,
                    WorkItemRateElement.rate_element_id == RateElement.id,
                )
                .where(
                    WorkItemRateElement.work_item_id == work_item_id,
                    WorkItemRateElement.is_selected.is_(True),
                    RateElement.is_active.is_(True),
                )
                .order_by(RateElement.name)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Effective rate
    # ------------------------------------------------------------------

    def calculate_effective_rate(
        self,
        work_item_id: UUID,
        on_date: date | None = None,
    ) -> EffectiveRate:
        base_rate = self.get_current_base_rate(on_date)
        return calculate_effective_rate(
            base_rate.rate_per_stitch, self.selected_element_rates(work_item_id)
        )

    def calculate_billing_amount(
        self,
        work_item_id: UUID,
        stitches: Decimal,
        on_date: date | None = None,
    ) -> BillingAmount:
        base_rate = self.get_current_base_rate(on_date)
        return calculate_billing_amount(
            base_rate.rate_per_stitch,
            self.selected_element_rates(work_item_id),
            stitches,
        )

    # ------------------------------------------------------------------
    # Billing records
    # ------------------------------------------------------------------

    def _lock_record(self, record_id: UUID) -> BillingRateRecord:
        record = self.session.execute(
            select(BillingRateRecord)
            .where(BillingRateRecord.id == record_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if record is None:
            raise BillingRecordNotFoundError(str(record_id))
        return record

    @staticmethod
    def _price(record: BillingRateRecord, billed: BillingAmount) -> None:
        record.total_stitches = billed.stitches
        record.base_rate = billed.base_rate
        record.element_rates = billed.element_rates
        record.effective_rate = billed.effective_rate
        record.total_amount = billed.total_amount

    def create_billing_record(
        self,
        work_item_id: UUID,
        machine_id: UUID,
        billing_date: date,
        stitches: Decimal,
        shift: Shift | str = Shift.DAY,
    ) -> BillingRateRecord:
        """
        Price one machine shift at the rate effective on ``billing_date``.

        A second call for the same (work item, machine, date, shift)
        reprices the existing record unless it is approved.
        """
        shift = Shift(getattr(shift, "value", shift)).value
        if self.session.get(WorkItem, work_item_id) is None:
            raise WorkItemNotFoundError(str(work_item_id))
        if self.session.get(Machine, machine_id) is None:
            raise MachineNotFoundError(str(machine_id))

        existing = self.session.execute(
            select(BillingRateRecord.id).where(
                BillingRateRecord.work_item_id == work_item_id,
                BillingRateRecord.machine_id == machine_id,
                BillingRateRecord.billing_date == billing_date,
                BillingRateRecord.shift == shift,
            )
        ).scalar_one_or_none()
        if existing is not None:
            return self.recalculate_after_override(existing, stitches)

        billed = self.calculate_billing_amount(work_item_id, stitches, billing_date)
        record = BillingRateRecord(
            work_item_id=work_item_id,
            machine_id=machine_id,
            billing_date=billing_date,
            shift=shift,
            is_approved=False,
        )
        self._price(record, billed)
        self.session.add(record)
        self.session.flush()

        with LogContext.bind(work_item_id=work_item_id, machine_id=machine_id):
            logger.info(
                "billing_record_created",
                extra={
                    "billing_record_id": str(record.id),
                    "billing_date": billing_date.isoformat(),
                    "effective_rate": str(billed.effective_rate),
                    "total_amount": str(billed.total_amount),
                },
            )
        return record

    def recalculate_after_override(
        self,
        record_id: UUID,
        new_stitches: Decimal,
    ) -> BillingRateRecord:
        """Reprice a billing record after its stitch count was overridden."""
        record = self._lock_record(record_id)
        if record.is_approved:
            raise BillingRecordApprovedError(str(record_id), "recalculate")

        previous_amount = record.total_amount
        billed = self.calculate_billing_amount(
            record.work_item_id, new_stitches, record.billing_date
        )
        self._price(record, billed)
        self.session.flush()

        logger.info(
            "billing_record_recalculated",
            extra={
                "billing_record_id": str(record_id),
                "previous_amount": str(previous_amount),
                "total_amount": str(billed.total_amount),
            },
        )
        return record

    def approve_billing_record(self, record_id: UUID, approved_by: str) -> BillingRateRecord:
        record = self._lock_record(record_id)
        if record.is_approved:
            raise BillingRecordApprovedError(str(record_id), "approve again")

        record.is_approved = True
        record.approved_by = approved_by
        record.approved_at = self.clock.now()
        self.session.flush()

        logger.info(
            "billing_record_approved",
            extra={"billing_record_id": str(record_id), "approved_by": approved_by},
        )
        return record

    def delete_billing_record(self, record_id: UUID) -> None:
        record = self._lock_record(record_id)
        if record.is_approved:
            raise BillingRecordApprovedError(str(record_id), "delete")
        self.session.delete(record)
        self.session.flush()
        logger.info("billing_record_deleted", extra={"billing_record_id": str(record_id)})
