"""
BillingService -- bills, bill items, numbering and formula snapshots.

Responsibility:
    Orchestrates the rate engine over the items of a bill.  Every item save
    recomputes the amount from the item's quantity inputs, stores the
    engine's formula snapshot on the item, appends the same snapshot to the
    bill_item_snapshots history and recomputes the bill total.

Architecture position:
    Services -- imperative shell.  Consumes calculate_amount (engine),
    SequenceService (kernel) and the billing section of WorkloadConfig.

Invariants enforced:
    - Client-supplied amounts are discarded; amount always comes from the
      rate engine.
    - Bill.total_amount == SQL sum of its items' amounts after every add,
      update and delete.
    - formula_details is write-once per revision: an edit writes revision
      n+1, older revisions stay readable in bill_item_snapshots.
    - Bill numbers are unique: drawn from a locked per-period counter and
      checked against the numbers already persisted.

Failure modes:
    - BillNotFoundError / BillItemNotFoundError for unknown IDs.
    - InvalidBillError for a missing or blank party name, or a header field
      that cannot be set directly.
    - InvalidRateInputError / UnknownRateTypeError from the rate engine.
    - BillNumberCollisionError when no free number is found within the
      configured number of attempts.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workload_config import WorkloadConfig, get_active_config
from workload_engines.rates import (
    FormulaResult,
    RateInputs,
    RateSettings,
    RateType,
    calculate_amount,
)
from workload_kernel.db.types import ZERO, round_money
from workload_kernel.domain.clock import Clock
from workload_kernel.exceptions import (
    BillItemNotFoundError,
    BillNotFoundError,
    BillNumberCollisionError,
    InvalidBillError,
    InvalidRateInputError,
)
from workload_kernel.logging_config import LogContext, get_logger
from workload_kernel.models.billing import Bill, BillingMode, BillItem, BillItemSnapshot
from workload_kernel.services.base import BaseService
from workload_kernel.services.sequence_service import SequenceService

logger = get_logger("services.billing")

ITEM_METADATA_FIELDS = ("design_no", "collection", "component", "description")
ITEM_INPUT_FIELDS = (
    "stitches",
    "rate",
    "yards",
    "repeats",
    "pieces",
    "d_stitch",
    "machine_gazana",
    "stitches_done",
)
HEADER_FIELDS = frozenset({"party_name", "po_number", "notes", "bill_date"})


def _party_name(value: Any) -> str:
    if value is None or not str(value).strip():
        raise InvalidBillError("party_name", "is required")
    return str(value).strip()


class BillingService(BaseService):
    """
    Bill maintenance.

    Contract:
        All writes flush; the caller commits.  Item payloads are plain
        mappings, any ``amount`` key in them is ignored.

    Non-goals:
        - Does NOT render or export bill documents.
        - Does NOT retry a failed number allocation.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkloadConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or get_active_config()
        self.rate_settings = RateSettings(
            default_d_stitch=self.config.rates.default_d_stitch,
            yard_rate_factor=self.config.rates.yard_rate_factor,
        )
        self.sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Numbering
    # ------------------------------------------------------------------

    def generate_bill_number(self, mode: BillingMode | str, on_date: date) -> str:
        """
        Next free bill number for the mode's period.

        Standard bills are numbered per day (BILL-YYYYMMDD-NNN), optimized
        bills per year (BILL-YYYY-NNNN).
        """
        mode = BillingMode(getattr(mode, "value", mode))
        number_format = self.config.billing.format_for(mode.value)
        scope = f"bill:{mode.value}:{number_format.period_key(on_date)}"

        attempts = self.config.billing.max_number_attempts
        for _ in range(attempts):
            candidate = number_format.render(on_date, self.sequences.next_value(scope))
            taken = self.session.execute(
                select(Bill.id).where(Bill.bill_number == candidate).limit(1)
            ).first()
            if taken is None:
                return candidate
            logger.warning(
                "bill_number_taken",
                extra={"bill_number": candidate, "scope": scope},
            )
        raise BillNumberCollisionError(scope, attempts)

    # ------------------------------------------------------------------
    # Bills
    # ------------------------------------------------------------------

    def get_bill(self, bill_id: UUID) -> Bill:
        bill = self.session.get(Bill, bill_id)
        if bill is None:
            raise BillNotFoundError(str(bill_id))
        return bill

    def create_bill(
        self,
        header: Mapping[str, Any],
        items: Sequence[Mapping[str, Any]] = (),
        mode: BillingMode | str = BillingMode.STANDARD,
    ) -> Bill:
        mode = BillingMode(getattr(mode, "value", mode))
        party_name = _party_name(header.get("party_name"))
        bill_date = header.get("bill_date") or self.clock.today()
        bill = Bill(
            bill_number=self.generate_bill_number(mode, bill_date),
            billing_mode=mode.value,
            bill_date=bill_date,
            party_name=party_name,
            po_number=header.get("po_number"),
            notes=header.get("notes"),
            total_amount=ZERO,
        )
        self.session.add(bill)
        self.session.flush()

        with LogContext.bind(bill_id=bill.id):
            logger.info(
                "bill_created",
                extra={"bill_number": bill.bill_number, "billing_mode": mode.value},
            )
            for item in items:
                self._add_item(bill, item)
            self.recompute_total(bill)
        return bill

    def update_bill_header(self, bill_id: UUID, changes: Mapping[str, Any]) -> Bill:
        bill = self.get_bill(bill_id)
        unknown = sorted(set(changes) - HEADER_FIELDS)
        if unknown:
            raise InvalidBillError(unknown[0], "cannot be changed")
        if "party_name" in changes:
            changes = {**changes, "party_name": _party_name(changes["party_name"])}
        for name, value in changes.items():
            setattr(bill, name, value)
        self.session.flush()
        logger.info("bill_header_updated", extra={"bill_id": str(bill_id), "fields": sorted(changes)})
        return bill

    def delete_bill(self, bill_id: UUID) -> None:
        bill = self.get_bill(bill_id)
        number = bill.bill_number
        self.session.delete(bill)
        self.session.flush()
        logger.info("bill_deleted", extra={"bill_id": str(bill_id), "bill_number": number})

    def recompute_total(self, bill: Bill) -> Decimal:
        """Set the bill total to the SQL sum of its current item amounts."""
        self.session.flush()
        total = self.session.execute(
            select(func.coalesce(func.sum(BillItem.amount), 0)).where(BillItem.bill_id == bill.id)
        ).scalar_one()
        bill.total_amount = round_money(Decimal(str(total)))
        self.session.flush()
        return bill.total_amount

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def _compute(self, rate_type: Any, values: Mapping[str, Any]) -> tuple[RateType, FormulaResult]:
        if rate_type is None or rate_type == "":
            raise InvalidRateInputError("", "rate_type", "is required")
        selected = RateType.parse(rate_type)
        inputs = RateInputs.from_mapping(values, selected.value)
        return selected, calculate_amount(inputs, selected, self.rate_settings)

    def _record_snapshot(self, bill: Bill, item: BillItem) -> BillItemSnapshot:
        snapshot = BillItemSnapshot(
            bill_item_id=item.id,
            bill_id=bill.id,
            bill_number=bill.bill_number,
            revision=item.snapshot_revision,
            rate_type=item.rate_type,
            amount=item.amount,
            formula_details=dict(item.formula_details),
            recorded_at=self.clock.now(),
        )
        self.session.add(snapshot)
        return snapshot

    def _add_item(self, bill: Bill, data: Mapping[str, Any]) -> BillItem:
        rate_type, result = self._compute(data.get("rate_type"), data)
        inputs = RateInputs.from_mapping(data, rate_type.value)

        item = BillItem(
            bill_id=bill.id,
            rate_type=rate_type.value,
            amount=result.amount,
            formula_details=result.formula_details,
            snapshot_revision=1,
            **{name: data.get(name) for name in ITEM_METADATA_FIELDS},
            **{name: getattr(inputs, name) for name in ITEM_INPUT_FIELDS},
        )
        bill.items.append(item)
        self.session.flush()
        self._record_snapshot(bill, item)
        self.session.flush()

        logger.info(
            "bill_item_saved",
            extra={
                "item_id": str(item.id),
                "rate_type": rate_type.value,
                "amount": str(item.amount),
                "revision": item.snapshot_revision,
            },
        )
        return item

    def add_item(self, bill_id: UUID, data: Mapping[str, Any]) -> BillItem:
        bill = self.get_bill(bill_id)
        with LogContext.bind(bill_id=bill.id):
            item = self._add_item(bill, data)
            self.recompute_total(bill)
        return item

    def get_item(self, item_id: UUID) -> BillItem:
        item = self.session.get(BillItem, item_id)
        if item is None:
            raise BillItemNotFoundError(str(item_id))
        return item

    def update_item(self, item_id: UUID, changes: Mapping[str, Any]) -> BillItem:
        """
        Apply changes and recompute the item as a new snapshot revision.

        Inputs not named in ``changes`` keep their stored values; an
        ``amount`` in ``changes`` is ignored.
        """
        item = self.get_item(item_id)
        bill = item.bill

        with LogContext.bind(bill_id=bill.id):
            values = {name: getattr(item, name) for name in ITEM_INPUT_FIELDS}
            values.update({k: v for k, v in changes.items() if k in ITEM_INPUT_FIELDS})
            rate_type, result = self._compute(changes.get("rate_type", item.rate_type), values)
            inputs = RateInputs.from_mapping(values, rate_type.value)

            for name in ITEM_METADATA_FIELDS:
                if name in changes:
                    setattr(item, name, changes[name])
            for name in ITEM_INPUT_FIELDS:
                setattr(item, name, getattr(inputs, name))

            previous_revision = item.snapshot_revision
            item.rate_type = rate_type.value
            item.amount = result.amount
            item.snapshot_revision = previous_revision + 1
            item.formula_details = result.formula_details
            self.session.flush()
            self._record_snapshot(bill, item)

            logger.info(
                "bill_item_saved",
                extra={
                    "item_id": str(item.id),
                    "rate_type": rate_type.value,
                    "amount": str(item.amount),
                    "revision": item.snapshot_revision,
                },
            )
            self.recompute_total(bill)
        return item

    def delete_item(self, item_id: UUID) -> Bill:
        item = self.get_item(item_id)
        bill = item.bill
        bill.items.remove(item)
        self.session.flush()
        with LogContext.bind(bill_id=bill.id):
            logger.info("bill_item_deleted", extra={"item_id": str(item_id)})
            self.recompute_total(bill)
        return bill

    def item_history(self, item_id: UUID) -> list[BillItemSnapshot]:
        """Every snapshot revision written for the item, oldest first."""
        return list(
            self.session.execute(
                select(BillItemSnapshot)
                .where(BillItemSnapshot.bill_item_id == item_id)
                .order_by(BillItemSnapshot.revision)
            ).scalars()
        )
