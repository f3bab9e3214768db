"""
ProductionService -- record, correct and remove production events.

Responsibility:
    Writes events to the three production sources (shift entries, daily
    aggregates, daily billing sheets) and recalculates every allocation the
    write affects before returning.

Architecture position:
    Services -- imperative shell.  Consumes the rate engine for daily
    billing lines and ReconciliationService for the derived state.

Invariants enforced:
    - Every mutation recalculates each affected (work item, machine) key in
      the caller's transaction.  An update that moves an event recalculates
      both the old and the new key.
    - Daily aggregate total_stitches == day_shift_stitches +
      night_shift_stitches.
    - One daily aggregate per (machine, work item, date).
    - Daily billing lines are always computed with YARD_BASED using the
      machine's gazana; line amounts are never taken from the caller.

Failure modes:
    - WorkItemNotFoundError / MachineNotFoundError for unknown IDs.
    - ProductionEntryNotFoundError when updating/deleting a missing event.
    - DuplicateProductionEntryError for a second daily aggregate.
    - InvalidProductionEntryError for negative, non-numeric or non-finite
      stitches, unknown fields, or a billing line with zero stitches_done.
    - InvalidRateInputError from the rate engine for a bad billing line.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workload_config import WorkloadConfig, get_active_config
from workload_engines.rates import RateInputs, RateSettings, RateType, calculate_amount
from workload_kernel.db.types import ZERO, round_money, round_rate, to_decimal
from workload_kernel.domain.clock import Clock
from workload_kernel.exceptions import (
    DuplicateProductionEntryError,
    InvalidProductionEntryError,
    MachineNotFoundError,
    ProductionEntryNotFoundError,
    WorkItemNotFoundError,
)
from workload_kernel.logging_config import LogContext, get_logger
from workload_kernel.models.machine import Machine
from workload_kernel.models.production import (
    DailyBillingRecord,
    DailyBillingShiftRecord,
    DailyProductionEntry,
    Shift,
    ShiftProductionEntry,
)
from workload_kernel.models.work_item import WorkItem
from workload_kernel.services.base import BaseService
from workload_services.reconciliation_service import ReconciliationService

logger = get_logger("services.production")

SHIFT_ENTRY_FIELDS = frozenset(
    {"work_item_id", "machine_id", "production_date", "shift", "stitches", "repeats", "operator_name"}
)
DAILY_ENTRY_FIELDS = frozenset(
    {"work_item_id", "machine_id", "production_date", "day_shift_stitches", "night_shift_stitches", "notes"}
)


@dataclass(frozen=True)
class DailyBillingLine:
    """One shift line of a daily billing sheet as submitted."""

    stitches_done: Decimal
    rate: Decimal
    work_item_id: UUID | None = None
    shift: Shift = Shift.DAY
    d_stitch: Decimal | None = None


def _shift_value(shift: Shift | str) -> str:
    try:
        return Shift(getattr(shift, "value", shift)).value
    except ValueError:
        raise InvalidProductionEntryError("shift", f"unknown shift {shift!r}") from None


def _non_negative(field: str, value: Any) -> Decimal:
    try:
        amount = to_decimal(value if value is not None else 0)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidProductionEntryError(field, "is not a number") from None
    if not amount.is_finite():
        raise InvalidProductionEntryError(field, "must be a finite number")
    if amount < ZERO:
        raise InvalidProductionEntryError(field, "must not be negative")
    return amount


def _check_fields(changes: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = sorted(set(changes) - allowed)
    if unknown:
        raise InvalidProductionEntryError(unknown[0], "cannot be changed")


class ProductionService(BaseService):
    """
    Production event writes with reconciliation.

    Non-goals:
        - Does NOT call session.commit() -- caller controls boundaries.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: WorkloadConfig | None = None,
        reconciliation: ReconciliationService | None = None,
    ):
        super().__init__(session, clock)
        config = config or get_active_config()
        self.rate_settings = RateSettings(
            default_d_stitch=config.rates.default_d_stitch,
            yard_rate_factor=config.rates.yard_rate_factor,
        )
        self.reconciliation = reconciliation or ReconciliationService(session, clock=self.clock)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_machine(self, machine_id: UUID) -> Machine:
        machine = self.session.get(Machine, machine_id)
        if machine is None:
            raise MachineNotFoundError(str(machine_id))
        return machine

    def _require_work_item(self, work_item_id: UUID | None) -> None:
        if work_item_id is not None and self.session.get(WorkItem, work_item_id) is None:
            raise WorkItemNotFoundError(str(work_item_id))

    def _reconcile(self, keys: Iterable[tuple[UUID | None, UUID]]) -> int:
        return self.reconciliation.recalculate_keys(keys)

    # ------------------------------------------------------------------
    # Shift entries
    # ------------------------------------------------------------------

    def _get_shift_entry(self, entry_id: UUID) -> ShiftProductionEntry:
        entry = self.session.get(ShiftProductionEntry, entry_id)
        if entry is None:
            raise ProductionEntryNotFoundError("shift_production", str(entry_id))
        return entry

    def record_shift_entry(
        self,
        work_item_id: UUID,
        machine_id: UUID,
        production_date: date,
        stitches: Decimal,
        shift: Shift | str = Shift.DAY,
        repeats: Decimal | None = None,
        operator_name: str | None = None,
    ) -> ShiftProductionEntry:
        with LogContext.bind(work_item_id=work_item_id, machine_id=machine_id):
            self._require_work_item(work_item_id)
            self._require_machine(machine_id)

            entry = ShiftProductionEntry(
                work_item_id=work_item_id,
                machine_id=machine_id,
                production_date=production_date,
                shift=_shift_value(shift),
                stitches=_non_negative("stitches", stitches),
                repeats=repeats,
                operator_name=operator_name,
            )
            self.session.add(entry)
            self.session.flush()

            logger.info(
                "shift_entry_recorded",
                extra={
                    "entry_id": str(entry.id),
                    "stitches": str(entry.stitches),
                    "production_date": production_date.isoformat(),
                },
            )
            self._reconcile([(work_item_id, machine_id)])
            return entry

    def update_shift_entry(self, entry_id: UUID, **changes: Any) -> ShiftProductionEntry:
        _check_fields(changes, SHIFT_ENTRY_FIELDS)
        entry = self._get_shift_entry(entry_id)
        old_key = (entry.work_item_id, entry.machine_id)

        if "work_item_id" in changes:
            if changes["work_item_id"] is None:
                raise InvalidProductionEntryError("work_item_id", "is required")
            self._require_work_item(changes["work_item_id"])
        if "machine_id" in changes:
            self._require_machine(changes["machine_id"])
        if "stitches" in changes:
            changes["stitches"] = _non_negative("stitches", changes["stitches"])
        if "shift" in changes:
            changes["shift"] = _shift_value(changes["shift"])

        for name, value in changes.items():
            setattr(entry, name, value)
        self.session.flush()

        new_key = (entry.work_item_id, entry.machine_id)
        logger.info(
            "shift_entry_updated",
            extra={"entry_id": str(entry_id), "moved": old_key != new_key},
        )
        self._reconcile([old_key, new_key])
        return entry

    def delete_shift_entry(self, entry_id: UUID) -> None:
        entry = self._get_shift_entry(entry_id)
        key = (entry.work_item_id, entry.machine_id)
        self.session.delete(entry)
        self.session.flush()
        logger.info("shift_entry_deleted", extra={"entry_id": str(entry_id)})
        self._reconcile([key])

    # ------------------------------------------------------------------
    # Daily aggregates
    # ------------------------------------------------------------------

    def _get_daily_entry(self, entry_id: UUID) -> DailyProductionEntry:
        entry = self.session.get(DailyProductionEntry, entry_id)
        if entry is None:
            raise ProductionEntryNotFoundError("daily_production", str(entry_id))
        return entry

    def _check_daily_duplicate(
        self,
        machine_id: UUID,
        work_item_id: UUID | None,
        production_date: date,
        exclude_id: UUID | None = None,
    ) -> None:
        # NULL work items never collide in the unique index, so check here
        work_item_clause = (
            DailyProductionEntry.work_item_id.is_(None)
            if work_item_id is None
            else DailyProductionEntry.work_item_id == work_item_id
        )
        stmt = select(DailyProductionEntry.id).where(
            DailyProductionEntry.machine_id == machine_id,
            work_item_clause,
            DailyProductionEntry.production_date == production_date,
        )
        if exclude_id is not None:
            stmt = stmt.where(DailyProductionEntry.id != exclude_id)
        if self.session.execute(stmt.limit(1)).first() is not None:
            raise DuplicateProductionEntryError(
                str(machine_id),
                str(work_item_id) if work_item_id is not None else None,
                production_date.isoformat(),
            )

    def _write_daily(self, entry: DailyProductionEntry, changes: Mapping[str, Any]) -> None:
        """Apply changes and flush inside a savepoint; a lost race on the unique key is a duplicate."""
        try:
            with self.session.begin_nested():
                self.session.add(entry)
                for name, value in changes.items():
                    setattr(entry, name, value)
                entry.total_stitches = to_decimal(entry.day_shift_stitches) + to_decimal(
                    entry.night_shift_stitches
                )
        except IntegrityError:
            raise DuplicateProductionEntryError(
                str(entry.machine_id),
                str(entry.work_item_id) if entry.work_item_id is not None else None,
                entry.production_date.isoformat(),
            ) from None

    def record_daily_entry(
        self,
        machine_id: UUID,
        production_date: date,
        day_shift_stitches: Decimal = ZERO,
        night_shift_stitches: Decimal = ZERO,
        work_item_id: UUID | None = None,
        notes: str | None = None,
    ) -> DailyProductionEntry:
        with LogContext.bind(work_item_id=work_item_id, machine_id=machine_id):
            self._require_machine(machine_id)
            self._require_work_item(work_item_id)
            self._check_daily_duplicate(machine_id, work_item_id, production_date)

            day = _non_negative("day_shift_stitches", day_shift_stitches)
            night = _non_negative("night_shift_stitches", night_shift_stitches)
            entry = DailyProductionEntry(
                machine_id=machine_id,
                work_item_id=work_item_id,
                production_date=production_date,
                day_shift_stitches=day,
                night_shift_stitches=night,
                notes=notes,
            )
            self._write_daily(entry, {})

            logger.info(
                "daily_entry_recorded",
                extra={
                    "entry_id": str(entry.id),
                    "total_stitches": str(entry.total_stitches),
                    "production_date": production_date.isoformat(),
                },
            )
            self._reconcile([(work_item_id, machine_id)])
            return entry

    def update_daily_entry(self, entry_id: UUID, **changes: Any) -> DailyProductionEntry:
        _check_fields(changes, DAILY_ENTRY_FIELDS)
        entry = self._get_daily_entry(entry_id)
        old_key = (entry.work_item_id, entry.machine_id)

        if "work_item_id" in changes:
            self._require_work_item(changes["work_item_id"])
        if "machine_id" in changes:
            self._require_machine(changes["machine_id"])
        for name in ("day_shift_stitches", "night_shift_stitches"):
            if name in changes:
                changes[name] = _non_negative(name, changes[name])

        key_fields = {"work_item_id", "machine_id", "production_date"}
        if key_fields & set(changes):
            self._check_daily_duplicate(
                changes.get("machine_id", entry.machine_id),
                changes.get("work_item_id", entry.work_item_id),
                changes.get("production_date", entry.production_date),
                exclude_id=entry.id,
            )

        self._write_daily(entry, changes)

        new_key = (entry.work_item_id, entry.machine_id)
        logger.info(
            "daily_entry_updated",
            extra={"entry_id": str(entry_id), "moved": old_key != new_key},
        )
        self._reconcile([old_key, new_key])
        return entry

    def delete_daily_entry(self, entry_id: UUID) -> None:
        entry = self._get_daily_entry(entry_id)
        key = (entry.work_item_id, entry.machine_id)
        self.session.delete(entry)
        self.session.flush()
        logger.info("daily_entry_deleted", extra={"entry_id": str(entry_id)})
        self._reconcile([key])

    # ------------------------------------------------------------------
    # Daily billing sheets
    # ------------------------------------------------------------------

    def _billing_line(self, machine: Machine, line: DailyBillingLine) -> DailyBillingShiftRecord:
        stitches_done = _non_negative("stitches_done", line.stitches_done)
        if stitches_done == ZERO:
            raise InvalidProductionEntryError("stitches_done", "must be positive")
        d_stitch = line.d_stitch if line.d_stitch is not None else self.rate_settings.default_d_stitch
        result = calculate_amount(
            RateInputs(
                rate=to_decimal(line.rate),
                stitches=stitches_done,
                machine_gazana=machine.gazana,
                stitches_done=stitches_done,
                d_stitch=to_decimal(d_stitch),
            ),
            RateType.YARD_BASED,
            self.rate_settings,
        )
        intermediates = result.snapshot.intermediates
        return DailyBillingShiftRecord(
            work_item_id=line.work_item_id,
            shift=_shift_value(line.shift),
            stitches_done=stitches_done,
            d_stitch=to_decimal(d_stitch),
            rate=to_decimal(line.rate),
            fabric_yards=Decimal(intermediates.get("fabric_yards", "0")),
            rate_per_yard=round_rate(Decimal(intermediates.get("rate_per_yard", "0"))),
            amount=result.amount,
            formula_details=result.formula_details,
        )

    def record_daily_billing(
        self,
        machine_id: UUID,
        billing_date: date,
        lines: Sequence[DailyBillingLine],
        party_name: str | None = None,
    ) -> DailyBillingRecord:
        with LogContext.bind(machine_id=machine_id):
            machine = self._require_machine(machine_id)
            for line in lines:
                self._require_work_item(line.work_item_id)

            record = DailyBillingRecord(
                machine_id=machine_id,
                billing_date=billing_date,
                party_name=party_name,
            )
            record.lines = [self._billing_line(machine, line) for line in lines]
            record.total_amount = round_money(
                sum((line.amount for line in record.lines), ZERO)
            )
            self.session.add(record)
            self.session.flush()

            logger.info(
                "daily_billing_recorded",
                extra={
                    "daily_billing_id": str(record.id),
                    "line_count": len(record.lines),
                    "total_amount": str(record.total_amount),
                },
            )
            self._reconcile((line.work_item_id, machine_id) for line in record.lines)
            return record

    def delete_daily_billing(self, record_id: UUID) -> None:
        record = self.session.get(DailyBillingRecord, record_id)
        if record is None:
            raise ProductionEntryNotFoundError("daily_billing", str(record_id))
        keys = [(line.work_item_id, record.machine_id) for line in record.lines]
        self.session.delete(record)
        self.session.flush()
        logger.info("daily_billing_deleted", extra={"daily_billing_id": str(record_id)})
        self._reconcile(keys)
