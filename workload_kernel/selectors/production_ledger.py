"""
Module: workload_kernel.selectors.production_ledger
Responsibility: Sum the stitches produced for a (work item, machine) pair
    across every production logging source, and report the first and last
    production dates.
Architecture position: Kernel > Selectors.  Read-only.  The reconciliation
    service depends on ProductionLedger only, never on a concrete source.

Invariants enforced:
    - Each source is summed by its own LedgerSource adapter; the ledger
      unions the adapters' totals.  No source is counted twice.
    - No events -> zero stitches and null dates.
    - A source whose table does not exist contributes zero and is logged at
      WARNING; it is not an error.
    - Idempotent and side-effect free.

Failure modes:
    - Any other data-layer error (connection loss, lock timeout) propagates;
      a skipped total would leave stale derived state behind.

Usage:
    ledger = ProductionLedger(session)
    totals = ledger.total_produced(work_item_id, machine_id)
    totals.stitches, totals.first_date, totals.last_date
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from workload_kernel.db.types import ZERO, to_decimal
from workload_kernel.logging_config import get_logger
from workload_kernel.models.production import (
    DailyBillingRecord,
    DailyBillingShiftRecord,
    DailyProductionEntry,
    ShiftProductionEntry,
)
from workload_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.production_ledger")


def _as_date(value) -> date | None:
    # SQLite returns MIN()/MAX() over a Date column as text
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _earliest(*values: date | None) -> date | None:
    present = [v for v in values if v is not None]
    return min(present) if present else None


def _latest(*values: date | None) -> date | None:
    present = [v for v in values if v is not None]
    return max(present) if present else None


@dataclass(frozen=True)
class SourceTotals:
    """One source's contribution to a (work item, machine) pair."""

    source: str
    stitches: Decimal = ZERO
    first_date: date | None = None
    last_date: date | None = None
    available: bool = True


@dataclass(frozen=True)
class ProductionTotals:
    stitches: Decimal
    first_date: date | None
    last_date: date | None

    @classmethod
    def combine(cls, parts: Sequence[SourceTotals]) -> ProductionTotals:
        return cls(
            stitches=sum((p.stitches for p in parts), ZERO),
            first_date=_earliest(*(p.first_date for p in parts)),
            last_date=_latest(*(p.last_date for p in parts)),
        )


class LedgerSource:
    """
    Adapter summing one production source.

    Contract:
        ``sum_for`` returns the source's totals for the pair.  Subclasses
        provide ``name``, ``tables`` (every table the query touches) and
        ``_query``.
    """

    name: str = ""
    tables: tuple[str, ...] = ()

    def is_available(self, session: Session) -> bool:
        inspector = inspect(session.connection())
        return all(inspector.has_table(table) for table in self.tables)

    def sum_for(self, session: Session, work_item_id: UUID, machine_id: UUID) -> SourceTotals:
        if not self.is_available(session):
            logger.warning(
                "ledger_source_missing",
                extra={"source": self.name, "tables": list(self.tables)},
            )
            return SourceTotals(source=self.name, available=False)

        stitches, first, last = session.execute(
            self._query(work_item_id, machine_id)
        ).one()
        return SourceTotals(
            source=self.name,
            stitches=to_decimal(stitches) if stitches is not None else ZERO,
            first_date=_as_date(first),
            last_date=_as_date(last),
        )

    def _query(self, work_item_id: UUID, machine_id: UUID):
        raise NotImplementedError


class ShiftProductionSource(LedgerSource):
    name = "shift_production"
    tables = (ShiftProductionEntry.__tablename__,)

    def _query(self, work_item_id, machine_id):
        return select(
            func.sum(ShiftProductionEntry.stitches),
            func.min(ShiftProductionEntry.production_date),
            func.max(ShiftProductionEntry.production_date),
        ).where(
            ShiftProductionEntry.work_item_id == work_item_id,
            ShiftProductionEntry.machine_id == machine_id,
        )


class DailyProductionSource(LedgerSource):
    name = "daily_production"
    tables = (DailyProductionEntry.__tablename__,)

    def _query(self, work_item_id, machine_id):
        return select(
            func.sum(DailyProductionEntry.total_stitches),
            func.min(DailyProductionEntry.production_date),
            func.max(DailyProductionEntry.production_date),
        ).where(
            DailyProductionEntry.work_item_id == work_item_id,
            DailyProductionEntry.machine_id == machine_id,
        )


class DailyBillingSource(LedgerSource):
    """Production implied by saved daily billing lines; machine and date live on the header."""

    name = "daily_billing"
    tables = (DailyBillingRecord.__tablename__, DailyBillingShiftRecord.__tablename__)

    def _query(self, work_item_id, machine_id):
        return (
            select(
                func.sum(DailyBillingShiftRecord.stitches_done),
                func.min(DailyBillingRecord.billing_date),
                func.max(DailyBillingRecord.billing_date),
            )
            .join(
                DailyBillingRecord,
                DailyBillingShiftRecord.daily_billing_id == DailyBillingRecord.id,
            )
            .where(
                DailyBillingShiftRecord.work_item_id == work_item_id,
                DailyBillingRecord.machine_id == machine_id,
            )
        )


def default_sources() -> tuple[LedgerSource, ...]:
    return (ShiftProductionSource(), DailyProductionSource(), DailyBillingSource())


class ProductionLedger(BaseSelector):
    """
    Read-only aggregate over production sources.

    Guarantees:
        - Calling total_produced twice without intervening writes returns
          equal results.
    """

    def __init__(self, session: Session, sources: Sequence[LedgerSource] | None = None):
        super().__init__(session)
        self.sources: tuple[LedgerSource, ...] = (
            tuple(sources) if sources is not None else default_sources()
        )

    def breakdown(self, work_item_id: UUID, machine_id: UUID) -> list[SourceTotals]:
        """Per-source totals, in source order."""
        return [
            source.sum_for(self.session, work_item_id, machine_id)
            for source in self.sources
        ]

    def total_produced(self, work_item_id: UUID, machine_id: UUID) -> ProductionTotals:
        totals = ProductionTotals.combine(self.breakdown(work_item_id, machine_id))
        logger.debug(
            "production_totals_read",
            extra={
                "work_item_id": str(work_item_id),
                "machine_id": str(machine_id),
                "stitches": str(totals.stitches),
            },
        )
        return totals
