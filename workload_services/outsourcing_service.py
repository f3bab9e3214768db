"""
OutsourcingService -- track work sent to outside vendors and received back.

Invariants enforced:
    - quantity_received <= quantity_sent; a receipt that would exceed the
      sent quantity is rejected and nothing is written.
    - status is Sent until something is received, Partially Received while
      quantity is outstanding, Completed once everything is back.

Failure modes:
    - WorkItemNotFoundError for an unknown work item.
    - OutsourcedWorkNotFoundError for an unknown outsourced item.
    - OverReceiptError when receiving more than is outstanding.
    - ValueError for a non-positive quantity.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from workload_kernel.db.types import ZERO, to_decimal
from workload_kernel.exceptions import (
    OutsourcedWorkNotFoundError,
    OverReceiptError,
    WorkItemNotFoundError,
)
from workload_kernel.logging_config import get_logger
from workload_kernel.models.outsourcing import OutsourcedWorkItem, OutsourcingStatus
from workload_kernel.models.work_item import WorkItem
from workload_kernel.services.base import BaseService

logger = get_logger("services.outsourcing")


def _positive(name: str, value) -> Decimal:
    quantity = to_decimal(value)
    if quantity <= ZERO:
        raise ValueError(f"{name} must be positive")
    return quantity


class OutsourcingService(BaseService):
    def send_work(
        self,
        work_item_id: UUID,
        vendor_name: str,
        quantity_sent: Decimal,
        date_sent: date | None = None,
        description: str | None = None,
    ) -> OutsourcedWorkItem:
        if self.session.get(WorkItem, work_item_id) is None:
            raise WorkItemNotFoundError(str(work_item_id))

        item = OutsourcedWorkItem(
            work_item_id=work_item_id,
            vendor_name=vendor_name,
            description=description,
            quantity_sent=_positive("quantity_sent", quantity_sent),
            quantity_received=ZERO,
            date_sent=date_sent or self.clock.today(),
            status=OutsourcingStatus.SENT.value,
        )
        self.session.add(item)
        self.session.flush()
        logger.info(
            "outsourced_work_sent",
            extra={
                "item_id": str(item.id),
                "vendor_name": vendor_name,
                "quantity_sent": str(item.quantity_sent),
            },
        )
        return item

    def receive_work(
        self,
        item_id: UUID,
        quantity: Decimal,
        received_on: date | None = None,
    ) -> OutsourcedWorkItem:
        item = self.session.execute(
            select(OutsourcedWorkItem)
            .where(OutsourcedWorkItem.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise OutsourcedWorkNotFoundError(str(item_id))

        receiving = _positive("quantity", quantity)
        sent = to_decimal(item.quantity_sent)
        already = to_decimal(item.quantity_received)
        if already + receiving > sent:
            raise OverReceiptError(str(item_id), str(sent), str(already), str(receiving))

        item.quantity_received = already + receiving
        item.last_received_date = received_on or self.clock.today()
        if item.quantity_received >= sent:
            item.status = OutsourcingStatus.COMPLETED.value
        else:
            item.status = OutsourcingStatus.PARTIALLY_RECEIVED.value
        self.session.flush()

        logger.info(
            "outsourced_work_received",
            extra={
                "item_id": str(item_id),
                "quantity": str(receiving),
                "quantity_received": str(item.quantity_received),
                "status": item.status,
            },
        )
        return item
