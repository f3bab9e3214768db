"""Tests for OutsourcingService: sending work out and receiving it back."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from workload_kernel.exceptions import (
    OutsourcedWorkNotFoundError,
    OverReceiptError,
    WorkItemNotFoundError,
)
from workload_kernel.models.outsourcing import OutsourcingStatus


@pytest.fixture
def sent(outsourcing_service, work_item):
    return outsourcing_service.send_work(work_item.id, "Clipping House", Decimal("100"))


class TestSendWork:
    def test_starts_sent(self, sent, deterministic_clock):
        assert sent.status == OutsourcingStatus.SENT.value
        assert sent.quantity_received == Decimal("0")
        assert sent.date_sent == deterministic_clock.today()

    def test_non_positive_quantity_rejected(self, outsourcing_service, work_item):
        with pytest.raises(ValueError):
            outsourcing_service.send_work(work_item.id, "Clipping House", Decimal("0"))

    def test_unknown_work_item(self, outsourcing_service):
        with pytest.raises(WorkItemNotFoundError):
            outsourcing_service.send_work(uuid4(), "Clipping House", Decimal("10"))


class TestReceiveWork:
    def test_partial_then_complete(self, outsourcing_service, sent):
        outsourcing_service.receive_work(sent.id, Decimal("40"), received_on=date(2024, 2, 1))
        assert sent.status == OutsourcingStatus.PARTIALLY_RECEIVED.value
        assert sent.quantity_outstanding == Decimal("60")

        outsourcing_service.receive_work(sent.id, Decimal("60"), received_on=date(2024, 2, 3))
        assert sent.status == OutsourcingStatus.COMPLETED.value
        assert sent.quantity_received == Decimal("100")
        assert sent.last_received_date == date(2024, 2, 3)

    def test_over_receipt_rejected(self, outsourcing_service, sent):
        outsourcing_service.receive_work(sent.id, Decimal("90"))

        with pytest.raises(OverReceiptError) as exc_info:
            outsourcing_service.receive_work(sent.id, Decimal("20"))

        assert Decimal(exc_info.value.receiving) == Decimal("20")
        assert sent.quantity_received == Decimal("90")
        assert sent.status == OutsourcingStatus.PARTIALLY_RECEIVED.value

    def test_unknown_item(self, outsourcing_service):
        with pytest.raises(OutsourcedWorkNotFoundError):
            outsourcing_service.receive_work(uuid4(), Decimal("1"))

    def test_logs_receipt(self, outsourcing_service, sent, captured_logs):
        outsourcing_service.receive_work(sent.id, Decimal("100"))

        records = [r for r in captured_logs() if r["message"] == "outsourced_work_received"]
        assert records[-1]["status"] == "Completed"
