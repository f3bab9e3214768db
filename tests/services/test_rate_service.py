"""
Tests for RateService.

Covers the dated base rate lookup, rate element upserts and selection,
the effective rate of a work item, and the billing record approval lock.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from workload_kernel.exceptions import (
    BaseRateNotFoundError,
    BillingRecordApprovedError,
    BillingRecordNotFoundError,
    InvalidRateElementError,
    InvalidRateInputError,
    RateElementNotFoundError,
    WorkItemNotFoundError,
)
from workload_kernel.models.rates import BaseRate, BillingRateRecord

JAN = date(2024, 1, 1)
FEB = date(2024, 2, 1)
MAR = date(2024, 3, 1)


@pytest.fixture
def base_rate(rate_service):
    return rate_service.set_base_rate(Decimal("0.05"), JAN)


@pytest.fixture
def priced_work_item(rate_service, base_rate, work_item):
    sequins = rate_service.upsert_rate_element("Sequins", Decimal("0.01"))
    cording = rate_service.upsert_rate_element("Cording", Decimal("0.002"))
    rate_service.select_rate_elements(work_item.id, [sequins.id, cording.id])
    return work_item


class TestBaseRates:
    def test_current_rate(self, rate_service, base_rate):
        assert rate_service.get_current_base_rate(FEB).id == base_rate.id

    def test_defaults_to_clock_date(self, rate_service, base_rate):
        assert rate_service.get_current_base_rate().rate_per_stitch == Decimal("0.05")

    def test_no_rate_before_first_effective_date(self, rate_service, base_rate):
        with pytest.raises(BaseRateNotFoundError) as exc_info:
            rate_service.get_current_base_rate(date(2023, 12, 31))
        assert exc_info.value.on_date == "2023-12-31"

    def test_new_open_rate_closes_previous(self, rate_service, base_rate):
        rate_service.set_base_rate(Decimal("0.06"), MAR)

        assert base_rate.effective_to == date(2024, 2, 29)
        assert rate_service.get_current_base_rate(date(2024, 2, 29)).rate_per_stitch == Decimal("0.05")
        assert rate_service.get_current_base_rate(MAR).rate_per_stitch == Decimal("0.06")

    def test_bounded_rate_overrides_inside_its_window(self, rate_service, base_rate):
        rate_service.set_base_rate(Decimal("0.04"), FEB, effective_to=date(2024, 2, 10))

        assert base_rate.effective_to is None
        assert rate_service.get_current_base_rate(date(2024, 2, 5)).rate_per_stitch == Decimal("0.04")
        assert rate_service.get_current_base_rate(date(2024, 2, 11)).rate_per_stitch == Decimal("0.05")

    def test_inactive_rate_ignored(self, session, rate_service, base_rate):
        base_rate.is_active = False
        session.flush()
        with pytest.raises(BaseRateNotFoundError):
            rate_service.get_current_base_rate(FEB)

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1"), Decimal("NaN")])
    def test_invalid_rate_rejected(self, session, rate_service, rate):
        with pytest.raises(InvalidRateElementError) as exc_info:
            rate_service.set_base_rate(rate, JAN)
        assert exc_info.value.field == "rate_per_stitch"
        assert session.execute(select(BaseRate)).first() is None

    def test_window_must_not_be_reversed(self, rate_service):
        with pytest.raises(InvalidRateElementError):
            rate_service.set_base_rate(Decimal("0.05"), FEB, effective_to=JAN)


class TestRateElements:
    def test_create_then_update_by_name(self, rate_service):
        created = rate_service.upsert_rate_element("Sequins", Decimal("0.01"))
        updated = rate_service.upsert_rate_element(" Sequins ", Decimal("0.015"), description="3mm")

        assert updated.id == created.id
        assert updated.rate_per_stitch == Decimal("0.015")
        assert updated.description == "3mm"

    def test_update_by_id_renames(self, rate_service):
        element = rate_service.upsert_rate_element("Sequins", Decimal("0.01"))

        renamed = rate_service.upsert_rate_element(
            "Sequins 3mm", Decimal("0.01"), element_id=element.id
        )

        assert renamed.id == element.id
        assert [e.name for e in rate_service.list_rate_elements()] == ["Sequins 3mm"]

    def test_list_is_active_and_sorted(self, rate_service):
        rate_service.upsert_rate_element("Zari", Decimal("0.02"))
        rate_service.upsert_rate_element("Beads", Decimal("0.03"))
        rate_service.upsert_rate_element("Cording", Decimal("0.01"), is_active=False)

        assert [e.name for e in rate_service.list_rate_elements()] == ["Beads", "Zari"]

    def test_unknown_id(self, rate_service):
        with pytest.raises(RateElementNotFoundError):
            rate_service.upsert_rate_element("Sequins", Decimal("0.01"), element_id=uuid4())

    def test_blank_name_rejected(self, rate_service):
        with pytest.raises(InvalidRateElementError) as exc_info:
            rate_service.upsert_rate_element("  ", Decimal("0.01"))
        assert exc_info.value.field == "name"

    @pytest.mark.parametrize("rate", [Decimal("-0.01"), Decimal("Infinity"), "n/a"])
    def test_invalid_rate_rejected(self, rate_service, rate):
        with pytest.raises(InvalidRateElementError):
            rate_service.upsert_rate_element("Sequins", rate)

    def test_selection_replaces_previous(self, rate_service, priced_work_item):
        beads = rate_service.upsert_rate_element("Beads", Decimal("0.03"))

        rate_service.select_rate_elements(priced_work_item.id, [beads.id])

        assert rate_service.selected_element_rates(priced_work_item.id) == [Decimal("0.03")]

    def test_select_unknown_element(self, rate_service, work_item):
        with pytest.raises(RateElementNotFoundError):
            rate_service.select_rate_elements(work_item.id, [uuid4()])

    def test_select_for_unknown_work_item(self, rate_service):
        with pytest.raises(WorkItemNotFoundError):
            rate_service.select_rate_elements(uuid4(), [])


class TestEffectiveRate:
    def test_base_plus_selected_elements(self, rate_service, priced_work_item):
        rate = rate_service.calculate_effective_rate(priced_work_item.id, FEB)

        assert rate.base_rate == Decimal("0.05")
        assert rate.element_rates == Decimal("0.012")
        assert rate.effective_rate == Decimal("0.062")

    def test_deactivated_element_not_charged(self, rate_service, priced_work_item):
        rate_service.upsert_rate_element("Sequins", Decimal("0.01"), is_active=False)

        rate = rate_service.calculate_effective_rate(priced_work_item.id, FEB)

        assert rate.effective_rate == Decimal("0.052")

    def test_billing_amount(self, rate_service, priced_work_item):
        billed = rate_service.calculate_billing_amount(priced_work_item.id, Decimal("10000"), FEB)
        assert billed.total_amount == Decimal("620.00")

    def test_requires_base_rate(self, rate_service, work_item):
        with pytest.raises(BaseRateNotFoundError):
            rate_service.calculate_effective_rate(work_item.id, FEB)


class TestBillingRecords:
    @pytest.fixture
    def record(self, rate_service, priced_work_item, machine):
        return rate_service.create_billing_record(
            priced_work_item.id, machine.id, FEB, Decimal("10000"), shift="night"
        )

    def test_record_priced_at_billing_date_rate(self, rate_service, record):
        rate_service.set_base_rate(Decimal("0.08"), MAR)

        assert record.base_rate == Decimal("0.05")
        assert record.effective_rate == Decimal("0.062")
        assert record.total_amount == Decimal("620.00")
        assert record.shift == "night"
        assert not record.is_approved

    def test_same_key_reprices_existing_record(self, session, rate_service, record, machine):
        again = rate_service.create_billing_record(
            record.work_item_id, machine.id, FEB, Decimal("5000"), shift="night"
        )

        assert again.id == record.id
        assert again.total_amount == Decimal("310.00")
        assert len(session.execute(select(BillingRateRecord)).all()) == 1

    def test_override_recalculates(self, rate_service, record):
        updated = rate_service.recalculate_after_override(record.id, Decimal("20000"))

        assert updated.total_stitches == Decimal("20000")
        assert updated.total_amount == Decimal("1240.00")

    def test_approve_stamps_clock(self, rate_service, record, deterministic_clock):
        approved = rate_service.approve_billing_record(record.id, "supervisor")

        assert approved.is_approved
        assert approved.approved_by == "supervisor"
        assert approved.approved_at.replace(tzinfo=None) == deterministic_clock.now().replace(tzinfo=None)

    def test_approved_record_cannot_be_recalculated(self, rate_service, record):
        rate_service.approve_billing_record(record.id, "supervisor")

        with pytest.raises(BillingRecordApprovedError) as exc_info:
            rate_service.recalculate_after_override(record.id, Decimal("1"))

        assert exc_info.value.code == "BILLING_RECORD_APPROVED"
        assert record.total_amount == Decimal("620.00")

    def test_approved_record_key_cannot_be_repriced(self, rate_service, record, machine):
        rate_service.approve_billing_record(record.id, "supervisor")

        with pytest.raises(BillingRecordApprovedError):
            rate_service.create_billing_record(
                record.work_item_id, machine.id, FEB, Decimal("1"), shift="night"
            )

    def test_approve_twice_rejected(self, rate_service, record):
        rate_service.approve_billing_record(record.id, "supervisor")
        with pytest.raises(BillingRecordApprovedError):
            rate_service.approve_billing_record(record.id, "manager")

    def test_approved_record_cannot_be_deleted(self, rate_service, record):
        rate_service.approve_billing_record(record.id, "supervisor")
        with pytest.raises(BillingRecordApprovedError):
            rate_service.delete_billing_record(record.id)

    def test_unapproved_record_deleted(self, session, rate_service, record):
        rate_service.delete_billing_record(record.id)
        assert session.execute(select(BillingRateRecord)).first() is None

    def test_missing_record(self, rate_service):
        with pytest.raises(BillingRecordNotFoundError):
            rate_service.approve_billing_record(uuid4(), "supervisor")

    def test_negative_stitches_rejected(self, rate_service, priced_work_item, machine):
        with pytest.raises(InvalidRateInputError):
            rate_service.create_billing_record(priced_work_item.id, machine.id, FEB, Decimal("-1"))

    def test_approval_logged(self, rate_service, record, captured_logs):
        rate_service.approve_billing_record(record.id, "supervisor")
        assert any(r["message"] == "billing_record_approved" for r in captured_logs())
