"""Domain models for the workload kernel."""

from workload_kernel.models.allocation import AllocationRecord, AllocationStatus
from workload_kernel.models.billing import (
    Bill,
    BillingMode,
    BillItem,
    BillItemSnapshot,
)
from workload_kernel.models.machine import Machine
from workload_kernel.models.outsourcing import OutsourcedWorkItem, OutsourcingStatus
from workload_kernel.models.production import (
    DailyBillingRecord,
    DailyBillingShiftRecord,
    DailyProductionEntry,
    Shift,
    ShiftProductionEntry,
)
from workload_kernel.models.rates import (
    BaseRate,
    BillingRateRecord,
    RateElement,
    WorkItemRateElement,
)
from workload_kernel.models.work_item import WorkItem
from workload_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "AllocationRecord",
    "AllocationStatus",
    "BaseRate",
    "Bill",
    "BillingMode",
    "BillingRateRecord",
    "BillItem",
    "BillItemSnapshot",
    "DailyBillingRecord",
    "DailyBillingShiftRecord",
    "DailyProductionEntry",
    "Machine",
    "OutsourcedWorkItem",
    "OutsourcingStatus",
    "RateElement",
    "SequenceCounter",
    "Shift",
    "ShiftProductionEntry",
    "WorkItem",
    "WorkItemRateElement",
]
