"""Read-only selectors over workload state and production sources."""

from workload_kernel.selectors.production_ledger import (
    LedgerSource,
    ProductionLedger,
    ProductionTotals,
    SourceTotals,
    default_sources,
)
from workload_kernel.selectors.workload_selector import (
    AllocationView,
    MachineDetail,
    MachineWorkloadSummary,
    WorkloadSelector,
)

__all__ = [
    "AllocationView",
    "LedgerSource",
    "MachineDetail",
    "MachineWorkloadSummary",
    "ProductionLedger",
    "ProductionTotals",
    "SourceTotals",
    "WorkloadSelector",
    "default_sources",
]
