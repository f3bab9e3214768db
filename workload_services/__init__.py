"""
workload_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure engines (workload_engines/)
    with database sessions and the clock.  This is the only layer that
    writes allocation, production and billing rows.

Architecture position:
    Services -- imperative shell over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundary.py):
        workload_services/ -> workload_engines/  (allowed)
        workload_services/ -> workload_kernel/   (allowed)
        workload_engines/  -> workload_services/ (FORBIDDEN)
        workload_kernel/   -> workload_services/ (FORBIDDEN)

Invariants enforced:
    - No service commits; the caller owns the transaction.
"""

from workload_services.allocation_service import (
    AllocationSaveResult,
    AllocationService,
    MachineAssignment,
)
from workload_services.billing_service import BillingService
from workload_services.outsourcing_service import OutsourcingService
from workload_services.production_service import DailyBillingLine, ProductionService
from workload_services.rate_service import RateService
from workload_services.reconciliation_service import ReconciliationService

__all__ = [
    "AllocationSaveResult",
    "AllocationService",
    "BillingService",
    "DailyBillingLine",
    "MachineAssignment",
    "OutsourcingService",
    "ProductionService",
    "RateService",
    "ReconciliationService",
]
