"""
Module: workload_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: the rate
    formulas, the effective-rate calculation, the allocation validator and
    the workload state derivation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import workload_kernel logging, exceptions, db.types and
    domain value types.  MUST NOT import workload_services.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
"""

from workload_engines.allocation import (
    AllocationValidation,
    AllocationValidator,
    WorkItemPlan,
)
from workload_engines.effective_rate import (
    BillingAmount,
    EffectiveRate,
    calculate_billing_amount,
    calculate_effective_rate,
)
from workload_engines.rates import (
    FormulaResult,
    FormulaSnapshot,
    RateInputs,
    RateSettings,
    RateType,
    calculate_amount,
    calculate_fabric_yards,
    calculate_rate_per_repeat,
    calculate_rate_per_yard,
)
from workload_engines.tracer import traced_engine
from workload_engines.workload import (
    WorkloadState,
    actual_days_used,
    days_left,
    derive_workload_state,
    on_time_status,
)

__all__ = [
    "AllocationValidation",
    "AllocationValidator",
    "BillingAmount",
    "EffectiveRate",
    "FormulaResult",
    "FormulaSnapshot",
    "RateInputs",
    "RateSettings",
    "RateType",
    "WorkItemPlan",
    "WorkloadState",
    "actual_days_used",
    "calculate_amount",
    "calculate_billing_amount",
    "calculate_effective_rate",
    "calculate_fabric_yards",
    "calculate_rate_per_repeat",
    "calculate_rate_per_yard",
    "days_left",
    "derive_workload_state",
    "on_time_status",
    "traced_engine",
]
