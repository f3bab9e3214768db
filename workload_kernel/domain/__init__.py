"""Pure domain helpers shared by every layer."""

from workload_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from workload_kernel.domain.values import AllocationStatus, OnTimeStatus

__all__ = [
    "AllocationStatus",
    "Clock",
    "DeterministicClock",
    "OnTimeStatus",
    "SystemClock",
]
