"""
Value types shared by the kernel models and the pure engines.

Kept free of SQLAlchemy so that workload_engines can import them without
touching the persistence layer.
"""

from enum import Enum


class AllocationStatus(str, Enum):
    """Lifecycle status of an allocation, derived from production totals."""

    OPEN = "Open"
    COMPLETED = "Completed"
    DELAYED = "Delayed"
    OVERPRODUCED = "Overproduced"


class OnTimeStatus(str, Enum):
    ON_TIME = "On Time"
    DELAYED = "Delayed"
