"""
Schedule arithmetic over production day spans.

Used both by the workload derivation engine and by the read models, so
status and on-time reporting agree on what a "day used" is.
"""

import math
from datetime import date
from decimal import Decimal

from workload_kernel.domain.values import OnTimeStatus


def actual_days_used(first_date: date | None, last_date: date | None) -> int:
    """Inclusive day span of production; 0 without production."""
    if first_date is None or last_date is None:
        return 0
    return (last_date - first_date).days + 1


def is_behind_schedule(estimated_days: Decimal | None, actual_days: int) -> bool:
    return estimated_days is not None and estimated_days > 0 and actual_days > estimated_days


def on_time_status(estimated_days: Decimal | None, actual_days: int) -> OnTimeStatus:
    if is_behind_schedule(estimated_days, actual_days):
        return OnTimeStatus.DELAYED
    return OnTimeStatus.ON_TIME


def days_left(estimated_days: Decimal | None, actual_days: int) -> int | None:
    """ceil(estimated_days) - actual_days, floored at 0; None without an estimate."""
    if estimated_days is None or estimated_days <= 0:
        return None
    return max(0, math.ceil(estimated_days) - actual_days)
