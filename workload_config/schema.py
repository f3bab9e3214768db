"""
WorkloadConfig schema.

The YAML file is parsed by the loader into these frozen dataclasses; the
rest of the system only ever sees a ``WorkloadConfig``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class NumberScope(str, Enum):
    """Period within which a bill-number sequence restarts."""

    DAY = "day"
    YEAR = "year"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class AllocationConfig:
    tolerance: Decimal


@dataclass(frozen=True)
class RateConfig:
    default_d_stitch: Decimal
    yard_rate_factor: Decimal


@dataclass(frozen=True)
class BillNumberFormat:
    """
    Bill numbers are ``{prefix}-{period}-{sequence}``.

    period is YYYYMMDD for DAY scope and YYYY for YEAR scope; sequence is
    zero-padded to ``width`` digits.
    """

    prefix: str
    scope: NumberScope
    width: int

    def period_key(self, on_date) -> str:
        if self.scope is NumberScope.DAY:
            return on_date.strftime("%Y%m%d")
        return on_date.strftime("%Y")

    def render(self, on_date, sequence: int) -> str:
        return f"{self.prefix}-{self.period_key(on_date)}-{sequence:0{self.width}d}"


@dataclass(frozen=True)
class BillingConfig:
    number_formats: dict[str, BillNumberFormat]
    max_number_attempts: int = 50

    def format_for(self, mode: str) -> BillNumberFormat:
        try:
            return self.number_formats[mode]
        except KeyError:
            raise ValueError(f"No bill number format configured for mode {mode!r}") from None


@dataclass(frozen=True)
class WorkloadConfig:
    version: int
    database: DatabaseConfig
    allocation: AllocationConfig
    rates: RateConfig
    billing: BillingConfig
    source_path: str = ""
    checksum: str = ""
