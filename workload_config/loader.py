"""
Configuration Loader (``workload_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into the typed
``workload_config.schema`` dataclasses.  Runtime callers use
``workload_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Decimal settings are parsed from their string form, never through float.
* ``compute_checksum`` is deterministic for identical input.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required section  -> ``KeyError`` propagates.
* Invalid number or scope  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from workload_config.schema import (
    AllocationConfig,
    BillingConfig,
    BillNumberFormat,
    DatabaseConfig,
    NumberScope,
    RateConfig,
    WorkloadConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"{name}: {value!r} is not a decimal number") from None


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
    )


def parse_allocation(data: dict[str, Any]) -> AllocationConfig:
    tolerance = parse_decimal(data["tolerance"], "allocation.tolerance")
    if tolerance <= 0:
        raise ValueError("allocation.tolerance must be positive")
    return AllocationConfig(tolerance=tolerance)


def parse_rates(data: dict[str, Any]) -> RateConfig:
    return RateConfig(
        default_d_stitch=parse_decimal(data["default_d_stitch"], "rates.default_d_stitch"),
        yard_rate_factor=parse_decimal(data["yard_rate_factor"], "rates.yard_rate_factor"),
    )


def parse_number_format(data: dict[str, Any]) -> BillNumberFormat:
    width = int(data.get("width", 3))
    if width < 1:
        raise ValueError("bill number width must be at least 1")
    return BillNumberFormat(
        prefix=str(data.get("prefix", "BILL")),
        scope=NumberScope(data["scope"]),
        width=width,
    )


def parse_billing(data: dict[str, Any]) -> BillingConfig:
    formats = {
        mode: parse_number_format(fmt)
        for mode, fmt in data["number_formats"].items()
    }
    return BillingConfig(
        number_formats=formats,
        max_number_attempts=int(data.get("max_number_attempts", 50)),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(
    data: dict[str, Any],
    source_path: str = "",
    database_url: str | None = None,
) -> WorkloadConfig:
    database = parse_database(data["database"])
    if database_url:
        database = DatabaseConfig(
            url=database_url,
            echo=database.echo,
            pool_size=database.pool_size,
            max_overflow=database.max_overflow,
            pool_timeout=database.pool_timeout,
        )
    return WorkloadConfig(
        version=int(data.get("version", 1)),
        database=database,
        allocation=parse_allocation(data["allocation"]),
        rates=parse_rates(data["rates"]),
        billing=parse_billing(data["billing"]),
        source_path=source_path,
        checksum=compute_checksum(data),
    )


def load_config(path: Path, database_url: str | None = None) -> WorkloadConfig:
    return parse_config(load_yaml_file(path), str(path), database_url)
