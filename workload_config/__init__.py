"""
workload_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain configuration at
    runtime.  It reads the YAML file named by ``WORKLOAD_CONFIG`` (or the
    packaged ``defaults.yaml``), applies the ``DATABASE_URL`` override and
    returns a frozen ``WorkloadConfig``.

Architecture position:
    Configuration.  Imports nothing from the kernel, engines or services;
    services receive the parsed values.

Failure modes:
    - ``FileNotFoundError`` -- WORKLOAD_CONFIG points at a missing file.
    - ``ValueError`` / ``KeyError`` -- malformed configuration.

Audit relevance:
    Every call emits a ``WORKLOAD_CONFIG_TRACE`` log record with the
    source path, version and checksum of the configuration in effect.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from workload_config.loader import load_config
from workload_config.schema import (
    AllocationConfig,
    BillingConfig,
    BillNumberFormat,
    DatabaseConfig,
    NumberScope,
    RateConfig,
    WorkloadConfig,
)

_logger = logging.getLogger("workload_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "WORKLOAD_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorkloadConfig:
    """
    Load the configuration in effect.

    Resolution order for the file: explicit ``config_path``, then
    ``WORKLOAD_CONFIG``, then the packaged defaults.  ``DATABASE_URL``
    always wins over ``database.url``.
    """
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    config = load_config(path, database_url=env.get(DATABASE_URL_ENV))

    _logger.info(
        "WORKLOAD_CONFIG_TRACE",
        extra={
            "trace_type": "WORKLOAD_CONFIG_TRACE",
            "config_path": config.source_path,
            "config_version": config.version,
            "checksum": config.checksum,
        },
    )
    return config


__all__ = [
    "AllocationConfig",
    "BillNumberFormat",
    "BillingConfig",
    "DatabaseConfig",
    "NumberScope",
    "RateConfig",
    "WorkloadConfig",
    "get_active_config",
]
