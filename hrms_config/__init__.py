"""
hrms_config -- single public entrypoint for HRMS configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables.  YAML loading is internal tooling.

Architecture position:
    Configuration.  Sits above ``hrms_kernel``; the kernel MUST NEVER
    import from ``hrms_config``.  ``bootstrap.sync_approval_config`` is the
    bridge that writes the approval policy into the kernel's store.

Environment overrides:
    HRMS_CONFIG_PATH   -- path of the YAML file to load.
    HRMS_DATABASE_URL  -- replaces ``settings.database.url``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or structural validation failures.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from hrms_kernel.logging_config import get_logger

from hrms_config.loader import load_configuration_set
from hrms_config.schema import HrmsConfigurationSet
from hrms_config.validator import validate_configuration

_logger = get_logger("config")

CONFIG_PATH_ENV = "HRMS_CONFIG_PATH"
DATABASE_URL_ENV = "HRMS_DATABASE_URL"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> HrmsConfigurationSet:
    """The ONLY public configuration entrypoint.

    Args:
        path: Explicit YAML file.  Falls back to ``HRMS_CONFIG_PATH``, then
            to the bundled ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_configuration_set(config_path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        settings = config.settings
        config = replace(
            config,
            settings=replace(settings, database=replace(settings.database, url=database_url)),
        )

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_warning", extra={"warning": warning})

    _logger.info(
        "HRMS_CONFIG_TRACE",
        extra={
            "trace_type": "HRMS_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
            "approvable_type_count": len(config.approvable_types),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DATABASE_URL_ENV",
    "HrmsConfigurationSet",
    "get_active_config",
]
