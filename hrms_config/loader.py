"""
Configuration Loader (``hrms_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``hrms_config.schema`` dataclasses.  The single public entry point for
runtime config is ``hrms_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from hrms_config.schema import (
    ApprovableTypeConfig,
    ApproverLayerConfig,
    DatabaseSettings,
    HrmsConfigurationSet,
    NotificationSettings,
    Settings,
    SweepSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    return value


def parse_settings(data: dict[str, Any]) -> Settings:
    database = data.get("database") or {}
    sweep = data.get("sweep") or {}
    notifications = data.get("notifications") or {}
    return Settings(
        database=DatabaseSettings(
            url=database.get("url", DatabaseSettings.url),
            echo=bool(database.get("echo", False)),
        ),
        sweep=SweepSettings(
            interval_seconds=_as_int(
                sweep.get("interval_seconds", SweepSettings.interval_seconds),
                "sweep.interval_seconds",
            ),
            batch_size=_as_int(
                sweep.get("batch_size", SweepSettings.batch_size), "sweep.batch_size",
            ),
        ),
        notifications=NotificationSettings(
            reason_max_length=_as_int(
                notifications.get(
                    "reason_max_length", NotificationSettings.reason_max_length,
                ),
                "notifications.reason_max_length",
            ),
        ),
    )


def parse_layer(data: dict[str, Any]) -> ApproverLayerConfig:
    approver = data.get("approver")
    return ApproverLayerConfig(
        level=_as_int(data["level"], "layer.level"),
        approver_kind=str(data["approver_kind"]),
        approver=str(approver) if approver is not None else None,
        is_active=bool(data.get("is_active", True)),
        description=data.get("description"),
    )


def parse_approvable_type(data: dict[str, Any]) -> ApprovableTypeConfig:
    return ApprovableTypeConfig(
        kind=data["kind"],
        name=data.get("name") or data["kind"],
        description=data.get("description"),
        is_active=bool(data.get("is_active", True)),
        layers=tuple(parse_layer(layer) for layer in data.get("layers") or ()),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the raw configuration mapping."""
    canonical = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_configuration_set(data: dict[str, Any]) -> HrmsConfigurationSet:
    return HrmsConfigurationSet(
        config_id=data["config_id"],
        version=_as_int(data.get("version", 1), "version"),
        settings=parse_settings(data.get("settings") or {}),
        approvable_types=tuple(
            parse_approvable_type(t) for t in data.get("approvable_types") or ()
        ),
        checksum=compute_checksum(data),
    )


def load_configuration_set(path: Path) -> HrmsConfigurationSet:
    return parse_configuration_set(load_yaml_file(path))
