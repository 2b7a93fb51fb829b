"""
Configuration Validator (``hrms_config.validator``).

Responsibility
--------------
Validates an ``HrmsConfigurationSet`` before it is used or written into
the store.

Invariants enforced
-------------------
* Approvable kinds are unique.
* Layer levels are positive, and active layers of one kind have distinct
  levels (the chain is strictly linear).
* Approver kinds are known; fixed kinds name a reference, the
  approval-line kind does not need one.
* Sweep interval, batch size and reason length are positive.

Failure modes
-------------
* Errors  -> configuration MUST NOT be used.
* Warnings  -> usable but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hrms_kernel.domain.approval import ApproverKind

from hrms_config.schema import HrmsConfigurationSet

_APPROVER_KINDS = {kind.value: kind for kind in ApproverKind}


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` is True only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: HrmsConfigurationSet) -> ConfigValidationResult:
    result = ConfigValidationResult()
    _validate_settings(config, result)
    _validate_approvable_types(config, result)
    return result


def _validate_settings(config: HrmsConfigurationSet, result: ConfigValidationResult) -> None:
    settings = config.settings
    if not settings.database.url:
        result.add_error("settings.database.url must not be empty")
    if settings.sweep.interval_seconds <= 0:
        result.add_error("settings.sweep.interval_seconds must be positive")
    if settings.sweep.batch_size <= 0:
        result.add_error("settings.sweep.batch_size must be positive")
    if settings.notifications.reason_max_length <= 0:
        result.add_error("settings.notifications.reason_max_length must be positive")


def _validate_approvable_types(
    config: HrmsConfigurationSet, result: ConfigValidationResult,
) -> None:
    seen_kinds: set[str] = set()
    for approvable_type in config.approvable_types:
        kind = approvable_type.kind
        if kind in seen_kinds:
            result.add_error(f"Duplicate approvable kind: {kind}")
        seen_kinds.add(kind)

        if not approvable_type.layers:
            result.add_warning(f"{kind}: no layers configured, requests are auto-approved")

        active_levels: set[int] = set()
        for layer in approvable_type.layers:
            where = f"{kind} level {layer.level}"
            if layer.level <= 0:
                result.add_error(f"{where}: level must be a positive integer")

            approver_kind = _APPROVER_KINDS.get(layer.approver_kind)
            if approver_kind is None:
                result.add_error(f"{where}: unknown approver kind {layer.approver_kind!r}")
            elif approver_kind.requires_reference and not layer.approver:
                result.add_error(f"{where}: {layer.approver_kind} layer needs an approver")
            elif not approver_kind.requires_reference and layer.approver:
                result.add_warning(f"{where}: approval_line layer ignores approver")

            if not layer.is_active:
                continue
            if layer.level in active_levels:
                result.add_error(f"{where}: two active layers share this level")
            active_levels.add(layer.level)
