"""
HrmsConfigurationSet schema.

Defines the human-authored, reviewable configuration artifact.  YAML files
are parsed into these types by the loader, checked by the validator, and
written into the store by ``bootstrap.sync_approval_config``.

Approver references are natural keys, never store ids, so the same file
works against any database:
  user      -> user email
  role      -> role name
  employee  -> employee code
  approval_line -> no reference (resolved from the requester at runtime)
"""

from __future__ import annotations

from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Runtime settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///hrms.db"
    echo: bool = False


@dataclass(frozen=True)
class SweepSettings:
    """Due-item sweep cadence and page size."""

    interval_seconds: int = 86400
    batch_size: int = 100


@dataclass(frozen=True)
class NotificationSettings:
    reason_max_length: int = 300


@dataclass(frozen=True)
class Settings:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    sweep: SweepSettings = field(default_factory=SweepSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)


# ---------------------------------------------------------------------------
# Approval policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApproverLayerConfig:
    """One ordered approval stage."""

    level: int
    approver_kind: str
    approver: str | None = None
    is_active: bool = True
    description: str | None = None


@dataclass(frozen=True)
class ApprovableTypeConfig:
    """An approvable kind and its layers."""

    kind: str
    name: str
    description: str | None = None
    is_active: bool = True
    layers: tuple[ApproverLayerConfig, ...] = ()


# ---------------------------------------------------------------------------
# Top-level set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HrmsConfigurationSet:
    """The complete configuration, as loaded from one YAML file."""

    config_id: str
    version: int
    settings: Settings = field(default_factory=Settings)
    approvable_types: tuple[ApprovableTypeConfig, ...] = ()
    checksum: str = ""

    def type_config(self, kind: str) -> ApprovableTypeConfig | None:
        for approvable_type in self.approvable_types:
            if approvable_type.kind == kind:
                return approvable_type
        return None
