"""Services for the HRMS kernel (write side)."""

from hrms_kernel.services.approvable_catalog import (
    ApprovableCatalog,
    ModelApprovable,
    default_catalog,
)
from hrms_kernel.services.approvable_type_registry import ApprovableTypeRegistry
from hrms_kernel.services.approval_chain import ApprovalChain
from hrms_kernel.services.approval_engine import ApprovalEngine, build_approval_engine
from hrms_kernel.services.approver_resolver import ApproverResolver
from hrms_kernel.services.effect_applier import (
    EffectApplier,
    EffectGate,
    GatedEffectListener,
)
from hrms_kernel.services.event_bus import ApprovalEventBus
from hrms_kernel.services.notification import (
    ApprovalNotification,
    LoggingNotificationPort,
    NotificationDispatcher,
    NotificationPort,
)
from hrms_kernel.services.transfer_service import EmployeeTransferService

__all__ = [
    "ApprovableCatalog",
    "ApprovableTypeRegistry",
    "ApprovalChain",
    "ApprovalEngine",
    "ApprovalEventBus",
    "ApprovalNotification",
    "ApproverResolver",
    "EffectApplier",
    "EffectGate",
    "EmployeeTransferService",
    "GatedEffectListener",
    "LoggingNotificationPort",
    "ModelApprovable",
    "NotificationDispatcher",
    "NotificationPort",
    "build_approval_engine",
    "default_catalog",
]
