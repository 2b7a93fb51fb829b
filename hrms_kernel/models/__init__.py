"""ORM models for the HRMS kernel."""

from hrms_kernel.models.approval import (
    ApprovableTypeModel,
    ApprovalModel,
    ApproverLayerModel,
)
from hrms_kernel.models.organization import (
    EMPLOYEE_ASSIGNMENT_FIELDS,
    EmployeeModel,
    RoleModel,
    UserModel,
    user_roles,
)
from hrms_kernel.models.requests import (
    EmployeeTransferModel,
    ExpenseClaimModel,
    LeaveRequestModel,
    OvertimeRequestModel,
)

__all__ = [
    "EMPLOYEE_ASSIGNMENT_FIELDS",
    "ApprovableTypeModel",
    "ApprovalModel",
    "ApproverLayerModel",
    "EmployeeModel",
    "EmployeeTransferModel",
    "ExpenseClaimModel",
    "LeaveRequestModel",
    "OvertimeRequestModel",
    "RoleModel",
    "UserModel",
    "user_roles",
]
