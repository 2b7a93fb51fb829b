"""Read-only selectors for the HRMS kernel."""

from hrms_kernel.selectors.approval_selector import ApprovalSelector
from hrms_kernel.selectors.due_item_selector import DueItem, DueItemSelector

__all__ = [
    "ApprovalSelector",
    "DueItem",
    "DueItemSelector",
]
