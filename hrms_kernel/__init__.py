"""
HRMS Kernel - approval workflow engine

Layered, dynamically resolved approval chains that gate HR state changes:
- Ordered approver layers per approvable kind
- Runtime approver resolution (user, role, employee, approval line)
- Idempotent decisions and duplicate-pending guard
- Time-gated, exactly-once application of approved changes
"""

__version__ = "0.1.0"
