"""
Typed Exception Hierarchy for the HRMS Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval flows are driven by front doors (inbox actions, schedulers, CLIs)
that must react to failures precisely. Each error therefore has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Configuration gaps (no layers, role without members, employee without an
account) and concurrency races (a second sweep finding an already-applied
change) are NOT exceptions. They are reported as "unresolved" / "no-op"
outcomes by the services. Only caller mistakes, fatal configuration errors
and store failures raise.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    HrmsKernelError (base)
    |
    +-- ApprovalError
    |   +-- ApprovalNotFoundError
    |   +-- UnauthorizedApproverError
    |   +-- InvalidApprovalTransitionError
    |   +-- UnknownApprovableKindError
    |   +-- ApprovableNotFoundError
    |
    +-- ConfigurationError
    |   +-- ApproverLayerConfigurationError
    |   +-- UnknownApproverKindError
    |   +-- ApproverReferenceNotFoundError
    |
    +-- GatedChangeError
    |   +-- GatedChangeNotFoundError
    |   +-- EmployeeNotFoundError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                           | When Raised
----------------|--------------------------------|--------------------------------------
Approval        | APPROVAL_NOT_FOUND             | Approval ID doesn't exist
                | UNAUTHORIZED_APPROVER          | Actor is not the resolved approver
                | INVALID_APPROVAL_TRANSITION    | Decision other than approve/reject
                | UNKNOWN_APPROVABLE_KIND        | No adapter registered for a type tag
                | APPROVABLE_NOT_FOUND           | Tagged reference points at nothing
----------------|--------------------------------|--------------------------------------
Configuration   | APPROVER_LAYER_CONFIGURATION   | Duplicate active level, bad level
                | UNKNOWN_APPROVER_KIND          | Layer uses an unsupported kind
                | APPROVER_REFERENCE_NOT_FOUND   | YAML reference cannot be resolved
----------------|--------------------------------|--------------------------------------
Gated change    | GATED_CHANGE_NOT_FOUND         | Transfer/mutation/rotation missing
                | EMPLOYEE_NOT_FOUND             | Target employee missing
----------------|--------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION         | Terminal approval or applied change
                |                                | modified or deleted

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENT DECISIONS ARE NOT ERRORS:

    outcome = chain.on_decision(approval_id, ApprovalStatus.APPROVED, actor)
    if outcome.noop:
        # Approval was already decided by a concurrent request
        ...

2. CONFIGURATION ERRORS ARE FATAL (surface to operators):

    except ApproverLayerConfigurationError as e:
        alert_operators(e.approvable_kind, e.level)
"""


class HrmsKernelError(Exception):
    """
    Base exception for all HRMS kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "HRMS_KERNEL_ERROR"


# Approval-related exceptions


class ApprovalError(HrmsKernelError):
    """Base exception for approval workflow errors."""

    code: str = "APPROVAL_ERROR"


class ApprovalNotFoundError(ApprovalError):
    """Approval with given ID was not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, approval_id: str):
        self.approval_id = approval_id
        super().__init__(f"Approval not found: {approval_id}")


class UnauthorizedApproverError(ApprovalError):
    """Actor tried to decide an approval assigned to someone else."""

    code: str = "UNAUTHORIZED_APPROVER"

    def __init__(self, approval_id: str, actor_id: str):
        self.approval_id = approval_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not the approver of approval {approval_id}"
        )


class InvalidApprovalTransitionError(ApprovalError):
    """Requested status change is not allowed by the approval lifecycle."""

    code: str = "INVALID_APPROVAL_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid approval transition: {from_status} -> {to_status}"
        )


class UnknownApprovableKindError(ApprovalError):
    """No approvable adapter is registered for the given type tag."""

    code: str = "UNKNOWN_APPROVABLE_KIND"

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown approvable kind: {kind}")


class ApprovableNotFoundError(ApprovalError):
    """Tagged approvable reference does not point at a stored record."""

    code: str = "APPROVABLE_NOT_FOUND"

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Approvable not found: {kind}:{entity_id}")


# Configuration exceptions


class ConfigurationError(HrmsKernelError):
    """Base exception for approval configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class ApproverLayerConfigurationError(ConfigurationError):
    """
    Approver layers for a kind violate the linear-ordering model.

    Two active layers on the same level (or a non-positive level) cannot be
    ordered. The engine refuses to guess and surfaces this to operators.
    """

    code: str = "APPROVER_LAYER_CONFIGURATION"

    def __init__(self, approvable_kind: str, level: int, reason: str):
        self.approvable_kind = approvable_kind
        self.level = level
        self.reason = reason
        super().__init__(
            f"Invalid approver layers for {approvable_kind} at level {level}: {reason}"
        )


class UnknownApproverKindError(ConfigurationError):
    """Approver layer references an unsupported approver kind."""

    code: str = "UNKNOWN_APPROVER_KIND"

    def __init__(self, approver_kind: str):
        self.approver_kind = approver_kind
        super().__init__(f"Unknown approver kind: {approver_kind}")


class ApproverReferenceNotFoundError(ConfigurationError):
    """A configured approver reference does not match any stored record."""

    code: str = "APPROVER_REFERENCE_NOT_FOUND"

    def __init__(self, approver_kind: str, reference: str):
        self.approver_kind = approver_kind
        self.reference = reference
        super().__init__(
            f"Approver reference not found: {approver_kind}={reference}"
        )


# Gated change exceptions


class GatedChangeError(HrmsKernelError):
    """Base exception for gated change errors."""

    code: str = "GATED_CHANGE_ERROR"


class GatedChangeNotFoundError(GatedChangeError):
    """Gated change (transfer, mutation, rotation) was not found."""

    code: str = "GATED_CHANGE_NOT_FOUND"

    def __init__(self, change_id: str):
        self.change_id = change_id
        super().__init__(f"Gated change not found: {change_id}")


class EmployeeNotFoundError(GatedChangeError):
    """Employee referenced by a request does not exist."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


# Immutability exceptions


class ImmutabilityError(HrmsKernelError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Decided approvals and applied gated changes are audit trail. They are
    never rewritten or deleted; a new gated change supersedes an old one.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )
