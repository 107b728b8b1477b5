"""Core type definitions for the formflow workflow engine.

This module defines the closed enumerations shared by every other module:
- SubmissionStatus: Lifecycle states of a submission
- Role: Roles supplied by the identity layer
- Gate: Approval checkpoints a submission can pass through
- Decision: Outcome recorded for a gate
- InsuranceApprovalStatus: Per-submission insurance gate status
- FieldType: Input types a field definition can declare
- FieldErrorCode: Validation error codes for individual fields
- HistoryAction: Timeline actions emitted by the engine

It also defines the Actor record identifying who performs an operation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SubmissionStatus(str, Enum):
    """Canonical submission lifecycle states.

    ``PENDING_APPROVAL`` is not a member: it is a legacy display label that
    :meth:`parse` maps onto ``PENDING_MANAGER_APPROVAL``.
    """
    DRAFT = "DRAFT"
    PENDING_INSURANCE_APPROVAL = "PENDING_INSURANCE_APPROVAL"
    PENDING_MANAGER_APPROVAL = "PENDING_MANAGER_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @classmethod
    def parse(cls, value: Any) -> "SubmissionStatus":
        """Parse a status string, accepting the legacy ``PENDING_APPROVAL`` label.

        Examples:
            >>> SubmissionStatus.parse("PENDING_APPROVAL")
            <SubmissionStatus.PENDING_MANAGER_APPROVAL: 'PENDING_MANAGER_APPROVAL'>
        """
        if isinstance(value, cls):
            return value
        if value == LEGACY_PENDING_LABEL:
            return cls.PENDING_MANAGER_APPROVAL
        return cls(value)


LEGACY_PENDING_LABEL = "PENDING_APPROVAL"

# Statuses in which the filling user may edit tab data
EDITABLE_STATUSES = frozenset({SubmissionStatus.DRAFT, SubmissionStatus.REJECTED})

PENDING_STATUSES = frozenset({
    SubmissionStatus.PENDING_INSURANCE_APPROVAL,
    SubmissionStatus.PENDING_MANAGER_APPROVAL,
})


class Role(str, Enum):
    """Roles an acting user can hold.

    SUPERADMIN bypasses per-role field flags and ownership checks.
    """
    MANAGER = "MANAGER"
    ASSOCIATE = "ASSOCIATE"
    VIEWER = "VIEWER"
    INSURANCE_EXECUTIVE = "INSURANCE_EXECUTIVE"
    SUPERADMIN = "SUPERADMIN"


class Gate(str, Enum):
    """Approval checkpoints."""
    MANAGER = "MANAGER"
    INSURANCE = "INSURANCE"


class Decision(str, Enum):
    """Outcome of resolving a gate."""
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class InsuranceApprovalStatus(str, Enum):
    """Status of the insurance gate on a submission (None when not applicable)."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class FieldType(str, Enum):
    """Input types supported by field definitions."""
    TEXT = "TEXT"
    TEXTAREA = "TEXTAREA"
    NUMBER = "NUMBER"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    DATE = "DATE"
    DATETIME = "DATETIME"
    SELECT = "SELECT"
    MULTISELECT = "MULTISELECT"
    CHECKBOX = "CHECKBOX"
    RADIO = "RADIO"
    FILE = "FILE"
    IMAGE = "IMAGE"


class FieldErrorCode(str, Enum):
    """Validation error codes for individual field failures."""
    REQUIRED = "required"
    INVALID_FORMAT = "invalid_format"
    TOO_SHORT = "too_short"
    TOO_LONG = "too_long"
    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"
    PAST_DATE = "past_date"
    CUSTOM = "custom"


class HistoryAction(str, Enum):
    """Timeline actions emitted by the engine for history display."""
    CREATED = "CREATED"
    TAB_SAVED = "TAB_SAVED"
    SUBMITTED = "SUBMITTED"
    RESUBMITTED = "RESUBMITTED"
    INSURANCE_APPROVED = "INSURANCE_APPROVED"
    INSURANCE_REJECTED = "INSURANCE_REJECTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class Actor:
    """Identity of the user performing an operation.

    Supplied by the identity layer and trusted as-is; the engine performs no
    authentication.

    Attributes:
        id: User identifier
        role: Role of the user
        branch_id: Branch the user belongs to (None for superadmins)

    Examples:
        >>> manager = Actor(id="u_1", role=Role.MANAGER, branch_id="br_1")
        >>> manager.is_superadmin
        False
    """
    id: str
    role: Role
    branch_id: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.role, str) and not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role(self.role))

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {"id": self.id, "role": self.role.value}
        if self.branch_id is not None:
            result["branchId"] = self.branch_id
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Actor":
        """Create Actor from dict."""
        return cls(id=data["id"], role=Role(data["role"]), branch_id=data.get("branchId"))


__all__ = [
    "SubmissionStatus",
    "LEGACY_PENDING_LABEL",
    "EDITABLE_STATUSES",
    "PENDING_STATUSES",
    "Role",
    "Gate",
    "Decision",
    "InsuranceApprovalStatus",
    "FieldType",
    "FieldErrorCode",
    "HistoryAction",
    "Actor",
]
