"""Submission and approval record data model.

A Submission is one user's instance of filling a flow. It owns its form data
(``{screenCode: {fieldName: value}}``), the progressive-save pointer and its
approval state. ApprovalRecord entries form the append-only audit trail of
gate decisions.

Both serialize to the camelCase JSON shape exposed to callers.
"""

import copy
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from formflow.types import Decision, Gate, InsuranceApprovalStatus, SubmissionStatus


FormData = Dict[str, Dict[str, Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_ts(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return date_parser.isoparse(value)


@dataclass
class Submission:
    """One user's in-progress or completed instance of a flow.

    Attributes:
        id: Unique submission identifier
        flow_id: Flow being filled
        branch_id: Branch the submission belongs to
        user_id: User who started the submission
        status: Current lifecycle status
        current_tab_index: Highest tab index known to be saved
        form_data: Mapping of screen code to field values
        insurance_approval_status: Insurance gate status, None when not applicable
        submitted_at: Time of the first submit
        created_at / updated_at: Bookkeeping timestamps

    Examples:
        >>> sub = Submission(id="sub_1", flow_id="flow_1", branch_id="br_1", user_id="u_1")
        >>> sub.status
        <SubmissionStatus.DRAFT: 'DRAFT'>
        >>> sub.screen_data("customer_enquiry")
        {}
    """

    id: str
    flow_id: str
    branch_id: str
    user_id: str
    status: SubmissionStatus = SubmissionStatus.DRAFT
    current_tab_index: int = 0
    form_data: FormData = field(default_factory=dict)
    insurance_approval_status: Optional[InsuranceApprovalStatus] = None
    submitted_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def screen_data(self, screen_code: str) -> Dict[str, Any]:
        """Return the stored values for a screen (case-insensitive code lookup)."""
        if screen_code in self.form_data:
            return self.form_data[screen_code]
        wanted = screen_code.lower()
        for key, values in self.form_data.items():
            if key.lower() == wanted:
                return values
        return {}

    def copy(self, **changes: Any) -> "Submission":
        """Return a deep copy with the given attributes replaced."""
        clone = replace(self, form_data=copy.deepcopy(self.form_data))
        return replace(clone, **changes) if changes else clone

    def to_dict(self, display_status: Optional[str] = None) -> Dict[str, Any]:
        """Convert to the caller-facing JSON shape."""
        result: Dict[str, Any] = {
            "id": self.id,
            "flowId": self.flow_id,
            "branchId": self.branch_id,
            "userId": self.user_id,
            "status": self.status.value,
            "currentTabIndex": self.current_tab_index,
            "formData": copy.deepcopy(self.form_data),
            "insuranceApprovalStatus": (
                self.insurance_approval_status.value if self.insurance_approval_status else None
            ),
            "submittedAt": _iso(self.submitted_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if display_status is not None:
            result["displayStatus"] = display_status
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Submission":
        """Create Submission from the JSON shape.

        Accepts the legacy ``PENDING_APPROVAL`` status and treats the legacy
        ``N/A`` insurance status as not applicable.
        """
        insurance = data.get("insuranceApprovalStatus")
        if insurance in (None, "", "N/A"):
            insurance = None
        else:
            insurance = InsuranceApprovalStatus(insurance)
        return cls(
            id=data["id"],
            flow_id=data["flowId"],
            branch_id=data["branchId"],
            user_id=data["userId"],
            status=SubmissionStatus.parse(data.get("status", SubmissionStatus.DRAFT.value)),
            current_tab_index=int(data.get("currentTabIndex") or 0),
            form_data=copy.deepcopy(data.get("formData") or {}),
            insurance_approval_status=insurance,
            submitted_at=_parse_ts(data.get("submittedAt")),
            created_at=_parse_ts(data.get("createdAt")) or utcnow(),
            updated_at=_parse_ts(data.get("updatedAt")) or utcnow(),
        )


@dataclass(frozen=True)
class ApprovalRecord:
    """An audit entry produced each time a gate is resolved.

    Records are append-only; resubmitting after a rejection never removes
    earlier entries.
    """

    submission_id: str
    approver_id: str
    gate: Gate
    decision: Decision
    comments: Optional[str] = None
    id: str = field(default_factory=lambda: new_id("apr"))
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "submissionId": self.submission_id,
            "approverId": self.approver_id,
            "gate": self.gate.value,
            "decision": self.decision.value,
            "comments": self.comments,
            "createdAt": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ApprovalRecord":
        return cls(
            id=data["id"],
            submission_id=data["submissionId"],
            approver_id=data["approverId"],
            gate=Gate(data["gate"]),
            decision=Decision(data["decision"]),
            comments=data.get("comments"),
            created_at=_parse_ts(data.get("createdAt")) or utcnow(),
        )


__all__ = [
    "FormData",
    "Submission",
    "ApprovalRecord",
    "utcnow",
    "new_id",
]
