"""Submission state machine for the formflow workflow engine.

This module holds the transition table for submission statuses and a small
wrapper that enforces it. Routing (which pending status comes next) lives in
:mod:`formflow.routing`; this module only answers whether a move is legal.

    DRAFT ──submit──> PENDING_INSURANCE_APPROVAL ──approve──> PENDING_MANAGER_APPROVAL
      │                        │                                   │
      ├──submit──> PENDING_MANAGER_APPROVAL ──approve──> APPROVED <┘
      └──submit (no gates)──> APPROVED
    any pending ──reject──> REJECTED ──submit──> (routing re-runs)

Usage:
    >>> from formflow.submission import Submission
    >>> sub = Submission(id="sub_1", flow_id="f", branch_id="b", user_id="u")
    >>> sm = SubmissionStateMachine(sub)
    >>> sm.can_transition_to(SubmissionStatus.APPROVED)
    True
    >>> sm.can_transition_to(SubmissionStatus.REJECTED)
    False
"""

from dataclasses import dataclass
from typing import Dict, Set

from formflow.errors import InvalidTransition
from formflow.routing import gate_awaiting, pending_status_for
from formflow.submission import Submission
from formflow.types import EDITABLE_STATUSES, Gate, SubmissionStatus


_SUBMIT_TARGETS = {
    SubmissionStatus.PENDING_INSURANCE_APPROVAL,
    SubmissionStatus.PENDING_MANAGER_APPROVAL,
    SubmissionStatus.APPROVED,
}

# Maps each status to the set of statuses it can move to
VALID_TRANSITIONS: Dict[SubmissionStatus, Set[SubmissionStatus]] = {
    SubmissionStatus.DRAFT: set(_SUBMIT_TARGETS),
    # Resubmission re-runs routing
    SubmissionStatus.REJECTED: set(_SUBMIT_TARGETS),
    SubmissionStatus.PENDING_INSURANCE_APPROVAL: {
        SubmissionStatus.PENDING_MANAGER_APPROVAL,
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    },
    SubmissionStatus.PENDING_MANAGER_APPROVAL: {
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    },
    # Terminal
    SubmissionStatus.APPROVED: set(),
}


@dataclass
class SubmissionStateMachine:
    """Enforces legal status transitions on one submission.

    Attributes:
        submission: The submission whose status is guarded
    """

    submission: Submission

    @property
    def status(self) -> SubmissionStatus:
        return self.submission.status

    def can_transition_to(self, target: SubmissionStatus) -> bool:
        return target in VALID_TRANSITIONS.get(self.status, set())

    def transition_to(self, target: SubmissionStatus) -> SubmissionStatus:
        """Move the submission to ``target``.

        Returns:
            The previous status

        Raises:
            InvalidTransition: If the move is not allowed from the current status
        """
        if not self.can_transition_to(target):
            allowed = VALID_TRANSITIONS.get(self.status, set())
            raise InvalidTransition(
                (
                    f"Invalid status transition: cannot move from '{self.status.value}' "
                    f"to '{target.value}'. Allowed: "
                    f"{', '.join(sorted(s.value for s in allowed))}"
                    if allowed
                    else f"Invalid status transition: '{self.status.value}' is terminal"
                ),
                current_status=self.status,
                target_status=target,
            )
        previous = self.status
        self.submission.status = target
        return previous

    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS.get(self.status)

    def is_editable_status(self) -> bool:
        return self.status in EDITABLE_STATUSES

    def require_submittable(self) -> None:
        if not self.is_editable_status():
            raise InvalidTransition(
                f"Cannot submit a submission in status '{self.status.value}'",
                current_status=self.status,
            )

    def require_gate(self, gate: Gate) -> None:
        """Ensure ``gate`` is the gate currently awaiting action.

        Raises:
            InvalidTransition: If the submission is not pending on ``gate``
        """
        if gate_awaiting(self.status) != gate:
            raise InvalidTransition(
                f"Submission is not pending {gate.value.lower()} approval "
                f"(status '{self.status.value}')",
                current_status=self.status,
                target_status=pending_status_for(gate),
            )


__all__ = [
    "SubmissionStateMachine",
    "VALID_TRANSITIONS",
]
