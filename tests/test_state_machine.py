"""Unit tests for the submission state machine.

Tests cover:
- Valid transitions from every status
- Invalid transitions leave the status untouched
- Terminal status detection
- Gate checks and submittable checks
"""

import pytest

from formflow.errors import InvalidTransition
from formflow.state_machine import SubmissionStateMachine, VALID_TRANSITIONS
from formflow.submission import Submission
from formflow.types import Gate, SubmissionStatus


def machine(status=SubmissionStatus.DRAFT):
    return SubmissionStateMachine(
        Submission(id="sub_1", flow_id="flow_1", branch_id="br_1", user_id="u_1", status=status)
    )


class TestValidTransitions:
    """Test the moves allowed by the transition table."""

    @pytest.mark.parametrize("target", [
        SubmissionStatus.PENDING_INSURANCE_APPROVAL,
        SubmissionStatus.PENDING_MANAGER_APPROVAL,
        SubmissionStatus.APPROVED,
    ])
    def test_draft_can_be_submitted_to_any_routing_target(self, target):
        """Submit routes DRAFT to whichever status routing picks."""
        sm = machine()
        previous = sm.transition_to(target)
        assert previous == SubmissionStatus.DRAFT
        assert sm.status == target
        assert sm.submission.status == target

    def test_rejected_can_be_resubmitted(self):
        """REJECTED re-enters routing on resubmit."""
        sm = machine(SubmissionStatus.REJECTED)
        sm.transition_to(SubmissionStatus.PENDING_INSURANCE_APPROVAL)
        assert sm.status == SubmissionStatus.PENDING_INSURANCE_APPROVAL

    def test_insurance_approval_moves_to_manager(self):
        """Should move from insurance review to manager review."""
        sm = machine(SubmissionStatus.PENDING_INSURANCE_APPROVAL)
        sm.transition_to(SubmissionStatus.PENDING_MANAGER_APPROVAL)
        assert sm.status == SubmissionStatus.PENDING_MANAGER_APPROVAL

    @pytest.mark.parametrize("pending", [
        SubmissionStatus.PENDING_INSURANCE_APPROVAL,
        SubmissionStatus.PENDING_MANAGER_APPROVAL,
    ])
    def test_pending_statuses_can_be_rejected(self, pending):
        """Should allow rejection from either pending status."""
        sm = machine(pending)
        sm.transition_to(SubmissionStatus.REJECTED)
        assert sm.status == SubmissionStatus.REJECTED


class TestInvalidTransitions:
    """Test that illegal moves raise and change nothing."""

    def test_draft_cannot_be_rejected(self):
        """Should refuse to reject a DRAFT."""
        sm = machine()
        with pytest.raises(InvalidTransition) as exc_info:
            sm.transition_to(SubmissionStatus.REJECTED)
        assert sm.status == SubmissionStatus.DRAFT
        assert exc_info.value.current_status == SubmissionStatus.DRAFT
        assert exc_info.value.target_status == SubmissionStatus.REJECTED

    def test_manager_pending_cannot_go_back_to_insurance(self):
        """Should refuse to reopen the insurance gate once manager review starts."""
        sm = machine(SubmissionStatus.PENDING_MANAGER_APPROVAL)
        with pytest.raises(InvalidTransition):
            sm.transition_to(SubmissionStatus.PENDING_INSURANCE_APPROVAL)
        assert sm.status == SubmissionStatus.PENDING_MANAGER_APPROVAL

    def test_approved_is_terminal(self):
        """APPROVED accepts no further transitions."""
        sm = machine(SubmissionStatus.APPROVED)
        assert sm.is_terminal()
        for target in SubmissionStatus:
            assert not sm.can_transition_to(target)
        with pytest.raises(InvalidTransition, match="terminal"):
            sm.transition_to(SubmissionStatus.REJECTED)

    def test_error_envelope_carries_current_status(self):
        """Should report the current status in the error envelope."""
        sm = machine(SubmissionStatus.APPROVED)
        with pytest.raises(InvalidTransition) as exc_info:
            sm.transition_to(SubmissionStatus.DRAFT)
        envelope = exc_info.value.to_dict()
        assert envelope["ok"] is False
        assert envelope["error"]["type"] == "invalid_transition"
        assert envelope["error"]["currentStatus"] == "APPROVED"


class TestTransitionTable:
    """Test the shape of VALID_TRANSITIONS."""

    def test_every_status_has_an_entry(self):
        """Should list every status in the transition table."""
        assert set(VALID_TRANSITIONS) == set(SubmissionStatus)

    def test_nothing_returns_to_draft(self):
        """Should never lead back to DRAFT."""
        for targets in VALID_TRANSITIONS.values():
            assert SubmissionStatus.DRAFT not in targets

    def test_only_approved_is_terminal(self):
        """Should treat APPROVED as the only terminal status."""
        terminal = [s for s in SubmissionStatus if machine(s).is_terminal()]
        assert terminal == [SubmissionStatus.APPROVED]


class TestGuards:
    """Test require_submittable and require_gate."""

    @pytest.mark.parametrize("status", [SubmissionStatus.DRAFT, SubmissionStatus.REJECTED])
    def test_editable_statuses_are_submittable(self, status):
        """Should accept submit from DRAFT and REJECTED."""
        sm = machine(status)
        assert sm.is_editable_status()
        sm.require_submittable()

    @pytest.mark.parametrize("status", [
        SubmissionStatus.PENDING_INSURANCE_APPROVAL,
        SubmissionStatus.PENDING_MANAGER_APPROVAL,
        SubmissionStatus.APPROVED,
    ])
    def test_other_statuses_are_not_submittable(self, status):
        """Should refuse submit from pending or approved statuses."""
        with pytest.raises(InvalidTransition):
            machine(status).require_submittable()

    def test_require_gate_accepts_the_awaiting_gate(self):
        """Should accept the gate the submission is waiting on."""
        machine(SubmissionStatus.PENDING_INSURANCE_APPROVAL).require_gate(Gate.INSURANCE)
        machine(SubmissionStatus.PENDING_MANAGER_APPROVAL).require_gate(Gate.MANAGER)

    def test_require_gate_rejects_the_wrong_gate(self):
        """Manager cannot act while the insurance gate is still open."""
        with pytest.raises(InvalidTransition) as exc_info:
            machine(SubmissionStatus.PENDING_INSURANCE_APPROVAL).require_gate(Gate.MANAGER)
        assert exc_info.value.target_status == SubmissionStatus.PENDING_MANAGER_APPROVAL

    def test_require_gate_rejects_non_pending_statuses(self):
        """Should refuse any gate when nothing is pending."""
        with pytest.raises(InvalidTransition):
            machine(SubmissionStatus.DRAFT).require_gate(Gate.MANAGER)
