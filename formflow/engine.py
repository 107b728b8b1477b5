"""WorkflowEngine orchestrator for form submissions.

This module provides the WorkflowEngine class that coordinates the resolver,
tab validator, routing rules and state machine over a Storage collaborator,
and emits history events after each committed operation.

The engine is request-scoped and holds no session state: every operation
re-reads the submission, validates against its current status, and commits
once with an optimistic status check. Nothing is written unless every check
passes.

Usage:
    >>> from formflow.definitions import FlowDefinition
    >>> from formflow.storage import InMemoryStorage
    >>> from formflow.types import Actor, Role
    >>> flow = FlowDefinition.from_dict({
    ...     "id": "flow_1",
    ...     "flowScreens": [{"tabOrder": 1, "tabName": "Customer", "screen": {
    ...         "code": "customer", "fields": [
    ...             {"name": "first_name", "label": "First Name", "fieldType": "TEXT"}]}}],
    ...     "assignments": [{"branchId": "br_1"}],
    ... })
    >>> engine = WorkflowEngine(InMemoryStorage([flow]))
    >>> user = Actor(id="u_1", role=Role.ASSOCIATE, branch_id="br_1")
    >>> sub = engine.start_submission("flow_1", user)
    >>> sub = engine.save_tab(sub.id, 0, {"first_name": "Asha"}, user)
    >>> engine.submit(sub.id, user).status.value
    'APPROVED'
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from formflow.config import Settings, settings as default_settings
from formflow.definitions import FlowDefinition, ScreenDefinition
from formflow.errors import FieldError, Forbidden, InvalidTransition, ValidationFailed
from formflow.events import EventEmitter, HistoryEvent
from formflow.navigation import (
    advance_pointer,
    can_access_tab,
    can_preview,
    is_tab_saved,
    last_required_tab_index,
    printable,
)
from formflow.routing import (
    display_status,
    initial_status,
    pending_status_for,
    requirements_for,
    screen_approval_badge,
    status_after_approval,
)
from formflow.state_machine import SubmissionStateMachine
from formflow.storage import Storage
from formflow.submission import ApprovalRecord, Submission, new_id, utcnow
from formflow.types import (
    Actor,
    Decision,
    FieldErrorCode,
    Gate,
    HistoryAction,
    InsuranceApprovalStatus,
    PENDING_STATUSES,
    Role,
    SubmissionStatus,
)
from formflow.validation import TabValidator, is_empty
from formflow.visibility import (
    edit_window_open,
    field_states,
    insurance_override_active,
    is_editable,
    is_visible,
)

logger = logging.getLogger(__name__)

_MISSING = object()

# Role that may resolve each gate (SUPERADMIN may resolve either)
GATE_ROLES: Dict[Gate, Role] = {
    Gate.INSURANCE: Role.INSURANCE_EXECUTIVE,
    Gate.MANAGER: Role.MANAGER,
}


class WorkflowEngine:
    """Orchestrator for the submission lifecycle.

    Attributes:
        storage: Persistence collaborator
        emitter: Receives a HistoryEvent after each committed operation
        settings: Engine settings

    Examples:
        >>> from formflow.storage import InMemoryStorage
        >>> engine = WorkflowEngine(InMemoryStorage())
        >>> engine.emitter.listener_count()
        0
    """

    def __init__(
        self,
        storage: Storage,
        emitter: Optional[EventEmitter] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.storage = storage
        self.emitter = emitter or EventEmitter()
        self.settings = settings or default_settings
        self._clock = clock or utcnow
        self._validator = TabValidator(self.settings, today=today)

    # ---- helpers ----

    def _emit(
        self,
        action: HistoryAction,
        submission: Submission,
        actor: Actor,
        **extra: Any,
    ) -> None:
        event = HistoryEvent(
            event_id=new_id("evt"),
            action=action,
            submission_id=submission.id,
            ts=self._clock(),
            actor_id=actor.id,
            status=submission.status,
            **extra,
        )
        self.emitter.emit(event)

    def _load(self, submission_id: str):
        submission = self.storage.load_submission(submission_id)
        flow = self.storage.load_flow_with_screens(submission.flow_id)
        return submission, flow

    def _require_branch(self, actor: Actor, submission: Submission, message: str) -> None:
        if not actor.is_superadmin and actor.branch_id != submission.branch_id:
            raise Forbidden(message)

    def _parse_gate(self, gate: Union[Gate, str]) -> Gate:
        try:
            return Gate(gate)
        except ValueError:
            raise InvalidTransition(f"Unknown approval gate '{gate}'") from None

    def _require_gate_role(self, gate: Gate, actor: Actor) -> None:
        if actor.is_superadmin or actor.role == GATE_ROLES[gate]:
            return
        raise Forbidden(
            f"Only {GATE_ROLES[gate].value.replace('_', ' ').title()}s can process "
            f"{gate.value.lower()} approvals"
        )

    def _log_transition(self, submission: Submission, previous: SubmissionStatus, actor: Actor) -> None:
        logger.info(
            "submission %s: %s -> %s by %s",
            submission.id,
            previous.value,
            submission.status.value,
            actor.id,
        )

    # ---- reads ----

    def get_submission(self, submission_id: str) -> Submission:
        """Return the current submission; raises NotFound if unknown."""
        return self.storage.load_submission(submission_id)

    def serialize(self, submission: Submission, flow: Optional[FlowDefinition] = None) -> Dict[str, Any]:
        """Caller-facing JSON shape, including ``displayStatus``."""
        flow = flow or self.storage.load_flow_with_screens(submission.flow_id)
        label = display_status(submission.status, requirements_for(flow), self.settings)
        return submission.to_dict(display_status=label)

    def approval_history(self, submission_id: str) -> List[ApprovalRecord]:
        """Approval records of a submission, oldest first."""
        self.storage.load_submission(submission_id)
        records = self.storage.list_approval_records(submission_id)
        return sorted(records, key=lambda r: r.created_at)

    def tab_view(self, submission_id: str, tab_index: int, actor: Actor) -> Dict[str, Any]:
        """Everything a client needs to render one tab for ``actor``."""
        submission, flow = self._load(submission_id)
        fs = flow.tab(tab_index)
        values = submission.screen_data(fs.screen.code)
        fields = []
        for state in field_states(fs.screen, actor.role, submission.status, submission.form_data, self.settings):
            entry = state.to_dict()
            entry["value"] = values.get(state.name) if state.visible else None
            fields.append(entry)
        return {
            "tabIndex": tab_index,
            "tabName": fs.tab_name,
            "screenCode": fs.screen.code,
            "accessible": can_access_tab(submission, flow, tab_index),
            "saved": is_tab_saved(submission, tab_index),
            "isPostApproval": fs.screen.is_post_approval,
            "previewable": can_preview(fs.screen),
            "printable": printable(submission, fs.screen),
            "approvalStatus": screen_approval_badge(fs.screen, submission),
            "fields": fields,
        }

    def pending_approvals(self, gate: Union[Gate, str], actor: Actor) -> List[Dict[str, Any]]:
        """Submissions awaiting ``gate`` that ``actor`` may act on, oldest first."""
        gate = self._parse_gate(gate)
        self._require_gate_role(gate, actor)
        branch_id = None if actor.is_superadmin else actor.branch_id
        submissions = self.storage.list_submissions(
            statuses=[pending_status_for(gate)], branch_id=branch_id
        )
        submissions.sort(key=lambda s: (s.submitted_at is None, s.submitted_at or s.created_at))

        flows: Dict[str, FlowDefinition] = {}
        result = []
        for submission in submissions:
            if submission.flow_id not in flows:
                flows[submission.flow_id] = self.storage.load_flow_with_screens(submission.flow_id)
            flow = flows[submission.flow_id]
            result.append({
                "submission": self.serialize(submission, flow),
                "screensRequiringApproval": requirements_for(flow).screens_for(gate),
            })
        return result

    def branch_stats(self, actor: Actor) -> Dict[str, int]:
        """Submission counts by status for the actor's branch."""
        branch_id = None if actor.is_superadmin else actor.branch_id
        user_id = actor.id if actor.role in (Role.ASSOCIATE, Role.VIEWER) else None
        submissions = self.storage.list_submissions(branch_id=branch_id, user_id=user_id)

        def count(*statuses: SubmissionStatus) -> int:
            return sum(1 for s in submissions if s.status in statuses)

        return {
            "total": len(submissions),
            "draft": count(SubmissionStatus.DRAFT),
            "pendingInsurance": count(SubmissionStatus.PENDING_INSURANCE_APPROVAL),
            "pendingManager": count(SubmissionStatus.PENDING_MANAGER_APPROVAL),
            "pending": count(*PENDING_STATUSES),
            "approved": count(SubmissionStatus.APPROVED),
            "rejected": count(SubmissionStatus.REJECTED),
        }

    # ---- lifecycle ----

    def start_submission(self, flow_id: str, actor: Actor) -> Submission:
        """Create a DRAFT submission of ``flow_id`` for ``actor``.

        Raises:
            NotFound: If the flow is unknown
            Forbidden: If the flow is not assigned to the actor's branch, or the
                assignment does not grant the actor's role
        """
        if actor.is_superadmin:
            raise Forbidden("Only branch users can start submissions")
        flow = self.storage.load_flow_with_screens(flow_id)
        assignment = flow.assignment_for(actor.branch_id)
        if assignment is None:
            raise Forbidden("Flow not available for your branch")
        if not assignment.grants(actor.role):
            raise Forbidden("You do not have access to this flow")

        now = self._clock()
        submission = Submission(
            id=new_id("sub"),
            flow_id=flow.id,
            branch_id=actor.branch_id,
            user_id=actor.id,
            created_at=now,
            updated_at=now,
        )
        submission = self.storage.save_submission(submission)
        logger.info("submission %s: created for flow %s by %s", submission.id, flow.id, actor.id)
        self._emit(HistoryAction.CREATED, submission, actor, details={"flowName": flow.name})
        return submission

    def _merge_tab_values(
        self,
        screen: ScreenDefinition,
        submission: Submission,
        values: Mapping[str, Any],
        actor: Actor,
        override: bool,
    ) -> Dict[str, Any]:
        """Build the tab's new stored values from the submitted ones.

        Visible editable fields take the submitted value (absent key = unset).
        Visible read-only fields keep their stored value and refuse changes.
        Hidden fields keep their stored value.
        """
        previous = submission.screen_data(screen.code)
        dropped = set(values) - screen.field_names
        if dropped:
            logger.debug("submission %s: ignoring unknown fields %s", submission.id, sorted(dropped))

        candidates: Dict[str, Any] = {}
        refused: List[str] = []
        for f in screen.fields:
            if is_editable(f, actor.role, submission.status, gate_override=override):
                candidate = values.get(f.name, _MISSING)
            else:
                candidate = previous.get(f.name, _MISSING)
                if f.name in values:
                    submitted, stored = values[f.name], previous.get(f.name)
                    if not (submitted == stored or (is_empty(submitted) and is_empty(stored))):
                        refused.append(f.name)
            if candidate is not _MISSING:
                candidates[f.name] = candidate

        merged: Dict[str, Any] = {}
        for f in screen.fields:
            visible = is_visible(
                f, actor.role, submission.form_data, screen_code=screen.code, current_values=candidates
            )
            if visible:
                if f.name in refused:
                    raise Forbidden(f"{f.label} is not editable by {actor.role.value}")
                if f.name in candidates:
                    merged[f.name] = candidates[f.name]
            elif f.name in previous:
                merged[f.name] = previous[f.name]
        return merged

    def save_tab(
        self,
        submission_id: str,
        tab_index: int,
        values: Mapping[str, Any],
        actor: Actor,
    ) -> Submission:
        """Validate and persist one tab's values.

        Raises:
            NotFound: Unknown submission, flow or tab
            Forbidden: Role, ownership or branch refusal, skipped tabs, or a
                change to a read-only field
            InvalidTransition: The submission is not open for editing
            ValidationFailed: One or more visible fields failed validation
        """
        submission, flow = self._load(submission_id)
        fs = flow.tab(tab_index)
        screen = fs.screen
        override = insurance_override_active(actor.role, submission.status, screen, self.settings)

        if actor.role == Role.VIEWER:
            raise Forbidden("Viewers cannot edit submissions")
        self._require_branch(actor, submission, "You can only edit submissions of your branch")
        if (
            not actor.is_superadmin
            and not override
            and actor.role != Role.MANAGER
            and submission.user_id != actor.id
        ):
            raise Forbidden("You can only edit your own submissions")
        if not edit_window_open(submission.status, actor.role, screen, self.settings):
            raise InvalidTransition(
                f"Cannot edit submission in status '{submission.status.value}'",
                current_status=submission.status,
            )
        if not screen.is_post_approval and tab_index > submission.current_tab_index + 1:
            raise Forbidden("Please complete previous tabs first")

        merged = self._merge_tab_values(screen, submission, values, actor, override)
        self._validator.validate(screen, merged, actor.role, submission.form_data).raise_for_errors()

        expected = submission.status
        updated = submission.copy()
        for key in [k for k in updated.form_data if k.lower() == screen.code.lower()]:
            del updated.form_data[key]
        updated.form_data[screen.code] = merged
        if not screen.is_post_approval or tab_index <= submission.current_tab_index + 1:
            updated.current_tab_index = advance_pointer(submission, tab_index)
        updated.updated_at = self._clock()

        saved = self.storage.save_submission(updated, expected_status=expected)
        logger.info("submission %s: tab %d (%s) saved by %s", saved.id, tab_index, screen.code, actor.id)
        self._emit(
            HistoryAction.TAB_SAVED,
            saved,
            actor,
            tab_index=tab_index,
            tab_name=fs.tab_name,
            details={"screenCode": screen.code, "fieldCount": len(merged)},
        )
        return saved

    def submit(self, submission_id: str, actor: Actor) -> Submission:
        """Submit (or resubmit) a DRAFT or REJECTED submission for approval.

        Routing is recomputed from the flow's current screen flags. Flows with
        no approval screens are approved immediately.

        Raises:
            Forbidden: Actor is not the owner
            InvalidTransition: Status is not DRAFT or REJECTED
            ValidationFailed: Required tabs are unsaved or the final tab is invalid
        """
        submission, flow = self._load(submission_id)
        if not actor.is_superadmin and submission.user_id != actor.id:
            raise Forbidden("You can only submit your own forms")
        SubmissionStateMachine(submission).require_submittable()

        last = last_required_tab_index(flow)
        if submission.current_tab_index < last:
            raise ValidationFailed(
                [FieldError(
                    "currentTabIndex",
                    "Please complete all required tabs before submitting",
                    FieldErrorCode.CUSTOM,
                )],
                message="Submission is incomplete",
            )
        if last >= 0:
            screen = flow.screen_at(last)
            self._validator.validate(
                screen, submission.screen_data(screen.code), actor.role, submission.form_data
            ).raise_for_errors()

        requirements = requirements_for(flow)
        expected = submission.status
        updated = submission.copy()
        previous = SubmissionStateMachine(updated).transition_to(initial_status(requirements))
        now = self._clock()
        if updated.submitted_at is None:
            updated.submitted_at = now
        updated.insurance_approval_status = (
            InsuranceApprovalStatus.PENDING if requirements.insurance else None
        )
        updated.updated_at = now

        saved = self.storage.save_submission(updated, expected_status=expected)
        self._log_transition(saved, previous, actor)
        action = HistoryAction.RESUBMITTED if previous == SubmissionStatus.REJECTED else HistoryAction.SUBMITTED
        details = requirements.to_dict()
        details["status"] = saved.status.value
        self._emit(action, saved, actor, details=details)
        return saved

    def approve(
        self,
        submission_id: str,
        gate: Union[Gate, str],
        actor: Actor,
        comments: Optional[str] = None,
    ) -> Submission:
        """Approve the gate currently awaiting action.

        Raises:
            Forbidden: Actor's role cannot resolve ``gate``, or wrong branch
            InvalidTransition: The submission is not pending on ``gate``
        """
        gate = self._parse_gate(gate)
        self._require_gate_role(gate, actor)
        submission, flow = self._load(submission_id)
        self._require_branch(actor, submission, "You can only process approvals for your branch")

        updated = submission.copy()
        machine = SubmissionStateMachine(updated)
        machine.require_gate(gate)
        requirements = requirements_for(flow)
        previous = machine.transition_to(status_after_approval(gate, requirements))
        if gate == Gate.INSURANCE:
            updated.insurance_approval_status = InsuranceApprovalStatus.APPROVED
        now = self._clock()
        updated.updated_at = now
        record = ApprovalRecord(
            submission_id=submission.id,
            approver_id=actor.id,
            gate=gate,
            decision=Decision.APPROVED,
            comments=comments,
            created_at=now,
        )

        saved = self.storage.save_submission(updated, expected_status=previous, approval_record=record)
        self._log_transition(saved, previous, actor)
        action = HistoryAction.INSURANCE_APPROVED if gate == Gate.INSURANCE else HistoryAction.APPROVED
        self._emit(
            action,
            saved,
            actor,
            details={"gate": gate.value, "comments": comments, "nextStatus": saved.status.value},
        )
        return saved

    def reject(
        self,
        submission_id: str,
        gate: Union[Gate, str],
        actor: Actor,
        comments: Optional[str],
    ) -> Submission:
        """Reject the gate currently awaiting action.

        The submission becomes REJECTED and editable again; it must be
        resubmitted, which re-runs routing.

        Raises:
            ValidationFailed: ``comments`` is empty
            Forbidden: Actor's role cannot resolve ``gate``, or wrong branch
            InvalidTransition: The submission is not pending on ``gate``
        """
        gate = self._parse_gate(gate)
        if self.settings.REQUIRE_REJECTION_COMMENTS and is_empty(comments):
            raise ValidationFailed(
                [FieldError("comments", "Comments are required when rejecting", FieldErrorCode.REQUIRED)]
            )
        self._require_gate_role(gate, actor)
        submission = self.storage.load_submission(submission_id)
        self._require_branch(actor, submission, "You can only process approvals for your branch")

        updated = submission.copy()
        machine = SubmissionStateMachine(updated)
        machine.require_gate(gate)
        previous = machine.transition_to(SubmissionStatus.REJECTED)
        if gate == Gate.INSURANCE:
            updated.insurance_approval_status = InsuranceApprovalStatus.REJECTED
        if self.settings.RESET_PROGRESS_ON_REJECTION:
            updated.current_tab_index = 0
        now = self._clock()
        updated.updated_at = now
        record = ApprovalRecord(
            submission_id=submission.id,
            approver_id=actor.id,
            gate=gate,
            decision=Decision.REJECTED,
            comments=comments,
            created_at=now,
        )

        saved = self.storage.save_submission(updated, expected_status=previous, approval_record=record)
        self._log_transition(saved, previous, actor)
        action = HistoryAction.INSURANCE_REJECTED if gate == Gate.INSURANCE else HistoryAction.REJECTED
        self._emit(action, saved, actor, details={"gate": gate.value, "comments": comments})
        return saved

    def delete_submission(self, submission_id: str, actor: Actor) -> None:
        """Delete a DRAFT submission.

        Raises:
            Forbidden: Actor is not the owner
            InvalidTransition: Status is not DRAFT
        """
        submission = self.storage.load_submission(submission_id)
        if not actor.is_superadmin and submission.user_id != actor.id:
            raise Forbidden("You can only delete your own submissions")
        if submission.status != SubmissionStatus.DRAFT:
            raise InvalidTransition(
                "Can only delete draft submissions", current_status=submission.status
            )
        self.storage.delete_submission(submission_id, expected_status=SubmissionStatus.DRAFT)
        logger.info("submission %s: deleted by %s", submission_id, actor.id)
        self._emit(HistoryAction.DELETED, submission, actor)


__all__ = [
    "GATE_ROLES",
    "WorkflowEngine",
]
