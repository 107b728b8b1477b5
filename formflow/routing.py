"""Approval routing.

Decides which gates a submission must pass and in what order. The decision is
a pure function of the approval flags on the flow's screens:

    flags on any screen                first status after submit
    ---------------------------------  ---------------------------
    none                               APPROVED (auto-approve)
    requiresInsuranceApproval only     PENDING_INSURANCE_APPROVAL
    requiresApproval only              PENDING_MANAGER_APPROVAL
    both                               PENDING_INSURANCE_APPROVAL, then
                                       PENDING_MANAGER_APPROVAL

Requirements are recomputed on every submit and approval so that edits to a
flow's screens take effect on resubmission.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from formflow.config import Settings, settings as default_settings
from formflow.definitions import FlowDefinition, ScreenDefinition
from formflow.submission import Submission
from formflow.types import (
    LEGACY_PENDING_LABEL,
    Gate,
    InsuranceApprovalStatus,
    SubmissionStatus,
)


@dataclass(frozen=True)
class ApprovalRequirements:
    """Union of approval flags across a flow's screens.

    Attributes:
        insurance_screens: Summaries of screens flagged requiresInsuranceApproval
        manager_screens: Summaries of screens flagged requiresApproval
    """
    insurance_screens: Tuple[Dict[str, Any], ...] = ()
    manager_screens: Tuple[Dict[str, Any], ...] = ()

    @property
    def insurance(self) -> bool:
        return bool(self.insurance_screens)

    @property
    def manager(self) -> bool:
        return bool(self.manager_screens)

    @property
    def gates(self) -> List[Gate]:
        """Gates in the order a submission passes them."""
        gates = []
        if self.insurance:
            gates.append(Gate.INSURANCE)
        if self.manager:
            gates.append(Gate.MANAGER)
        return gates

    def screens_for(self, gate: Gate) -> List[Dict[str, Any]]:
        return list(self.insurance_screens if gate == Gate.INSURANCE else self.manager_screens)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requiresInsuranceApproval": self.insurance,
            "requiresManagerApproval": self.manager,
            "screensRequiringInsuranceApproval": list(self.insurance_screens),
            "screensRequiringManagerApproval": list(self.manager_screens),
        }


def _summary(flow: FlowDefinition, index: int) -> Dict[str, Any]:
    fs = flow.flow_screens[index]
    return {
        "screenId": fs.screen.id,
        "screenName": fs.screen.display_name,
        "screenCode": fs.screen.code,
        "tabName": fs.tab_name,
        "tabOrder": fs.tab_order,
    }


def requirements_for(flow: FlowDefinition) -> ApprovalRequirements:
    insurance = tuple(
        _summary(flow, i) for i, fs in enumerate(flow.flow_screens) if fs.screen.requires_insurance_approval
    )
    manager = tuple(
        _summary(flow, i) for i, fs in enumerate(flow.flow_screens) if fs.screen.requires_approval
    )
    return ApprovalRequirements(insurance_screens=insurance, manager_screens=manager)


PENDING_STATUS_FOR_GATE = {
    Gate.INSURANCE: SubmissionStatus.PENDING_INSURANCE_APPROVAL,
    Gate.MANAGER: SubmissionStatus.PENDING_MANAGER_APPROVAL,
}


def pending_status_for(gate: Gate) -> SubmissionStatus:
    return PENDING_STATUS_FOR_GATE[gate]


def gate_awaiting(status: SubmissionStatus) -> Optional[Gate]:
    """Return the gate awaiting action in ``status``, if any."""
    for gate, pending in PENDING_STATUS_FOR_GATE.items():
        if pending == status:
            return gate
    return None


def initial_status(requirements: ApprovalRequirements) -> SubmissionStatus:
    """First status of a freshly submitted (or resubmitted) submission."""
    gates = requirements.gates
    if not gates:
        return SubmissionStatus.APPROVED
    return pending_status_for(gates[0])


def status_after_approval(gate: Gate, requirements: ApprovalRequirements) -> SubmissionStatus:
    """Status reached when ``gate`` approves."""
    if gate == Gate.INSURANCE and requirements.manager:
        return SubmissionStatus.PENDING_MANAGER_APPROVAL
    return SubmissionStatus.APPROVED


def display_status(
    status: SubmissionStatus,
    requirements: ApprovalRequirements,
    cfg: Optional[Settings] = None,
) -> str:
    """Label shown to callers for ``status``.

    Manager-only flows waiting on the manager surface the legacy
    ``PENDING_APPROVAL`` label when LEGACY_PENDING_LABEL is enabled.
    """
    cfg = cfg or default_settings
    if (
        cfg.LEGACY_PENDING_LABEL
        and status == SubmissionStatus.PENDING_MANAGER_APPROVAL
        and not requirements.insurance
    ):
        return LEGACY_PENDING_LABEL
    return status.value


def screen_approval_badge(screen: ScreenDefinition, submission: Submission) -> str:
    """Approval indicator for one screen: ``na``, ``pending``, ``approved`` or ``rejected``."""
    if not screen.requires_approval and not screen.requires_insurance_approval:
        return "na"

    status = submission.status
    if screen.requires_insurance_approval:
        insurance = submission.insurance_approval_status
        if insurance == InsuranceApprovalStatus.APPROVED:
            if not screen.requires_approval:
                return "approved"
            if status == SubmissionStatus.APPROVED:
                return "approved"
            if status == SubmissionStatus.REJECTED:
                return "rejected"
            return "pending"
        if insurance == InsuranceApprovalStatus.REJECTED:
            return "rejected"

    if status == SubmissionStatus.APPROVED:
        return "approved"
    if status == SubmissionStatus.REJECTED:
        return "rejected"
    if status == SubmissionStatus.DRAFT:
        return "na"
    return "pending"


__all__ = [
    "ApprovalRequirements",
    "requirements_for",
    "PENDING_STATUS_FOR_GATE",
    "pending_status_for",
    "gate_awaiting",
    "initial_status",
    "status_after_approval",
    "display_status",
    "screen_approval_badge",
]
