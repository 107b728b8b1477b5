"""Storage collaborator interface and an in-memory reference store.

The engine never persists anything itself. It reads through and commits to a
Storage implementation, one atomic call per operation. ``save_submission``
takes the status the engine validated against; if the stored status has moved
on in the meantime the store must refuse the write with StaleSubmission and
change nothing.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from formflow.definitions import FlowDefinition
from formflow.errors import NotFound, StaleSubmission
from formflow.submission import ApprovalRecord, Submission
from formflow.types import SubmissionStatus

logger = logging.getLogger(__name__)


class Storage(ABC):
    """What the engine needs from the persistence layer."""

    @abstractmethod
    def load_submission(self, submission_id: str) -> Submission:
        """Return the submission; raise NotFound if unknown."""

    @abstractmethod
    def save_submission(
        self,
        submission: Submission,
        expected_status: Optional[SubmissionStatus] = None,
        approval_record: Optional[ApprovalRecord] = None,
    ) -> Submission:
        """Atomically write the submission (and the approval record, if any).

        Raises:
            StaleSubmission: If ``expected_status`` is given and the stored
                status differs; nothing is written
        """

    @abstractmethod
    def append_approval_record(self, record: ApprovalRecord) -> None:
        """Append one record to the audit trail."""

    @abstractmethod
    def list_approval_records(self, submission_id: str) -> List[ApprovalRecord]:
        """Approval records of a submission, oldest first."""

    @abstractmethod
    def load_flow_with_screens(self, flow_id: str) -> FlowDefinition:
        """Return the flow with its screens and fields; raise NotFound if unknown."""

    @abstractmethod
    def list_submissions(
        self,
        statuses: Optional[Iterable[SubmissionStatus]] = None,
        branch_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Submission]:
        """Submissions matching every given filter."""

    @abstractmethod
    def delete_submission(
        self, submission_id: str, expected_status: Optional[SubmissionStatus] = None
    ) -> None:
        """Remove a submission; same optimistic check as save_submission."""


class InMemoryStorage(Storage):
    """Thread-safe in-process Storage, used by tests and demos.

    Reads and writes go through deep copies so callers can never mutate
    stored state without committing it.
    """

    def __init__(self, flows: Optional[Iterable[FlowDefinition]] = None):
        self._lock = threading.Lock()
        self._submissions: Dict[str, Submission] = {}
        self._records: List[ApprovalRecord] = []
        self._flows: Dict[str, FlowDefinition] = {}
        for flow in flows or []:
            self.add_flow(flow)

    def add_flow(self, flow: FlowDefinition) -> None:
        with self._lock:
            self._flows[flow.id] = flow

    def load_flow_with_screens(self, flow_id: str) -> FlowDefinition:
        with self._lock:
            flow = self._flows.get(flow_id)
        if flow is None:
            raise NotFound(f"Flow {flow_id} not found")
        return flow

    def load_submission(self, submission_id: str) -> Submission:
        with self._lock:
            stored = self._submissions.get(submission_id)
            if stored is None:
                raise NotFound(f"Submission {submission_id} not found")
            return stored.copy()

    def _check_expected(self, submission_id: str, expected_status: Optional[SubmissionStatus]) -> None:
        if expected_status is None:
            return
        stored = self._submissions.get(submission_id)
        if stored is None:
            raise NotFound(f"Submission {submission_id} not found")
        if stored.status != expected_status:
            raise StaleSubmission(
                f"Submission {submission_id} changed status to '{stored.status.value}' "
                f"(expected '{expected_status.value}')",
                current_status=stored.status,
            )

    def save_submission(
        self,
        submission: Submission,
        expected_status: Optional[SubmissionStatus] = None,
        approval_record: Optional[ApprovalRecord] = None,
    ) -> Submission:
        with self._lock:
            self._check_expected(submission.id, expected_status)
            self._submissions[submission.id] = submission.copy()
            if approval_record is not None:
                self._records.append(approval_record)
            logger.debug("Stored submission %s (%s)", submission.id, submission.status.value)
            return submission.copy()

    def append_approval_record(self, record: ApprovalRecord) -> None:
        with self._lock:
            self._records.append(record)

    def list_approval_records(self, submission_id: str) -> List[ApprovalRecord]:
        with self._lock:
            return [r for r in self._records if r.submission_id == submission_id]

    def list_submissions(
        self,
        statuses: Optional[Iterable[SubmissionStatus]] = None,
        branch_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> List[Submission]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                s.copy()
                for s in self._submissions.values()
                if (wanted is None or s.status in wanted)
                and (branch_id is None or s.branch_id == branch_id)
                and (user_id is None or s.user_id == user_id)
            ]

    def delete_submission(
        self, submission_id: str, expected_status: Optional[SubmissionStatus] = None
    ) -> None:
        with self._lock:
            if submission_id not in self._submissions:
                raise NotFound(f"Submission {submission_id} not found")
            self._check_expected(submission_id, expected_status)
            del self._submissions[submission_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._submissions)


__all__ = [
    "Storage",
    "InMemoryStorage",
]
