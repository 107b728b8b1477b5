"""Unit tests for the in-memory store."""

from datetime import datetime, timezone

import pytest

from formflow.errors import NotFound, StaleSubmission
from formflow.storage import InMemoryStorage
from formflow.submission import ApprovalRecord, Submission
from formflow.types import Decision, Gate, InsuranceApprovalStatus, SubmissionStatus


def sub(sid="sub_1", status=SubmissionStatus.DRAFT, branch_id="br_1", user_id="u_1"):
    return Submission(id=sid, flow_id="flow_plain", branch_id=branch_id, user_id=user_id, status=status)


class TestSubmissions:
    """Test submission persistence."""

    def test_save_and_load(self):
        """Should load what was saved."""
        store = InMemoryStorage()
        store.save_submission(sub())
        loaded = store.load_submission("sub_1")
        assert loaded.id == "sub_1"
        assert len(store) == 1

    def test_unknown_submission(self):
        """Should raise NotFound for an unknown id."""
        with pytest.raises(NotFound):
            InMemoryStorage().load_submission("nope")

    def test_loaded_copies_are_detached(self):
        """Should hand out copies that do not alias stored state."""
        store = InMemoryStorage()
        store.save_submission(sub())
        loaded = store.load_submission("sub_1")
        loaded.form_data["customer_enquiry"] = {"first_name": "Mutated"}
        assert store.load_submission("sub_1").form_data == {}

    def test_stale_status_refuses_write(self):
        """A write validated against an old status changes nothing."""
        store = InMemoryStorage()
        store.save_submission(sub(status=SubmissionStatus.PENDING_MANAGER_APPROVAL))
        record = ApprovalRecord(submission_id="sub_1", approver_id="u_2", gate=Gate.MANAGER,
                                decision=Decision.APPROVED)
        with pytest.raises(StaleSubmission):
            store.save_submission(
                sub(status=SubmissionStatus.APPROVED),
                expected_status=SubmissionStatus.PENDING_INSURANCE_APPROVAL,
                approval_record=record,
            )
        assert store.load_submission("sub_1").status == SubmissionStatus.PENDING_MANAGER_APPROVAL
        assert store.list_approval_records("sub_1") == []

    def test_record_committed_with_submission(self):
        """Should store the approval record in the same write."""
        store = InMemoryStorage()
        store.save_submission(sub(status=SubmissionStatus.PENDING_MANAGER_APPROVAL))
        record = ApprovalRecord(submission_id="sub_1", approver_id="u_2", gate=Gate.MANAGER,
                                decision=Decision.APPROVED)
        store.save_submission(
            sub(status=SubmissionStatus.APPROVED),
            expected_status=SubmissionStatus.PENDING_MANAGER_APPROVAL,
            approval_record=record,
        )
        assert store.list_approval_records("sub_1") == [record]

    def test_list_filters(self):
        """Should filter by status, branch and user."""
        store = InMemoryStorage()
        store.save_submission(sub("a", SubmissionStatus.DRAFT, "br_1", "u_1"))
        store.save_submission(sub("b", SubmissionStatus.APPROVED, "br_1", "u_2"))
        store.save_submission(sub("c", SubmissionStatus.APPROVED, "br_2", "u_1"))
        assert {s.id for s in store.list_submissions(statuses=[SubmissionStatus.APPROVED])} == {"b", "c"}
        assert {s.id for s in store.list_submissions(branch_id="br_1")} == {"a", "b"}
        assert {s.id for s in store.list_submissions(user_id="u_1", branch_id="br_2")} == {"c"}

    def test_delete_with_expected_status(self):
        """Should delete only when the stored status matches."""
        store = InMemoryStorage()
        store.save_submission(sub(status=SubmissionStatus.REJECTED))
        with pytest.raises(StaleSubmission):
            store.delete_submission("sub_1", expected_status=SubmissionStatus.DRAFT)
        store.save_submission(sub())
        store.delete_submission("sub_1", expected_status=SubmissionStatus.DRAFT)
        assert len(store) == 0
        with pytest.raises(NotFound):
            store.delete_submission("sub_1")


class TestFlows:
    """Test flow lookup."""

    def test_load_flow(self, plain_flow):
        """Should return a registered flow and raise NotFound otherwise."""
        store = InMemoryStorage([plain_flow])
        assert store.load_flow_with_screens("flow_plain") is plain_flow
        with pytest.raises(NotFound):
            store.load_flow_with_screens("flow_missing")


class TestSubmissionSerialization:
    """Test the submission JSON shape."""

    def test_legacy_values_are_accepted(self):
        """Should accept PENDING_APPROVAL and N/A from old records."""
        loaded = Submission.from_dict({
            "id": "sub_1",
            "flowId": "flow_plain",
            "branchId": "br_1",
            "userId": "u_1",
            "status": "PENDING_APPROVAL",
            "insuranceApprovalStatus": "N/A",
            "submittedAt": "2025-06-15T10:00:00Z",
        })
        assert loaded.status == SubmissionStatus.PENDING_MANAGER_APPROVAL
        assert loaded.insurance_approval_status is None
        assert loaded.submitted_at == datetime(2025, 6, 15, 10, 0, tzinfo=timezone.utc)

    def test_round_trip(self):
        """Should survive to_dict/from_dict."""
        original = sub()
        original.form_data = {"customer_enquiry": {"first_name": "Asha"}}
        original.insurance_approval_status = InsuranceApprovalStatus.PENDING
        data = original.to_dict(display_status="DRAFT")
        assert data["displayStatus"] == "DRAFT"
        assert data["insuranceApprovalStatus"] == "PENDING"
        assert Submission.from_dict(data) == original

    def test_screen_data_lookup_is_case_insensitive(self):
        """Should find screen data whatever the key case."""
        s = sub()
        s.form_data = {"Customer_Enquiry": {"first_name": "Asha"}}
        assert s.screen_data("customer_enquiry") == {"first_name": "Asha"}
        assert s.screen_data("missing") == {}


class TestApprovalRecords:
    """Test the audit trail."""

    def test_append_keeps_order_per_submission(self):
        """Should keep records in append order per submission."""
        store = InMemoryStorage()
        first = ApprovalRecord(submission_id="sub_1", approver_id="u_ins", gate=Gate.INSURANCE,
                               decision=Decision.REJECTED, comments="Missing nominee")
        other = ApprovalRecord(submission_id="sub_2", approver_id="u_mgr", gate=Gate.MANAGER,
                               decision=Decision.APPROVED)
        second = ApprovalRecord(submission_id="sub_1", approver_id="u_ins", gate=Gate.INSURANCE,
                                decision=Decision.APPROVED)
        for record in (first, other, second):
            store.append_approval_record(record)
        assert store.list_approval_records("sub_1") == [first, second]

    def test_record_round_trip(self):
        """Should survive to_dict/from_dict."""
        record = ApprovalRecord(submission_id="sub_1", approver_id="u_mgr", gate=Gate.MANAGER,
                                decision=Decision.REJECTED, comments="Recheck amounts")
        data = record.to_dict()
        assert data["gate"] == "MANAGER"
        assert data["decision"] == "REJECTED"
        assert ApprovalRecord.from_dict(data) == record
